import asyncio
import logging
import time
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from geoquery.config import CACHE_DEFAULT_TTL_MS, CACHE_CLEANUP_THRESHOLD
from geoquery.services.external_operations import ExternalOperation
from geoquery.services.result_cache import ResultCache, make_cache_key

logger = logging.getLogger("operation_gateway")

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS


class OperationPolicy(BaseModel):
    ttl_ms: int = Field(CACHE_DEFAULT_TTL_MS, description="TTL for cached results")
    cache_by_default: bool = Field(True, description="Whether calls use the cache unless told otherwise")


# TTLs follow how fast the underlying data changes.
OPERATION_POLICIES: Dict[str, OperationPolicy] = {
    "search_places": OperationPolicy(),
    "fuzzy_search": OperationPolicy(),
    "google_places_insights": OperationPolicy(),
    "get_place_details": OperationPolicy(ttl_ms=30 * MINUTE_MS),
    "google_place_details": OperationPolicy(ttl_ms=30 * MINUTE_MS),
    "get_poi_photos": OperationPolicy(ttl_ms=HOUR_MS),
    "search_events": OperationPolicy(ttl_ms=15 * MINUTE_MS),
    "get_weather": OperationPolicy(ttl_ms=10 * MINUTE_MS),
    "get_foot_traffic": OperationPolicy(ttl_ms=HOUR_MS),
    "get_foot_traffic_summary": OperationPolicy(ttl_ms=HOUR_MS),
    # Aggregates must reflect current data
    "get_aggregated_metric": OperationPolicy(cache_by_default=False),
    "get_ip_location": OperationPolicy(ttl_ms=24 * HOUR_MS),
}


class OperationResult(BaseModel):
    operation_id: str
    data: Any = None
    cached: bool = False
    execution_time_ms: float = 0.0


class OperationGateway:
    """
    Single entry point for external operations.

    Every call goes through the ResultCache with the operation's TTL policy.
    Cache failures count as misses; operation failures propagate to the
    caller, which decides whether they are fatal.
    """

    def __init__(
        self,
        operation: ExternalOperation,
        cache: Optional[ResultCache] = None,
        policies: Optional[Dict[str, OperationPolicy]] = None
    ):
        self.operation = operation
        self.cache = cache if cache is not None else ResultCache()
        self.policies = dict(OPERATION_POLICIES if policies is None else policies)
        self._hits = 0
        self._misses = 0

    def policy_for(self, operation_id: str) -> OperationPolicy:
        return self.policies.get(operation_id, OperationPolicy())

    async def call(
        self,
        operation_id: str,
        params: Optional[Dict[str, Any]] = None,
        use_cache: Optional[bool] = None,
        ttl_ms: Optional[int] = None
    ) -> OperationResult:
        """
        Execute an operation, serving it from cache when allowed.

        Args:
            operation_id: Operation to run (e.g. "search_places")
            params: Operation parameters
            use_cache: Override the policy's cache default for this call
            ttl_ms: Override the policy's TTL for this call
        """
        params = params or {}
        policy = self.policy_for(operation_id)
        cache_enabled = policy.cache_by_default if use_cache is None else use_cache
        start = time.perf_counter()
        key = make_cache_key(operation_id, params)

        if cache_enabled:
            cached = self._cache_get(key)
            if cached is not None:
                self._hits += 1
                logger.debug(f"Cache hit for {operation_id}")
                return OperationResult(
                    operation_id=operation_id,
                    data=cached,
                    cached=True,
                    execution_time_ms=(time.perf_counter() - start) * 1000,
                )
            self._misses += 1

        logger.debug(f"Executing operation {operation_id}")
        try:
            data = await self.operation.call(operation_id, params)
        except Exception as e:
            logger.error(f"Operation {operation_id} failed: {e}")
            raise

        if cache_enabled and data is not None:
            self._cache_set(key, data, ttl_ms or policy.ttl_ms)

        return OperationResult(
            operation_id=operation_id,
            data=data,
            cached=False,
            execution_time_ms=(time.perf_counter() - start) * 1000,
        )

    def _cache_get(self, key: str) -> Optional[Any]:
        try:
            return self.cache.get(key)
        except Exception as e:
            logger.warning(f"Cache read failed, treating as miss: {e}")
            return None

    def _cache_set(self, key: str, value: Any, ttl_ms: int) -> None:
        try:
            self.cache.set(key, value, ttl_ms)
        except Exception as e:
            logger.warning(f"Cache write failed, result not cached: {e}")

    # ------------------------------------------------------------------
    # Named operations
    # ------------------------------------------------------------------

    async def search_places(self, params: Dict[str, Any], use_cache: bool = True) -> OperationResult:
        return await self.call("search_places", params, use_cache)

    async def fuzzy_search(self, params: Dict[str, Any], use_cache: bool = True) -> OperationResult:
        return await self.call("fuzzy_search", params, use_cache)

    async def get_place_details(self, params: Dict[str, Any], use_cache: bool = True) -> OperationResult:
        return await self.call("get_place_details", params, use_cache)

    async def get_poi_photos(self, params: Dict[str, Any], use_cache: bool = True) -> OperationResult:
        return await self.call("get_poi_photos", params, use_cache)

    async def google_place_details(self, params: Dict[str, Any], use_cache: bool = True) -> OperationResult:
        return await self.call("google_place_details", params, use_cache)

    async def google_places_insights(self, params: Dict[str, Any], use_cache: bool = True) -> OperationResult:
        return await self.call("google_places_insights", params, use_cache)

    async def search_events(self, params: Dict[str, Any], use_cache: bool = True) -> OperationResult:
        return await self.call("search_events", params, use_cache)

    async def get_weather(self, params: Dict[str, Any], use_cache: bool = True) -> OperationResult:
        return await self.call("get_weather", params, use_cache)

    async def get_foot_traffic(self, params: Dict[str, Any], use_cache: bool = True) -> OperationResult:
        return await self.call("get_foot_traffic", params, use_cache)

    async def get_foot_traffic_summary(self, params: Dict[str, Any], use_cache: bool = True) -> OperationResult:
        return await self.call("get_foot_traffic_summary", params, use_cache)

    async def get_aggregated_metric(self, params: Dict[str, Any], use_cache: bool = False) -> OperationResult:
        return await self.call("get_aggregated_metric", params, use_cache)

    async def get_ip_location(self, params: Dict[str, Any], use_cache: bool = True) -> OperationResult:
        return await self.call("get_ip_location", params, use_cache)

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    async def execute_batch(self, calls: List[Dict[str, Any]]) -> List[OperationResult]:
        """
        Run several operations concurrently.

        Each call is a dict with "operation_id", "params" and optional
        "use_cache". Results keep the order of the calls; the first failure
        propagates.
        """
        return list(await asyncio.gather(*[
            self.call(call["operation_id"], call.get("params", {}), call.get("use_cache"))
            for call in calls
        ]))

    async def execute_for_location(
        self,
        location: Dict[str, Any],
        operation_ids: List[str],
        additional_params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, OperationResult]:
        """Run several operations for the same {lat, lon[, radius]} concurrently."""
        params = {**location, **(additional_params or {})}
        results = await asyncio.gather(*[self.call(op, params) for op in operation_ids])
        return dict(zip(operation_ids, results))

    # ------------------------------------------------------------------
    # Cache management
    # ------------------------------------------------------------------

    def cache_statistics(self) -> Dict[str, Any]:
        stats = self.cache.stats()
        total = self._hits + self._misses
        stats.update({
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total, 3) if total else 0.0,
            "cleanup_recommended": stats["size"] > CACHE_CLEANUP_THRESHOLD,
        })
        return stats

    def clear_cache(self) -> int:
        self._hits = 0
        self._misses = 0
        return self.cache.clear()

    def sweep(self) -> int:
        return self.cache.sweep()
