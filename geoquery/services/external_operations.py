"""
External data operations (place search, weather, events, statistics, ...).

ExternalOperation is the interface the engine consumes. HttpExternalOperation is
the default adapter: each operation id maps to a JSON POST endpoint on an
operations service, and failures are classified as transient (timeouts,
connection errors, 429/5xx) or permanent (other 4xx, malformed payloads).
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from geoquery.config import OPERATIONS_BASE_URL, OPERATIONS_TIMEOUT_SECONDS
from geoquery.errors import OperationError, TransientOperationError

logger = logging.getLogger(__name__)


class ExternalOperation(ABC):
    """A third-party data source reachable by operation id."""

    @abstractmethod
    async def call(self, operation_id: str, params: Dict[str, Any]) -> Any:
        """
        Run one operation and return its JSON value.

        Raises:
            TransientOperationError: Retryable failure (timeout, upstream 5xx)
            OperationError: Permanent failure
        """


class HttpExternalOperation(ExternalOperation):
    """
    Calls operations over HTTP: POST {base_url}/{operation_id} with the params
    as the JSON body. A response envelope of {"success": ..., "data": ...} is
    unwrapped; any other JSON body is returned as-is.
    """

    def __init__(
        self,
        base_url: str = OPERATIONS_BASE_URL,
        timeout: float = OPERATIONS_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        headers: Optional[Dict[str, str]] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._headers = headers or {}

    async def call(self, operation_id: str, params: Dict[str, Any]) -> Any:
        url = f"{self.base_url}/{operation_id}"

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                headers=self._headers
            ) as client:
                response = await client.post(url, json=params)

        except httpx.TimeoutException as e:
            logger.warning(f"Operation {operation_id} timed out after {self.timeout}s")
            raise TransientOperationError(operation_id, f"timed out: {e}") from e
        except httpx.RequestError as e:
            logger.warning(f"Operation {operation_id} request failed: {e}")
            raise TransientOperationError(operation_id, f"request failed: {e}") from e

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientOperationError(
                operation_id,
                f"upstream returned HTTP {response.status_code}",
                status_code=response.status_code
            )
        if response.status_code >= 400:
            raise OperationError(
                operation_id,
                f"rejected with HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code
            )

        try:
            body = response.json()
        except ValueError as e:
            raise OperationError(operation_id, "response is not valid JSON", status_code=response.status_code) from e

        if isinstance(body, dict) and "success" in body:
            if not body.get("success"):
                raise OperationError(operation_id, body.get("error") or body.get("message") or "operation reported failure")
            return body.get("data")

        return body
