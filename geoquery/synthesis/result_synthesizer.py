import json
import logging
from typing import Any, Dict, Iterator, List, Literal, Optional, Tuple
from pydantic import BaseModel, Field

from geoquery.analysis.entity_extractor import ExtractedEntities
from geoquery.analysis.query_classifier import QueryType
from geoquery.llm.output_parsing import extract_text, structured_data
from geoquery.orchestration.phase_coordinator import PhaseResult, PhaseStatus
from geoquery.orchestration.query_understanding import QueryAnalysis

logger = logging.getLogger("result_synthesizer")


# ============================================================================
# Response models
# ============================================================================

class GeoBounds(BaseModel):
    north: float
    south: float
    east: float
    west: float


class GeoPoint(BaseModel):
    lat: float
    lon: float


class GeoCollection(BaseModel):
    type: Literal["FeatureCollection"] = "FeatureCollection"
    features: List[Dict[str, Any]] = Field(default_factory=list)
    bounds: Optional[GeoBounds] = None
    center: Optional[GeoPoint] = None


class ResponseMetadata(BaseModel):
    execution_time_ms: float = 0.0
    executors_used: List[str] = Field(default_factory=list)
    cache_hits: int = 0
    parallel_phases: int = 0
    confidence: float = 0.0
    intent: str = "unknown"
    detected_entities: List[str] = Field(default_factory=list)
    session_id: Optional[str] = None
    plan_id: Optional[str] = None
    phase_statuses: Dict[str, str] = Field(default_factory=dict)


class Recommendations(BaseModel):
    related_queries: List[str] = Field(default_factory=list)
    suggested_actions: List[str] = Field(default_factory=list)


class SynthesizedResponse(BaseModel):
    """The single structured answer returned for every request, including failed ones."""
    query_type: Optional[QueryType] = None
    extracted_entities: ExtractedEntities = Field(default_factory=ExtractedEntities)
    summary_text: str = ""
    geo_collection: GeoCollection = Field(default_factory=GeoCollection)
    raw_data: Optional[Any] = None
    success: bool = True
    errors: List[str] = Field(default_factory=list)
    metadata: ResponseMetadata = Field(default_factory=ResponseMetadata)
    recommendations: Optional[Recommendations] = None


# ============================================================================
# Geo helpers
# ============================================================================

SUMMARY_SOURCES = ["summarize", "aggregate", "direct_search", "collect", "geospatial_collect"]
MAP_SOURCES = ["map", "geospatial_collect"]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _valid_lat_lon(lat: Any, lon: Any) -> bool:
    return _is_number(lat) and _is_number(lon) and -90 <= lat <= 90 and -180 <= lon <= 180


def _point_feature(lat: float, lon: float, properties: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [lon, lat]},
        "properties": properties,
    }


def _record_properties(record: Dict[str, Any]) -> Dict[str, Any]:
    properties: Dict[str, Any] = {}

    poi = record.get("poi") if isinstance(record.get("poi"), dict) else {}
    display_name = record.get("displayName")
    name = (
        record.get("name")
        or record.get("title")
        or poi.get("name")
        or (display_name.get("text") if isinstance(display_name, dict) else display_name)
    )
    if name:
        properties["name"] = name

    address = record.get("address")
    if isinstance(address, dict):
        address = address.get("freeformAddress")
    address = address or record.get("formattedAddress")
    if isinstance(address, str) and address:
        properties["address"] = address

    category = record.get("category")
    if not category and isinstance(poi.get("categories"), list) and poi["categories"]:
        category = poi["categories"][0]
    if category:
        properties["category"] = category

    for key in ("rating", "start", "end"):
        if key in record:
            properties[key] = record[key]

    return properties


def _point_from_record(record: Dict[str, Any]) -> Optional[Tuple[float, float]]:
    """(lat, lon) for a point-like record, else None."""
    for lat_key, lon_key in (("lat", "lon"), ("lat", "lng"), ("latitude", "longitude")):
        if _valid_lat_lon(record.get(lat_key), record.get(lon_key)):
            return record[lat_key], record[lon_key]

    position = record.get("position")
    if isinstance(position, dict) and _valid_lat_lon(position.get("lat"), position.get("lon")):
        return position["lat"], position["lon"]

    location = record.get("location")
    if isinstance(location, dict):
        coordinates = location.get("coordinates")
        if isinstance(coordinates, list) and len(coordinates) >= 2 and _valid_lat_lon(coordinates[1], coordinates[0]):
            return coordinates[1], coordinates[0]
        if _valid_lat_lon(location.get("latitude"), location.get("longitude")):
            return location["latitude"], location["longitude"]
        if _valid_lat_lon(location.get("lat"), location.get("lon")):
            return location["lat"], location["lon"]

    return None


def _point_geometry(value: Any) -> Optional[Tuple[float, float]]:
    if isinstance(value, dict) and value.get("type") == "Point":
        coordinates = value.get("coordinates")
        if isinstance(coordinates, list) and len(coordinates) >= 2 and _valid_lat_lon(coordinates[1], coordinates[0]):
            return coordinates[1], coordinates[0]
    return None


def iter_point_features(payload: Any) -> Iterator[Dict[str, Any]]:
    """
    Walk any JSON payload and yield a Point Feature for every point-like record:
    GeoJSON Point features or geometries, {lat, lon}, {latitude, longitude},
    {position: {lat, lon}} and {location: {coordinates: [lon, lat]}}.
    """
    if isinstance(payload, list):
        for item in payload:
            yield from iter_point_features(item)
        return

    if not isinstance(payload, dict):
        return

    if payload.get("type") == "Feature":
        point = _point_geometry(payload.get("geometry"))
        if point:
            properties = payload.get("properties") if isinstance(payload.get("properties"), dict) else {}
            yield _point_feature(point[0], point[1], dict(properties))
            return

    point = _point_geometry(payload)
    if point:
        yield _point_feature(point[0], point[1], {})
        return

    point = _point_from_record(payload)
    if point:
        yield _point_feature(point[0], point[1], _record_properties(payload))
        return

    for value in payload.values():
        if isinstance(value, (dict, list)):
            yield from iter_point_features(value)


def as_feature_collection(data: Any) -> Optional[Dict[str, Any]]:
    """A FeatureCollection dict, either top-level or under a 'geojson' key."""
    if not isinstance(data, dict):
        return None
    if data.get("type") == "FeatureCollection" and isinstance(data.get("features"), list):
        return data
    nested = data.get("geojson")
    if isinstance(nested, dict) and nested.get("type") == "FeatureCollection" and isinstance(nested.get("features"), list):
        return nested
    return None


def compute_bounds_and_center(
    features: List[Dict[str, Any]]
) -> Tuple[Optional[GeoBounds], Optional[GeoPoint]]:
    """Bounding box and arithmetic-mean center over Point features; (None, None) without any."""
    points = []
    for feature in features:
        if not isinstance(feature, dict):
            continue
        point = _point_geometry(feature.get("geometry"))
        if point:
            points.append(point)

    if not points:
        return None, None

    lats = [lat for lat, _ in points]
    lons = [lon for _, lon in points]
    bounds = GeoBounds(north=max(lats), south=min(lats), east=max(lons), west=min(lons))
    center = GeoPoint(lat=sum(lats) / len(lats), lon=sum(lons) / len(lons))
    return bounds, center


# ============================================================================
# Synthesizer
# ============================================================================

class ResultSynthesizer:
    """Merges phase results into one SynthesizedResponse."""

    def combine(
        self,
        analysis: QueryAnalysis,
        phase_results: Dict[str, PhaseResult],
        include_raw_data: bool = False
    ) -> SynthesizedResponse:
        summary_text = self._summary_text(phase_results)
        features = self._geo_features(phase_results)
        bounds, center = compute_bounds_and_center(features)

        if analysis.requires_mapping and not features:
            logger.info("Mapping was requested but no geo-capable data was found")

        raw_data = None
        if include_raw_data:
            raw_data = {
                name: result.payload() for name, result in phase_results.items()
                if result.completed or result.operations
            }

        executors_used = []
        for result in phase_results.values():
            if result.status in (PhaseStatus.COMPLETED, PhaseStatus.FAILED) and result.executor not in executors_used:
                executors_used.append(result.executor)

        response = SynthesizedResponse(
            query_type=analysis.query_type,
            extracted_entities=analysis.extracted_entities,
            summary_text=summary_text,
            geo_collection=GeoCollection(features=features, bounds=bounds, center=center),
            raw_data=raw_data,
            metadata=ResponseMetadata(
                executors_used=executors_used,
                confidence=analysis.confidence,
                intent=analysis.query_type.value,
                detected_entities=list(analysis.extracted_entities.locations),
                phase_statuses={name: result.status.value for name, result in phase_results.items()},
            ),
        )

        logger.info(f"Synthesized response: {len(features)} feature(s), summary={len(summary_text)} chars")
        return response

    def _summary_text(self, phase_results: Dict[str, PhaseResult]) -> str:
        for name in SUMMARY_SOURCES:
            result = phase_results.get(name)
            if result is None or not result.completed:
                continue
            text = extract_text(result.output).strip()
            if text:
                return text
        return self._unavailable_text(phase_results)

    @staticmethod
    def _unavailable_text(phase_results: Dict[str, PhaseResult]) -> str:
        problems = [
            f"{name} ({result.status.value}{': ' + result.error if result.error else ''})"
            for name, result in phase_results.items()
            if not result.completed
        ]
        if not problems:
            return "No summary could be produced from the available data."
        return "Some information could not be retrieved: " + "; ".join(problems) + "."

    def _geo_features(self, phase_results: Dict[str, PhaseResult]) -> List[Dict[str, Any]]:
        for name in MAP_SOURCES:
            result = phase_results.get(name)
            if result is None or not result.completed:
                continue
            collection = as_feature_collection(structured_data(result.output))
            if collection is not None:
                logger.debug(f"Using FeatureCollection from '{name}' verbatim")
                return list(collection["features"])

        features: List[Dict[str, Any]] = []
        seen = set()
        for name, result in phase_results.items():
            sources = list(result.operations.values())
            if result.completed:
                sources.append(structured_data(result.output))
            for source in sources:
                for feature in iter_point_features(source):
                    lon, lat = feature["geometry"]["coordinates"]
                    key = (lon, lat, json.dumps(feature["properties"].get("name"), default=str))
                    if key in seen:
                        continue
                    seen.add(key)
                    feature["properties"]["source_phase"] = name
                    features.append(feature)
        return features
