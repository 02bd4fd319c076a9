"""
Pytest configuration file.

Sets the test environment before any project import and provides in-memory
stand-ins for the two external collaborators: the reasoning service and the
external data operations.
"""
import os
import sys
from pathlib import Path

# Set APP_ENV to test before any other imports
os.environ['APP_ENV'] = 'test'

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import asyncio  # noqa: E402
from typing import Any, Dict, List, Optional, Tuple, Union  # noqa: E402

import pytest  # noqa: E402

from geoquery.llm.reasoning import ReasoningExecutor  # noqa: E402
from geoquery.services.external_operations import ExternalOperation  # noqa: E402


SAMPLE_PLACES = {
    "results": [
        {
            "poi": {"name": "Carmine's", "categories": ["restaurant"]},
            "address": {"freeformAddress": "200 W 44th St, New York, NY"},
            "position": {"lat": 40.7575, "lon": -73.9865},
        },
        {
            "poi": {"name": "Junior's", "categories": ["restaurant"]},
            "address": {"freeformAddress": "1515 Broadway, New York, NY"},
            "position": {"lat": 40.7590, "lon": -73.9870},
        },
    ]
}

SAMPLE_EVENTS = {
    "results": [
        {"title": "Street Fair", "category": "festivals", "location": {"coordinates": [-73.9855, 40.7580]}},
    ]
}

SAMPLE_WEATHER = {"temperature": 21, "condition": "Clear"}

SAMPLE_METRIC = {"metric": "average", "field": "rating", "value": 4.4, "count": 57}

SAMPLE_FOOT_TRAFFIC = {"busiest_day": "Saturday", "peak_hour": 9}

MAP_COLLECTION = """```json
{"type": "FeatureCollection", "features": [
  {"type": "Feature", "geometry": {"type": "Point", "coordinates": [-73.9865, 40.7575]}, "properties": {"name": "Carmine's"}},
  {"type": "Feature", "geometry": {"type": "Point", "coordinates": [-73.9870, 40.7590]}, "properties": {"name": "Junior's"}}
]}
```"""


class FakeReasoningExecutor(ReasoningExecutor):
    """Answers per role; a response may be a value, a callable(prompt) or an exception."""

    DEFAULT_RESPONSES: Dict[str, Any] = {
        "planner": '{"search_terms": [], "data_needs": ["places"], "notes": "direct lookup"}',
        "collector": "Found 2 restaurants near Times Square: Carmine's and Junior's.",
        "summarizer": "There are 2 well-rated restaurants near Times Square.",
        "map-formatter": MAP_COLLECTION,
    }

    def __init__(self, responses: Optional[Dict[str, Any]] = None, delay: float = 0.0):
        self.responses = dict(self.DEFAULT_RESPONSES)
        self.responses.update(responses or {})
        self.delay = delay
        self.calls: List[Tuple[str, str]] = []

    async def invoke(self, role: str, prompt: str) -> Any:
        self.calls.append((role, prompt))
        if self.delay:
            await asyncio.sleep(self.delay)
        response = self.responses.get(role)
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(prompt)
        return response

    def roles_called(self) -> List[str]:
        return [role for role, _ in self.calls]


class FakeExternalOperation(ExternalOperation):
    """Returns canned data per operation id; entries that are exceptions are raised."""

    DEFAULT_RESPONSES: Dict[str, Any] = {
        "search_places": SAMPLE_PLACES,
        "search_events": SAMPLE_EVENTS,
        "get_weather": SAMPLE_WEATHER,
        "get_aggregated_metric": SAMPLE_METRIC,
        "get_foot_traffic": SAMPLE_FOOT_TRAFFIC,
    }

    def __init__(self, responses: Optional[Dict[str, Union[Any, Exception]]] = None):
        self.responses = dict(self.DEFAULT_RESPONSES)
        self.responses.update(responses or {})
        self.calls: List[Tuple[str, Dict[str, Any]]] = []

    async def call(self, operation_id: str, params: Dict[str, Any]) -> Any:
        self.calls.append((operation_id, params))
        response = self.responses.get(operation_id, {})
        if isinstance(response, Exception):
            raise response
        return response

    def operations_called(self) -> List[str]:
        return [op for op, _ in self.calls]


@pytest.fixture
def fake_reasoning():
    return FakeReasoningExecutor()


@pytest.fixture
def fake_operations():
    return FakeExternalOperation()


@pytest.fixture
def orchestrator(fake_reasoning, fake_operations):
    from geoquery.orchestration.orchestrator import Orchestrator
    return Orchestrator(reasoning=fake_reasoning, operation=fake_operations, parallel=True)
