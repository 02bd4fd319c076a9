"""
Tests for the HTTP operations adapter, using httpx.MockTransport.
"""
import json

import httpx
import pytest

from geoquery.errors import OperationError, TransientOperationError
from geoquery.services.external_operations import HttpExternalOperation


def make_operation(handler):
    return HttpExternalOperation(
        base_url="http://operations.test/api/operations/",
        timeout=5,
        transport=httpx.MockTransport(handler),
    )


class TestSuccessfulCalls:

    @pytest.mark.asyncio
    async def test_posts_params_to_operation_url(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["method"] = request.method
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"temperature": 21})

        result = await make_operation(handler).call("get_weather", {"lat": 1.5, "lon": 2.5})

        assert result == {"temperature": 21}
        assert seen["url"] == "http://operations.test/api/operations/get_weather"
        assert seen["method"] == "POST"
        assert seen["body"] == {"lat": 1.5, "lon": 2.5}

    @pytest.mark.asyncio
    async def test_unwraps_success_envelope(self):
        def handler(request):
            return httpx.Response(200, json={"success": True, "data": {"results": []}})

        assert await make_operation(handler).call("search_places", {}) == {"results": []}

    @pytest.mark.asyncio
    async def test_returns_bare_list(self):
        def handler(request):
            return httpx.Response(200, json=[{"name": "a"}])

        assert await make_operation(handler).call("search_places", {}) == [{"name": "a"}]


class TestFailureClassification:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [429, 500, 503])
    async def test_retryable_status_is_transient(self, status):
        def handler(request):
            return httpx.Response(status, text="busy")

        with pytest.raises(TransientOperationError) as exc_info:
            await make_operation(handler).call("get_weather", {})
        assert exc_info.value.status_code == status

    @pytest.mark.asyncio
    async def test_client_error_is_permanent(self):
        def handler(request):
            return httpx.Response(400, text="missing lat")

        with pytest.raises(OperationError) as exc_info:
            await make_operation(handler).call("get_weather", {})
        assert not isinstance(exc_info.value, TransientOperationError)
        assert exc_info.value.status_code == 400
        assert "missing lat" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(TransientOperationError, match="timed out"):
            await make_operation(handler).call("search_events", {})

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransientOperationError, match="request failed"):
            await make_operation(handler).call("search_events", {})

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        def handler(request):
            return httpx.Response(200, text="<html>oops</html>")

        with pytest.raises(OperationError, match="not valid JSON"):
            await make_operation(handler).call("search_places", {})

    @pytest.mark.asyncio
    async def test_envelope_failure(self):
        def handler(request):
            return httpx.Response(200, json={"success": False, "error": "quota exceeded"})

        with pytest.raises(OperationError, match="quota exceeded"):
            await make_operation(handler).call("search_places", {})
