from unittest.mock import patch

import pytest
from fastapi import Request
from fastapi.responses import JSONResponse

from crowdshield.api.app import REQUEST_LOG, rate_limit_middleware
from crowdshield.settings import get_settings


async def mock_call_next(request):
    """A dummy function to simulate the 'call_next' in the middleware."""
    return JSONResponse(content={"message": "OK"})


def _request(ip):
    scope = {
        "type": "http",
        "client": ("testclient", 123),
        "headers": [(b"x-forwarded-for", ip.encode())],
    }
    return Request(scope)


@pytest.mark.anyio
async def test_rate_limiting_direct_call():
    """Unit test the middleware logic directly, bypassing the TestClient."""
    max_requests = get_settings().api.max_requests_per_minute
    request = _request("127.0.0.1")

    with patch("time.time") as mock_time:
        current_time = 1000000.0
        mock_time.return_value = current_time

        for _ in range(max_requests):
            response = await rate_limit_middleware(request, mock_call_next)
            assert response.status_code == 200

        blocked = await rate_limit_middleware(request, mock_call_next)
        assert blocked.status_code == 429
        assert int(blocked.headers["Retry-After"]) >= 1

        # Other clients are tracked separately
        other = await rate_limit_middleware(_request("10.0.0.2"), mock_call_next)
        assert other.status_code == 200

        # Move past the rolling window
        mock_time.return_value = current_time + 61
        response = await rate_limit_middleware(request, mock_call_next)
        assert response.status_code == 200

    assert len(REQUEST_LOG["127.0.0.1"]) == 1


def test_client_receives_429_with_retry_after(client):
    limit = get_settings().api.max_requests_per_minute
    for _ in range(limit):
        assert client.get("/health").status_code == 200

    response = client.get("/health")

    assert response.status_code == 429
    assert "Retry-After" in response.headers
