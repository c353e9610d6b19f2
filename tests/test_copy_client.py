import asyncio
import json

import httpx
import pytest

from copy_client import ConfigurationError, CopyServiceClient, CopyServiceError
from copy_payload import RequestPayload

ENDPOINT = "https://copy.example.test/api/generate"


def make_payload() -> RequestPayload:
    return RequestPayload(project_context="ctx", audience="Learner", user_request="Shorten this")


def test_generate_posts_payload_with_headers():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"text": "Start learning"})

    client = CopyServiceClient(ENDPOINT, "s3cret", transport=httpx.MockTransport(handler))
    text = asyncio.run(client.generate(make_payload()))

    assert text == "Start learning"
    assert seen["method"] == "POST"
    assert seen["url"] == ENDPOINT
    assert seen["headers"]["Authorization"] == "Bearer s3cret"
    assert seen["headers"]["Content-Type"] == "application/json"
    assert seen["body"]["userRequest"] == "Shorten this"
    assert seen["body"]["projectContext"] == "ctx"


def test_missing_secret_sends_empty_bearer():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"text": ""})

    client = CopyServiceClient(ENDPOINT, None, transport=httpx.MockTransport(handler))
    assert asyncio.run(client.generate(make_payload())) == ""
    assert captured["auth"].strip() == "Bearer"


def test_missing_endpoint_is_a_configuration_error():
    def handler(request):
        raise AssertionError("no request expected")

    client = CopyServiceClient("", transport=httpx.MockTransport(handler))
    with pytest.raises(ConfigurationError):
        asyncio.run(client.generate(make_payload()))


def test_non_2xx_surfaces_status_and_body():
    transport = httpx.MockTransport(lambda request: httpx.Response(401, text='{"error":"Unauthorized"}'))
    client = CopyServiceClient(ENDPOINT, "wrong", transport=transport)
    with pytest.raises(CopyServiceError) as excinfo:
        asyncio.run(client.generate(make_payload()))
    err = excinfo.value
    assert err.code == "proxy_error"
    assert err.details == {"status": 401}
    assert str(err) == 'API error 401: {"error":"Unauthorized"}'


def test_transport_failure_is_a_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = CopyServiceClient(ENDPOINT, transport=httpx.MockTransport(handler))
    with pytest.raises(CopyServiceError) as excinfo:
        asyncio.run(client.generate(make_payload()))
    assert excinfo.value.code == "network_error"


def test_non_json_success_is_invalid_response():
    client = CopyServiceClient(ENDPOINT, transport=httpx.MockTransport(lambda r: httpx.Response(200, text="<html>")))
    with pytest.raises(CopyServiceError) as excinfo:
        asyncio.run(client.generate(make_payload()))
    assert excinfo.value.code == "invalid_response"
