#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import asyncio
from collections.abc import Callable
from typing import Any
from urllib.parse import parse_qs

import pytest

from owlhub_core._http import HTTPRequest, HTTPResponse
from owlhub_core.config import ClientConfig
from owlhub_core.credentials import Credentials
from owlhub_core.endpoints import get_endpoint_cache
from owlhub_core.exceptions import (
    CONFIG_ERROR,
    CREDENTIALS_ERROR,
    ENDPOINT_DISCOVERY_ERROR,
    REQUEST_ABORTED_ERROR,
    SERIALIZATION_ERROR,
    TIMEOUT_ERROR,
    OwlhubError,
)
from owlhub_core.request import Response
from owlhub_core.service import Service, ServiceApi
from owlhub_core.testing import MockTransport


class Things(Service):
    api = ServiceApi(
        service_id="Things",
        endpoint_prefix="things",
        api_version="2020-01-01",
    )


class DiscoveredThings(Service):
    api = ServiceApi(
        service_id="DiscoveredThings",
        endpoint_prefix="things",
        api_version="2020-01-01",
        endpoint_discovery_operation="DescribeEndpoints",
    )


class RequiredDiscoveryThings(Service):
    api = ServiceApi(
        service_id="RequiredDiscoveryThings",
        endpoint_prefix="things",
        api_version="2020-01-01",
        endpoint_discovery_operation="DescribeEndpoints",
        endpoint_discovery_required=True,
    )


class BlockingTransport(MockTransport):
    def __init__(self) -> None:
        super().__init__()
        self.started = asyncio.Event()

    async def send(
        self, request: HTTPRequest, *, timeout: float | None = None
    ) -> HTTPResponse:
        self.started.set()
        await asyncio.Event().wait()
        raise AssertionError("unreachable")


class RotatingCredentials(Credentials):
    def __init__(self) -> None:
        super().__init__()
        self.expired = True
        self.generation = 0

    async def load(self) -> None:
        self.generation += 1
        self.access_key_id = f"AKID{self.generation}"
        self.secret_access_key = "SECRET"
        self.expired = False


def _form(request: HTTPRequest) -> dict[str, str]:
    body = request.body.decode() if isinstance(request.body, bytes) else request.body
    return {key: values[0] for key, values in parse_qs(body).items()}


@pytest.fixture
def things(
    make_config: Callable[..., ClientConfig], static_credentials: Credentials
) -> Things:
    return Things(make_config(credentials=static_credentials))


@pytest.fixture(autouse=True)
def _empty_endpoint_cache() -> None:
    get_endpoint_cache().empty()


@pytest.mark.asyncio
async def test_successful_call(things: Things, transport: MockTransport) -> None:
    transport.add_response(
        headers=[("X-Owlhub-Request-Id", "req-1")], body={"Things": ["a", "b"]}
    )
    events: list[str] = []
    things.listeners.on("success", lambda response: events.append("success"))
    things.listeners.on("error", lambda response: events.append("error"))
    things.listeners.on("complete", lambda response: events.append("complete"))

    request = things.make_request("DescribeThings", {"Names": ["a", "b"]})
    data = await request.send()

    assert data == {"Things": ["a", "b"]}
    assert events == ["success", "complete"]
    assert request.response.request_id == "req-1"
    assert request.response.retry_count == 0

    sent = transport.captured_requests[0]
    assert sent.method == "POST"
    assert sent.url() == "https://things.us-west-2.owlhub.io/"
    assert sent.fields.get_value("Host") == "things.us-west-2.owlhub.io"
    assert sent.fields.get_value("X-Owlhub-Content-Sha256") is not None
    assert sent.fields.get_value("Content-Length") == str(len(sent.body_bytes()))
    authorization = sent.fields.get_value("Authorization") or ""
    assert authorization.startswith(
        "OWLHUB4-HMAC-SHA256 Credential=AKID/"
    )
    assert "/us-west-2/things/owlhub4_request" in authorization
    assert sent.fields.get_value("x-owlhub-security-token") == "TOKEN"
    assert _form(sent) == {
        "Action": "DescribeThings",
        "Version": "2020-01-01",
        "Names.member.1": "a",
        "Names.member.2": "b",
    }


@pytest.mark.asyncio
async def test_bound_params_are_merged_under_call_params(
    make_config: Callable[..., ClientConfig],
    transport: MockTransport,
    static_credentials: Credentials,
) -> None:
    things = Things(
        make_config(
            credentials=static_credentials, params={"Owner": "me", "Limit": 5}
        )
    )
    transport.add_response(body={})

    await things.make_request("DescribeThings", {"Limit": 10}).send()

    form = _form(transport.captured_requests[0])
    assert form["Owner"] == "me"
    assert form["Limit"] == "10"


@pytest.mark.asyncio
async def test_server_errors_are_retried(
    things: Things, transport: MockTransport
) -> None:
    transport.add_response(status=500)
    transport.add_error(OwlhubError("timed out", code=TIMEOUT_ERROR))
    transport.add_response(body={"ok": True})

    request = things.make_request("DescribeThings")
    assert await request.send() == {"ok": True}

    assert transport.call_count == 3
    assert request.response.retry_count == 2


@pytest.mark.asyncio
async def test_throttling_errors_are_retried(
    things: Things, transport: MockTransport
) -> None:
    transport.add_response(
        status=400, body={"Error": {"Code": "Throttling", "Message": "slow down"}}
    )
    transport.add_response(body={})

    await things.make_request("DescribeThings").send()

    assert transport.call_count == 2


@pytest.mark.asyncio
async def test_retries_are_limited(
    make_config: Callable[..., ClientConfig],
    transport: MockTransport,
    static_credentials: Credentials,
) -> None:
    things = Things(make_config(credentials=static_credentials, max_retries=2))
    for _ in range(3):
        transport.add_response(status=503)

    with pytest.raises(OwlhubError) as e:
        await things.make_request("DescribeThings").send()

    assert e.value.code == "ServiceUnavailable"
    assert e.value.status_code == 503
    assert e.value.retryable is True
    assert transport.call_count == 3


@pytest.mark.asyncio
async def test_client_errors_are_terminal(
    things: Things, transport: MockTransport
) -> None:
    transport.add_response(
        status=400,
        body={
            "Error": {"Code": "ValidationError", "Message": "bad input"},
            "RequestId": "req-2",
        },
    )
    responses: list[Response] = []
    things.listeners.on("error", responses.append)
    things.listeners.on("complete", responses.append)

    with pytest.raises(OwlhubError) as e:
        await things.make_request("DescribeThings").send()

    assert e.value.code == "ValidationError"
    assert e.value.message == "bad input"
    assert e.value.request_id == "req-2"
    assert e.value.retryable is False
    assert transport.call_count == 1
    assert len(responses) == 2
    assert responses[0].error is e.value


@pytest.mark.asyncio
async def test_validation_errors_stop_before_send(
    make_config: Callable[..., ClientConfig],
    transport: MockTransport,
    static_credentials: Credentials,
) -> None:
    things = Things(make_config(credentials=static_credentials, region=None))

    with pytest.raises(OwlhubError, match="Missing region in config") as e:
        await things.make_request("DescribeThings").send()

    assert e.value.code == CONFIG_ERROR
    assert transport.call_count == 0


@pytest.mark.asyncio
async def test_missing_credentials_stop_before_send(
    make_config: Callable[..., ClientConfig], transport: MockTransport
) -> None:
    things = Things(make_config(credentials=Credentials()))

    with pytest.raises(OwlhubError) as e:
        await things.make_request("DescribeThings").send()

    assert e.value.code == CREDENTIALS_ERROR
    assert transport.call_count == 0


@pytest.mark.asyncio
async def test_build_errors_are_not_retried(
    things: Things, transport: MockTransport
) -> None:
    def fail(request: Any) -> None:
        raise OwlhubError("cannot build", code="BuildFailure", retryable=True)

    things.listeners.on("build", fail)

    with pytest.raises(OwlhubError, match="cannot build"):
        await things.make_request("DescribeThings").send()
    assert transport.call_count == 0


@pytest.mark.asyncio
async def test_unknown_signature_version_is_a_config_error(
    make_config: Callable[..., ClientConfig],
    transport: MockTransport,
    static_credentials: Credentials,
) -> None:
    things = Things(
        make_config(credentials=static_credentials, signature_version="v9")
    )
    events: list[str] = []
    things.listeners.on("error", lambda response: events.append("error"))
    things.listeners.on("complete", lambda response: events.append("complete"))

    with pytest.raises(OwlhubError, match="Unknown signing version v9") as e:
        await things.make_request("DescribeThings").send()

    assert e.value.code == CONFIG_ERROR
    assert events == ["error", "complete"]
    assert transport.call_count == 0


@pytest.mark.asyncio
async def test_complete_observers_run_for_unexpected_errors(
    things: Things, transport: MockTransport
) -> None:
    def fail(request: Any) -> None:
        raise RuntimeError("listener bug")

    events: list[str] = []
    things.listeners.on("build", fail)
    things.listeners.on("complete", lambda response: events.append("complete"))

    with pytest.raises(RuntimeError, match="listener bug"):
        await things.make_request("DescribeThings").send()

    assert events == ["complete"]
    assert transport.call_count == 0


@pytest.mark.asyncio
async def test_expired_token_refreshes_credentials_before_retry(
    make_config: Callable[..., ClientConfig], transport: MockTransport
) -> None:
    credentials = RotatingCredentials()
    things = Things(make_config(credentials=credentials))
    transport.add_response(
        status=400, body={"Error": {"Code": "ExpiredToken", "Message": "expired"}}
    )
    transport.add_response(body={})

    await things.make_request("DescribeThings").send()

    first, second = transport.captured_requests
    assert "Credential=AKID1/" in (first.fields.get_value("Authorization") or "")
    assert "Credential=AKID2/" in (second.fields.get_value("Authorization") or "")


@pytest.mark.asyncio
async def test_abort_in_flight_request(
    make_config: Callable[..., ClientConfig], static_credentials: Credentials
) -> None:
    transport = BlockingTransport()
    things = Things(make_config(credentials=static_credentials, transport=transport))
    request = things.make_request("DescribeThings")

    call = asyncio.ensure_future(request.send())
    await transport.started.wait()
    request.abort()

    with pytest.raises(OwlhubError) as e:
        await call
    assert e.value.code == REQUEST_ABORTED_ERROR


@pytest.mark.asyncio
async def test_abort_before_send(things: Things, transport: MockTransport) -> None:
    request = things.make_request("DescribeThings")
    request.abort()

    with pytest.raises(OwlhubError) as e:
        await request.send()
    assert e.value.code == REQUEST_ABORTED_ERROR
    assert transport.call_count == 0


@pytest.mark.asyncio
async def test_unauthenticated_request_is_not_signed(
    make_config: Callable[..., ClientConfig], transport: MockTransport
) -> None:
    things = Things(make_config())
    transport.add_response(body={})

    await things.make_unauthenticated_request("DescribeThings").send()

    assert "Authorization" not in transport.captured_requests[0].fields


@pytest.mark.asyncio
async def test_request_credentials_override_config(
    things: Things, transport: MockTransport
) -> None:
    transport.add_response(body={})
    override = Credentials("OVERRIDE", "SECRET")

    await things.make_request("DescribeThings", credentials=override).send()

    authorization = transport.captured_requests[0].fields.get_value("Authorization")
    assert "Credential=OVERRIDE/" in (authorization or "")


@pytest.mark.asyncio
async def test_endpoint_discovery_uses_cache(
    make_config: Callable[..., ClientConfig],
    transport: MockTransport,
    static_credentials: Credentials,
) -> None:
    things = DiscoveredThings(
        make_config(credentials=static_credentials, endpoint_discovery_enabled=True)
    )
    transport.add_response(
        body={
            "Endpoints": [
                {"Address": "discovered.owlhub.io", "CachePeriodInMinutes": 10}
            ]
        }
    )
    transport.add_response(body={})
    transport.add_response(body={})

    await things.make_request("DescribeThings").send()
    await things.make_request("DescribeThings").send()

    discovery, first, second = transport.captured_requests
    assert _form(discovery)["Action"] == "DescribeEndpoints"
    assert discovery.endpoint.host == "things.us-west-2.owlhub.io"
    assert first.url() == "https://discovered.owlhub.io/"
    assert first.fields.get_value("Host") == "discovered.owlhub.io"
    assert second.url() == "https://discovered.owlhub.io/"


@pytest.mark.asyncio
async def test_endpoint_discovery_is_skipped_unless_enabled(
    make_config: Callable[..., ClientConfig],
    transport: MockTransport,
    static_credentials: Credentials,
) -> None:
    things = DiscoveredThings(make_config(credentials=static_credentials))
    transport.add_response(body={})

    await things.make_request("DescribeThings").send()

    assert transport.call_count == 1
    assert _form(transport.captured_requests[0])["Action"] == "DescribeThings"


@pytest.mark.asyncio
async def test_optional_endpoint_discovery_failure_is_ignored(
    make_config: Callable[..., ClientConfig],
    transport: MockTransport,
    static_credentials: Credentials,
) -> None:
    things = DiscoveredThings(
        make_config(credentials=static_credentials, endpoint_discovery_enabled=True)
    )
    transport.add_response(status=403, body={"Error": {"Code": "AccessDenied"}})
    transport.add_response(body={"ok": True})

    assert await things.make_request("DescribeThings").send() == {"ok": True}
    assert transport.captured_requests[1].endpoint.host == "things.us-west-2.owlhub.io"


@pytest.mark.asyncio
async def test_optional_endpoint_discovery_ignores_invalid_records(
    make_config: Callable[..., ClientConfig],
    transport: MockTransport,
    static_credentials: Credentials,
) -> None:
    things = DiscoveredThings(
        make_config(credentials=static_credentials, endpoint_discovery_enabled=True)
    )
    transport.add_response(body={"Endpoints": [{"Address": "d.owlhub.io"}]})
    transport.add_response(body={"ok": True})

    assert await things.make_request("DescribeThings").send() == {"ok": True}
    assert transport.captured_requests[1].endpoint.host == "things.us-west-2.owlhub.io"
    assert len(get_endpoint_cache()) == 0


@pytest.mark.asyncio
async def test_required_endpoint_discovery_rejects_invalid_records(
    make_config: Callable[..., ClientConfig],
    transport: MockTransport,
    static_credentials: Credentials,
) -> None:
    things = RequiredDiscoveryThings(make_config(credentials=static_credentials))
    transport.add_response(body={"Endpoints": [{"CachePeriodInMinutes": 5}]})

    with pytest.raises(OwlhubError) as e:
        await things.make_request("DescribeThings").send()

    assert e.value.code == ENDPOINT_DISCOVERY_ERROR
    assert isinstance(e.value.__cause__, OwlhubError)
    assert e.value.__cause__.code == SERIALIZATION_ERROR
    assert transport.call_count == 1


@pytest.mark.asyncio
async def test_required_endpoint_discovery_failure_is_fatal(
    make_config: Callable[..., ClientConfig],
    transport: MockTransport,
    static_credentials: Credentials,
) -> None:
    things = RequiredDiscoveryThings(make_config(credentials=static_credentials))
    transport.add_response(status=403, body={"Error": {"Code": "AccessDenied"}})

    with pytest.raises(OwlhubError) as e:
        await things.make_request("DescribeThings").send()

    assert e.value.code == ENDPOINT_DISCOVERY_ERROR
    assert transport.call_count == 1
