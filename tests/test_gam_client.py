"""Tests for the queued Ad Manager SOAP client."""

import asyncio

import httpx
import pytest

from stephie.errors import ConfigurationError, TransportError
from stephie.gam.client import SOAP_ENV_NS, GamClient
from tests.harness import FakeClock, SignerFactory, make_credentials, make_queue

API_URL = "https://ads.example.test/apis/ads/publisher"

OK_BODY = (
    f'<soap:Envelope xmlns:soap="{SOAP_ENV_NS}"><soap:Body>'
    '<getCurrentNetworkResponse xmlns="https://www.google.com/apis/ads/publisher/v202411">'
    "<rval><networkCode>123456</networkCode></rval>"
    "</getCurrentNetworkResponse></soap:Body></soap:Envelope>"
)

FAULT_BODY = (
    f'<soap:Envelope xmlns:soap="{SOAP_ENV_NS}"><soap:Body><soap:Fault>'
    "<faultcode>soap:Server</faultcode>"
    "<faultstring>[AuthenticationError.NETWORK_NOT_FOUND]</faultstring>"
    "</soap:Fault></soap:Body></soap:Envelope>"
)


class Recorder:
    def __init__(self, clock: FakeClock, responses: list[httpx.Response]) -> None:
        self.clock = clock
        self.responses = responses
        self.requests: list[httpx.Request] = []
        self.times: list[float] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.times.append(self.clock.now())
        return self.responses.pop(0)


def make_client(
    handler: Recorder,
    clock: FakeClock,
    factory: SignerFactory | None = None,
    network_code: str = "123456",
) -> GamClient:
    return GamClient(
        credentials=make_credentials(factory, clock=clock),
        queue=make_queue(clock=clock, min_interval=0.5),
        network_code=network_code,
        application_name="stephie-tests",
        api_url=API_URL,
        api_version="v202411",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_call_sends_envelope_with_bearer_token(clock: FakeClock) -> None:
    handler = Recorder(clock, [httpx.Response(200, text=OK_BODY)])
    client = make_client(handler, clock)

    payload = await client.call("NetworkService", "<getCurrentNetwork/>")
    await client.close()

    request = handler.requests[0]
    assert str(request.url) == f"{API_URL}/v202411/NetworkService"
    assert request.headers["Authorization"] == "Bearer token-1"
    body = request.content.decode()
    assert "<networkCode>123456</networkCode>" in body
    assert "<applicationName>stephie-tests</applicationName>" in body
    assert "<getCurrentNetwork/>" in body
    assert payload.tag.endswith("getCurrentNetworkResponse")


@pytest.mark.asyncio
async def test_calls_are_spaced_and_share_one_token(clock: FakeClock) -> None:
    handler = Recorder(clock, [httpx.Response(200, text=OK_BODY) for _ in range(3)])
    factory = SignerFactory()
    client = make_client(handler, clock, factory)

    await asyncio.gather(*(client.call("NetworkService", "<getCurrentNetwork/>") for _ in range(3)))

    assert all(b - a >= 0.5 for a, b in zip(handler.times, handler.times[1:], strict=False))
    assert {r.headers["Authorization"] for r in handler.requests} == {"Bearer token-1"}
    assert factory.built[0].fetch_calls == 1


@pytest.mark.asyncio
async def test_fault_raises_transport_error(clock: FakeClock) -> None:
    handler = Recorder(clock, [httpx.Response(500, text=FAULT_BODY)])
    client = make_client(handler, clock)

    with pytest.raises(TransportError) as exc_info:
        await client.call("NetworkService", "<getCurrentNetwork/>")

    assert exc_info.value.status_code == 500
    assert exc_info.value.service == "gam"
    assert "NETWORK_NOT_FOUND" in str(exc_info.value)


@pytest.mark.asyncio
async def test_unauthorized_invalidates_credentials(clock: FakeClock) -> None:
    handler = Recorder(
        clock, [httpx.Response(401, text="denied"), httpx.Response(200, text=OK_BODY)]
    )
    factory = SignerFactory()
    client = make_client(handler, clock, factory)

    with pytest.raises(TransportError):
        await client.call("NetworkService", "<getCurrentNetwork/>")
    await client.call("NetworkService", "<getCurrentNetwork/>")

    assert len(factory.built) == 2


@pytest.mark.asyncio
async def test_malformed_response(clock: FakeClock) -> None:
    handler = Recorder(clock, [httpx.Response(200, text="not xml")])
    client = make_client(handler, clock)

    with pytest.raises(TransportError, match="malformed"):
        await client.call("NetworkService", "<getCurrentNetwork/>")


def test_missing_network_code(monkeypatch: pytest.MonkeyPatch) -> None:
    from stephie import config as config_module

    monkeypatch.setattr(config_module.settings, "gam_network_code", "")
    client = GamClient(network_code=None)

    with pytest.raises(ConfigurationError):
        client.build_envelope("<x/>")


def test_envelope_escapes_header_values() -> None:
    client = GamClient(network_code="1&2", application_name="<app>")

    envelope = client.build_envelope("<x/>")

    assert "<networkCode>1&amp;2</networkCode>" in envelope
    assert "<applicationName>&lt;app&gt;</applicationName>" in envelope
