"""SOAP client for the Google Ad Manager API.

Every call is submitted to the global ``RequestQueue`` and authenticated with a
bearer token from the ``CredentialCache``; the token is read when the request
is dispatched, not when it is enqueued, so a long wait in the queue never
sends a stale token.
"""

from xml.etree import ElementTree as ET
from xml.sax.saxutils import escape

import httpx
import structlog

from stephie import config as config_module
from stephie.errors import ConfigurationError, TransportError
from stephie.gam.auth import CredentialCache, get_credential_cache
from stephie.gam.queue import RequestQueue, get_gam_queue

log = structlog.get_logger()

SOAP_ENV_NS = "http://schemas.xmlsoap.org/soap/envelope/"


class GamClient:
    """Queued, authenticated SOAP calls to Ad Manager services."""

    def __init__(
        self,
        *,
        credentials: CredentialCache | None = None,
        queue: RequestQueue | None = None,
        network_code: str | None = None,
        application_name: str | None = None,
        api_url: str | None = None,
        api_version: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
    ) -> None:
        cfg = config_module.settings
        self._credentials = credentials
        self._queue = queue
        self.network_code = network_code or cfg.gam_network_code
        self.application_name = application_name or cfg.gam_application_name
        self.api_url = (api_url or cfg.gam_api_url).rstrip("/")
        self.api_version = api_version or cfg.gam_api_version
        self._transport = transport
        self._timeout = timeout or cfg.http_timeout_seconds
        self._client: httpx.AsyncClient | None = None

    @property
    def credentials(self) -> CredentialCache:
        return self._credentials or get_credential_cache()

    @property
    def queue(self) -> RequestQueue:
        return self._queue or get_gam_queue()

    @property
    def namespace(self) -> str:
        return f"https://www.google.com/apis/ads/publisher/{self.api_version}"

    def service_url(self, service: str) -> str:
        return f"{self.api_url}/{self.api_version}/{service}"

    def build_envelope(self, body_xml: str) -> str:
        """Wrap an operation body in a SOAP envelope with the request header."""
        if not self.network_code:
            raise ConfigurationError(
                "Ad Manager network code not configured. Set GAM_NETWORK_CODE.",
                details={"setting": "STEPHIE_GAM_NETWORK_CODE"},
            )
        return (
            '<?xml version="1.0" encoding="UTF-8"?>'
            f'<soapenv:Envelope xmlns:soapenv="{SOAP_ENV_NS}" xmlns="{self.namespace}">'
            "<soapenv:Header><RequestHeader>"
            f"<networkCode>{escape(self.network_code)}</networkCode>"
            f"<applicationName>{escape(self.application_name)}</applicationName>"
            "</RequestHeader></soapenv:Header>"
            f"<soapenv:Body>{body_xml}</soapenv:Body>"
            "</soapenv:Envelope>"
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def call(self, service: str, body_xml: str) -> ET.Element:
        """Run one SOAP operation through the rate-limited queue.

        Args:
            service: Ad Manager service name (e.g. ``ForecastService``).
            body_xml: Operation element(s) placed inside ``soapenv:Body``.

        Returns:
            The first child of the response ``Body`` element.
        """
        envelope = self.build_envelope(body_xml)
        return await self.queue.run(lambda: self._send(service, envelope))

    async def _send(self, service: str, envelope: str) -> ET.Element:
        token = await self.credentials.get_access_token()
        try:
            response = await self._get_client().post(
                self.service_url(service),
                content=envelope.encode("utf-8"),
                headers={
                    "Content-Type": "text/xml; charset=utf-8",
                    "Authorization": f"Bearer {token}",
                    "SOAPAction": '""',
                },
            )
        except httpx.HTTPError as e:
            raise TransportError(f"Ad Manager request failed: {e}", service="gam") from e

        if response.status_code == 401:
            # Token was rejected; the next call re-handshakes
            self.credentials.invalidate()

        if not response.is_success:
            fault = _fault_string(response.text)
            log.warning(
                "Ad Manager request rejected",
                service=service,
                status_code=response.status_code,
                fault=fault,
            )
            raise TransportError(
                f"Ad Manager {service} responded with status {response.status_code}"
                + (f": {fault}" if fault else ""),
                status_code=response.status_code,
                body=response.text,
                service="gam",
            )

        return _response_payload(response.text, service)


def _fault_string(text: str) -> str | None:
    try:
        root = ET.fromstring(text)
    except ET.ParseError:
        return None
    fault = root.find(f".//{{{SOAP_ENV_NS}}}Fault")
    if fault is None:
        return None
    return fault.findtext("faultstring")


def _response_payload(text: str, service: str) -> ET.Element:
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        raise TransportError(
            f"Ad Manager {service} returned malformed XML", body=text, service="gam"
        ) from e

    body = root.find(f"{{{SOAP_ENV_NS}}}Body")
    if body is None or len(body) == 0:
        raise TransportError(
            f"Ad Manager {service} returned an empty SOAP body", body=text, service="gam"
        )
    return body[0]


# Global client instance
_gam_client: GamClient | None = None


def get_gam_client() -> GamClient:
    """Get the global Ad Manager client."""
    global _gam_client  # noqa: PLW0603
    if _gam_client is None:
        _gam_client = GamClient()
    return _gam_client
