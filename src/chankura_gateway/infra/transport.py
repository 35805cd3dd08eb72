"""
Signed HTTP transport for the Chankura REST API (Peatio-style ``/api/v2``).

Two entry points:

* ``get(path, params)``: public GET, body parsed as JSON.
* ``signed_call(method, path, params)``: authenticated call. The signature
  is an HMAC-SHA256 hex digest over

      METHOD|/api/v2/<path>|access_key=<key>&tonce=<nonce>&<sorted params>

  and travels as the ``signature`` query parameter.

Failures (network errors, unparsable bodies) raise ``TransportError`` and are
never retried here. The one automatic retry is a stale-nonce rejection, which
re-sends the same logical request with a freshly minted nonce.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import logging
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import urlencode, urlparse

import httpx

from chankura_gateway.core.connectivity import ConnectivityBroadcaster
from chankura_gateway.core.json_utils import loads
from chankura_gateway.core.models import ConnectivityStatus, Timestamped, utc_now
from chankura_gateway.infra.logging_cfg import LOGGER_NAME, log_event
from chankura_gateway.infra.nonce import NonceCounter
from chankura_gateway.infra.rate_limit import RateLimitMonitor
from chankura_gateway.monitoring.metrics import ConnectorMetrics

log = logging.getLogger(LOGGER_NAME)

DEFAULT_TIMEOUT_SEC = 15.0

# Lower-cased fragments of venue messages meaning "your nonce is behind".
STALE_NONCE_MARKERS = (
    "nonce too small",
    "tonce too small",
    "tonce is out of date",
    "tonce has already been used",
    "invalid tonce",
)


class TransportError(Exception):
    """Network failure or malformed JSON for a request to ``url``."""

    def __init__(self, message: str, url: str, body: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.body = body
        self.status_code = status_code


class StaleNonceError(Exception):
    """Stale-nonce rejections outlasted the configured retry cap."""

    def __init__(self, path: str, attempts: int):
        super().__init__(f"nonce still rejected after {attempts} attempts: {path}")
        self.path = path
        self.attempts = attempts


def extract_message(payload: Any) -> Optional[str]:
    """
    Business-level message embedded in a response, if any.

    Accepts both ``{"message": "..."}`` and ``{"error": {"code": .., "message": ".."}}``.
    """
    if not isinstance(payload, dict):
        return None
    msg = payload.get("message")
    if msg:
        return str(msg)
    err = payload.get("error")
    if isinstance(err, dict) and err.get("message"):
        return str(err["message"])
    if isinstance(err, str) and err:
        return err
    return None


def is_stale_nonce(payload: Any) -> bool:
    msg = extract_message(payload)
    if not msg:
        return False
    lowered = msg.lower()
    return any(marker in lowered for marker in STALE_NONCE_MARKERS)


def _stringify(value: Any) -> str:
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_signature_payload(
    method: str,
    canonical_path: str,
    access_key: str,
    nonce: int,
    params: Mapping[str, str],
) -> str:
    parts = [f"access_key={access_key}", f"tonce={nonce}"]
    if params:
        parts.append(urlencode(sorted(params.items())))
    return f"{method.upper()}|{canonical_path}|{'&'.join(parts)}"


def sign(secret: str, payload: str) -> str:
    return hmac.new(secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()


class SignedTransport:
    """
    Usage:
        transport = SignedTransport("https://www.chankura.com/api/v2", key, secret)
        await transport.start()
        book = await transport.get("order_book.json", {"market": "btcusd"})
        order = await transport.signed_call("POST", "orders.json", {...})
        await transport.close()
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        secret: str,
        timeout: float = DEFAULT_TIMEOUT_SEC,
        nonce: Optional[NonceCounter] = None,
        client: Optional[httpx.AsyncClient] = None,
        connect_delay_sec: float = 0.01,
        nonce_max_retries: int = 0,
        rate_monitor: Optional[RateLimitMonitor] = None,
        metrics: Optional[ConnectorMetrics] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._secret = secret
        self.timeout = timeout
        self.nonce = nonce or NonceCounter()
        # A shared client passed in is not closed by close().
        if client is not None:
            self.client = client
            self._owns_client = False
        else:
            self.client = httpx.AsyncClient(http2=True, timeout=timeout)
            self._owns_client = True
        self._connect_delay = connect_delay_sec
        self._nonce_max_retries = nonce_max_retries
        self._monitor = rate_monitor
        self._metrics = metrics
        self._announce: Optional[asyncio.TimerHandle] = None

        self.connectivity = ConnectivityBroadcaster()
        log_event(log, "transport_created", base_url=self.base_url, starting_nonce=self.nonce.peek())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Announce CONNECTED shortly after start. Nothing is probed."""
        if self._announce is not None:
            return
        loop = asyncio.get_running_loop()
        self._announce = loop.call_later(
            self._connect_delay, self.connectivity.trigger, ConnectivityStatus.CONNECTED
        )

    async def close(self) -> None:
        if self._announce is not None:
            self._announce.cancel()
            self._announce = None
        self.connectivity.trigger(ConnectivityStatus.DISCONNECTED)
        if self._owns_client:
            await self.client.aclose()

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    @property
    def api_prefix(self) -> str:
        """Path part of the base URL, e.g. ``/api/v2``; signed paths start with it."""
        return urlparse(self.base_url).path.rstrip("/")

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def canonical_path(self, path: str) -> str:
        return f"{self.api_prefix}/{path.lstrip('/')}"

    async def get(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Timestamped[Any]:
        query = [(k, _stringify(v)) for k, v in (params or {}).items()]
        return await self._dispatch("GET", path, query, signed=False)

    async def signed_call(
        self,
        method: str,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Timestamped[Any]:
        """
        Authenticated request; retried with a new nonce while the venue
        reports the nonce as stale.
        """
        clean = {k: _stringify(v) for k, v in (params or {}).items()}
        attempts = 0
        while True:
            attempts += 1
            nonce = self.nonce.next()
            result = await self._dispatch(method, path, self._signed_query(method, path, nonce, clean), signed=True)
            if not is_stale_nonce(result.data):
                return result

            if self._metrics is not None:
                self._metrics.nonce_retries.labels(path=path).inc()
            log_event(
                log, "stale_nonce_retry", level=logging.WARNING,
                source="transport", path=path, nonce=nonce, attempt=attempts,
                message=extract_message(result.data),
            )
            if self._nonce_max_retries and attempts > self._nonce_max_retries:
                raise StaleNonceError(path, attempts)

    def _signed_query(self, method: str, path: str, nonce: int, params: Dict[str, str]) -> List[Tuple[str, str]]:
        payload = build_signature_payload(method, self.canonical_path(path), self._api_key, nonce, params)
        query = [("access_key", self._api_key), ("tonce", str(nonce))]
        query.extend(sorted(params.items()))
        query.append(("signature", sign(self._secret, payload)))
        return query

    async def _dispatch(
        self,
        method: str,
        path: str,
        query: List[Tuple[str, str]],
        signed: bool,
    ) -> Timestamped[Any]:
        url = self.url_for(path)
        if self._monitor is not None:
            self._monitor.add()
        if self._metrics is not None:
            self._metrics.http_requests.labels(method=method.upper(), path=path, signed=str(signed).lower()).inc()

        try:
            resp = await self.client.request(method.upper(), url, params=query, timeout=self.timeout)
        except httpx.HTTPError as exc:
            self._record_error(path)
            log_event(log, "http_error", level=logging.ERROR, url=url, err=str(exc), error_type=type(exc).__name__)
            raise TransportError(f"request failed: {exc}", url=url) from exc

        received = utc_now()
        body = resp.text
        try:
            data = loads(body)
        except ValueError as exc:
            self._record_error(path)
            log_event(log, "json_parse_error", level=logging.ERROR, url=url, status=resp.status_code, body=body[:500])
            raise TransportError("invalid JSON in response", url=url, body=body, status_code=resp.status_code) from exc
        return Timestamped(data, received)

    def _record_error(self, path: str) -> None:
        if self._metrics is not None:
            self._metrics.transport_errors.labels(path=path).inc()
