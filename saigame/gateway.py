"""
gateway.py — HttpGateway: the single HTTP entry point of the SDK.

Wraps one httpx.AsyncClient and normalises every exchange into a Result:

  Ok(body_text): any 2xx
  Failure(transport, message, status, body): timeout, network error, non-2xx

Design:
  - Bearer token injected iff the bound token source yields a non-empty token
  - dict/list bodies are JSON-encoded; str bodies are sent verbatim so opaque
    JSON fragments (game_data) can be embedded unescaped by the caller
  - Never raises for transport problems; every failure is a recoverable result
  - Logs method, path and status only; bodies at DEBUG, never the token
"""
from __future__ import annotations

import json
import logging
from typing import Any, Callable, Optional

import httpx

from saigame.config import Settings, settings as default_settings
from saigame.json_tools import format_json
from saigame.results import Failure, FailureKind, Ok, Result

logger = logging.getLogger(__name__)

HEALTH_PATH = "/health"

TokenSource = Callable[[], str]


def _server_message(body: str) -> Optional[str]:
    """Best-effort human message from an error body ({message|error|detail})."""
    try:
        payload = json.loads(body)
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    for key in ("message", "error", "detail"):
        value = payload.get(key)
        if isinstance(value, str) and value:
            return value
        if isinstance(value, dict) and isinstance(value.get("message"), str):
            return value["message"]
    return None


class HttpGateway:
    """
    Request builder + normaliser bound to one base URL.

    Attributes:
        base_url:     settings.resolved_base_url at construction (see set_base_url)
        timeout:      default per-request timeout in seconds
        token_source: zero-arg callable returning the current access token ("" = none)
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        *,
        token_source: Optional[TokenSource] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = config or default_settings
        self.base_url = self._settings.resolved_base_url
        self.timeout = self._settings.request_timeout
        self.health_timeout = self._settings.health_timeout
        self.token_source = token_source
        self._client = httpx.AsyncClient(
            transport=transport,
            timeout=httpx.Timeout(self.timeout),
        )

    def set_base_url(self, base_url: str) -> None:
        self.base_url = base_url.rstrip("/")
        logger.info("Gateway base URL set to %s", self.base_url)

    def _headers(self, authenticated: bool) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if authenticated and self.token_source is not None:
            token = self.token_source()
            if token:
                headers["Authorization"] = f"Bearer {token}"
        return headers

    async def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        *,
        params: Optional[dict[str, Any]] = None,
        timeout: Optional[float] = None,
        authenticated: bool = True,
    ) -> Result[str]:
        """
        Send one request and return Ok(body_text) or a transport Failure.

        Args:
            method:        GET / POST / PATCH / DELETE
            path:          path below base_url, e.g. "/api/v1/auth/me"
            body:          dict/list (JSON-encoded), str (sent verbatim) or None
            params:        query parameters; None values are dropped
            timeout:       per-call override of the gateway timeout
            authenticated: False suppresses the Authorization header
        """
        method = method.upper()
        url = f"{self.base_url}{path}"
        headers = self._headers(authenticated)

        content: Optional[str] = None
        if body is not None:
            content = body if isinstance(body, str) else json.dumps(body)
            headers["Content-Type"] = "application/json"

        query = {k: v for k, v in (params or {}).items() if v is not None and v != ""}

        try:
            response = await self._client.request(
                method,
                url,
                content=content,
                params=query or None,
                headers=headers,
                timeout=timeout if timeout is not None else self.timeout,
            )
        except httpx.TimeoutException as exc:
            logger.warning("%s %s timed out: %s", method, path, exc)
            return Failure(kind=FailureKind.transport, message=f"{method} {path} failed: Request timeout")
        except httpx.HTTPError as exc:
            logger.warning("%s %s network error: %s", method, path, exc)
            return Failure(kind=FailureKind.transport, message=f"{method} {path} failed: {exc}")

        text = response.text
        if response.is_success:
            logger.debug("%s %s -> %d\n%s", method, path, response.status_code, format_json(text))
            return Ok(text)

        reason = _server_message(text) or response.reason_phrase or f"HTTP {response.status_code}"
        logger.warning("%s %s -> %d (%s)", method, path, response.status_code, reason)
        return Failure(
            kind=FailureKind.transport,
            message=f"{method} {path} failed: {reason}",
            status_code=response.status_code,
            raw_body=text,
        )

    async def health(self) -> Result[bool]:
        """Liveness probe: GET /health without auth and with the short timeout."""
        result = await self.request(
            "GET", HEALTH_PATH, timeout=self.health_timeout, authenticated=False,
        )
        if not result.ok:
            return result
        return Ok(True)

    async def aclose(self) -> None:
        await self._client.aclose()
