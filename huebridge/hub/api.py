"""
REST client for the hub's resource API.

Handles:
- Application key authentication
- Retry with linear backoff when the hub is rate limiting (429/503)
- Mapping of transport and HTTP failures to the HueError taxonomy
- Errors embedded in successful responses
"""

import asyncio
import json
import logging
from typing import Any, Optional, Tuple

import aiohttp

from .errors import (
    HueError,
    LinkButtonNotPressed,
    ServerError,
    ServiceUnavailable,
    Timeout,
    Unauthorized,
    status_to_error,
)
from .lights import Lights
from .models import Credentials, HubConfig

logger = logging.getLogger(__name__)

APP_KEY_HEADER = "hue-application-key"

# Statuses the hub uses when its request queue is full
RETRY_STATUSES = (429, 503)

# Embedded error type returned while the link button has not been pressed
LINK_BUTTON_ERROR = 101

RESOURCE_ROOT = "/clip/v2/resource"


def backoff_delay(attempt: int, base_delay: float) -> float:
    """Delay before retrying after the given (1-based) attempt."""
    return base_delay * attempt


def embedded_error(data: Any) -> Optional[Tuple[Optional[int], str]]:
    """
    Extract the first application-level error from a response body.

    v2 resources wrap errors as {"errors": [{"description": ...}]},
    v1 endpoints answer with [{"error": {"type": ..., "description": ...}}].
    """
    if isinstance(data, dict):
        errors = data.get("errors") or []
        if errors:
            first = errors[0]
            if isinstance(first, dict):
                return None, str(first.get("description", first))
            return None, str(first)
    elif isinstance(data, list) and data:
        first = data[0]
        if isinstance(first, dict) and "error" in first:
            error = first["error"] or {}
            return error.get("type"), str(error.get("description", "Unknown hub error"))
    return None


class HueApi:
    """
    Authenticated client for one hub.

    Usage:
        api = HueApi("https://192.168.1.20", auth_key="...")
        lights = await api.lights.get_lights()
        await api.close()
    """

    def __init__(
        self,
        base_url: str = "",
        auth_key: Optional[str] = None,
        timeout: float = 10.0,
        max_retries: int = 3,
        retry_delay: float = 0.25,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._auth_key = auth_key
        self._session: Optional[aiohttp.ClientSession] = None
        self.lights = Lights(self)

    def set_base_url(self, base_url: str) -> None:
        self.base_url = base_url.rstrip("/")

    def set_auth_key(self, auth_key: Optional[str]) -> None:
        self._auth_key = auth_key

    @property
    def has_auth_key(self) -> bool:
        return bool(self._auth_key)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            # Hubs serve a self-signed certificate
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                connector=aiohttp.TCPConnector(ssl=False),
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def request(
        self,
        method: str,
        path: str,
        body: Optional[Any] = None,
        auth_required: bool = True,
    ) -> Any:
        """
        Send a request to the hub.

        Args:
            method: HTTP method
            path: Path below the base URL, or an absolute URL
            body: JSON body
            auth_required: Whether the application key must be present

        Returns:
            Decoded JSON body (or text if the hub did not answer JSON)

        Raises:
            HueError: see errors.py for the taxonomy
        """
        if auth_required and not self._auth_key:
            raise Unauthorized("Application key is required for protected resources")

        logger.debug(f"Hub request: {method} {path}")

        attempt = 0
        while True:
            attempt += 1
            status, data = await self._send(method, path, body, auth_required)

            if status not in RETRY_STATUSES:
                break

            if attempt > self.max_retries:
                raise ServiceUnavailable(
                    f"Hub still busy after {attempt} attempts",
                    status=status,
                    attempts=attempt,
                )

            delay = backoff_delay(attempt, self.retry_delay)
            logger.debug(f"Hub busy ({status}) on {method} {path}, retrying in {delay:.2f}s")
            await asyncio.sleep(delay)

        if not 200 <= status < 300:
            error = embedded_error(data)
            message = error[1] if error else f"HTTP {status} for {method} {path}"
            raise status_to_error(status, message)

        error = embedded_error(data)
        if error:
            error_type, description = error
            if error_type == LINK_BUTTON_ERROR:
                raise LinkButtonNotPressed(description)
            raise ServerError(description, status=status)

        return data

    async def _send(
        self,
        method: str,
        path: str,
        body: Optional[Any],
        auth_required: bool,
    ) -> Tuple[int, Any]:
        url = path if path.startswith(("http://", "https://")) else f"{self.base_url}{path}"
        headers = {}
        if auth_required and self._auth_key:
            headers[APP_KEY_HEADER] = self._auth_key

        session = await self._get_session()
        try:
            async with session.request(method, url, json=body, headers=headers) as resp:
                text = await resp.text()
                return resp.status, _decode(text)
        except asyncio.TimeoutError as e:
            raise Timeout(f"Timed out on {method} {path}") from e
        except aiohttp.ClientConnectionError as e:
            raise ServiceUnavailable(f"Hub unreachable: {e}") from e
        except aiohttp.ClientError as e:
            raise ServerError(f"Request failed: {e}") from e

    async def get_hub_config(self) -> HubConfig:
        """
        Fetch the hub identity.

        Always unauthenticated, served over plain HTTP.
        """
        base = self.base_url.replace("https://", "http://", 1)
        data = await self.request("GET", f"{base}/api/config", auth_required=False)
        if not isinstance(data, dict):
            raise ServerError("Unexpected hub config response")
        return HubConfig.model_validate(data)

    async def supports_v2(self) -> bool:
        """
        Check whether the hub speaks the v2 resource API.

        An unauthenticated call to the resource root is rejected with 403
        by v2 hubs. Any other outcome means there is no v2 hub here.
        """
        try:
            await self.request("GET", RESOURCE_ROOT, auth_required=False)
        except Unauthorized as e:
            return e.status == 403
        except HueError as e:
            logger.debug(f"Version probe failed on {self.base_url}: {e}")
            return False
        return False

    async def create_credentials(self, app_name: str) -> Credentials:
        """
        Ask the hub for a new application key.

        Raises:
            LinkButtonNotPressed: the hub's link button has to be pressed first
        """
        data = await self.request(
            "POST",
            "/api",
            {"devicetype": app_name, "generateclientkey": True},
            auth_required=False,
        )
        if not isinstance(data, list) or not data or "success" not in data[0]:
            raise ServerError("Unexpected response to credential request")
        return Credentials.model_validate(data[0]["success"])


def _decode(text: str) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text
