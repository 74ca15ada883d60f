from typing import Any, Dict, Optional

import httpx
from loguru import logger

from stallbid.core.config import settings
from stallbid.core.exceptions import ApiError, NotAuthenticatedError, TransportError
from stallbid.core.session import SessionContext

CONNECTION_MESSAGE = "Unable to connect to the server. Please check your connection."

STATUS_MESSAGES = {
    401: "Authentication failed. Please login again.",
    403: "You do not have permission to perform this action.",
    404: "The requested resource was not found.",
    500: "Server error occurred. Please try again later.",
}


def describe_http_error(status_code: int, payload: Any = None, reason: str = "") -> str:
    """User facing text for a failed response"""
    if status_code == 0:
        return CONNECTION_MESSAGE
    if status_code in STATUS_MESSAGES:
        return STATUS_MESSAGES[status_code]
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return f"Error: {reason or status_code}"


def _decode(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class ApiClient:
    """
    Thin async wrapper over the backend REST API.

    Adds the session's bearer token to every call and turns httpx failures
    into TransportError / ApiError.
    """
    def __init__(
        self,
        base_url: Optional[str] = None,
        session: Optional[SessionContext] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.session = session
        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.api_url).rstrip("/"),
            timeout=timeout if timeout is not None else settings.request_timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        await self._client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        headers = self.session.auth_headers() if self.session else {}
        try:
            response = await self._client.request(method, path, json=json, params=params, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            payload = _decode(e.response)
            message = describe_http_error(status_code, payload, e.response.reason_phrase)
            logger.warning(f"{method} {path} failed with {status_code}: {message}")
            if status_code == 401:
                raise NotAuthenticatedError(status_code, message, payload) from e
            raise ApiError(status_code, message, payload) from e
        except httpx.RequestError as e:
            logger.warning(f"{method} {path} did not complete: {e!r}")
            raise TransportError(CONNECTION_MESSAGE) from e
        return _decode(response)

    async def get(self, path: str, **kwargs) -> Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs) -> Any:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs) -> Any:
        return await self.request("PUT", path, **kwargs)

    async def delete(self, path: str, **kwargs) -> Any:
        return await self.request("DELETE", path, **kwargs)
