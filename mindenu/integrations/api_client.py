"""
Shared REST plumbing for the Google and Microsoft API clients.

Calls are never retried here: send/create/delete are side-effecting, so
retry decisions belong to the caller.
"""
from typing import Optional

import httpx

from mindenu.utils.errors import UpstreamError
from mindenu.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 10.0


class BaseApiClient:
    """
    Authenticated JSON client for one provider API.

    Subclasses set SERVICE_NAME and BASE_URL.
    """

    SERVICE_NAME = "API"
    BASE_URL = ""

    def __init__(
        self,
        access_token: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            access_token: Valid OAuth access token
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.access_token = access_token
        self.timeout = timeout
        self.transport = transport
        self.headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        json_data: dict = None,
        params: dict = None,
        headers: dict = None,
    ) -> dict:
        """
        Make an authenticated request.

        Returns:
            Response JSON dict ({} for 204 or empty bodies)

        Raises:
            UpstreamError: Non-2xx status, timeout or connection failure
        """
        url = f"{self.BASE_URL}{endpoint}"
        request_headers = {**self.headers, **(headers or {})}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.request(
                    method=method,
                    url=url,
                    headers=request_headers,
                    json=json_data,
                    params=params,
                )
            except httpx.TimeoutException:
                logger.warning(f"{self.SERVICE_NAME} {method} {endpoint} timed out after {self.timeout}s")
                raise UpstreamError(
                    f"{self.SERVICE_NAME} took too long to respond. Please try again.",
                    status=504,
                    timed_out=True,
                )
            except httpx.RequestError as e:
                logger.error(f"{self.SERVICE_NAME} connection error: {e}")
                raise UpstreamError(
                    f"Couldn't reach {self.SERVICE_NAME}. Please try again.",
                    status=503,
                )

        if 200 <= response.status_code < 300:
            if response.status_code == 204 or not response.content:
                return {}
            return response.json()

        body = response.text[:500]
        logger.error(f"{self.SERVICE_NAME} error: {response.status_code} {method} {endpoint} - {body}")
        raise UpstreamError(
            self._error_message(response.status_code),
            status=response.status_code,
            body=body,
        )

    def _error_message(self, status: int) -> str:
        if status == 401:
            return f"{self.SERVICE_NAME} access expired. Reconnect your account in settings."
        if status == 403:
            return f"{self.SERVICE_NAME} permission denied. Reconnect and grant access in settings."
        if status == 404:
            return f"{self.SERVICE_NAME} couldn't find that item."
        if status == 429:
            return f"{self.SERVICE_NAME} is rate limiting requests. Please wait a moment."
        return f"{self.SERVICE_NAME} error ({status}). Please try again."
