"""
GammaClient - HTTP client for the Polymarket Gamma and CLOB REST APIs
Bounded timeouts and a small retry budget for transient failures
"""

import logging
from typing import Optional, Dict, Any, Mapping

import httpx

from config.copytrade_settings import HTTP_TIMEOUT_SECONDS, HTTP_RETRIES

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = (408, 429)


class GammaRequestError(Exception):
    """Non-2xx response or transport failure after retries."""

    def __init__(self, message: str, status: Optional[int] = None, path: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.path = path


def should_retry(status: int) -> bool:
    return status >= 500 or status in RETRYABLE_STATUS


class GammaClient:
    """
    Async JSON client.

    Retries server errors, rate limiting and request timeouts up to
    `retries` extra attempts; other failures raise immediately.
    """

    __slots__ = ('base_url', 'retries', '_client', '_owns_client')

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        retries: int = HTTP_RETRIES,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.retries = max(0, retries)

        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
            headers["x-api-key"] = api_key

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._owns_client:
            await self._client.aclose()

    async def fetch_json(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        """
        GET path and return the decoded JSON body.

        Args:
            path: Path relative to base_url
            params: Query parameters; None values are dropped, lists repeat the key

        Raises:
            GammaRequestError: On a final non-2xx status or transport error
        """
        if not path.startswith("/"):
            path = f"/{path}"
        query = _clean_params(params)

        attempt = 0
        while True:
            try:
                response = await self._client.get(path, params=query)
            except httpx.HTTPError as e:
                if attempt < self.retries:
                    attempt += 1
                    logger.debug(f"GET {path} failed ({e}), retry {attempt}/{self.retries}")
                    continue
                raise GammaRequestError(f"Request to {path} failed: {e}", path=path) from e

            if response.is_success:
                try:
                    return response.json()
                except ValueError as e:
                    raise GammaRequestError(f"Invalid JSON from {path}", response.status_code, path) from e

            if attempt < self.retries and should_retry(response.status_code):
                attempt += 1
                logger.debug(f"GET {path} -> {response.status_code}, retry {attempt}/{self.retries}")
                continue

            logger.debug(f"GET {path} non-2xx: {response.status_code} {response.text[:200]}")
            raise GammaRequestError(
                f"Request failed ({response.status_code})",
                status=response.status_code,
                path=path,
            )


def _clean_params(params: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    if not params:
        return {}
    cleaned: Dict[str, Any] = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            cleaned[key] = "true" if value else "false"
        elif isinstance(value, (list, tuple)):
            cleaned[key] = [str(v) for v in value]
        else:
            cleaned[key] = str(value)
    return cleaned
