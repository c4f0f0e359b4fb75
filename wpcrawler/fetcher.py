import ssl
import sys
import time
from typing import Dict, Optional, Sequence

import httpx
import structlog

from .config import ConfigError

logger = structlog.get_logger(__name__)

DEFAULT_USER_AGENT = 'wpackagist-updater/1.0'
DEFAULT_CA_BUNDLE_PLATFORMS = ('win',)


class FetchResult:
    def __init__(
        self,
        url: str,
        status_code: int,
        content: bytes = b'',
        headers: Dict[str, str] = None,
        final_url: str = None,
        fetch_time: float = 0.0,
        error: str = None,
    ):
        """Initialize a FetchResult with HTTP response data and metadata."""
        self.url = url
        self.status_code = status_code
        self.content = content
        self.headers = headers or {}
        self.final_url = final_url or url
        self.fetch_time = fetch_time
        self.error = error

    @property
    def transport_failed(self) -> bool:
        """Connection, DNS, TLS or timeout failure: no HTTP status is available."""
        return self.error is not None

    @property
    def size(self) -> int:
        """Get the size of the response content in bytes."""
        return len(self.content) if self.content else 0

    def release(self):
        """Drop the response body and headers once they have been consumed."""
        self.content = b''
        self.headers = {}

    def __repr__(self):
        return f"FetchResult(url={self.url!r}, status_code={self.status_code}, error={self.error!r}, size={self.size})"


def resolve_ca_bundle(
    ca_bundle: Optional[str],
    platform: str = None,
    platforms: Sequence[str] = DEFAULT_CA_BUNDLE_PLATFORMS,
) -> Optional[str]:
    """
    Return the CA bundle override for this platform, or None to use the default store.

    The bundled certificates are only needed where the system store is known
    to be outdated (Windows).
    """
    if not ca_bundle:
        return None
    platform = platform if platform is not None else sys.platform
    if any(platform.startswith(prefix) for prefix in platforms):
        return ca_bundle
    return None


class HTTPFetcher:
    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 30.0,
        max_redirects: int = 5,
        max_connections: int = 10,
        max_response_size: int = 10 * 1024 * 1024,
        ca_bundle: Optional[str] = None,
        transport: httpx.AsyncBaseTransport = None,
    ):
        """
        Initialize the HTTP fetcher.

        Args:
            user_agent: User-Agent header sent with every request
            timeout: Per request timeout in seconds
            max_redirects: Redirects followed before giving up
            max_connections: Size of the connection pool
            max_response_size: Bodies are truncated past this many bytes
            ca_bundle: CA bundle path applied to every connection, None for the default store
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.user_agent = user_agent
        self.timeout = timeout
        self.max_redirects = max_redirects
        self.max_response_size = max_response_size
        self.ca_bundle = ca_bundle

        headers = {
            'User-Agent': self.user_agent,
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
            'Accept-Language': 'en-US,en;q=0.5',
            'Accept-Encoding': 'gzip, deflate',
        }
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            follow_redirects=True,
            max_redirects=self.max_redirects,
            headers=headers,
            verify=self._ssl_context(ca_bundle) if ca_bundle else True,
            limits=httpx.Limits(max_connections=max_connections, max_keepalive_connections=max_connections),
            transport=transport,
        )

    @staticmethod
    def _ssl_context(ca_bundle: str) -> ssl.SSLContext:
        try:
            return ssl.create_default_context(cafile=ca_bundle)
        except (OSError, ssl.SSLError) as e:
            raise ConfigError(f"Unable to load CA bundle {ca_bundle}: {e}")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def aclose(self):
        await self._client.aclose()

    async def fetch(self, url: str) -> FetchResult:
        """Fetch a URL and return a FetchResult. Transport failures are reported in FetchResult.error."""
        start_time = time.time()
        error = None

        try:
            async with self._client.stream('GET', url) as response:
                content = await self._read_body(url, response)
                return FetchResult(
                    url=url,
                    status_code=response.status_code,
                    content=content,
                    headers=dict(response.headers),
                    final_url=str(response.url),
                    fetch_time=time.time() - start_time,
                )

        except httpx.TimeoutException as e:
            error = f"Timeout after {self.timeout}s: {e}"

        except httpx.ConnectError as e:
            error = f"Connection error: {e}"

        except httpx.TooManyRedirects as e:
            error = f"Too many redirects: {e}"

        except httpx.HTTPError as e:
            error = f"HTTP transport error: {e}"

        except httpx.InvalidURL as e:
            error = f"Invalid URL: {e}"

        except httpx.StreamError as e:
            error = f"Stream error: {e}"

        fetch_time = time.time() - start_time
        logger.warning("fetch_failed", url=url, error=error, fetch_time=round(fetch_time, 3))
        return FetchResult(
            url=url,
            status_code=0,
            fetch_time=fetch_time,
            error=error,
        )

    async def _read_body(self, url: str, response: httpx.Response) -> bytes:
        content = b''
        async for chunk in response.aiter_bytes(chunk_size=8192):
            content += chunk
            if len(content) > self.max_response_size:
                logger.warning("response_truncated", url=url, max_bytes=self.max_response_size)
                content = content[:self.max_response_size]
                break
        return content
