"""
Image Proxy Service
===================

Fetches an image on behalf of the browser client and re-serves the bytes so
the origin's own CORS policy never reaches the caller.

- Bounded timeout and a hard size ceiling on the body
- Only image/* responses are relayed; anything else is NotAnImage
- Bytes are passed through verbatim, never re-encoded
- probe_image() performs the same content-type check with HEAD (or a
  one-byte ranged GET) for callers that only need to know an URL is usable

Author: AuthentiQC Team
"""

import asyncio
import logging
from typing import Dict, Optional
from urllib.parse import urlparse

import httpx

import config
from contracts.errors import ImageTooLarge, NotAnImage, UpstreamError, UpstreamUnavailable
from contracts.models import ProxyResult
from services.metadata_fetcher import BROWSER_USER_AGENT, redirect_guard
from services.url_validation import validate_target_url

logger = logging.getLogger(__name__)


def media_type(content_type: Optional[str]) -> str:
    """'Image/JPEG; charset=binary' -> 'image/jpeg'"""
    return (content_type or '').split(';')[0].strip().lower()


def is_image_content_type(content_type: Optional[str]) -> bool:
    return media_type(content_type).startswith('image/')


class ImageProxy:
    """
    Stateless image proxy.

    Each call performs one outbound request with an explicit timeout.
    """

    ACCEPT = 'image/avif,image/webp,image/*,*/*;q=0.8'
    # Origins that refuse HEAD or omit Content-Type on it
    HEAD_FALLBACK_STATUSES = {403, 405, 501}

    def __init__(
        self,
        timeout: float = config.PROXY_TIMEOUT,
        max_bytes: int = config.MAX_IMAGE_BYTES,
        probe_timeout: float = config.PROBE_TIMEOUT,
        allow_private_hosts: bool = config.ALLOW_PRIVATE_HOSTS,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize image proxy.

        Args:
            timeout: Budget for a whole image fetch in seconds
            max_bytes: Size ceiling for relayed bodies
            probe_timeout: Timeout for probe_image() in seconds
            allow_private_hosts: Permit localhost/private targets
            transport: Optional httpx transport (tests inject a mock)
        """
        self.timeout = timeout
        self.max_bytes = max_bytes
        self.probe_timeout = probe_timeout
        self.allow_private_hosts = allow_private_hosts
        self.transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            event_hooks={'request': [redirect_guard(self.allow_private_hosts)]},
            transport=self.transport
        )

    def _request_headers(
        self,
        url: str,
        referer: Optional[str] = None,
        user_agent: Optional[str] = None,
        accept: Optional[str] = None
    ) -> Dict[str, str]:
        parsed = urlparse(url)
        return {
            'User-Agent': user_agent or BROWSER_USER_AGENT,
            'Accept': accept or self.ACCEPT,
            'Referer': referer or f"{parsed.scheme}://{parsed.netloc}/",
        }

    async def proxy_image(
        self,
        image_url: str,
        referer: Optional[str] = None,
        user_agent: Optional[str] = None,
        accept: Optional[str] = None
    ) -> ProxyResult:
        """
        Fetch an image and return its bytes for re-serving.

        Args:
            image_url: Absolute http(s) image URL
            referer: Override for the Referer header (hotlink-protected origins)
            user_agent: Override for the User-Agent header
            accept: Override for the Accept header

        Returns:
            ProxyResult with the original bytes and content type

        Raises:
            InvalidUrl / BlockedUrl: Target rejected before any network call
            UpstreamError: Non-2xx from the origin
            ImageTooLarge: Body exceeds max_bytes
            NotAnImage: Content type is not image/*
            UpstreamUnavailable: Timeout or connection failure
        """
        url = validate_target_url(image_url, self.allow_private_hosts)
        host = urlparse(url).netloc
        headers = self._request_headers(url, referer, user_agent, accept)

        try:
            # httpx timeouts apply per connect/read; this bounds the whole transfer
            return await asyncio.wait_for(self._fetch(url, host, headers), timeout=self.timeout)
        except (httpx.TimeoutException, asyncio.TimeoutError):
            logger.warning(f"[ImageProxy] Timeout after {self.timeout}s: {host}")
            raise UpstreamUnavailable(
                f"Timed out after {self.timeout:g}s fetching image from {host}",
                timed_out=True, target=url
            )
        except httpx.RequestError as e:
            logger.warning(f"[ImageProxy] Request failed for {host}: {type(e).__name__}")
            raise UpstreamUnavailable(f"Could not reach {host}: {type(e).__name__}", target=url)

    async def _fetch(self, url: str, host: str, headers: Dict[str, str]) -> ProxyResult:
        async with self._client(self.timeout) as client:
            async with client.stream('GET', url, headers=headers) as response:
                if not response.is_success:
                    logger.warning(f"[ImageProxy] {host} returned HTTP {response.status_code}")
                    raise UpstreamError(
                        f"Failed to fetch image from {host}. The server returned "
                        f"{response.status_code} {response.reason_phrase}.",
                        upstream_status=response.status_code, target=url
                    )

                content_type = response.headers.get('content-type', '')
                if not is_image_content_type(content_type):
                    logger.info(f"[ImageProxy] Rejected {media_type(content_type) or 'untyped'} from {host}")
                    raise NotAnImage(
                        f"Expected image data but received {media_type(content_type) or 'no content type'}",
                        content_type=media_type(content_type) or None, target=url
                    )

                self._check_declared_length(response, url)
                body = await self._read_capped(response, url)

                return ProxyResult(
                    content=body,
                    content_type=content_type.strip(),
                    source_status=response.status_code
                )

    def _check_declared_length(self, response: httpx.Response, url: str):
        declared = response.headers.get('content-length')
        if declared and declared.isdigit() and int(declared) > self.max_bytes:
            raise ImageTooLarge(
                f"Image is {int(declared)} bytes, limit is {self.max_bytes}",
                upstream_status=response.status_code, target=url
            )

    async def _read_capped(self, response: httpx.Response, url: str) -> bytes:
        """Read the body, aborting as soon as it passes max_bytes"""
        chunks = []
        total = 0
        async for chunk in response.aiter_bytes():
            total += len(chunk)
            if total > self.max_bytes:
                raise ImageTooLarge(
                    f"Image exceeds the {self.max_bytes} byte limit",
                    upstream_status=response.status_code, target=url
                )
            chunks.append(chunk)
        return b''.join(chunks)

    async def probe_image(self, image_url: str) -> str:
        """
        Check that an URL serves an image without downloading it.

        data:image/... URIs are accepted without a network call.

        Returns:
            The media type (e.g. 'image/jpeg')

        Raises:
            Same taxonomy as proxy_image()
        """
        if image_url and image_url.strip().lower().startswith('data:'):
            declared = image_url.strip()[5:].split(',', 1)[0]
            if is_image_content_type(declared):
                return media_type(declared)
            raise NotAnImage("data URI is not an image", content_type=media_type(declared) or None)

        url = validate_target_url(image_url, self.allow_private_hosts)
        host = urlparse(url).netloc
        headers = self._request_headers(url)

        try:
            async with self._client(self.probe_timeout) as client:
                response = await client.head(url, headers=headers)
                content_type = response.headers.get('content-type', '')

                if response.status_code in self.HEAD_FALLBACK_STATUSES or (response.is_success and not content_type):
                    async with client.stream('GET', url, headers={**headers, 'Range': 'bytes=0-0'}) as ranged:
                        response = ranged
                        content_type = ranged.headers.get('content-type', '')

        except httpx.TimeoutException:
            raise UpstreamUnavailable(f"Timed out probing {host}", timed_out=True, target=url)
        except httpx.RequestError as e:
            raise UpstreamUnavailable(f"Could not reach {host}: {type(e).__name__}", target=url)

        if not response.is_success:
            raise UpstreamError(
                f"{host} returned {response.status_code}",
                upstream_status=response.status_code, target=url
            )
        if not is_image_content_type(content_type):
            raise NotAnImage(
                f"Expected image data but received {media_type(content_type) or 'no content type'}",
                content_type=media_type(content_type) or None, target=url
            )

        return media_type(content_type)


# Convenience function
async def proxy_image(image_url: str, timeout: float = config.PROXY_TIMEOUT) -> ProxyResult:
    """
    Fetch one image through the proxy.

    Args:
        image_url: Image URL
        timeout: HTTP timeout in seconds

    Returns:
        ProxyResult
    """
    proxy = ImageProxy(timeout=timeout)
    return await proxy.proxy_image(image_url)
