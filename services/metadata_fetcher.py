"""
Product Page Metadata Fetcher
=============================

Fetches a third-party product page on behalf of the browser client and
extracts a ranked list of candidate image URLs.

Key Features:
- Single HTTP GET bounded in time and body size, browser-like identity
- HTML parsed without executing scripts (BeautifulSoup, html.parser)
- Candidates ranked: meta tags (og/twitter) > <img> tags > JSON-LD image fields
- Relative URLs resolved against <base href> or the final page URL
- Tracking pixels, spacers and data URIs dropped (meta-tag images always kept)
- First-seen order preserved, capped result size

Author: AuthentiQC Team
"""

import asyncio
import json
import logging
from typing import Any, Iterable, List, Optional, Tuple
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

import config
from contracts.errors import BlockedUrl, UpstreamError, UpstreamUnavailable
from contracts.models import MetadataResult
from services.url_validation import is_internal_host, validate_target_url

logger = logging.getLogger(__name__)

BROWSER_USER_AGENT = (
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) '
    'AppleWebKit/537.36 (KHTML, like Gecko) '
    'Chrome/120.0.0.0 Safari/537.36'
)


def redirect_guard(allow_private_hosts: bool):
    """
    Build an httpx request hook that refuses redirects into private networks.

    The initial target is validated before the call; this covers every hop after it.
    """
    async def _guard(request: httpx.Request):
        if allow_private_hosts:
            return
        if is_internal_host(request.url.host):
            raise BlockedUrl("redirect to internal resources not allowed", target=str(request.url))
    return _guard


class MetadataFetcher:
    """
    Extracts candidate product image URLs from an arbitrary product page.

    Stateless: every call opens its own client, performs one GET and
    keeps nothing afterwards.
    """

    USER_AGENT = BROWSER_USER_AGENT
    ACCEPT = 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8'

    # Curated by the site owner, most likely the canonical product shot
    META_IMAGE_KEYS = {
        'og:image', 'og:image:url', 'og:image:secure_url',
        'twitter:image', 'twitter:image:src', 'image'
    }

    NOISE_SUBSTRINGS = ('1x1', 'tracking', 'pixel', 'spacer.gif')
    MAX_URL_LENGTH = 2048
    MAX_LD_DEPTH = 20

    def __init__(
        self,
        timeout: float = config.FETCH_TIMEOUT,
        max_images: int = config.MAX_METADATA_IMAGES,
        allow_private_hosts: bool = config.ALLOW_PRIVATE_HOSTS,
        max_html_bytes: int = config.MAX_HTML_BYTES,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize metadata fetcher.

        Args:
            timeout: Budget for the whole page fetch in seconds
            max_images: Max candidate URLs returned
            allow_private_hosts: Permit localhost/private targets
            max_html_bytes: Bytes of page body read before parsing stops short
            transport: Optional httpx transport (tests inject a mock)
        """
        self.timeout = timeout
        self.max_images = max_images
        self.allow_private_hosts = allow_private_hosts
        self.max_html_bytes = max_html_bytes
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            headers={'User-Agent': self.USER_AGENT, 'Accept': self.ACCEPT},
            event_hooks={'request': [redirect_guard(self.allow_private_hosts)]},
            transport=self.transport
        )

    async def fetch_metadata(self, target_url: str) -> MetadataResult:
        """
        Fetch a product page and extract candidate image URLs.

        Args:
            target_url: Absolute http(s) URL of the product page

        Returns:
            MetadataResult (possibly empty)

        Raises:
            InvalidUrl / BlockedUrl: Target rejected before any network call
            UpstreamError: Page returned a non-2xx status
            UpstreamUnavailable: Timeout or connection failure
        """
        url = validate_target_url(target_url, self.allow_private_hosts)
        host = urlparse(url).netloc

        logger.info(f"[Metadata] Fetching {url}")

        try:
            # httpx timeouts apply per connect/read; this bounds the whole transfer
            html, final_url = await asyncio.wait_for(self._download(url, host), timeout=self.timeout)
        except (httpx.TimeoutException, asyncio.TimeoutError):
            logger.warning(f"[Metadata] Timeout after {self.timeout}s: {host}")
            raise UpstreamUnavailable(
                f"Timed out after {self.timeout:g}s fetching page from {host}",
                timed_out=True, target=url
            )
        except httpx.RequestError as e:
            logger.warning(f"[Metadata] Request failed for {host}: {type(e).__name__}")
            raise UpstreamUnavailable(
                f"Could not reach {host}: {type(e).__name__}",
                target=url
            )

        images = self.extract_image_urls(html, final_url)
        logger.info(f"[Metadata] Found {len(images)} candidate images on {host}")
        return MetadataResult(images=images)

    async def _download(self, url: str, host: str) -> Tuple[str, str]:
        """GET the page, reading at most max_html_bytes of the body"""
        async with self._client() as client:
            async with client.stream('GET', url) as response:
                if not response.is_success:
                    logger.warning(f"[Metadata] {host} returned HTTP {response.status_code}")
                    raise UpstreamError(
                        f"Failed to fetch page metadata. Server returned {response.status_code}.",
                        upstream_status=response.status_code, target=url
                    )

                chunks = []
                total = 0
                async for chunk in response.aiter_bytes():
                    chunks.append(chunk)
                    total += len(chunk)
                    if total >= self.max_html_bytes:
                        logger.info(f"[Metadata] Page from {host} truncated at {self.max_html_bytes} bytes")
                        break

                body = b''.join(chunks)[:self.max_html_bytes]
                encoding = response.charset_encoding or 'utf-8'
                try:
                    html = body.decode(encoding, errors='replace')
                except LookupError:
                    html = body.decode('utf-8', errors='replace')
                return html, str(response.url)

    def extract_image_urls(self, html: str, page_url: str) -> List[str]:
        """
        Extract, resolve, filter and rank image URLs from page HTML.

        Meta-tag images are curated by the site owner and are never dropped
        as noise; <img> and JSON-LD candidates go through the noise filter.

        Args:
            html: Raw page body
            page_url: Final URL of the page (after redirects)

        Returns:
            Absolute URLs, deduplicated in first-seen order, capped
        """
        soup = BeautifulSoup(html or '', 'html.parser')
        base_url = self._extract_base_url(soup, page_url)

        ordered = [(raw, True) for raw in self._extract_meta_images(soup)]
        ordered.extend((raw, False) for raw in self._extract_img_tags(soup))
        ordered.extend((raw, False) for raw in self._extract_json_ld_images(soup))

        seen = {}
        for raw, curated in ordered:
            resolved = self._resolve(raw, base_url)
            if not resolved or len(resolved) >= self.MAX_URL_LENGTH:
                continue
            if not curated and self._is_noise(resolved):
                continue
            seen.setdefault(resolved, None)
            if len(seen) >= self.max_images:
                break

        return list(seen)

    def _extract_base_url(self, soup: BeautifulSoup, page_url: str) -> str:
        """Use <base href> when present, otherwise the page URL"""
        base_tag = soup.find('base', href=True)
        if base_tag and base_tag['href'].strip():
            return urljoin(page_url, base_tag['href'].strip())
        return page_url

    def _extract_meta_images(self, soup: BeautifulSoup) -> List[str]:
        """Extract Open Graph / Twitter card / itemprop images"""
        found = []
        for tag in soup.find_all('meta'):
            key = (tag.get('property') or tag.get('name') or tag.get('itemprop') or '').strip().lower()
            content = tag.get('content')
            if key in self.META_IMAGE_KEYS and content:
                found.append(content)

        for tag in soup.find_all('link', rel='image_src'):
            if tag.get('href'):
                found.append(tag['href'])

        return found

    def _extract_img_tags(self, soup: BeautifulSoup) -> List[str]:
        """Extract <img> sources, falling back to lazy-load attributes"""
        found = []
        for tag in soup.find_all('img'):
            src = tag.get('src')
            if not src or src.strip().lower().startswith('data:'):
                src = tag.get('data-src') or tag.get('data-original') or src
            if src:
                found.append(src)
        return found

    def _extract_json_ld_images(self, soup: BeautifulSoup) -> List[str]:
        """Extract image fields from every JSON-LD block"""
        found = []
        for script in soup.find_all('script', type='application/ld+json'):
            raw = script.string or script.get_text()
            if not raw or not raw.strip():
                continue
            try:
                data = json.loads(raw)
            except (json.JSONDecodeError, ValueError):
                continue
            found.extend(self._images_from_ld(data))
        return found

    def _images_from_ld(self, node: Any, depth: int = 0) -> List[str]:
        """Walk JSON-LD (objects, arrays, @graph) collecting image values"""
        if depth > self.MAX_LD_DEPTH:
            return []

        results = []
        if isinstance(node, list):
            for item in node:
                results.extend(self._images_from_ld(item, depth + 1))
        elif isinstance(node, dict):
            if 'image' in node:
                results.extend(self._image_values(node['image']))
            for key, value in node.items():
                if key != 'image' and isinstance(value, (dict, list)):
                    results.extend(self._images_from_ld(value, depth + 1))
        return results

    def _image_values(self, value: Any) -> Iterable[str]:
        """Normalize a JSON-LD image field (string, list, ImageObject)"""
        if isinstance(value, str):
            return [value]
        if isinstance(value, dict):
            url = value.get('url') or value.get('contentUrl')
            return [url] if isinstance(url, str) else []
        if isinstance(value, list):
            out = []
            for item in value:
                out.extend(self._image_values(item))
            return out
        return []

    def _resolve(self, raw: str, base_url: str) -> Optional[str]:
        """Make a candidate absolute; drop anything that isn't http(s)"""
        candidate = (raw or '').strip()
        if not candidate or candidate.lower().startswith(('data:', 'javascript:', 'blob:')):
            return None
        try:
            absolute = urljoin(base_url, candidate)
        except ValueError:
            return None
        if urlparse(absolute).scheme not in ('http', 'https'):
            return None
        return absolute

    def _is_noise(self, url: str) -> bool:
        """Tracking pixels and spacers"""
        lower = url.lower()
        return any(token in lower for token in self.NOISE_SUBSTRINGS)


# Convenience function
async def fetch_metadata(target_url: str, timeout: float = config.FETCH_TIMEOUT) -> MetadataResult:
    """
    Fetch candidate images for one product page.

    Args:
        target_url: Product page URL
        timeout: HTTP timeout in seconds

    Returns:
        MetadataResult with ranked image URLs
    """
    fetcher = MetadataFetcher(timeout=timeout)
    return await fetcher.fetch_metadata(target_url)
