"""
Shared pytest fixtures.

Outbound HTTP never leaves the process: services get an httpx.MockTransport
whose handler plays the part of the third-party origin.
"""
from typing import Callable, Dict, List

import httpx
import pytest

from app import create_app
from config import load_settings


PNG_BYTES = (
    b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01"
    b"\x08\x06\x00\x00\x00\x1f\x15\xc4\x89\x00\x00\x00\rIDATx\x9cc\xf8\x0f\x00"
    b"\x00\x01\x01\x00\x05\x18\xd8N\x00\x00\x00\x00IEND\xaeB`\x82"
)

PRODUCT_PAGE_HTML = """
<html>
<head>
  <title>Submariner Date 126610LN</title>
  <meta property="og:image" content="https://cdn.example.com/images/submariner-hero.jpg">
  <meta name="twitter:image" content="/images/submariner-twitter.jpg">
  <script type="application/ld+json">
    {"@context": "https://schema.org", "@type": "Product", "name": "Submariner",
     "image": ["https://cdn.example.com/images/submariner-ld.jpg",
               {"@type": "ImageObject", "url": "/images/submariner-ld-object.jpg"}]}
  </script>
  <script>document.write('<img src="/images/never-executed.jpg">');</script>
</head>
<body>
  <img src="/images/submariner-side.jpg">
  <img src="https://cdn.example.com/images/submariner-hero.jpg">
  <img src="data:image/gif;base64,R0lGODlhAQABAAAAACw=" data-src="lazy/submariner-back.jpg">
  <img src="https://tracker.example.com/pixel.gif">
  <img src="/static/icons/cart-icon.png">
</body>
</html>
"""


class RecordingHandler:
    """MockTransport handler that records requests and dispatches by URL."""

    def __init__(self, routes: Dict[str, Callable[[httpx.Request], httpx.Response]]):
        self.routes = routes
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get(str(request.url))
        if handler is None:
            return httpx.Response(404, text="not found")
        return handler(request)


@pytest.fixture
def png_bytes():
    return PNG_BYTES


@pytest.fixture
def product_page_html():
    return PRODUCT_PAGE_HTML


@pytest.fixture
def make_handler():
    def _make(routes):
        return RecordingHandler(routes)
    return _make


@pytest.fixture
def make_client():
    """Flask test client wired to a mock outbound transport."""
    def _make(handler, **overrides):
        settings = load_settings(version="9.9.9-test", **overrides)
        app = create_app(settings, transport=httpx.MockTransport(handler))
        app.testing = True
        return app.test_client()
    return _make
