"""
Tests for ImageProxy: verbatim relay, identity headers, size ceiling, probing.
"""
import asyncio

import httpx
import pytest

from contracts.errors import ImageTooLarge, InvalidUrl, NotAnImage, UpstreamError, UpstreamUnavailable
from services.image_proxy import ImageProxy, is_image_content_type, media_type

IMAGE_URL = "https://cdn.example.com/images/strap-detail.jpg"


def _proxy(handler, **kwargs):
    return ImageProxy(transport=httpx.MockTransport(handler), **kwargs)


def _image(body, content_type="image/jpeg"):
    return lambda r: httpx.Response(200, content=body, headers={"Content-Type": content_type})


def test_media_type_helpers():
    assert media_type("Image/JPEG; charset=binary") == "image/jpeg"
    assert media_type(None) == ""
    assert is_image_content_type("image/webp")
    assert not is_image_content_type("text/html; charset=utf-8")
    assert not is_image_content_type("")


@pytest.mark.asyncio
async def test_bytes_are_returned_verbatim(make_handler, png_bytes):
    handler = make_handler({IMAGE_URL: _image(png_bytes, "image/png")})

    result = await _proxy(handler).proxy_image(IMAGE_URL)

    assert result.content == png_bytes
    assert result.content_type == "image/png"
    assert result.source_status == 200


@pytest.mark.asyncio
async def test_default_referer_is_origin_root(make_handler, png_bytes):
    handler = make_handler({IMAGE_URL: _image(png_bytes)})

    await _proxy(handler).proxy_image(IMAGE_URL)

    sent = handler.requests[0]
    assert sent.headers["referer"] == "https://cdn.example.com/"
    assert sent.headers["user-agent"].startswith("Mozilla/5.0")
    assert "image/*" in sent.headers["accept"]


@pytest.mark.asyncio
async def test_identity_overrides(make_handler, png_bytes):
    handler = make_handler({IMAGE_URL: _image(png_bytes)})

    await _proxy(handler).proxy_image(
        IMAGE_URL,
        referer="https://shop.example.com/p/1",
        user_agent="QCBot/2.0",
        accept="image/png"
    )

    sent = handler.requests[0]
    assert sent.headers["referer"] == "https://shop.example.com/p/1"
    assert sent.headers["user-agent"] == "QCBot/2.0"
    assert sent.headers["accept"] == "image/png"


@pytest.mark.asyncio
async def test_html_is_not_an_image(make_handler):
    handler = make_handler({IMAGE_URL: lambda r: httpx.Response(200, html="<h1>Hotlinking forbidden</h1>")})

    with pytest.raises(NotAnImage) as exc:
        await _proxy(handler).proxy_image(IMAGE_URL)

    assert exc.value.status_code == 422
    assert exc.value.content_type == "text/html"


@pytest.mark.asyncio
async def test_upstream_500_is_upstream_error(make_handler):
    handler = make_handler({IMAGE_URL: lambda r: httpx.Response(500, text="boom")})

    with pytest.raises(UpstreamError) as exc:
        await _proxy(handler).proxy_image(IMAGE_URL)

    assert exc.value.upstream_status == 500
    assert exc.value.status_code == 502
    assert not isinstance(exc.value, ImageTooLarge)


@pytest.mark.asyncio
async def test_declared_length_over_limit(make_handler):
    handler = make_handler({IMAGE_URL: _image(b"\xff" * 4096)})

    with pytest.raises(ImageTooLarge):
        await _proxy(handler, max_bytes=1024).proxy_image(IMAGE_URL)


@pytest.mark.asyncio
async def test_streamed_body_over_limit_without_length(make_handler):
    async def chunks():
        for _ in range(8):
            yield b"\xff" * 512

    handler = make_handler({
        IMAGE_URL: lambda r: httpx.Response(200, content=chunks(), headers={"Content-Type": "image/jpeg"}),
    })

    with pytest.raises(ImageTooLarge) as exc:
        await _proxy(handler, max_bytes=2000).proxy_image(IMAGE_URL)

    assert exc.value.to_dict()["error"] == "image_too_large"


@pytest.mark.asyncio
async def test_body_exactly_at_limit_is_accepted(make_handler):
    body = b"\xff" * 1024
    handler = make_handler({IMAGE_URL: _image(body)})

    result = await _proxy(handler, max_bytes=1024).proxy_image(IMAGE_URL)

    assert result.content == body


@pytest.mark.asyncio
async def test_timeout_maps_to_504():
    def handler(request):
        raise httpx.ReadTimeout("slow origin", request=request)

    with pytest.raises(UpstreamUnavailable) as exc:
        await _proxy(handler).proxy_image(IMAGE_URL)

    assert exc.value.status_code == 504


@pytest.mark.asyncio
async def test_invalid_url_makes_no_request(make_handler):
    handler = make_handler({})

    with pytest.raises(InvalidUrl):
        await _proxy(handler).proxy_image("//cdn.example.com/a.jpg")

    assert handler.requests == []


@pytest.mark.asyncio
async def test_probe_uses_head(make_handler):
    handler = make_handler({
        IMAGE_URL: lambda r: httpx.Response(200, headers={"Content-Type": "image/jpeg"}),
    })

    media = await _proxy(handler).probe_image(IMAGE_URL)

    assert media == "image/jpeg"
    assert [r.method for r in handler.requests] == ["HEAD"]


@pytest.mark.asyncio
async def test_probe_falls_back_to_ranged_get_when_head_refused(make_handler):
    def origin(request):
        if request.method == "HEAD":
            return httpx.Response(405)
        assert request.headers["range"] == "bytes=0-0"
        return httpx.Response(206, content=b"\xff", headers={"Content-Type": "image/webp"})

    handler = make_handler({IMAGE_URL: origin})

    media = await _proxy(handler).probe_image(IMAGE_URL)

    assert media == "image/webp"
    assert [r.method for r in handler.requests] == ["HEAD", "GET"]


@pytest.mark.asyncio
async def test_probe_rejects_html(make_handler):
    handler = make_handler({
        IMAGE_URL: lambda r: httpx.Response(200, headers={"Content-Type": "text/html"}),
    })

    with pytest.raises(NotAnImage):
        await _proxy(handler).probe_image(IMAGE_URL)


@pytest.mark.asyncio
async def test_probe_missing_image_is_upstream_error(make_handler):
    handler = make_handler({})

    with pytest.raises(UpstreamError) as exc:
        await _proxy(handler).probe_image(IMAGE_URL)

    assert exc.value.upstream_status == 404


@pytest.mark.asyncio
async def test_probe_data_uri_without_network(make_handler):
    handler = make_handler({})
    proxy = _proxy(handler)

    assert await proxy.probe_image("data:image/png;base64,iVBORw0KGgo=") == "image/png"
    with pytest.raises(NotAnImage):
        await proxy.probe_image("data:text/plain;base64,aGVsbG8=")

    assert handler.requests == []


@pytest.mark.asyncio
async def test_slow_trickling_image_hits_overall_timeout(make_handler):
    async def trickle():
        for _ in range(10):
            await asyncio.sleep(0.1)
            yield b"\xff" * 64

    handler = make_handler({
        IMAGE_URL: lambda r: httpx.Response(200, content=trickle(), headers={"Content-Type": "image/jpeg"}),
    })

    with pytest.raises(UpstreamUnavailable) as exc:
        await _proxy(handler, timeout=0.25).proxy_image(IMAGE_URL)

    assert exc.value.timed_out
    assert exc.value.status_code == 504
