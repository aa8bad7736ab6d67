"""
Tests for the Claude-backed section image search (no network).
"""
from types import SimpleNamespace
from unittest.mock import AsyncMock

import anthropic
import httpx
import pytest

import config
from contracts.models import ProductProfile
from integrations.claude_image_search import ClaudeImageSearchClient, extract_image_urls

PROFILE = ProductProfile(name="Submariner Date 126610LN", brand="Rolex", category="Watch", material="Oystersteel")


def _fake_client(text=None, error=None):
    create = AsyncMock()
    if error is not None:
        create.side_effect = error
    else:
        blocks = [SimpleNamespace(type="server_tool_use", name="web_search")]
        if text is not None:
            blocks.append(SimpleNamespace(type="text", text=text))
        create.return_value = SimpleNamespace(content=blocks)
    return SimpleNamespace(messages=SimpleNamespace(create=create))


def test_extract_image_urls_dedupes_and_caps():
    text = """
    Here are some images:
    https://img.example.com/clasp-1.jpg
    https://img.example.com/clasp-1.jpg
    (https://img.example.com/clasp-2.PNG).
    https://img.example.com/page.html
    https://img.example.com/clasp-3.webp?w=1200
    https://img.example.com/clasp-4.jpeg
    https://img.example.com/clasp-5.gif
    https://img.example.com/clasp-6.jpg
    """
    urls = extract_image_urls(text)

    assert urls == [
        "https://img.example.com/clasp-1.jpg",
        "https://img.example.com/clasp-2.PNG",
        "https://img.example.com/clasp-3.webp?w=1200",
        "https://img.example.com/clasp-4.jpeg",
        "https://img.example.com/clasp-5.gif",
    ]


def test_extract_image_urls_from_empty_text():
    assert extract_image_urls("") == []
    assert extract_image_urls(None) == []


@pytest.mark.asyncio
async def test_unconfigured_client_reports_failed(monkeypatch):
    monkeypatch.setattr(config, "ANTHROPIC_API_KEY", "")

    search = ClaudeImageSearchClient()
    outcome = await search.search_section_images(PROFILE, "Clasp")

    assert not search.configured
    assert outcome.status == "failed"
    assert outcome.urls == []


@pytest.mark.asyncio
async def test_urls_found_is_ok():
    client = _fake_client(text="https://img.example.com/rolex/clasp-closeup.jpg\nhttps://img.example.com/rolex/clasp-side.jpg")
    search = ClaudeImageSearchClient(client=client)

    outcome = await search.search_section_images(PROFILE, "Clasp")

    assert outcome.status == "ok"
    assert outcome.urls == [
        "https://img.example.com/rolex/clasp-closeup.jpg",
        "https://img.example.com/rolex/clasp-side.jpg",
    ]

    kwargs = client.messages.create.call_args.kwargs
    assert kwargs["tools"][0]["name"] == "web_search"
    prompt = kwargs["messages"][0]["content"]
    assert "Clasp" in prompt
    assert "Rolex" in prompt
    assert "Oystersteel" in prompt


@pytest.mark.asyncio
async def test_answer_without_urls_is_empty():
    search = ClaudeImageSearchClient(client=_fake_client(text="I could not find any close-up images."))

    outcome = await search.search_section_images(PROFILE, "Movement")

    assert outcome.status == "empty"


@pytest.mark.asyncio
async def test_no_text_blocks_is_empty():
    search = ClaudeImageSearchClient(client=_fake_client())

    outcome = await search.search_section_images(PROFILE, "Movement")

    assert outcome.status == "empty"


@pytest.mark.asyncio
async def test_api_error_is_failed_not_raised():
    error = anthropic.APIConnectionError(request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"))
    search = ClaudeImageSearchClient(client=_fake_client(error=error))

    outcome = await search.search_section_images(PROFILE, "Clasp")

    assert outcome.status == "failed"
    assert "APIConnectionError" in outcome.reason
