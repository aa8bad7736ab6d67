"""
Claude Image Search Client - finds section-specific reference images for QC.

Asks Claude (with its server-side web search tool) for close-up images of one
part of an authentic product, e.g. the clasp of a specific watch model, and
pulls image URLs out of the answer.

The result is always a SearchOutcome:
- ok(urls)        one or more image URLs found
- empty()         search ran but produced nothing usable
- failed(reason)  not configured, API error, timeout...
Callers never need to catch exceptions from this client.
"""

import logging
import re
from typing import List, Optional

import anthropic

import config
from contracts.models import ProductProfile, SearchOutcome


logger = logging.getLogger(__name__)

IMAGE_URL_PATTERN = re.compile(
    r'https?://[^\s<>"{}|\\^`\[\]]+\.(?:jpg|jpeg|png|webp|gif)(?:\?[^\s<>"{}|\\^`\[\]]*)?',
    re.IGNORECASE
)

MAX_SEARCH_RESULTS = 5

SYSTEM_PROMPT = (
    "You are an expert at finding reference images for product authentication. "
    "Use web search to find the most relevant, high-quality close-up images."
)


def extract_image_urls(text: str, limit: int = MAX_SEARCH_RESULTS) -> List[str]:
    """Pull direct image URLs out of free text, deduplicated, in order"""
    seen = {}
    for match in IMAGE_URL_PATTERN.finditer(text or ""):
        url = match.group(0).rstrip('.,);')
        seen.setdefault(url, None)
        if len(seen) >= limit:
            break
    return list(seen)


class ClaudeImageSearchClient:
    """
    Section image search backed by Claude web search.
    """

    WEB_SEARCH_TOOL = {"type": "web_search_20250305", "name": "web_search", "max_uses": 3}

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: float = config.TARGETED_STAGE_TIMEOUT,
        client: Optional[anthropic.AsyncAnthropic] = None
    ):
        """
        Initialize Claude image search client.

        Args:
            api_key: Anthropic API key (falls back to config.ANTHROPIC_API_KEY)
            base_url: API base URL (falls back to config.ANTHROPIC_BASE_URL)
            model: Model to use (falls back to config.ANTHROPIC_MODEL)
            timeout: Request timeout in seconds
            client: Pre-built AsyncAnthropic client
        """
        self.api_key = api_key or config.ANTHROPIC_API_KEY
        self.base_url = base_url or config.ANTHROPIC_BASE_URL
        self.model = model or config.ANTHROPIC_MODEL
        self.client = client

        if self.client is None and config.is_valid_api_key(self.api_key):
            self.client = anthropic.AsyncAnthropic(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=timeout,
                max_retries=0
            )

        if self.client is not None:
            logger.info(f"[ClaudeImageSearch] Initialized with model: {self.model}")

    @property
    def configured(self) -> bool:
        return self.client is not None

    async def search_section_images(self, profile: ProductProfile, section_name: str) -> SearchOutcome:
        """
        Search for close-up reference images of one section of a product.

        Args:
            profile: Authentic product identity (brand, model, category, material)
            section_name: QC section, e.g. "Dial & Hands"

        Returns:
            SearchOutcome
        """
        if not self.configured:
            return SearchOutcome.failed("AI image search not configured")

        logger.info(f"[ClaudeImageSearch] Searching '{section_name}' for {profile.brand} {profile.name}")

        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=2000,
                system=SYSTEM_PROMPT,
                tools=[self.WEB_SEARCH_TOOL],
                messages=[
                    {
                        "role": "user",
                        "content": self._build_search_prompt(profile, section_name)
                    }
                ]
            )
        except anthropic.APIError as e:
            logger.warning(f"[ClaudeImageSearch] Search failed for {section_name}: {type(e).__name__}")
            return SearchOutcome.failed(f"{type(e).__name__}: {e}")

        content = ""
        for block in response.content:
            if getattr(block, 'type', None) == 'text' and hasattr(block, 'text'):
                content += block.text

        if not content:
            logger.warning(f"[ClaudeImageSearch] No response text received for {section_name}")
            return SearchOutcome.empty()

        urls = extract_image_urls(content)
        if not urls:
            logger.warning(f"[ClaudeImageSearch] No image URLs found for {section_name}")
            return SearchOutcome.empty()

        logger.info(f"[ClaudeImageSearch] Found {len(urls)} images for {section_name}")
        return SearchOutcome.ok(urls)

    def _build_search_prompt(self, profile: ProductProfile, section_name: str) -> str:
        """Build the search prompt for Claude"""

        prompt = f"""Find high-quality close-up images of the {section_name} section for the authentic {profile.brand} {profile.name}.

Product Details:
- Brand: {profile.brand or 'Unknown'}
- Model: {profile.name}
- Category: {profile.category or 'Unknown'}
- Material: {profile.material or 'Unknown'}

Search for images that show:
1. Clear, detailed close-up views of the {section_name}
2. From official product pages, authorized retailers, or authentication guides
3. High resolution and well-lit
4. Showing authentic product details

Return {MAX_SEARCH_RESULTS - 2}-{MAX_SEARCH_RESULTS} direct image URLs (ending in .jpg, .jpeg, .png, .webp or .gif), one per line, no additional text."""

        return prompt
