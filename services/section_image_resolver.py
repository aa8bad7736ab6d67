"""
Section Image Resolver
======================

Finds a comparison image for each QC report section graded CAUTION or FAIL.

Fallback chain per section (first validated candidate wins):
1. TARGETED  - AI web search scoped to the section and product identity
2. PROFILE   - the product's previously identified official images
3. UPLOADED  - the user's own reference uploads

Every stage runs under its own timeout. A failing or stalled stage is logged
and the chain moves on; exhausting all stages yields None (not found), never
an exception, so one section can't abort report generation.

Author: AuthentiQC Team
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

import config
from contracts.errors import PipelineError
from contracts.models import (
    ImageCandidate,
    ImageStage,
    Product,
    ProductProfile,
    QCReport,
    QCSection,
    ResolutionState,
    SearchOutcome,
    SectionResolution,
)
from integrations.claude_image_search import ClaudeImageSearchClient
from services.image_proxy import ImageProxy
from services.section_names import normalize_section_name

logger = logging.getLogger(__name__)


class ImageSearchProvider(Protocol):
    """AI-backed image search; returns a tagged outcome and never raises."""

    async def search_section_images(self, profile: ProductProfile, section_name: str) -> SearchOutcome:
        ...


class ImageValidator(Protocol):
    """Returns the media type for a usable image URL, raises PipelineError otherwise."""

    async def probe_image(self, image_url: str) -> str:
        ...


StageAttempt = Callable[[], Awaitable[Optional[ImageCandidate]]]


class SectionImageResolver:
    """
    Runs the TARGETED -> PROFILE -> UPLOADED chain for one section at a time.

    Holds only its collaborators and timeouts; sections share no state, so
    any number of resolutions can run concurrently.
    """

    def __init__(
        self,
        search_provider: Optional[ImageSearchProvider] = None,
        validator: Optional[ImageValidator] = None,
        targeted_timeout: float = config.TARGETED_STAGE_TIMEOUT,
        profile_timeout: float = config.PROFILE_STAGE_TIMEOUT,
        uploaded_timeout: float = config.UPLOADED_STAGE_TIMEOUT
    ):
        """
        Initialize resolver.

        Args:
            search_provider: AI image search (TARGETED stage skipped when None)
            validator: Image URL validator (defaults to ImageProxy.probe_image)
            targeted_timeout: Budget for the TARGETED stage in seconds
            profile_timeout: Budget for the PROFILE stage in seconds
            uploaded_timeout: Budget for the UPLOADED stage in seconds
        """
        self.search_provider = search_provider
        self.validator = validator or ImageProxy()
        self.timeouts = {
            ResolutionState.TARGETED: targeted_timeout,
            ResolutionState.PROFILE: profile_timeout,
            ResolutionState.UPLOADED: uploaded_timeout,
        }

    async def resolve_section_image(
        self,
        section: QCSection,
        product_profile: ProductProfile,
        uploaded_images: Sequence[str] = ()
    ) -> Optional[ImageCandidate]:
        """
        Resolve a comparison image for one section.

        Returns:
            The winning ImageCandidate, or None when every stage came up empty
        """
        resolution = await self.resolve_with_trace(section, product_profile, uploaded_images)
        return resolution.candidate

    async def resolve_with_trace(
        self,
        section: QCSection,
        product_profile: ProductProfile,
        uploaded_images: Sequence[str] = ()
    ) -> SectionResolution:
        """Same as resolve_section_image(), also reporting the states visited."""
        if not section.needs_comparison:
            return SectionResolution(section_name=section.section_name, state=ResolutionState.EXHAUSTED)

        stages: List[Tuple[ResolutionState, StageAttempt]] = [
            (ResolutionState.TARGETED, lambda: self._targeted_stage(section, product_profile)),
            (ResolutionState.PROFILE, lambda: self._validate_first(product_profile.image_urls, "PROFILE")),
            (ResolutionState.UPLOADED, lambda: self._validate_first(uploaded_images, "UPLOADED")),
        ]

        visited = []
        for state, attempt in stages:
            visited.append(state)
            candidate = await self._run_stage(section.section_name, state, attempt)
            if candidate is not None:
                logger.info(
                    f"[Resolver] '{section.section_name}' resolved at {state.value}: {candidate.url[:100]}"
                )
                return SectionResolution(
                    section_name=section.section_name,
                    state=ResolutionState.RESOLVED,
                    candidate=candidate,
                    visited=visited
                )

        logger.info(f"[Resolver] '{section.section_name}' exhausted all stages, no comparison image")
        return SectionResolution(
            section_name=section.section_name,
            state=ResolutionState.EXHAUSTED,
            visited=visited
        )

    async def _run_stage(
        self,
        section_name: str,
        state: ResolutionState,
        attempt: StageAttempt
    ) -> Optional[ImageCandidate]:
        """Run one stage under its own timeout; failures mean fall through"""
        timeout = self.timeouts[state]
        try:
            return await asyncio.wait_for(attempt(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[Resolver] {state.value} stage timed out after {timeout}s for '{section_name}'")
        except Exception as e:
            logger.warning(
                f"[Resolver] {state.value} stage failed for '{section_name}': {type(e).__name__}: {e}"
            )
        return None

    async def _targeted_stage(self, section: QCSection, profile: ProductProfile) -> Optional[ImageCandidate]:
        if self.search_provider is None:
            return None

        search_name = normalize_section_name(section.section_name, profile.category or "default")
        outcome = await self.search_provider.search_section_images(profile, search_name)

        if outcome.status == "failed":
            logger.info(f"[Resolver] Targeted search failed for '{search_name}': {outcome.reason}")
            return None
        if outcome.status == "empty" or not outcome.urls:
            return None

        return await self._validate_first(outcome.urls, "TARGETED")

    async def _validate_first(self, urls: Sequence[str], stage: ImageStage) -> Optional[ImageCandidate]:
        """Probe candidates in order and return the first that serves an image"""
        for url in dict.fromkeys(u for u in urls if u):
            try:
                await self.validator.probe_image(url)
            except PipelineError as e:
                logger.debug(f"[Resolver] {stage} candidate rejected ({e.code}): {url[:100]}")
                continue
            return ImageCandidate(url=url, stage=stage, validated=True)
        return None

    async def resolve_report_images(
        self,
        report: QCReport,
        product: Product,
        uploaded_images: Optional[Sequence[str]] = None,
        timeout: Optional[float] = config.REPORT_RESOLUTION_TIMEOUT
    ) -> Dict[str, Optional[ImageCandidate]]:
        """
        Resolve comparison images for every CAUTION/FAIL section in parallel.

        Args:
            report: QC report to resolve
            product: Product the report belongs to
            uploaded_images: Reference uploads (defaults to product.reference_image_urls)
            timeout: Overall budget; unfinished sections are abandoned as not found

        Returns:
            Mapping of section name -> ImageCandidate or None (one entry per
            distinct flagged section name)
        """
        uploads = list(product.reference_image_urls if uploaded_images is None else uploaded_images)
        # Sections sharing a name resolve to the same image; run each name once
        flagged = []
        for section in report.sections:
            if section.needs_comparison and section.section_name not in {s.section_name for s in flagged}:
                flagged.append(section)
        results: Dict[str, Optional[ImageCandidate]] = {s.section_name: None for s in flagged}

        if not flagged:
            return results

        logger.info(f"[Resolver] Resolving {len(flagged)} flagged sections for report {report.id}")

        tasks = {
            asyncio.ensure_future(self.resolve_section_image(section, product.profile, uploads)): section
            for section in flagged
        }
        try:
            done, pending = await asyncio.wait(tasks.keys(), timeout=timeout)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise

        for task in pending:
            task.cancel()
        if pending:
            logger.warning(f"[Resolver] Abandoned {len(pending)} sections after {timeout}s")
            await asyncio.gather(*pending, return_exceptions=True)

        for task in done:
            section = tasks[task]
            if task.exception() is not None:
                logger.error(f"[Resolver] Section '{section.section_name}' crashed: {task.exception()}")
                continue
            results[section.section_name] = task.result()

        resolved = sum(1 for c in results.values() if c is not None)
        logger.info(f"[Resolver] Resolved {resolved}/{len(flagged)} comparison images")
        return results


def build_resolver() -> SectionImageResolver:
    """Resolver wired to Claude image search when a usable API key is configured."""
    search_provider = None
    if config.ENABLE_AI_IMAGE_SEARCH:
        search_provider = ClaudeImageSearchClient()
    else:
        logger.info("[Resolver] AI image search disabled, TARGETED stage will be skipped")
    return SectionImageResolver(search_provider=search_provider)


# Convenience function
async def resolve_report_images(
    report: QCReport,
    product: Product,
    uploaded_images: Optional[Sequence[str]] = None
) -> Dict[str, Optional[ImageCandidate]]:
    """
    Resolve comparison images for a report with the default resolver.

    Args:
        report: QC report
        product: Product the report belongs to
        uploaded_images: Reference uploads (defaults to product.reference_image_urls)

    Returns:
        Mapping of section name -> ImageCandidate or None
    """
    resolver = build_resolver()
    return await resolver.resolve_report_images(report, product, uploaded_images)
