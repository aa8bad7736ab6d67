# contracts/models.py
"""
Pydantic models for the AuthentiQC image pipeline.
These models define the request-scoped data contracts for page metadata,
proxied images, category normalization and QC section image resolution.
"""
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Literal, Optional
from urllib.parse import urlparse


Grade = Literal["PASS", "CAUTION", "FAIL"]
ImageStage = Literal["TARGETED", "PROFILE", "UPLOADED"]


class FetchRequest(BaseModel):
    """
    A request to fetch a third-party resource.
    Only absolute http(s) URLs with a host are accepted.
    """
    model_config = ConfigDict(frozen=True)

    target_url: str

    @field_validator("target_url")
    @classmethod
    def _absolute_http_url(cls, value: str) -> str:
        value = (value or "").strip()
        parsed = urlparse(value)
        if parsed.scheme.lower() not in ("http", "https") or not parsed.hostname:
            raise ValueError("must be an absolute http or https URL")
        return value


class MetadataResult(BaseModel):
    """Candidate image URLs discovered on a product page, in discovery order."""
    model_config = ConfigDict(frozen=True)

    images: List[str] = []


class ProxyResult(BaseModel):
    """Image bytes held only for one request/response cycle."""
    model_config = ConfigDict(frozen=True)

    content: bytes
    content_type: str
    source_status: int = 200


class NormalizedCategory(BaseModel):
    """
    Result of category normalization.

    `key` is the lowercase normalized form used for comparisons;
    `canonical_form` is the display label stored on the product.
    """
    model_config = ConfigDict(frozen=True)

    canonical_form: str
    key: str
    merged: bool = False  # True when an existing category was reused
    similarity: Optional[float] = Field(default=None, ge=0, le=1)


class QCSection(BaseModel):
    """A graded section of a QC report."""
    model_config = ConfigDict(frozen=True)

    section_name: str
    grade: Grade
    observations: List[str] = []
    image_ids: Optional[List[str]] = None
    score: Optional[int] = Field(default=None, ge=0, le=100)

    @property
    def needs_comparison(self) -> bool:
        return self.grade in ("CAUTION", "FAIL")


class QCReport(BaseModel):
    """Read-only view of a stored QC report."""
    model_config = ConfigDict(frozen=True)

    id: str
    sections: List[QCSection] = []
    overall_grade: Optional[Grade] = None
    overall_score: Optional[int] = Field(default=None, ge=0, le=100)
    summary: Optional[str] = None


class ProductProfile(BaseModel):
    """Identity of the authentic product a QC report is judged against."""
    model_config = ConfigDict(frozen=True)

    name: str
    brand: str = ""
    category: str = ""
    material: Optional[str] = None
    image_urls: List[str] = []  # Previously identified official images


class Product(BaseModel):
    """Read-only view of a stored product."""
    model_config = ConfigDict(frozen=True)

    id: str
    profile: ProductProfile
    reference_image_urls: List[str] = []  # User-uploaded reference images


class ImageCandidate(BaseModel):
    """A comparison image candidate and the stage that produced it."""
    model_config = ConfigDict(frozen=True)

    url: str
    stage: ImageStage
    validated: bool = False


class SearchOutcome(BaseModel):
    """
    Tagged result of an AI image search.
    Empty and failed searches are normal outcomes, not exceptions.
    """
    model_config = ConfigDict(frozen=True)

    status: Literal["ok", "empty", "failed"]
    urls: List[str] = []
    reason: Optional[str] = None

    @classmethod
    def ok(cls, urls: List[str]) -> "SearchOutcome":
        if not urls:
            return cls.empty()
        return cls(status="ok", urls=list(urls))

    @classmethod
    def empty(cls) -> "SearchOutcome":
        return cls(status="empty")

    @classmethod
    def failed(cls, reason: str) -> "SearchOutcome":
        return cls(status="failed", reason=reason)


class ResolutionState(str, Enum):
    PENDING = "PENDING"
    TARGETED = "TARGETED"
    PROFILE = "PROFILE"
    UPLOADED = "UPLOADED"
    RESOLVED = "RESOLVED"
    EXHAUSTED = "EXHAUSTED"


class SectionResolution(BaseModel):
    """Outcome of running the fallback chain for one section."""
    model_config = ConfigDict(frozen=True)

    section_name: str
    state: ResolutionState
    candidate: Optional[ImageCandidate] = None
    visited: List[ResolutionState] = []  # Stages entered, in order
