# config.py
"""
Configuration for the AuthentiQC image pipeline.
All sensitive values should be set via environment variables.
"""
import os
from dataclasses import dataclass
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# ============================================================================
# Helper Functions
# ============================================================================
def is_valid_api_key(key: str, min_length: int = 20) -> bool:
    """
    Check if API key looks valid (not a placeholder).

    Args:
        key: The API key to validate
        min_length: Minimum length for a valid key

    Returns:
        True if key appears valid, False if it's a placeholder or invalid
    """
    if not key or len(key) < min_length:
        return False
    # Check for common placeholder patterns
    invalid_patterns = ['your_', 'example', 'placeholder', 'xxx', 'fake', 'test_key']
    return not any(pattern in key.lower() for pattern in invalid_patterns)

# ============================================================================
# Service Identity
# ============================================================================
SERVICE_NAME = os.environ.get("SERVICE_NAME", "authentiqc-image-pipeline")
WORKER_VERSION = os.environ.get("WORKER_VERSION", "1.4.0")

HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "8787"))

# ============================================================================
# Outbound Fetch Limits
# ============================================================================
FETCH_TIMEOUT = float(os.environ.get("FETCH_TIMEOUT", "10"))    # Seconds, product pages
PROXY_TIMEOUT = float(os.environ.get("PROXY_TIMEOUT", "10"))    # Seconds, image bodies
PROBE_TIMEOUT = float(os.environ.get("PROBE_TIMEOUT", "5"))     # Seconds, HEAD checks
MAX_IMAGE_BYTES = int(os.environ.get("MAX_IMAGE_BYTES", str(10 * 1024 * 1024)))  # 10MB
MAX_METADATA_IMAGES = int(os.environ.get("MAX_METADATA_IMAGES", "20"))
MAX_HTML_BYTES = int(os.environ.get("MAX_HTML_BYTES", str(2 * 1024 * 1024)))  # 2MB of page body parsed

# Refuse localhost / private network targets unless explicitly allowed
ALLOW_PRIVATE_HOSTS = os.environ.get("ALLOW_PRIVATE_HOSTS", "false").lower() == "true"

# ============================================================================
# Category Matching
# ============================================================================
CATEGORY_SIMILARITY_THRESHOLD = float(os.environ.get("CATEGORY_SIMILARITY_THRESHOLD", "0.75"))

# ============================================================================
# Section Image Resolution
# ============================================================================
TARGETED_STAGE_TIMEOUT = float(os.environ.get("TARGETED_STAGE_TIMEOUT", "20"))
PROFILE_STAGE_TIMEOUT = float(os.environ.get("PROFILE_STAGE_TIMEOUT", "10"))
UPLOADED_STAGE_TIMEOUT = float(os.environ.get("UPLOADED_STAGE_TIMEOUT", "10"))
REPORT_RESOLUTION_TIMEOUT = float(os.environ.get("REPORT_RESOLUTION_TIMEOUT", "45"))

# ============================================================================
# Anthropic/Claude Configuration (for section image search)
# ============================================================================
ANTHROPIC_API_KEY = os.environ.get("ANTHROPIC_API_KEY", "")
ANTHROPIC_BASE_URL = os.environ.get("ANTHROPIC_BASE_URL", "https://api.anthropic.com")
ANTHROPIC_MODEL = os.environ.get("ANTHROPIC_MODEL", "claude-sonnet-4-5")
ENABLE_AI_IMAGE_SEARCH = os.environ.get("ENABLE_AI_IMAGE_SEARCH", "true").lower() == "true" and is_valid_api_key(ANTHROPIC_API_KEY)


@dataclass(frozen=True)
class ServiceSettings:
    """Snapshot of the values above, taken once at startup."""
    name: str = SERVICE_NAME
    version: str = WORKER_VERSION
    fetch_timeout: float = FETCH_TIMEOUT
    proxy_timeout: float = PROXY_TIMEOUT
    probe_timeout: float = PROBE_TIMEOUT
    max_image_bytes: int = MAX_IMAGE_BYTES
    max_metadata_images: int = MAX_METADATA_IMAGES
    max_html_bytes: int = MAX_HTML_BYTES
    allow_private_hosts: bool = ALLOW_PRIVATE_HOSTS


def load_settings(**overrides) -> ServiceSettings:
    """Build the immutable settings object handed to the app factory."""
    return ServiceSettings(**overrides)
