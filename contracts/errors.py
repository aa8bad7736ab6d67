# contracts/errors.py
"""
Error taxonomy for the image pipeline.

Each error knows the HTTP status it maps to and a short machine-readable code,
so the edge layer can render distinct messages for "unreachable", "not an image"
and "misconfigured" instead of a generic failure.
"""
from typing import Any, Dict, Optional


class PipelineError(Exception):
    """Base exception for all pipeline errors."""
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str = "", **details: Any):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.code, "message": self.message}
        body.update({k: v for k, v in self.details.items() if v is not None})
        return body


# Caller errors

class InvalidUrl(PipelineError):
    """Target is missing, malformed, or not an absolute http(s) URL."""
    status_code = 400
    code = "invalid_url"


class MissingParameter(InvalidUrl):
    """Required query parameter was not supplied."""
    code = "missing_url"


class BlockedUrl(InvalidUrl):
    """Target points at localhost or a private/reserved network."""
    status_code = 403
    code = "blocked_url"


class InvalidCategory(PipelineError):
    """Category label is empty after normalization."""
    status_code = 400
    code = "invalid_category"


# Upstream errors

class UpstreamError(PipelineError):
    """Origin answered, but with a non-2xx status."""
    status_code = 502
    code = "upstream_error"

    def __init__(self, message: str = "", upstream_status: Optional[int] = None, **details: Any):
        super().__init__(message, status=upstream_status, **details)
        self.upstream_status = upstream_status


class ImageTooLarge(UpstreamError):
    """Origin body exceeds the configured size ceiling."""
    code = "image_too_large"


class UpstreamUnavailable(PipelineError):
    """Origin could not be reached or did not answer in time."""
    status_code = 502
    code = "upstream_unavailable"

    def __init__(self, message: str = "", timed_out: bool = False, **details: Any):
        super().__init__(message, **details)
        self.timed_out = timed_out
        if timed_out:
            self.status_code = 504
            self.code = "upstream_timeout"


class NotAnImage(PipelineError):
    """Origin returned something other than image/*."""
    status_code = 422
    code = "not_an_image"

    def __init__(self, message: str = "", content_type: Optional[str] = None, **details: Any):
        super().__init__(message, content_type=content_type, **details)
        self.content_type = content_type


# Routing / internal

class RouteNotFound(PipelineError):
    status_code = 404
    code = "not_found"


class MethodNotAllowed(PipelineError):
    status_code = 405
    code = "method_not_allowed"


class InternalError(PipelineError):
    status_code = 500
    code = "internal_error"
