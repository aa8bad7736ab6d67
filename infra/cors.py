# infra/cors.py
"""
CORS response builder.

Every response the service emits is built (or finalized) here so that the
cross-origin header set and the version marker are always present. A response
without them surfaces in the browser as a misleading "CORS error" that hides
the real failure.
"""
import json
from typing import Any, Dict, Optional

from flask import Response

from contracts.errors import PipelineError

VERSION_HEADER = "X-Worker-Version"
JSON_CONTENT_TYPE = "application/json"


class CorsResponseBuilder:
    """
    Builds Flask responses carrying the uniform CORS header set.

    The version is fixed at construction and read-only afterwards.
    """

    ALLOWED_METHODS = "GET, OPTIONS"
    ALLOWED_HEADERS = "Content-Type"
    MAX_AGE = "86400"
    EXPOSED_HEADERS = f"{VERSION_HEADER}, X-Proxy-Status"

    def __init__(self, version: str):
        self._version = version

    @property
    def version(self) -> str:
        return self._version

    def headers(self) -> Dict[str, str]:
        return {
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": self.ALLOWED_METHODS,
            "Access-Control-Allow-Headers": self.ALLOWED_HEADERS,
            "Access-Control-Max-Age": self.MAX_AGE,
            "Access-Control-Expose-Headers": self.EXPOSED_HEADERS,
            VERSION_HEADER: self._version,
        }

    def apply(self, response: Response) -> Response:
        """Stamp the header set onto an existing response (idempotent)."""
        for name, value in self.headers().items():
            response.headers[name] = value
        return response

    def json(
        self,
        payload: Any,
        status: int = 200,
        extra_headers: Optional[Dict[str, str]] = None
    ) -> Response:
        response = Response(
            json.dumps(payload),
            status=status,
            content_type=JSON_CONTENT_TYPE,
        )
        if extra_headers:
            response.headers.update(extra_headers)
        return self.apply(response)

    def binary(
        self,
        body: bytes,
        content_type: str,
        status: int = 200,
        extra_headers: Optional[Dict[str, str]] = None
    ) -> Response:
        response = Response(body, status=status, content_type=content_type or "application/octet-stream")
        if extra_headers:
            response.headers.update(extra_headers)
        return self.apply(response)

    def error(self, error: PipelineError, extra_headers: Optional[Dict[str, str]] = None) -> Response:
        return self.json(error.to_dict(), status=error.status_code, extra_headers=extra_headers)

    def preflight(self) -> Response:
        return self.apply(Response(status=204))
