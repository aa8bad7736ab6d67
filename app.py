#!/usr/bin/env python3
"""
AuthentiQC edge service.

Fetches third-party product pages and images for the browser client, which
can't make cross-origin requests itself. Every response, including errors,
404s and preflights, goes out through CorsResponseBuilder.

Endpoints:
- GET /                  health/version
- GET /fetch-metadata    ?url=  -> {"images": [...]}
- GET /proxy-image       ?url=[&referer=&ua=&accept=] -> image bytes
- OPTIONS *              CORS preflight
"""

import time
from typing import Optional

import httpx
from flask import Flask, g, request
from werkzeug.exceptions import HTTPException

from config import ServiceSettings, load_settings
from contracts.errors import InternalError, MethodNotAllowed, PipelineError, RouteNotFound
from infra.cors import CorsResponseBuilder
from infra.logging import log_error, log_event, new_request_id
from services.image_proxy import ImageProxy
from services.metadata_fetcher import MetadataFetcher

ENDPOINTS = ["/", "/fetch-metadata", "/proxy-image"]


def create_app(
    settings: Optional[ServiceSettings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> Flask:
    """
    Build the Flask app.

    Args:
        settings: Immutable service settings (loaded from the environment when None)
        transport: Optional httpx transport for outbound calls (tests inject a mock)
    """
    settings = settings or load_settings()
    cors = CorsResponseBuilder(settings.version)

    metadata_fetcher = MetadataFetcher(
        timeout=settings.fetch_timeout,
        max_images=settings.max_metadata_images,
        max_html_bytes=settings.max_html_bytes,
        allow_private_hosts=settings.allow_private_hosts,
        transport=transport
    )
    image_proxy = ImageProxy(
        timeout=settings.proxy_timeout,
        max_bytes=settings.max_image_bytes,
        probe_timeout=settings.probe_timeout,
        allow_private_hosts=settings.allow_private_hosts,
        transport=transport
    )

    app = Flask(__name__)
    app.config["SERVICE_SETTINGS"] = settings

    @app.before_request
    def _start_request():
        g.request_id = request.headers.get("X-Request-Id") or new_request_id()
        g.started = time.monotonic()
        # Preflight is answered the same way for every path, matched or not
        if request.method == "OPTIONS":
            return cors.preflight()

    @app.after_request
    def _finish_request(response):
        cors.apply(response)
        started = g.get("started")
        log_event(
            "request",
            request_id=g.get("request_id"),
            method=request.method,
            path=request.path,
            status=response.status_code,
            duration_ms=round((time.monotonic() - started) * 1000, 1) if started else None
        )
        return response

    @app.route("/", methods=["GET"])
    def health():
        return cors.json({
            "name": settings.name,
            "version": settings.version,
            "status": "ok",
            "endpoints": ENDPOINTS
        })

    @app.route("/fetch-metadata", methods=["GET"], strict_slashes=False)
    async def fetch_metadata():
        result = await metadata_fetcher.fetch_metadata(request.args.get("url"))
        return cors.json(
            result.model_dump(),
            extra_headers={"Cache-Control": "public, max-age=300"}
        )

    @app.route("/proxy-image", methods=["GET"], strict_slashes=False)
    async def proxy_image():
        result = await image_proxy.proxy_image(
            request.args.get("url"),
            referer=request.args.get("referer"),
            user_agent=request.args.get("ua"),
            accept=request.args.get("accept")
        )
        return cors.binary(
            result.content,
            result.content_type,
            extra_headers={
                "Cache-Control": "public, max-age=3600",
                "X-Proxy-Status": "success"
            }
        )

    @app.errorhandler(PipelineError)
    def _pipeline_error(error: PipelineError):
        log_event(
            "request_failed",
            request_id=g.get("request_id"),
            path=request.path,
            error=error.code,
            status=error.status_code
        )
        return cors.error(error)

    @app.errorhandler(HTTPException)
    def _http_error(error: HTTPException):
        if error.code == 404:
            return cors.error(RouteNotFound(f"no route for {request.path}", path=request.path))
        if error.code == 405:
            allowed = ", ".join(sorted(error.valid_methods or [])) if hasattr(error, "valid_methods") else None
            return cors.error(
                MethodNotAllowed(f"{request.method} not allowed on {request.path}"),
                extra_headers={"Allow": allowed} if allowed else None
            )

        generic = PipelineError(error.description or error.name)
        generic.status_code = error.code or 500
        generic.code = (error.name or "error").lower().replace(" ", "_")
        return cors.error(generic)

    @app.errorhandler(Exception)
    def _unhandled(error: Exception):
        log_error(
            f"{type(error).__name__}: {error}",
            request_id=g.get("request_id"),
            path=request.path
        )
        return cors.error(InternalError("unexpected error while handling request"))

    return app
