"""
Target URL validation shared by the edge services.

Rejects anything that is not an absolute http(s) URL and, unless explicitly
allowed, anything that points at localhost or a private/reserved network.
"""

import ipaddress
import logging
from urllib.parse import urlparse

from pydantic import ValidationError

from contracts.errors import BlockedUrl, InvalidUrl, MissingParameter
from contracts.models import FetchRequest

logger = logging.getLogger(__name__)

BLOCKED_HOSTNAMES = {"localhost", "localhost.localdomain", "ip6-localhost", "ip6-loopback"}


def is_internal_host(hostname: str) -> bool:
    """
    Check whether a hostname is localhost or a non-public IP literal.

    Only IP literals are classified; names are not resolved here.
    """
    host = (hostname or "").strip().lower().strip("[]")
    if not host:
        return True
    if host in BLOCKED_HOSTNAMES or host.endswith(".localhost"):
        return True

    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        return False

    return (
        ip.is_private or
        ip.is_loopback or
        ip.is_link_local or
        ip.is_multicast or
        ip.is_reserved or
        ip.is_unspecified
    )


def validate_target_url(raw_url: str, allow_private_hosts: bool = False) -> str:
    """
    Validate a caller-supplied target URL before any network call.

    Args:
        raw_url: URL from the query string
        allow_private_hosts: Skip the private-network check

    Returns:
        The stripped URL

    Raises:
        MissingParameter: URL was absent or blank
        InvalidUrl: Not an absolute http(s) URL
        BlockedUrl: Host is localhost or a private/reserved address
    """
    if raw_url is None or not str(raw_url).strip():
        raise MissingParameter("missing url parameter")

    try:
        request = FetchRequest(target_url=raw_url)
    except ValidationError:
        raise InvalidUrl(f"not an absolute http(s) URL: {str(raw_url)[:200]}", target=str(raw_url)[:200])

    hostname = urlparse(request.target_url).hostname or ""
    if not allow_private_hosts and is_internal_host(hostname):
        logger.warning(f"[URLGuard] Blocked internal target: {hostname}")
        raise BlockedUrl("access to internal resources not allowed", target=request.target_url)

    return request.target_url
