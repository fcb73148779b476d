"""Domain normalization shared by search capping, citations and credibility lookup."""

from __future__ import annotations
from urllib.parse import urlparse

from ..exceptions import MalformedURLError


def normalize_domain(url_or_domain: str) -> str:
    """Extract and normalize domain from URL or domain string."""
    host = url_or_domain
    if "://" in (url_or_domain or ""):
        try:
            host = urlparse(url_or_domain).netloc
        except ValueError:
            host = url_or_domain
    host = (host or "").strip().lower()
    # strip credentials and port
    host = host.rsplit("@", 1)[-1].split(":")[0].rstrip(".")
    if host.startswith("www."):
        host = host[4:]
    return host


def host_of(url: str) -> str:
    """Hostname of an absolute URL without the www prefix.

    Raises:
        MalformedURLError: when the URL has no scheme or host
    """
    try:
        parsed = urlparse((url or "").strip())
        host = parsed.hostname
    except ValueError as e:
        raise MalformedURLError(url) from e
    if not parsed.scheme or not host:
        raise MalformedURLError(url)
    host = host.lower()
    if host.startswith("www."):
        host = host[4:]
    return host


def domain_of(url: str) -> str:
    """Like host_of but returns an empty string for malformed URLs."""
    try:
        return host_of(url)
    except MalformedURLError:
        return ""


def registrable_suffix(domain: str) -> str:
    """Last two labels of a hostname (``news.bbc.co.uk`` -> ``co.uk``)."""
    parts = [p for p in domain.split(".") if p]
    if len(parts) <= 2:
        return ".".join(parts)
    return ".".join(parts[-2:])
