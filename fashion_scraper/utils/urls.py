"""URL helpers shared by the acquisition and extraction code."""
from typing import Optional
from urllib.parse import urljoin, urlsplit, urlunsplit

DEFAULT_PORTS = {"http": 80, "https": 443}


def is_http_url(url: Optional[str]) -> bool:
    """True for an absolute http(s) URL with a host."""
    if not url or not isinstance(url, str):
        return False
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.hostname)


def absolutize(url: Optional[str], base_url: Optional[str] = None) -> Optional[str]:
    """
    Resolve a possibly relative or protocol-relative URL.

    Returns None for data: URIs, javascript: links and anything that does
    not end up as an absolute http(s) URL.
    """
    if not url or not isinstance(url, str):
        return None
    url = url.strip()
    if not url or url.startswith(("data:", "javascript:", "blob:")):
        return None

    if base_url:
        try:
            url = urljoin(base_url, url)
        except ValueError:
            return None
    elif url.startswith("//"):
        url = f"https:{url}"

    return url if is_http_url(url) else None


def image_key(url: str) -> str:
    """
    Normalized identity of an image URL for deduplication.

    Scheme and host are lower-cased, default ports and fragments dropped,
    protocol-relative URLs treated as https. Path and query are kept: CDNs
    encode distinct renditions there.
    """
    url = url.strip()
    if url.startswith("//"):
        url = f"https:{url}"
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return url
    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    netloc = host if port in (None, DEFAULT_PORTS.get(scheme)) else f"{host}:{port}"
    return urlunsplit((scheme, netloc, parts.path or "/", parts.query, ""))
