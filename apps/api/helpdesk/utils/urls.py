"""URL helpers for log output."""

from urllib.parse import urlsplit


def safe_url(url: str | None) -> str:
    """Drop query string and credentials so URLs can be logged."""
    if not url:
        return ""
    parts = urlsplit(url)
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return f"{parts.scheme}://{host}{parts.path}"
