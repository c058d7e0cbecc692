"""Instagram URL validation and classification."""

from typing import List
from urllib.parse import urlparse

SCRAPE_MODES = ("auto", "profile", "post")
POST_PATH_PREFIXES = {"p", "reel"}


class InvalidInstagramUrl(ValueError):
    """The submitted URL is missing, malformed, or not an Instagram URL."""


def path_segments(url: str) -> List[str]:
    path = urlparse(url).path.strip("/")
    return [part for part in path.split("/") if part] if path else []


def validate_instagram_url(url) -> str:
    """Return the cleaned URL or raise InvalidInstagramUrl."""
    if not isinstance(url, str) or not url.strip():
        raise InvalidInstagramUrl("URL is required and must be a string")

    url = url.strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise InvalidInstagramUrl("Invalid URL format")

    host = parsed.hostname.lower()
    if host != "instagram.com" and not host.endswith(".instagram.com"):
        raise InvalidInstagramUrl("URL must be an Instagram URL")

    if not path_segments(url):
        raise InvalidInstagramUrl("URL must point to an Instagram profile or post")
    return url


def classify_url(url: str) -> str:
    """'post' for /p/<code> and /reel/<code> URLs, 'profile' for anything else."""
    segments = path_segments(url)
    if segments and segments[0] in POST_PATH_PREFIXES:
        return "post"
    return "profile"


def resolve_kind(url: str, mode: str = "auto") -> str:
    if mode == "auto":
        return classify_url(url)
    if mode not in ("profile", "post"):
        raise InvalidInstagramUrl(f"Unknown scrape mode: {mode}")
    if mode == "profile" and classify_url(url) == "post":
        raise InvalidInstagramUrl("Profile mode needs a profile URL, not a post URL")
    return mode


def extract_username(url: str) -> str:
    segments = path_segments(url)
    if not segments or segments[0] in POST_PATH_PREFIXES:
        raise InvalidInstagramUrl("URL is not a profile URL")
    return segments[0].lstrip("@")
