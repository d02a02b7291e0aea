"""
Clip URL → canonical content identifier.

Each supported platform has an ordered list of recognized URL shapes.
extract_identifier() walks CLIP_URL_PATTERNS in order and returns on the
FIRST pattern (for the declared platform) that matches. Multiple matches are
never aggregated.

Pattern priority (per platform):
  tiktok:    /@<user>/video/<digits> → /video/<digits> → /v/<digits> → vm.tiktok.com/<code>
  instagram: /p/<code> → /reel/<code>
  youtube:   watch?v=<id> → youtu.be/<id> → /shorts/<id> → /embed/<id> → /v/<id>
  twitter:   twitter.com/<user>/status/<digits> → x.com/<user>/status/<digits>

Every function here is total: empty strings, garbage, None, or a URL for a
different platform than declared all produce matched=False. Nothing raises.
"""

import logging
import re
from typing import Optional

from models.schemas import ExtractionResult, SUPPORTED_PLATFORMS

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Host prefix: optional scheme, then any number of subdomain labels.
# Anchored at the start so "nottiktok.com" or "netflix.com" never pass as
# tiktok.com / x.com.
# ---------------------------------------------------------------------------
_HOST = r"^(?:https?://)?(?:[\w-]+\.)*"
_YT_ID = r"([A-Za-z0-9_-]{11})(?![A-Za-z0-9_-])"


def _compile(pattern: str) -> re.Pattern:
    return re.compile(_HOST + pattern, re.IGNORECASE)


# ---------------------------------------------------------------------------
# Ordered (platform, pattern) pairs. Evaluation order IS the priority order.
# Group 1 of every pattern is the identifier.
# ---------------------------------------------------------------------------
CLIP_URL_PATTERNS: list[tuple[str, re.Pattern]] = [
    ("tiktok", _compile(r"tiktok\.com/@[^/]+/video/(\d+)")),
    ("tiktok", _compile(r"tiktok\.com/video/(\d+)")),
    ("tiktok", _compile(r"tiktok\.com/v/(\d+)")),
    ("tiktok", re.compile(r"^(?:https?://)?vm\.tiktok\.com/([A-Za-z0-9]+)", re.IGNORECASE)),

    ("instagram", _compile(r"instagram\.com/p/([^/?#]+)")),
    ("instagram", _compile(r"instagram\.com/reel/([^/?#]+)")),

    ("youtube", _compile(r"youtube\.com/watch\?(?:[^#]*&)?v=" + _YT_ID)),
    ("youtube", _compile(r"youtu\.be/" + _YT_ID)),
    ("youtube", _compile(r"youtube\.com/shorts/" + _YT_ID)),
    ("youtube", _compile(r"youtube\.com/embed/" + _YT_ID)),
    ("youtube", _compile(r"youtube\.com/v/" + _YT_ID)),

    ("twitter", _compile(r"twitter\.com/[^/]+/status/(\d+)")),
    ("twitter", _compile(r"x\.com/[^/]+/status/(\d+)")),
]

# Host fragments used only for platform detection (not for extraction)
_PLATFORM_HOSTS: list[tuple[str, re.Pattern]] = [
    ("tiktok", _compile(r"tiktok\.com(?:[/?#]|$)")),
    ("instagram", _compile(r"(?:instagram\.com|instagr\.am)(?:[/?#]|$)")),
    ("youtube", _compile(r"(?:youtube\.com|youtu\.be)(?:[/?#]|$)")),
    ("twitter", _compile(r"(?:twitter\.com|x\.com)(?:[/?#]|$)")),
]

_NO_MATCH = ExtractionResult(matched=False)


# ===========================================================================
# Public API
# ===========================================================================

def extract_identifier(url: Optional[str], platform: str) -> ExtractionResult:
    """
    Derive the canonical clip identifier for a URL on the declared platform.

    Args:
        url:      Clip URL as typed by the user (scheme optional)
        platform: One of SUPPORTED_PLATFORMS

    Returns:
        ExtractionResult(matched=True, identifier=...) for the first matching
        pattern, otherwise ExtractionResult(matched=False).
    """
    if not isinstance(url, str) or not isinstance(platform, str):
        return _NO_MATCH

    candidate = url.strip()
    if not candidate or platform not in SUPPORTED_PLATFORMS:
        return _NO_MATCH

    for pattern_platform, pattern in CLIP_URL_PATTERNS:
        if pattern_platform != platform:
            continue
        match = pattern.search(candidate)
        if match:
            return ExtractionResult(matched=True, identifier=match.group(1))

    logger.debug(f"No {platform} pattern matched: {candidate!r}")
    return _NO_MATCH


def is_valid_clip_url(url: Optional[str], platform: str) -> bool:
    return extract_identifier(url, platform).matched


def detect_platform(url: Optional[str]) -> Optional[str]:
    """
    Infer the platform from the URL host.

    Returns None when the host is not one of the supported platforms.
    Detection says nothing about whether the path is a clip; use
    extract_identifier() for that.
    """
    if not isinstance(url, str):
        return None
    candidate = url.strip()
    for platform, pattern in _PLATFORM_HOSTS:
        if pattern.search(candidate):
            return platform
    return None
