"""
Best-effort clip metadata fetchers (views / likes / comments / hashtags).

None of the platforms offer a stable public API for this, so each fetcher
walks an ordered list of methods and returns the first one that works:

  tiktok:    1. www.tiktok.com/api/item/detail     (undocumented JSON)
             2. clip page HTML                       (title + hashtags only)
  instagram: 1. www.instagram.com/api/v1/media/<id>/info  (undocumented JSON)
             2. clip page HTML                       (title + og:image + hashtags)
  twitter:   1. cdn.syndication.twimg.com            (undocumented JSON)
             2. clip page HTML                       (title + @author + hashtags)
  youtube:   1. YouTube Data API v3 (needs YOUTUBE_API_KEY)
             2. oEmbed                               (title + author only)

If every method fails, a zeroed PlatformMetadata (source="fallback") is
returned. Upstream failures are logged, never raised: view counts scraped here
are advisory and the settlement core never depends on them.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Callable, Optional

import httpx

import config
from models.schemas import PlatformMetadata
from services.url_extractor import detect_platform, extract_identifier

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
MAX_HTML_HASHTAGS = 10
INSTAGRAM_WEB_APP_ID = "936619743392459"

HASHTAG_RE = re.compile(r"#\w+")
TITLE_RE = re.compile(r"<title[^>]*>([^<]+)</title>", re.IGNORECASE)
OG_IMAGE_RE = re.compile(r'<meta[^>]*property="og:image"[^>]*content="([^"]+)"', re.IGNORECASE)
AUTHOR_RE = re.compile(r"@([A-Za-z0-9_]+)")

# Page-title suffixes stripped from scraped <title> text
TITLE_SUFFIXES = {
    "tiktok": [" | TikTok"],
    "instagram": [" on Instagram"],
    "twitter": [" / X", " on X"],
    "youtube": [" - YouTube"],
}

DEFAULT_TITLES = {
    "tiktok": "TikTok Video",
    "instagram": "Instagram Post",
    "twitter": "Twitter Post",
    "youtube": "YouTube Video",
}


# ===========================================================================
# Public API
# ===========================================================================

def fetch_platform_metadata(
    url: str,
    client: Optional[httpx.Client] = None,
) -> Optional[PlatformMetadata]:
    """
    Fetch metadata for a clip URL, detecting the platform from the host.

    Args:
        url:    Public clip URL
        client: Optional httpx.Client to reuse (a short-lived one is created
                otherwise)

    Returns:
        PlatformMetadata, or None if the URL is not a recognizable clip URL.
    """
    platform = detect_platform(url)
    if platform is None:
        logger.info(f"Unsupported platform for URL: {url!r}")
        return None

    extraction = extract_identifier(url, platform)
    if not extraction.matched:
        logger.info(f"URL is not a {platform} clip: {url!r}")
        return None

    if client is not None:
        return _fetch_with_client(client, platform, extraction.identifier, url)

    with httpx.Client(
        timeout=config.SCRAPE_TIMEOUT,
        follow_redirects=True,
        headers={"User-Agent": config.SCRAPE_USER_AGENT},
    ) as owned_client:
        return _fetch_with_client(owned_client, platform, extraction.identifier, url)


def extract_hashtags(text: Optional[str]) -> list[str]:
    """All #hashtags in text, in order of appearance (duplicates kept)."""
    if not text:
        return []
    return HASHTAG_RE.findall(text)


# ===========================================================================
# Method dispatch
# ===========================================================================

def _fetch_with_client(
    client: httpx.Client,
    platform: str,
    identifier: str,
    url: str,
) -> PlatformMetadata:
    methods: list[tuple[str, Callable[[], Optional[PlatformMetadata]]]]

    if platform == "tiktok":
        methods = [
            ("tiktok api", lambda: _fetch_tiktok_api(client, identifier)),
            ("tiktok html", lambda: _fetch_html(client, "tiktok", url)),
        ]
    elif platform == "instagram":
        methods = [
            ("instagram api", lambda: _fetch_instagram_api(client, identifier)),
            ("instagram html", lambda: _fetch_html(client, "instagram", url)),
        ]
    elif platform == "twitter":
        methods = [
            ("twitter syndication", lambda: _fetch_twitter_syndication(client, identifier)),
            ("twitter html", lambda: _fetch_html(client, "twitter", url)),
        ]
    else:
        methods = [
            ("youtube data api", lambda: _fetch_youtube_api(client, identifier)),
            ("youtube oembed", lambda: _fetch_youtube_oembed(client, identifier)),
        ]

    for name, method in methods:
        try:
            metadata = method()
        except (httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError, IndexError) as e:
            logger.warning(f"{name} failed for {identifier}: {e}. Trying next method...")
            continue
        if metadata is not None:
            logger.debug(f"{name} succeeded for {identifier}: {metadata.view_count:,} views")
            return metadata
        logger.debug(f"{name} returned nothing for {identifier}")

    logger.warning(f"All metadata methods failed for {platform} {identifier}, using fallback")
    return PlatformMetadata(platform=platform, title=DEFAULT_TITLES[platform])


# ===========================================================================
# Method 1: platform JSON endpoints
# ===========================================================================

def _fetch_tiktok_api(client: httpx.Client, video_id: str) -> Optional[PlatformMetadata]:
    response = client.get(
        "https://www.tiktok.com/api/item/detail/",
        params={"itemId": video_id},
        headers={
            "Accept": "application/json",
            "Accept-Language": "en-US,en;q=0.9",
            "Referer": "https://www.tiktok.com/",
        },
    )
    if response.status_code != 200:
        return None
    return _parse_tiktok_item(response.json())


def _parse_tiktok_item(data) -> Optional[PlatformMetadata]:
    item = _as_dict(_as_dict(data).get("itemInfo")).get("itemStruct")
    if not item or not isinstance(item, dict):
        return None

    stats = _as_dict(item.get("stats"))
    video = _as_dict(item.get("video"))
    return PlatformMetadata(
        platform="tiktok",
        view_count=_safe_int(stats.get("playCount")),
        like_count=_safe_int(stats.get("diggCount")),
        comment_count=_safe_int(stats.get("commentCount")),
        hashtags=[
            f"#{c['title']}" for c in _as_list(item.get("challenges"))
            if isinstance(c, dict) and c.get("title")
        ],
        thumbnail=video.get("cover") or video.get("dynamicCover"),
        title=item.get("desc") or DEFAULT_TITLES["tiktok"],
        author=_as_dict(item.get("author")).get("uniqueId"),
        published_at=_from_timestamp(item.get("createTime")),
        source="api",
    )


def _fetch_instagram_api(client: httpx.Client, post_id: str) -> Optional[PlatformMetadata]:
    response = client.get(
        f"https://www.instagram.com/api/v1/media/{post_id}/info/",
        headers={
            "Accept": "application/json",
            "Accept-Language": "en-US,en;q=0.9",
            "Referer": "https://www.instagram.com/",
            "X-IG-App-ID": INSTAGRAM_WEB_APP_ID,
        },
    )
    if response.status_code != 200:
        return None
    return _parse_instagram_item(response.json())


def _parse_instagram_item(data) -> Optional[PlatformMetadata]:
    items = _as_list(_as_dict(data).get("items"))
    if not items or not isinstance(items[0], dict):
        return None

    item = items[0]
    caption = item.get("caption")
    if isinstance(caption, dict):
        caption = caption.get("text")
    caption = caption if isinstance(caption, str) else ""
    candidates = _as_list(_as_dict(item.get("image_versions2")).get("candidates"))
    return PlatformMetadata(
        platform="instagram",
        view_count=_safe_int(item.get("video_view_count") or item.get("play_count")),
        like_count=_safe_int(item.get("like_count")),
        comment_count=_safe_int(item.get("comment_count")),
        hashtags=extract_hashtags(caption),
        thumbnail=_as_dict(candidates[0]).get("url") if candidates else None,
        title=caption or DEFAULT_TITLES["instagram"],
        author=_as_dict(item.get("user")).get("username"),
        published_at=_from_timestamp(item.get("taken_at")),
        source="api",
    )


def _fetch_twitter_syndication(client: httpx.Client, tweet_id: str) -> Optional[PlatformMetadata]:
    response = client.get(
        "https://cdn.syndication.twimg.com/tweet-result",
        params={"id": tweet_id, "token": "0"},
        headers={"Accept": "application/json", "Referer": "https://twitter.com/"},
    )
    if response.status_code != 200:
        return None
    return _parse_tweet(response.json())


def _parse_tweet(data) -> Optional[PlatformMetadata]:
    # The endpoint has answered both with a bare object and with a list
    if isinstance(data, list):
        data = data[0] if data else None
    if not data or not isinstance(data, dict):
        return None

    text = data.get("text") or ""
    return PlatformMetadata(
        platform="twitter",
        view_count=_safe_int(data.get("impression_count") or data.get("view_count")),
        like_count=_safe_int(data.get("favorite_count") or data.get("like_count")),
        comment_count=_safe_int(data.get("conversation_count") or data.get("reply_count")),
        hashtags=extract_hashtags(text),
        title=text or DEFAULT_TITLES["twitter"],
        author=_as_dict(data.get("user")).get("screen_name"),
        published_at=_parse_datetime(data.get("created_at")),
        source="api",
    )


def _fetch_youtube_api(client: httpx.Client, video_id: str) -> Optional[PlatformMetadata]:
    if not config.YOUTUBE_API_KEY:
        logger.debug("YOUTUBE_API_KEY not configured, skipping Data API")
        return None

    response = client.get(
        "https://www.googleapis.com/youtube/v3/videos",
        params={"id": video_id, "part": "snippet,statistics", "key": config.YOUTUBE_API_KEY},
    )
    if response.status_code != 200:
        return None

    items = _as_list(_as_dict(response.json()).get("items"))
    if not items or not isinstance(items[0], dict):
        return None

    snippet = _as_dict(items[0].get("snippet"))
    stats = _as_dict(items[0].get("statistics"))
    thumbs = _as_dict(snippet.get("thumbnails"))
    thumbnail = next(
        (_as_dict(thumbs[q]).get("url") for q in ("maxres", "high", "medium") if q in thumbs),
        None,
    )
    return PlatformMetadata(
        platform="youtube",
        view_count=_safe_int(stats.get("viewCount")),
        like_count=_safe_int(stats.get("likeCount")),
        comment_count=_safe_int(stats.get("commentCount")),
        hashtags=extract_hashtags(f"{snippet.get('title', '')} {snippet.get('description', '')}"),
        thumbnail=thumbnail,
        title=snippet.get("title"),
        author=snippet.get("channelTitle"),
        published_at=_parse_datetime(snippet.get("publishedAt")),
        source="api",
    )


def _fetch_youtube_oembed(client: httpx.Client, video_id: str) -> Optional[PlatformMetadata]:
    response = client.get(
        "https://www.youtube.com/oembed",
        params={"url": f"https://www.youtube.com/watch?v={video_id}", "format": "json"},
    )
    if response.status_code != 200:
        return None

    data = response.json()
    if not isinstance(data, dict):
        return None
    return PlatformMetadata(
        platform="youtube",
        hashtags=extract_hashtags(data.get("title")),
        thumbnail=f"https://img.youtube.com/vi/{video_id}/hqdefault.jpg",
        title=data.get("title"),
        author=data.get("author_name"),
        source="html",
    )


# ===========================================================================
# Method 2: scrape the public page
# ===========================================================================

def _fetch_html(client: httpx.Client, platform: str, url: str) -> Optional[PlatformMetadata]:
    response = client.get(url)
    if response.status_code != 200:
        return None
    return _parse_html(platform, response.text)


def _parse_html(platform: str, html: str) -> PlatformMetadata:
    """
    Pull what little a public page exposes without JavaScript.

    View counts are not in the static HTML for any platform, so they stay 0.
    """
    title_match = TITLE_RE.search(html)
    title = title_match.group(1).strip() if title_match else DEFAULT_TITLES[platform]
    for suffix in TITLE_SUFFIXES.get(platform, []):
        title = title.replace(suffix, "")

    # Unique, first-seen order
    hashtags = list(dict.fromkeys(HASHTAG_RE.findall(html)))[:MAX_HTML_HASHTAGS]

    thumbnail = None
    if platform == "instagram":
        image_match = OG_IMAGE_RE.search(html)
        thumbnail = image_match.group(1) if image_match else None

    author = None
    if platform == "twitter":
        author_match = AUTHOR_RE.search(html)
        author = author_match.group(1) if author_match else None

    return PlatformMetadata(
        platform=platform,
        hashtags=hashtags,
        thumbnail=thumbnail,
        title=title,
        author=author,
        source="html",
    )


# ===========================================================================
# Type parsing helpers
# ===========================================================================

def _safe_int(value, default: int = 0) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (ValueError, TypeError):
        return default


def _from_timestamp(value) -> Optional[datetime]:
    """Unix seconds (int or numeric string) → aware UTC datetime."""
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (ValueError, TypeError, OverflowError, OSError):
        return None


def _parse_datetime(value) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except (ValueError, TypeError):
        logger.debug(f"Could not parse datetime: {repr(value)}")
        return None


def _as_dict(value) -> dict:
    """The value if it is a JSON object, else an empty one."""
    return value if isinstance(value, dict) else {}


def _as_list(value) -> list:
    return value if isinstance(value, list) else []
