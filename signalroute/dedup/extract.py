"""Pull dedup-relevant content out of raw platform payloads."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

HASHTAG_RE = re.compile(r"#[\w\u0590-\u05ff]+")
IMG_SRC_RE = re.compile(r"<img[^>]+src=[\"']([^\"']+)[\"']", re.IGNORECASE)
_TRACKING_PARAMS = ("utm_", "fbclid", "gclid", "ref")


@dataclass(frozen=True)
class ExtractedContent:
    text: str
    media_urls: list[str]
    hashtags: list[str]
    author_id: str | None
    canonical_url: str | None


def _s(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _text_tiktok(data: dict) -> str:
    return _s(data.get("title")) or _s(data.get("text"))


def _text_meta(data: dict) -> str:
    return _s(data.get("message")) or _s(data.get("caption")) or _s(data.get("story"))


def _text_youtube(data: dict) -> str:
    snippet = data.get("snippet")
    if not isinstance(snippet, dict):
        return ""
    return f"{_s(snippet.get('title'))} {_s(snippet.get('description'))}".strip()


def _text_reddit(data: dict) -> str:
    return f"{_s(data.get('title'))} {_s(data.get('selftext'))}".strip()


def _text_rss(data: dict) -> str:
    body = _s(data.get("content")) or _s(data.get("description"))
    return f"{_s(data.get('title'))} {body}".strip()


_TEXT_EXTRACTORS = {
    "tiktok": _text_tiktok,
    "instagram": _text_meta,
    "facebook": _text_meta,
    "youtube": _text_youtube,
    "reddit": _text_reddit,
    "rss": _text_rss,
}


def extract_text(data: dict, platform: str) -> str:
    extractor = _TEXT_EXTRACTORS.get(platform)
    text = extractor(data) if extractor else ""
    return text or _s(data.get("text"))


def extract_media_urls(data: dict, platform: str) -> list[str]:
    urls: list[str] = []
    if platform == "tiktok":
        urls.append(_s(data.get("cover_image_url")))
    elif platform in ("instagram", "facebook"):
        for key in ("media_url", "thumbnail_url", "picture", "full_picture"):
            urls.append(_s(data.get(key)))
    elif platform == "youtube":
        snippet = data.get("snippet")
        thumbs = snippet.get("thumbnails") if isinstance(snippet, dict) else None
        if isinstance(thumbs, dict):
            urls.extend(_s(t.get("url")) for t in thumbs.values() if isinstance(t, dict))
    elif platform == "reddit":
        urls.append(_s(data.get("url")))
        thumb = _s(data.get("thumbnail"))
        if thumb not in ("self", "default"):
            urls.append(thumb)
    elif platform == "rss":
        body = _s(data.get("content")) or _s(data.get("description"))
        urls.extend(IMG_SRC_RE.findall(body))

    urls = [u for u in urls if u]
    if not urls:
        listed = data.get("media_urls")
        if isinstance(listed, list):
            urls = [u for u in listed if isinstance(u, str) and u]
    return urls


def extract_hashtags(text: str, data: dict) -> list[str]:
    listed = data.get("hashtags")
    if isinstance(listed, list) and listed:
        tags = [t if t.startswith("#") else f"#{t}" for t in listed if isinstance(t, str)]
    else:
        tags = HASHTAG_RE.findall(text)
    return sorted({t.lower() for t in tags})


def extract_author_id(data: dict, platform: str) -> str | None:
    author: Any = None
    if platform == "tiktok":
        author = data.get("author_id") or data.get("user_id")
    elif platform in ("instagram", "facebook"):
        sender = data.get("from")
        author = (sender.get("id") if isinstance(sender, dict) else None) or data.get("user_id")
    elif platform == "youtube":
        snippet = data.get("snippet")
        author = snippet.get("channelId") if isinstance(snippet, dict) else None
    elif platform in ("reddit", "rss"):
        author = data.get("author")
    author = author or data.get("author_id")
    return str(author) if author else None


def canonicalize_url(url: str) -> str:
    """Lower-case scheme/host, drop fragment, tracking params and trailing slash."""
    parts = urlsplit(url.strip())
    query = [
        (k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if not k.lower().startswith(_TRACKING_PARAMS)
    ]
    path = parts.path.rstrip("/") or "/"
    return urlunsplit((
        parts.scheme.lower(), parts.netloc.lower(), path, urlencode(sorted(query)), "",
    ))


def extract_canonical_url(data: dict, platform: str) -> str | None:
    if platform == "reddit":
        if data.get("is_self"):
            return None
        url = _s(data.get("url_overridden_by_dest")) or _s(data.get("url"))
    elif platform == "rss":
        url = _s(data.get("link")) or _s(data.get("url")) or _s(data.get("guid"))
    else:
        url = _s(data.get("url"))
    if not url.startswith(("http://", "https://")):
        return None
    return canonicalize_url(url)


def extract_content(platform: str, data: dict) -> ExtractedContent:
    text = extract_text(data, platform)
    return ExtractedContent(
        text=text,
        media_urls=extract_media_urls(data, platform),
        hashtags=extract_hashtags(text, data),
        author_id=extract_author_id(data, platform),
        canonical_url=extract_canonical_url(data, platform),
    )
