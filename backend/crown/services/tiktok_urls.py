from __future__ import annotations
from html import escape
from urllib.parse import urlparse

EMBED_SCRIPT = "https://www.tiktok.com/embed.js"
DEFAULT_USERNAME = "username"


def canonical_video_url(video_id: str, username: str | None = None, share_url: str | None = None) -> str:
    if share_url:
        return share_url
    return f"https://www.tiktok.com/@{username or DEFAULT_USERNAME}/video/{video_id}"


def embed_snippet(url: str, video_id: str) -> str:
    return (
        f'<blockquote class="tiktok-embed" cite="{escape(url, quote=True)}" data-video-id="{escape(video_id, quote=True)}">'
        f'<section></section></blockquote><script async src="{EMBED_SCRIPT}"></script>'
    )


def extract_video_id(url: str) -> str | None:
    """Video id from ``/@user/video/<id>`` or ``vm.tiktok.com/<id>`` URLs."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    host = (parsed.hostname or "").lower()
    if "tiktok.com" not in host:
        return None
    parts = parsed.path.split("/")
    if "video" in parts:
        i = parts.index("video")
        if i + 1 < len(parts) and parts[i + 1]:
            return parts[i + 1]
    if host == "vm.tiktok.com":
        vid = parsed.path.replace("/", "")
        return vid or None
    return None
