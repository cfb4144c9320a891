"""Utilities to map visited URLs onto productivity categories."""

from __future__ import annotations

from typing import Mapping, Optional, Sequence
from urllib.parse import urlsplit

OTHER = "other"

DEFAULT_CATEGORY_MAP: dict[str, list[str]] = {
    "social": [
        "youtube.com",
        "instagram.com",
        "twitter.com",
        "tiktok.com",
        "facebook.com",
        "reddit.com",
    ],
    "games": ["roblox.com", "steampowered.com", "epicgames.com", "miniclip.com"],
    "school": [
        "classroom.google.com",
        "canvas.instructure.com",
        "google.com/drive",
        "docs.google.com",
    ],
    "productive": [
        "notion.so",
        "github.com",
        "stackoverflow.com",
        "drive.google.com",
        "docs.google.com",
    ],
}


def domain_for_url(url: Optional[str]) -> Optional[str]:
    """Return the hostname of ``url`` or ``None`` when it has none."""
    if not url:
        return None
    try:
        hostname = urlsplit(url).hostname
    except ValueError:
        return None
    return hostname or None


def classify(url: Optional[str], category_map: Mapping[str, Sequence[str]]) -> str:
    """Return the first category whose pattern occurs in ``url``.

    Patterns are plain substrings checked against ``hostname + path`` and
    against the raw URL. Categories and patterns are scanned in mapping order,
    so overlapping patterns resolve to the earliest category. Anything that
    cannot be parsed as an absolute URL falls back to ``"other"``; a URL
    without a hostname is still matched on its path and raw text.
    """
    if not url:
        return OTHER
    try:
        parts = urlsplit(url)
        host_path = (parts.hostname or "") + (parts.path or "")
    except ValueError:
        return OTHER
    if not parts.scheme:
        return OTHER

    for category, patterns in category_map.items():
        for pattern in patterns:
            if not pattern:
                continue
            if pattern in host_path or pattern in url:
                return category
    return OTHER


def normalize_category_map(raw: object) -> dict[str, list[str]]:
    """Clean a user-supplied category map, keeping its order."""
    if not isinstance(raw, Mapping):
        return {}
    cleaned: dict[str, list[str]] = {}
    for name, patterns in raw.items():
        label = str(name).strip()
        if not label or isinstance(patterns, str):
            continue
        try:
            items = [str(p).strip() for p in patterns]
        except TypeError:
            continue
        items = [p for p in items if p]
        if items:
            cleaned[label] = items
    return cleaned
