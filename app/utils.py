"""Utility helpers for the Vitrine service."""

from __future__ import annotations

import re
import unicodedata


PUNCTUATION_RE = re.compile(r"[^\w\s]+", re.UNICODE)
WHITESPACE_RE = re.compile(r"\s+")


def slugify(value: str) -> str:
    """Return a URL-friendly slug."""

    value = unicodedata.normalize("NFKD", value)
    value = value.encode("ascii", "ignore").decode("ascii")
    value = re.sub(r"[^a-zA-Z0-9]+", "-", value)
    value = value.strip("-")
    value = re.sub(r"-+", "-", value)
    return value.lower() or "series"


def build_record_id(title: str, url: str) -> str:
    """Return the identity shared by every record with this title and URL."""

    return f"{title}::{url}"


def collapse_whitespace(value: str) -> str:
    return WHITESPACE_RE.sub(" ", value).strip()


def normalize_key(value: str) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""

    value = value.replace("_", " ").lower()
    value = PUNCTUATION_RE.sub(" ", value)
    return collapse_whitespace(value)
