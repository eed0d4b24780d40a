"""Text normalization shared by fingerprinting, dedup and merge passes."""
import re
from typing import Optional
from urllib.parse import urlsplit

_APOSTROPHES = re.compile(r"['‘’`]")
_NON_WORD = re.compile(r'[^\w\s]')
_WHITESPACE = re.compile(r'\s+')
_NON_WORD_CHARS = re.compile(r'\W')


def normalize_name(text) -> str:
    """
    Canonicalize a free-text event name into a comparable key.

    Lowercases, drops apostrophes and backticks, turns every other
    punctuation character into a space and collapses whitespace.

    Args:
        text: Event name (any type; non-strings yield an empty key)

    Returns:
        Normalized name, or empty string
    """
    if not isinstance(text, str) or not text:
        return ''

    text = text.lower()
    text = _APOSTROPHES.sub('', text)
    text = _NON_WORD.sub(' ', text)
    text = _WHITESPACE.sub(' ', text)
    return text.strip()


def normalize_location(text) -> str:
    """Lowercase a city or venue and drop everything but word characters."""
    if not isinstance(text, str) or not text:
        return ''
    return _NON_WORD_CHARS.sub('', text.strip().lower())


def normalize_url(url) -> Optional[str]:
    """
    Reduce a URL to host + path for comparison.

    The leading "www." and the trailing slash are dropped, the query
    string is ignored. Strings that do not parse as absolute URLs fall
    back to the raw text, lowercased, without query or trailing slash.

    Args:
        url: URL string

    Returns:
        Normalized URL or None for empty input
    """
    if not isinstance(url, str) or not url.strip():
        return None

    url = url.strip()
    try:
        parts = urlsplit(url)
        hostname = parts.hostname
    except ValueError:
        hostname = None
        parts = None

    if not hostname or not parts.scheme:
        return url.lower().split('?')[0].rstrip('/')

    if hostname.startswith('www.'):
        hostname = hostname[4:]
    path = parts.path.rstrip('/')
    return f"{hostname}{path}".lower()
