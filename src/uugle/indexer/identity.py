"""
Document key resolution.
Derives a stable per-document identity from the URL a payload was harvested from.
"""
import logging
import re

from uugle.common.config import (
    PAGE_POINTER_PARAM, DOCUMENT_ID_PARAM,
    FALLBACK_KEY_PREFIX, FALLBACK_KEY_LENGTH,
    ERROR_KEY_PREFIX, ERROR_KEY_LENGTH
)
from uugle.common.errors import UrlResolutionError
from uugle.common.models import DocumentKind
from uugle.common.utils import parse_url, get_query_param, remove_query_param, alphanumeric_digest

logger = logging.getLogger("uugle.indexer")

BOOK_URL_PATTERN = re.compile(
    r'https://[a-zA-Z0-9]+\.plus4u\.net/(uu-dockitg01-main|uu-bookkit-maing01|uu-bookkitg01-main)/([a-z0-9]+-)?([a-z0-9]+)'
)

DOCUMENT_OID_PATTERN = re.compile(r'[a-f0-9]+')

# Tried in order; the last capture group is the workspace segment
MNGKIT_PATH_PATTERNS = [
    re.compile(r'https://[a-zA-Z0-9.-]+\.plus4u\.net/uu-managementkit-maing[0-9]+/([a-z0-9]+-)?([a-z0-9]+)'),
    re.compile(r'https://[a-zA-Z0-9.-]+/uu-managementkit-maing[0-9]+/([a-z0-9]+-)?([a-z0-9]+)'),
    re.compile(r'uu-managementkit-maing[0-9]+/([a-z0-9]+-)?([a-z0-9]+)'),
]


def get_book_key(page_url):
    """Extract the workspace key from a structured (book) page URL."""
    match = BOOK_URL_PATTERN.search(page_url) if isinstance(page_url, str) else None
    if not match:
        raise UrlResolutionError(page_url)
    return match.group(3)


def get_document_key(page_url):
    """
    Extract the key of a loosely-structured document.

    Falls back from the document oid, to the workspace in the path, to a digest
    of the URL without its page pointer. Never raises.
    """
    try:
        parse_url(page_url)

        # Document oid is the most specific identity available
        oid = get_query_param(page_url, DOCUMENT_ID_PARAM)
        if oid and DOCUMENT_OID_PATTERN.fullmatch(oid):
            return oid

        for pattern in MNGKIT_PATH_PATTERNS:
            match = pattern.search(page_url)
            if match:
                return match.group(match.lastindex)

        return _url_based_fallback_key(page_url)
    except ValueError as e:
        logger.error(f"Error parsing managementkit URL {page_url!r}: {e}")
        return ERROR_KEY_PREFIX + alphanumeric_digest(str(page_url), ERROR_KEY_LENGTH)


def _url_based_fallback_key(page_url):
    """Digest path and query, minus the page pointer, into a key."""
    parsed = parse_url(remove_query_param(page_url, PAGE_POINTER_PARAM))
    to_hash = parsed.path + (f"?{parsed.query}" if parsed.query else '')
    return FALLBACK_KEY_PREFIX + alphanumeric_digest(to_hash, FALLBACK_KEY_LENGTH)


def resolve_key(page_url, kind):
    """Resolve the document key for a payload of the given kind."""
    if DocumentKind(kind) is DocumentKind.LOOSE:
        return get_document_key(page_url)
    return get_book_key(page_url)
