"""
Utility functions for the uugle indexing and search engine.
"""
from urllib.parse import urlsplit, urlunsplit, parse_qsl, urlencode
import base64
import logging
import re

from uugle.common.config import LOG_FILE


def configure_logging(level=logging.INFO, log_file=LOG_FILE):
    """Configure root logging the same way for every entry point."""
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] [%(name)s] %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ]
    )


def parse_url(url):
    """Split an absolute URL, raising ValueError when it has no scheme or host."""
    if not isinstance(url, str):
        raise ValueError(f"URL must be a string, got {type(url).__name__}")
    parsed = urlsplit(url)
    if not parsed.scheme or not parsed.netloc:
        raise ValueError(f"Not an absolute URL: {url}")
    return parsed


def get_query_param(url, name):
    """Return the first value of a query parameter, or None."""
    parsed = parse_url(url)
    for key, value in parse_qsl(parsed.query, keep_blank_values=True):
        if key == name:
            return value
    return None


def has_query_param(url, name):
    """Check whether a query parameter is present at all."""
    parsed = parse_url(url)
    return any(key == name for key, _ in parse_qsl(parsed.query, keep_blank_values=True))


def set_query_param(url, name, value):
    """Set a query parameter, replacing the first occurrence and dropping the others."""
    parsed = parse_url(url)
    params = []
    replaced = False
    for key, current in parse_qsl(parsed.query, keep_blank_values=True):
        if key == name:
            if not replaced:
                params.append((key, str(value)))
                replaced = True
            continue
        params.append((key, current))
    if not replaced:
        params.append((name, str(value)))
    return urlunsplit(parsed._replace(query=urlencode(params)))


def remove_query_param(url, name):
    """Remove every occurrence of a query parameter."""
    parsed = parse_url(url)
    params = [(key, value) for key, value in parse_qsl(parsed.query, keep_blank_values=True) if key != name]
    return urlunsplit(parsed._replace(query=urlencode(params)))


def url_origin_and_path(url):
    """Return scheme://host/path without query string or fragment."""
    parsed = parse_url(url)
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path}"


def alphanumeric_digest(text, length):
    """Base64-encode text and keep the first `length` alphanumeric characters."""
    encoded = base64.b64encode(text.encode('utf-8')).decode('ascii')
    return re.sub(r'[^a-zA-Z0-9]', '', encoded)[:length]


def chunked(items, size):
    """Yield successive slices of at most `size` items."""
    for start in range(0, len(items), size):
        yield items[start:start + size]
