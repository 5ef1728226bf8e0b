"""
Text extraction from schema-less content trees.
Content trees are plain JSON values: dicts, lists, strings and scalars.
"""
import json
import logging
import re

from uugle.common.config import TABLE_WIDGET_TAG, UU5_JSON_MARKER

logger = logging.getLogger("uugle.indexer")

TEXT_PROPERTIES = ('name', 'title', 'label', 'header', 'text')
LIST_CONTAINERS = ('content', 'sectionList')
NODE_CONTAINERS = ('mainPanel', 'sidePanel', 'topSection', 'bottomSection')
TABLE_PAYLOAD_PROPS = ('data', 'columns')

_WHITESPACE = re.compile(r'\s+')


def normalize_whitespace(text):
    return _WHITESPACE.sub(' ', text).strip()


def extract_text(node):
    """Harvest the human-readable text of a content node and its descendants."""
    try:
        return normalize_whitespace(' '.join(_node_parts(node)))
    except Exception as e:
        logger.warning(f"Error extracting text from content node: {e}")
        return ''


def _node_parts(node):
    if not isinstance(node, dict):
        return []

    parts = [node[prop] for prop in TEXT_PROPERTIES if isinstance(node.get(prop), str)]

    header = node.get('header')
    if isinstance(header, dict):
        parts.append(extract_text(header))

    parts.extend(_table_widget_parts(node))

    for prop in LIST_CONTAINERS:
        children = node.get(prop)
        if isinstance(children, list):
            parts.extend(extract_text(child) for child in children)

    for prop in NODE_CONTAINERS:
        if node.get(prop):
            parts.append(extract_text(node[prop]))

    return parts


def _table_widget_parts(node):
    props = node.get('props')
    if node.get('uu5Tag') != TABLE_WIDGET_TAG or not isinstance(props, dict):
        return []
    return [extract_text_from_uu5_json(props.get(prop)) for prop in TABLE_PAYLOAD_PROPS if props.get(prop)]


def extract_text_from_uu5_json(value):
    """Decode a marker-prefixed JSON string and collect every string leaf in it."""
    if not isinstance(value, str) or not value.startswith(UU5_JSON_MARKER):
        return ''
    try:
        data = json.loads(value[len(UU5_JSON_MARKER):])
    except ValueError as e:
        logger.warning(f"Error parsing uu5json string: {e}")
        return ''
    return normalize_whitespace(' '.join(collect_strings(data)))


def collect_strings(value):
    """Return every string leaf of a JSON value, depth first, in document order."""
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [text for item in value for text in collect_strings(item)]
    if isinstance(value, dict):
        return [text for item in value.values() for text in collect_strings(item)]
    return []
