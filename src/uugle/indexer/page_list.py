"""
Page list assembly.
Turns one harvested payload into the ordered list of page records it describes.
"""
import logging

from uugle.common.config import (
    PAGE_POINTER_PARAM, DOCUMENT_ID_PARAM, DEFAULT_PAGE_POINTER,
    UNNAMED_DOCUMENT, UNNAMED_ITEM, DEFAULT_PAGE_STATE
)
from uugle.common.errors import PayloadFormatError
from uugle.common.models import Breadcrumb, Page
from uugle.common.utils import get_query_param, has_query_param, set_query_param
from uugle.indexer.text_extractor import extract_text

logger = logging.getLogger("uugle.indexer")

# Probed in order when a document has no page list
COLLECTION_PATHS = [
    ('items',),
    ('documents',),
    ('children',),
    ('list',),
    ('data', 'items'),
    ('data', 'documents'),
    ('data', 'list'),
]


def _localized(value, language):
    """Pick the primary-language variant of a localized label."""
    if isinstance(value, dict):
        return value.get(language)
    if isinstance(value, str):
        return value
    return None


def _require_dict(payload, key):
    value = payload.get(key) if isinstance(payload, dict) else None
    if not isinstance(value, dict):
        raise PayloadFormatError(f"payload is missing the '{key}' object")
    return value


# Structured (book) sources

def get_book_name(payload):
    load_book = _require_dict(payload, 'loadBook')
    return _localized(load_book.get('name'), load_book.get('primaryLanguage')) or ''


def get_page_list(payload, book_id, document_key):
    """Build pages from a book's menu, then from the item map entries the menu did not cover."""
    load_book = _require_dict(payload, 'loadBook')
    structure = _require_dict(payload, 'getBookStructure')

    language = load_book.get('primaryLanguage')
    book_name = _localized(load_book.get('name'), language) or ''
    theme = load_book.get('theme')
    color = theme.get('main') if isinstance(theme, dict) else None

    item_map = dict(structure.get('itemMap') or {})
    menu = [entry for entry in load_book.get('menu') or [] if isinstance(entry, dict) and entry.get('page') is not None]

    pages = []

    # Menu first, it is the only place breadcrumbs can be assembled from
    for position, menu_item in enumerate(menu):
        code = str(menu_item['page'])
        item = item_map.pop(code, None) or {}
        pages.append(Page(
            book_id=book_id,
            book_name=book_name,
            document_key=document_key,
            code=code,
            name=_localized(menu_item.get('label'), language) or '',
            breadcrumbs=get_breadcrumbs(pages, menu, position),
            color=color,
            state=item.get('state') if isinstance(item, dict) else None,
        ))

    # Pages missing from the menu
    for code, item in item_map.items():
        item = item if isinstance(item, dict) else {}
        pages.append(Page(
            book_id=book_id,
            book_name=book_name,
            document_key=document_key,
            code=str(code),
            name=_localized(item.get('label'), language) or '',
            breadcrumbs=[],
            color=color,
            state=item.get('state'),
        ))

    return pages


def get_breadcrumbs(pages, menu, position):
    """
    Ancestor chain of the menu entry at `position`.

    The parent is the nearest earlier entry with a strictly smaller indent;
    `pages` holds the already built pages, aligned with `menu`.
    """
    try:
        indent = menu[position].get('indent', 0)
        if indent == 0:
            return []

        for index in range(position - 1, -1, -1):
            if menu[index].get('indent', 0) < indent:
                parent = pages[index]
                return parent.breadcrumbs + [Breadcrumb(code=parent.code, name=parent.name)]

        logger.error(f"Could not get breadcrumbs for menu item {menu[position]}")
    except Exception as e:
        logger.error(f"Error computing breadcrumbs for menu position {position}: {e}")
    return []


# Loosely-structured (management) sources

def get_document_name(document):
    return document.get('name') or UNNAMED_DOCUMENT


def get_document_content(document):
    """Text of the most specific content node the document exposes."""
    requested_page = document.get('requestedPage')
    if isinstance(requested_page, dict) and requested_page.get('content'):
        return extract_text(requested_page['content'])
    return extract_text(document)


def find_collection(document):
    """First non-empty list among the known collection-shaped properties."""
    for path in COLLECTION_PATHS:
        value = document
        for key in path:
            value = value.get(key) if isinstance(value, dict) else None
        if isinstance(value, list) and value:
            return value
    return None


def get_mngkit_page_list(payload, book_id, document_key):
    """Build pages for a management document, filling content only for the page being viewed."""
    document = _require_dict(payload, 'document')
    url = payload.get('url')
    document_name = get_document_name(document)
    current_content = get_document_content(document)

    current_pointer = DEFAULT_PAGE_POINTER
    try:
        current_pointer = get_query_param(url, PAGE_POINTER_PARAM) or DEFAULT_PAGE_POINTER
    except ValueError:
        logger.warning(f"Cannot read page pointer from URL {url!r}, using '{DEFAULT_PAGE_POINTER}'")

    page_list = document.get('pageList')
    items = page_list if isinstance(page_list, list) and page_list else find_collection(document)

    if not items:
        return [Page(
            book_id=book_id,
            document_key=document_key,
            code=current_pointer,
            name=document_name,
            book_name=document_name,
            state=DEFAULT_PAGE_STATE,
            url=url,
            content=current_content,
            breadcrumbs=[],
        )]

    pages = []
    for item in items:
        if not isinstance(item, dict):
            logger.warning(f"Skipping non-object page item in document {document_key}: {item!r}")
            continue
        pages.append(_create_mngkit_page(
            item, len(pages), document, document_name, book_id, document_key,
            current_pointer, current_content, url
        ))
    return pages


def _create_mngkit_page(item, position, document, document_name, book_id, document_key,
                        current_pointer, current_content, original_url):
    pointer = item.get('pageOid') or item.get('oid') or item.get('id')
    pointer = str(pointer) if pointer else None
    name = item.get('name') or item.get('title') or item.get('label') or UNNAMED_ITEM

    item_url = original_url
    if pointer:
        try:
            item_url = set_query_param(original_url, PAGE_POINTER_PARAM, pointer)
            if not has_query_param(item_url, DOCUMENT_ID_PARAM) and document.get('oid'):
                item_url = set_query_param(item_url, DOCUMENT_ID_PARAM, document['oid'])
        except ValueError:
            item_url = original_url

    return Page(
        book_id=book_id,
        document_key=document_key,
        code=pointer or f"mngkit-{document_key}-item-{position}",
        name=name,
        book_name=document_name,
        state=item.get('state') or DEFAULT_PAGE_STATE,
        url=item_url,
        content=current_content if pointer and pointer == current_pointer else '',
        breadcrumbs=[],
    )
