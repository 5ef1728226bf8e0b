"""
Export and import of the record store as interchange JSON.
"""
import logging
from datetime import datetime, timezone

from uugle.common.errors import ImportFormatError
from uugle.common.models import Book, Page

logger = logging.getLogger("uugle.store")


async def export_data(store):
    """Snapshot every book and page as `{books, pages, exportDate}`."""
    async with store.transaction() as tx:
        books = await tx.get_all_books()
        pages = await tx.get_all_pages()
    logger.info(f"Exporting {len(books)} books and {len(pages)} pages")
    return {
        'books': [book.to_dict() for book in books],
        'pages': [page.to_dict() for page in pages],
        'exportDate': datetime.now(timezone.utc).isoformat(),
    }


def validate_import(data):
    if not isinstance(data, dict) or not isinstance(data.get('books'), list) or not isinstance(data.get('pages'), list):
        raise ImportFormatError("Invalid import file format. Missing books or pages data.")


async def import_data(store, data):
    """
    Add books and pages that are not stored yet.

    Books are matched by document key, pages by (document key, code, name).
    Imported page ids are dropped and reassigned by the store. The search
    index is not touched here; callers rebuild it afterwards.
    """
    validate_import(data)
    logger.info(f"Importing {len(data['books'])} books and {len(data['pages'])} pages")

    books = []
    for record in data['books']:
        try:
            books.append(Book.from_dict(record))
        except (ValueError, AttributeError, TypeError) as e:
            raise ImportFormatError(f"Invalid book record {record!r}: {e}") from e

    pages = []
    for record in data['pages']:
        try:
            pages.append(Page.from_dict(record))
        except (ValueError, AttributeError, TypeError) as e:
            raise ImportFormatError(f"Invalid page record {record!r}: {e}") from e

    async with store.transaction() as tx:
        existing_books = await tx.get_all_books()
        existing_pages = await tx.get_all_pages()
        was_empty = not existing_books and not existing_pages

        known_keys = {book.document_key for book in existing_books}
        books_added = 0
        for book in books:
            if book.document_key in known_keys:
                continue
            await tx.put_book(book)
            known_keys.add(book.document_key)
            books_added += 1

        known_triples = {(page.document_key, page.code, page.name) for page in existing_pages}
        taken_codes = {(page.document_key, page.code) for page in existing_pages}
        pages_added = 0
        for page in pages:
            if (page.document_key, page.code, page.name) in known_triples:
                continue
            if (page.document_key, page.code) in taken_codes:
                logger.warning(f"Skipping imported page {page.document_key}/{page.code}: code already stored under another name")
                continue
            await tx.add_page(page.with_id(None))
            known_triples.add((page.document_key, page.code, page.name))
            taken_codes.add((page.document_key, page.code))
            pages_added += 1

    logger.info(f"Import completed: added {books_added} books and {pages_added} pages")
    return {'booksAdded': books_added, 'pagesAdded': pages_added, 'wasEmptyDatabase': was_empty}
