"""
Book indexer for the uugle engine.
Turns harvested payloads into stored pages and keeps the search index in step with them.
"""
import asyncio
import logging
import traceback
from collections import defaultdict
from datetime import datetime, timedelta, timezone

from uugle.common.config import BOOK_INDEX_EXPIRATION
from uugle.common.errors import PayloadFormatError
from uugle.common.models import Book, DocumentKind, IndexOutcome
from uugle.indexer.identity import resolve_key
from uugle.indexer.page_list import get_book_name, get_document_name, get_page_list, get_mngkit_page_list
from uugle.indexer.patch import ADD, REMOVE, get_patch, items_of, pages_equal
from uugle.indexer.search_index import PageIndex

logger = logging.getLogger("uugle.indexer")


def _utcnow():
    return datetime.now(timezone.utc)


def dedupe_pages(pages):
    """Keep the first page for every code."""
    seen = set()
    unique = []
    for page in pages:
        if page.code in seen:
            logger.warning(f"Duplicate page code '{page.code}' in document {page.document_key}, keeping the first")
            continue
        seen.add(page.code)
        unique.append(page)
    return unique


class BookIndexer:
    """
    Incrementally indexes documents into the record store and the page index.

    Indexing of one document key is serialized by a per-key lock; different
    keys may interleave, but each pass runs in its own store transaction.
    """

    def __init__(self, store, index=None, clock=None, expiration=BOOK_INDEX_EXPIRATION):
        self.store = store
        self.index = index
        self.clock = clock or _utcnow
        self.expiration = timedelta(seconds=expiration)
        self._key_locks = {}
        self._key_users = defaultdict(int)

    async def index_document(self, payload, kind=DocumentKind.STRUCTURED):
        """
        Index a new document or re-index a stored one.

        Raises UrlResolutionError, PayloadFormatError or StoreTransactionError.
        """
        kind = DocumentKind(kind)
        if not isinstance(payload, dict):
            raise PayloadFormatError("payload must be an object")
        if self.index is None:
            raise RuntimeError("BookIndexer has no page index attached")

        document_key = resolve_key(payload.get('url'), kind)
        logger.info(f"Indexing {kind.value} document {document_key}")

        lock = self._key_locks.setdefault(document_key, asyncio.Lock())
        self._key_users[document_key] += 1
        try:
            async with lock:
                return await self._index_locked(payload, kind, document_key)
        finally:
            self._release_key(document_key)

    def _release_key(self, document_key):
        """Forget the lock of a key once no pass holds or waits for it."""
        self._key_users[document_key] -= 1
        if not self._key_users[document_key]:
            del self._key_users[document_key]
            del self._key_locks[document_key]

    async def _index_locked(self, payload, kind, document_key):
        now = self.clock()
        index_touched = False

        try:
            async with self.store.transaction() as tx:
                book = await tx.get_book_by_key(document_key)

                # Nothing to do while the stored copy is still fresh
                if book and book.last_update > now - self.expiration:
                    logger.info(f"Document {document_key} indexed at {book.last_update.isoformat()}, skipping")
                    return IndexOutcome(success=True, document_key=document_key, skipped=True)

                if book is None:
                    book = Book(document_key=document_key, name=self._book_name(payload, kind), last_update=now)
                else:
                    book.last_update = now

                # Pages may outlive their book, e.g. after a partial import
                existing_pages = await tx.get_pages_by_key(document_key)

                book_id = await tx.put_book(book)

                if kind is DocumentKind.LOOSE:
                    new_pages = get_mngkit_page_list(payload, book_id, document_key)
                else:
                    new_pages = get_page_list(payload, book_id, document_key)
                new_pages = dedupe_pages(new_pages)

                patch = get_patch(existing_pages, new_pages, pages_equal)
                to_remove = items_of(patch, REMOVE)
                to_add = items_of(patch, ADD)

                for page in to_remove:
                    await tx.delete_page(page.id)

                added_docs = []
                for page in to_add:
                    page_id = await tx.add_page(page)
                    added_docs.append((page_id, page.name, page.book_name, page.content))

                if to_remove or added_docs:
                    index_touched = True
                    self.index.apply(remove_ids=[page.id for page in to_remove], add_docs=added_docs)
                await tx.put_index_dump(self.index.serialize())
        except Exception:
            if index_touched:
                await self._restore_index()
            raise

        logger.info(f"Document {document_key} indexed: {len(to_add)} pages added, {len(to_remove)} removed")
        return IndexOutcome(
            success=True,
            document_key=document_key,
            added=len(to_add),
            removed=len(to_remove),
        )

    def _book_name(self, payload, kind):
        if kind is DocumentKind.LOOSE:
            document = payload.get('document')
            if not isinstance(document, dict):
                raise PayloadFormatError("payload is missing the 'document' object")
            return get_document_name(document)
        return get_book_name(payload)

    async def _restore_index(self):
        """Bring the in-memory index back to the last persisted snapshot."""
        try:
            dump = await self.store.get_index_dump()
            if dump:
                self.index.restore(dump)
            else:
                logger.warning("No persisted index to restore from, resetting to an empty index")
                self.index.restore(PageIndex().serialize())
        except Exception as e:
            logger.error(f"Error restoring page index after failed indexing: {e}")
            logger.error(traceback.format_exc())
