"""
Search engine facade for uugle.
Owns the record store and the page index, and exposes the operations the
browser shell and the command line call into.
"""
import logging
import traceback
from urllib.parse import urlsplit

from uugle.common.config import DATABASE_PATH, DEFAULT_PAGE_SIZE
from uugle.common.errors import UugleError
from uugle.common.models import DocumentKind, IndexOutcome, SearchPage
from uugle.indexer.book_indexer import BookIndexer
from uugle.indexer.search_index import PageIndex
from uugle.search.search import QueryEngine
from uugle.store import transfer
from uugle.store.record_store import RecordStore

logger = logging.getLogger("uugle.engine")


def prepare_document_data(data):
    """Normalize the shapes a management document payload arrives in to `{document, url}`."""
    if data.get('document'):
        return data
    nested = data.get('data')
    if isinstance(nested, dict) and nested.get('document'):
        return {'document': nested['document'], 'url': data.get('url')}
    return {'document': data, 'url': data.get('url')}


def create_fallback_document(data):
    """Minimal document built from the URL alone, used when the real payload cannot be indexed."""
    parsed = urlsplit(data['url'])
    return {
        'document': {
            'name': f"Document from {parsed.hostname}",
            'id': parsed.path.split('/')[-1],
        },
        'url': data['url'],
    }


def format_search_results(results):
    """Bring both search result shapes to `{results, hasMore, totalPages}`."""
    if isinstance(results, SearchPage):
        return {
            'results': [result.to_dict() for result in results.pages],
            'hasMore': results.has_more,
            'totalPages': results.total_pages,
        }
    return {'results': [result.to_dict() for result in results], 'hasMore': False, 'totalPages': 1}


class SearchEngine:
    """Ties the record store, the indexer and the query engine together."""

    def __init__(self, db_path=DATABASE_PATH, clock=None):
        self.store = RecordStore(db_path)
        self.index = None
        self.indexer = BookIndexer(self.store, clock=clock)
        self.query_engine = QueryEngine(self.store)

    async def open(self):
        await self.store.open()

    async def close(self):
        await self.store.close()

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def _attach_index(self, index):
        self.index = index
        self.indexer.index = index
        self.query_engine.index = index

    async def initialize_index(self):
        """Load the page index from its persisted blob, or start an empty one."""
        dump = await self.store.get_index_dump()
        if dump:
            index = PageIndex.load(dump)
            logger.info(f"Index successfully loaded from database ({index.doc_count()} documents)")
        else:
            index = PageIndex()
            logger.info("Index not found in database, created new empty index")
        self._attach_index(index)

    async def rebuild_index(self):
        """Recreate the page index from every stored page and persist it."""
        index = PageIndex()
        async with self.store.transaction() as tx:
            pages = await tx.get_all_pages()
            index.apply(add_docs=[(page.id, page.name, page.book_name, page.content) for page in pages])
            await tx.put_index_dump(index.serialize())
        logger.info(f"Search index rebuilt with {len(pages)} pages")

        if self.index is None:
            self._attach_index(index)
        else:
            # Keep the instance shared with the indexer and the query engine
            self.index.restore(index.serialize())

    async def _require_index(self):
        if self.index is None:
            await self.initialize_index()

    async def index_document(self, payload, kind=DocumentKind.STRUCTURED):
        await self._require_index()
        return await self.indexer.index_document(payload, kind)

    async def search(self, query):
        return await self.query_engine.search(query)

    async def search_with_filters(self, query, book_key=None, page_size=DEFAULT_PAGE_SIZE, page_num=0):
        return await self.query_engine.search_with_filters(query, book_key, page_size, page_num)

    async def get_available_books(self):
        return await self.store.get_all_books()

    async def delete_page(self, page_id):
        """Delete a single page and drop it from the index; a book left without pages goes too."""
        await self._require_index()
        async with self.store.transaction() as tx:
            page = await tx.get_page(page_id)
            if page is None:
                return False
            await tx.delete_page(page_id)
            if not await tx.count_pages_by_key(page.document_key):
                await tx.delete_book(page.document_key)
                logger.info(f"Deleted book {page.document_key} with its last page")
            self.index.remove_doc(page_id)
            await tx.put_index_dump(self.index.serialize())
        return True

    async def delete_book(self, document_key):
        """Delete a book with all its pages, then rebuild the index."""
        deleted = await self.store.delete_book(document_key)
        logger.info(f"Deleted book {document_key} and {deleted} pages")
        await self.rebuild_index()
        return deleted

    async def clear_all(self):
        """Delete every record and store an empty index."""
        index = PageIndex()
        async with self.store.transaction() as tx:
            await tx.clear_all()
            await tx.put_index_dump(index.serialize())
        if self.index is None:
            self._attach_index(index)
        else:
            self.index.restore(index.serialize())
        logger.info("All records deleted")

    async def export_data(self):
        return await transfer.export_data(self.store)

    async def import_data(self, data):
        result = await transfer.import_data(self.store, data)
        await self.rebuild_index()
        return result

    # Outcome helpers for the shell; they report failures instead of raising

    async def handle_index_request(self, data, kind=DocumentKind.STRUCTURED):
        try:
            kind = DocumentKind(kind)
        except ValueError:
            logger.error(f"Unknown document kind: {kind!r}")
            return IndexOutcome(success=False, error=f"Unknown document kind: {kind}").to_dict()
        if not data or not isinstance(data, dict):
            return IndexOutcome(success=False, error="Missing data in request").to_dict()

        if kind is DocumentKind.STRUCTURED:
            return (await self._index_with_outcome(data, kind)).to_dict()

        if not data.get('url'):
            return IndexOutcome(success=False, error="Missing URL in data").to_dict()

        data = prepare_document_data(data)
        outcome = await self._index_with_outcome(data, kind)
        if outcome.success:
            return outcome.to_dict()

        logger.warning(f"Retrying {data['url']} with a fallback document")
        try:
            fallback = await self._index_with_outcome(create_fallback_document(data), kind)
        except ValueError as e:
            logger.error(f"Cannot build fallback document for {data['url']}: {e}")
            return outcome.to_dict()
        return fallback.to_dict() if fallback.success else outcome.to_dict()

    async def _index_with_outcome(self, data, kind):
        try:
            return await self.index_document(data, kind)
        except UugleError as e:
            logger.error(f"Error indexing document: {e}")
            return IndexOutcome(success=False, error=str(e))
        except Exception as e:
            logger.error(f"Unexpected error indexing document: {e}")
            logger.error(traceback.format_exc())
            return IndexOutcome(success=False, error=str(e))

    async def handle_search_request(self, query, book_key=None, page=0, page_size=50):
        try:
            if book_key:
                results = await self.search_with_filters(query, book_key, page_size, page)
            else:
                results = await self.search(query)
            return format_search_results(results)
        except Exception as e:
            logger.error(f"Error handling search request: {e}")
            logger.error(traceback.format_exc())
            return {'results': [], 'error': str(e), 'hasMore': False, 'totalPages': 1}

    async def handle_books_request(self):
        try:
            books = await self.get_available_books()
            return {'books': [book.to_dict() for book in books]}
        except Exception as e:
            logger.error(f"Error loading books: {e}")
            logger.error(traceback.format_exc())
            return {'books': [], 'error': str(e)}
