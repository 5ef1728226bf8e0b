"""
Search over the page index for the uugle engine.
Resolves index hits to stored pages and paginates book listings.
"""
import logging
import math

from uugle.common.config import (
    MAX_SUGGESTIONS, DEFAULT_PAGE_SIZE, RESOLVE_BATCH_SIZE, CURSOR_ADVANCE_STEP, PAGE_URL_BASE
)
from uugle.common.errors import IndexNotInitializedError
from uugle.common.models import SearchPage, SearchResult
from uugle.common.utils import chunked, url_origin_and_path

logger = logging.getLogger("uugle.search")


def get_page_url(page):
    """Pages harvested from management documents keep their own URL; book pages get a derived one."""
    if page.url:
        return page.url
    return f"{PAGE_URL_BASE}/{page.document_key}/book/page?code={page.code}"


def get_book_url(page):
    if page.url:
        try:
            return url_origin_and_path(page.url)
        except ValueError:
            logger.warning(f"Page {page.id} has an unparsable URL: {page.url}")
    return f"{PAGE_URL_BASE}/{page.document_key}"


def to_result(page):
    return SearchResult(page=page, url=get_page_url(page), book_url=get_book_url(page))


def is_valid_query(query):
    return bool(query and query.strip())


class QueryEngine:
    """Answers full-text and book-scoped queries."""

    def __init__(self, store, index=None):
        self.store = store
        self.index = index

    def _validate_index(self):
        if self.index is None:
            raise IndexNotInitializedError()

    async def search(self, query):
        """Best matches for a query, at most MAX_SUGGESTIONS of them."""
        self._validate_index()

        if not is_valid_query(query):
            return []

        logger.info(f"Searching results for '{query.strip()}'")
        hits = self.index.search(query.strip(), expand=True)[:MAX_SUGGESTIONS]
        if not hits:
            return []

        async with self.store.transaction() as tx:
            pages = await tx.get_pages([hit.ref for hit in hits])

        results = []
        for hit, page in zip(hits, pages):
            if page is None:
                logger.warning(f"Index references missing page {hit.ref}")
                continue
            results.append(to_result(page))
        return results

    async def search_with_filters(self, query, book_key=None, page_size=DEFAULT_PAGE_SIZE, page_num=0):
        """
        Search with an optional book filter and pagination.

        An empty query with a book key lists the book's pages and returns a
        SearchPage. Otherwise the ranked hits are sliced to the requested
        window and then filtered by book key, which only narrows that window.
        """
        self._validate_index()
        page_size = max(int(page_size), 1)
        page_num = max(int(page_num), 0)

        if not is_valid_query(query):
            if book_key:
                return await self.get_all_pages_for_book(book_key, page_size, page_num)
            return []

        hits = self.index.search(query.strip(), expand=True)
        if not hits:
            return []

        start = page_num * page_size
        window = hits[start:start + page_size]

        results = await self._load_pages_in_batches([hit.ref for hit in window])
        if book_key:
            results = [result for result in results if result.page.document_key == book_key]
        return results

    async def get_all_pages_for_book(self, book_key, page_size=DEFAULT_PAGE_SIZE, page_num=0):
        """One page of a book's pages, walked with a fresh cursor."""
        skip_count = page_num * page_size

        async with self.store.transaction() as tx:
            total_count = await tx.count_pages_by_key(book_key)
            total_pages = math.ceil(total_count / page_size)

            cursor = await tx.open_cursor(book_key)
            pages = []
            try:
                position = 0
                while position < skip_count:
                    skipped = await cursor.advance(min(skip_count - position, CURSOR_ADVANCE_STEP))
                    if not skipped:
                        break
                    position += skipped

                while len(pages) < page_size:
                    page = await cursor.next()
                    if page is None:
                        break
                    pages.append(page)
            finally:
                await cursor.close()

        return SearchPage(
            pages=[to_result(page) for page in pages],
            total_pages=total_pages,
            has_more=page_num < total_pages - 1,
        )

    async def _load_pages_in_batches(self, page_ids):
        results = []
        async with self.store.transaction() as tx:
            for batch in chunked(page_ids, RESOLVE_BATCH_SIZE):
                pages = await tx.get_pages(batch)
                for page_id, page in zip(batch, pages):
                    if page is None:
                        logger.warning(f"Index references missing page {page_id}")
                        continue
                    results.append(to_result(page))
        return results
