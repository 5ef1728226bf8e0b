"""
Persistent record store for books, pages and the serialized search index.
SQLite runs on one dedicated worker thread; callers await every operation.
"""
import asyncio
import functools
import json
import logging
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from pathlib import Path

from uugle.common.config import DATABASE_PATH, SCHEMA_VERSION, INDEX_OBJECT_ID
from uugle.common.errors import StoreTransactionError
from uugle.common.models import Book, Breadcrumb, Page, format_timestamp, parse_timestamp

logger = logging.getLogger("uugle.store")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS books (
  document_key TEXT PRIMARY KEY,
  name TEXT NOT NULL,
  last_update TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS pages (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  book_id TEXT,
  document_key TEXT NOT NULL,
  code TEXT NOT NULL,
  name TEXT NOT NULL,
  book_name TEXT NOT NULL,
  breadcrumbs TEXT NOT NULL DEFAULT '[]',
  color TEXT,
  state TEXT,
  content TEXT NOT NULL DEFAULT '',
  url TEXT
);

CREATE INDEX IF NOT EXISTS idx_pages_document_key ON pages(document_key);
CREATE UNIQUE INDEX IF NOT EXISTS idx_pages_document_key_code ON pages(document_key, code);

CREATE TABLE IF NOT EXISTS search_index (
  id INTEGER PRIMARY KEY,
  index_dump TEXT NOT NULL
);
"""

PAGE_COLUMNS = "id, book_id, document_key, code, name, book_name, breadcrumbs, color, state, content, url"


def _book_from_row(row):
    return Book(document_key=row['document_key'], name=row['name'], last_update=parse_timestamp(row['last_update']))


def _page_from_row(row):
    return Page(
        id=row['id'],
        book_id=row['book_id'],
        document_key=row['document_key'],
        code=row['code'],
        name=row['name'],
        book_name=row['book_name'],
        breadcrumbs=[Breadcrumb.from_dict(crumb) for crumb in json.loads(row['breadcrumbs'])],
        color=row['color'],
        state=row['state'],
        content=row['content'],
        url=row['url'],
    )


class PageCursor:
    """Forward-only cursor over one document's pages, in id order."""

    def __init__(self, store, cursor):
        self._store = store
        self._cursor = cursor

    async def advance(self, count):
        """Skip up to `count` records, returning how many were actually skipped."""
        rows = await self._store._run(self._cursor.fetchmany, count)
        return len(rows)

    async def next(self):
        """Return the next page, or None once the cursor is exhausted."""
        row = await self._store._run(self._cursor.fetchone)
        return _page_from_row(row) if row is not None else None

    async def close(self):
        await self._store._run(self._cursor.close)


class Transaction:
    """Operations run inside one atomic store transaction."""

    def __init__(self, store):
        self._store = store
        self._con = store._con

    def _run(self, fn, *args):
        return self._store._run(fn, *args)

    # Books

    async def put_book(self, book):
        """Insert or replace a book; returns its store key."""
        def op():
            self._con.execute(
                "INSERT OR REPLACE INTO books (document_key, name, last_update) VALUES (?, ?, ?)",
                (book.document_key, book.name, format_timestamp(book.last_update)),
            )
            return book.document_key
        return await self._run(op)

    async def get_book_by_key(self, document_key):
        def op():
            row = self._con.execute("SELECT * FROM books WHERE document_key = ?", (document_key,)).fetchone()
            return _book_from_row(row) if row else None
        return await self._run(op)

    async def get_all_books(self):
        def op():
            rows = self._con.execute("SELECT * FROM books ORDER BY document_key").fetchall()
            return [_book_from_row(row) for row in rows]
        return await self._run(op)

    async def delete_book(self, document_key):
        """Delete a book together with all of its pages; returns the number of pages deleted."""
        def op():
            deleted = self._con.execute("DELETE FROM pages WHERE document_key = ?", (document_key,)).rowcount
            self._con.execute("DELETE FROM books WHERE document_key = ?", (document_key,))
            return deleted
        return await self._run(op)

    # Pages

    async def add_page(self, page):
        """Insert a new page and return its assigned id."""
        def op():
            cursor = self._con.execute(
                "INSERT INTO pages (book_id, document_key, code, name, book_name, breadcrumbs, color, state, content, url) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    page.book_id, page.document_key, page.code, page.name or '', page.book_name or '',
                    json.dumps([crumb.to_dict() for crumb in page.breadcrumbs]),
                    page.color, page.state, page.content or '', page.url,
                ),
            )
            return cursor.lastrowid
        return await self._run(op)

    async def delete_page(self, page_id):
        def op():
            return self._con.execute("DELETE FROM pages WHERE id = ?", (page_id,)).rowcount > 0
        return await self._run(op)

    async def get_page(self, page_id):
        def op():
            row = self._con.execute(f"SELECT {PAGE_COLUMNS} FROM pages WHERE id = ?", (page_id,)).fetchone()
            return _page_from_row(row) if row else None
        return await self._run(op)

    async def get_pages(self, page_ids):
        """Load several pages at once; the result is aligned with `page_ids`, None where missing."""
        page_ids = list(page_ids)
        if not page_ids:
            return []

        def op():
            placeholders = ', '.join('?' for _ in page_ids)
            rows = self._con.execute(
                f"SELECT {PAGE_COLUMNS} FROM pages WHERE id IN ({placeholders})", page_ids
            ).fetchall()
            by_id = {row['id']: _page_from_row(row) for row in rows}
            return [by_id.get(page_id) for page_id in page_ids]
        return await self._run(op)

    async def get_pages_by_key(self, document_key):
        def op():
            rows = self._con.execute(
                f"SELECT {PAGE_COLUMNS} FROM pages WHERE document_key = ? ORDER BY id", (document_key,)
            ).fetchall()
            return [_page_from_row(row) for row in rows]
        return await self._run(op)

    async def count_pages_by_key(self, document_key):
        def op():
            return self._con.execute(
                "SELECT COUNT(*) FROM pages WHERE document_key = ?", (document_key,)
            ).fetchone()[0]
        return await self._run(op)

    async def get_all_pages(self):
        def op():
            rows = self._con.execute(f"SELECT {PAGE_COLUMNS} FROM pages ORDER BY id").fetchall()
            return [_page_from_row(row) for row in rows]
        return await self._run(op)

    async def open_cursor(self, document_key):
        def op():
            return self._con.execute(
                f"SELECT {PAGE_COLUMNS} FROM pages WHERE document_key = ? ORDER BY id", (document_key,)
            )
        return PageCursor(self._store, await self._run(op))

    # Index blob

    async def get_index_dump(self):
        def op():
            row = self._con.execute("SELECT index_dump FROM search_index WHERE id = ?", (INDEX_OBJECT_ID,)).fetchone()
            return row['index_dump'] if row else None
        return await self._run(op)

    async def put_index_dump(self, index_dump):
        def op():
            self._con.execute(
                "INSERT OR REPLACE INTO search_index (id, index_dump) VALUES (?, ?)", (INDEX_OBJECT_ID, index_dump)
            )
        await self._run(op)

    async def clear_all(self):
        """Remove every book, page and the index blob."""
        def op():
            self._con.execute("DELETE FROM pages")
            self._con.execute("DELETE FROM books")
            self._con.execute("DELETE FROM search_index")
        await self._run(op)


class RecordStore:
    """Books, pages and the index blob in one SQLite database."""

    def __init__(self, db_path=DATABASE_PATH):
        self.db_path = str(db_path)
        self._con = None
        self._executor = None
        self._tx_lock = None

    async def open(self):
        if self._con is not None:
            return
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="uugle-store")
        self._tx_lock = asyncio.Lock()
        try:
            self._con = await self._run(self._connect)
        except StoreTransactionError:
            self._executor.shutdown(wait=True)
            self._executor = None
            raise
        logger.info(f"Record store opened: {self.db_path}")

    def _connect(self):
        if self.db_path != ':memory:':
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        # Autocommit mode, transactions are issued explicitly
        con = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
        con.row_factory = sqlite3.Row
        con.executescript(SCHEMA_SQL)
        version = con.execute("PRAGMA user_version").fetchone()[0]
        if version != SCHEMA_VERSION:
            logger.info(f"Setting store schema version {version} -> {SCHEMA_VERSION}")
            con.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
        return con

    async def close(self):
        if self._con is None:
            return
        await self._run(self._con.close)
        self._executor.shutdown(wait=True)
        self._con = None
        self._executor = None
        logger.info(f"Record store closed: {self.db_path}")

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def _run(self, fn, *args):
        """Run a blocking SQLite call on the store thread."""
        if self._executor is None:
            raise StoreTransactionError("record store is not open")
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._executor, functools.partial(fn, *args))
        except sqlite3.Error as e:
            logger.error(f"Store operation failed: {e}")
            raise StoreTransactionError(str(e)) from e

    @asynccontextmanager
    async def transaction(self):
        """
        Group operations atomically.

        Commits when the block exits normally, rolls back on any exception.
        Only one transaction runs at a time.
        """
        if self._tx_lock is None:
            raise StoreTransactionError("record store is not open")
        async with self._tx_lock:
            await self._run(self._con.execute, "BEGIN IMMEDIATE")
            try:
                yield Transaction(self)
            except BaseException:
                if self._con.in_transaction:
                    await self._run(self._con.execute, "ROLLBACK")
                raise
            else:
                await self._run(self._con.execute, "COMMIT")

    # One-shot operations, each in its own transaction

    async def put_book(self, book):
        async with self.transaction() as tx:
            return await tx.put_book(book)

    async def get_book_by_key(self, document_key):
        async with self.transaction() as tx:
            return await tx.get_book_by_key(document_key)

    async def get_pages_by_key(self, document_key):
        async with self.transaction() as tx:
            return await tx.get_pages_by_key(document_key)

    async def add_page(self, page):
        async with self.transaction() as tx:
            return await tx.add_page(page)

    async def delete_page(self, page_id):
        async with self.transaction() as tx:
            return await tx.delete_page(page_id)

    async def delete_book(self, document_key):
        async with self.transaction() as tx:
            return await tx.delete_book(document_key)

    async def clear_all(self):
        async with self.transaction() as tx:
            await tx.clear_all()

    async def get_all_books(self):
        async with self.transaction() as tx:
            return await tx.get_all_books()

    async def get_all_pages(self):
        async with self.transaction() as tx:
            return await tx.get_all_pages()

    async def get_page(self, page_id):
        async with self.transaction() as tx:
            return await tx.get_page(page_id)

    async def get_index_dump(self):
        async with self.transaction() as tx:
            return await tx.get_index_dump()
