"""
Full-text index over pages, kept in memory and persisted as a single blob.
"""
import base64
import io
import logging
import re
import threading
import traceback
import zipfile

from whoosh.analysis import Filter, LowercaseFilter, RegexTokenizer
from whoosh.fields import Schema, TEXT, ID
from whoosh.filedb.filestore import RamStorage
from whoosh.query import FuzzyTerm, Or, Prefix, Term
from whoosh.scoring import BM25F

from uugle.common.config import FUZZY_MIN_TOKEN_LENGTH, FUZZY_MAX_DISTANCE
from uugle.common.models import SearchHit

logger = logging.getLogger("uugle.index")

SEARCH_FIELDS = ('name', 'book_name', 'content')

_EDGE_PUNCTUATION = re.compile(r'^\W+|\W+$', re.UNICODE)


class TrimFilter(Filter):
    """Strips leading and trailing punctuation and drops tokens left empty."""

    def __call__(self, tokens):
        for token in tokens:
            text = _EDGE_PUNCTUATION.sub('', token.text)
            if text:
                token.text = text
                yield token


def page_analyzer():
    # Dots and slashes separate tokens, so "UU5.Bricks.Accordion" is found by "accordion"
    return RegexTokenizer(r'[^\s\-./]+') | TrimFilter() | LowercaseFilter()


def page_schema():
    analyzer = page_analyzer()
    return Schema(
        id=ID(stored=True, unique=True),
        name=TEXT(analyzer=analyzer),
        book_name=TEXT(analyzer=analyzer),
        content=TEXT(analyzer=analyzer),
    )


class PageIndex:
    """Whoosh index held in RAM storage, addressed by page id."""

    def __init__(self, storage=None):
        self.lock = threading.Lock()
        self.analyzer = page_analyzer()
        if storage is None:
            storage = RamStorage()
            self.ix = storage.create_index(page_schema())
            logger.debug("Created new empty page index")
        else:
            self.ix = storage.open_index()
        self.storage = storage

    @classmethod
    def load(cls, blob):
        """Rebuild an index from a blob produced by serialize()."""
        return cls(storage=_storage_from_blob(blob))

    def restore(self, blob):
        """Replace this index's contents in place with a serialized snapshot."""
        storage = _storage_from_blob(blob)
        ix = storage.open_index()
        with self.lock:
            self.storage = storage
            self.ix = ix
        logger.info(f"Page index restored from snapshot ({self.doc_count()} documents)")

    def serialize(self):
        """Dump every index file into one zip archive, base64-encoded."""
        with self.lock:
            buffer = io.BytesIO()
            with zipfile.ZipFile(buffer, 'w', zipfile.ZIP_DEFLATED) as archive:
                for name in sorted(self.storage.list()):
                    archive.writestr(name, bytes(self.storage.files[name]))
            return base64.b64encode(buffer.getvalue()).decode('ascii')

    def doc_count(self):
        return self.ix.doc_count()

    def add_doc(self, page_id, name='', book_name='', content=''):
        self.apply(add_docs=[(page_id, name, book_name, content)])

    def remove_doc(self, page_id):
        self.apply(remove_ids=[page_id])

    def apply(self, remove_ids=(), add_docs=()):
        """
        Apply removals then additions in a single writer commit.

        `add_docs` holds (page_id, name, book_name, content) tuples.
        """
        with self.lock:
            writer = self.ix.writer()
            try:
                for page_id in remove_ids:
                    writer.delete_by_term('id', str(page_id))
                for page_id, name, book_name, content in add_docs:
                    # Replaces any stale entry left under a reused id
                    writer.update_document(
                        id=str(page_id),
                        name=name or '',
                        book_name=book_name or '',
                        content=content or '',
                    )
                writer.commit()
            except Exception as e:
                writer.cancel()
                logger.error(f"Error updating page index: {e}")
                logger.error(traceback.format_exc())
                raise
        logger.debug(f"Page index updated: -{len(remove_ids)} +{len(add_docs)}")

    def build_query(self, query_string, expand=True):
        """OR of every query token over every field, with prefix and fuzzy expansion."""
        tokens = [token.text for token in self.analyzer(query_string)]
        subqueries = []
        for text in tokens:
            for field in SEARCH_FIELDS:
                subqueries.append(Term(field, text, boost=2.0))
                if not expand:
                    continue
                subqueries.append(Prefix(field, text, constantscore=False))
                if len(text) >= FUZZY_MIN_TOKEN_LENGTH:
                    subqueries.append(FuzzyTerm(field, text, maxdist=FUZZY_MAX_DISTANCE,
                                                prefixlength=1, constantscore=False))
        return Or(subqueries) if subqueries else None

    def search(self, query_string, expand=True):
        """Return ranked hits, best first."""
        query = self.build_query(query_string, expand=expand)
        if query is None:
            return []
        with self.lock:
            with self.ix.searcher(weighting=BM25F()) as searcher:
                results = searcher.search(query, limit=None)
                hits = [SearchHit(ref=int(hit['id']), score=hit.score) for hit in results]
        logger.debug(f"Index search for '{query_string}' returned {len(hits)} hits")
        return hits


def _storage_from_blob(blob):
    storage = RamStorage()
    with zipfile.ZipFile(io.BytesIO(base64.b64decode(blob))) as archive:
        for name in archive.namelist():
            storage.files[name] = archive.read(name)
    return storage
