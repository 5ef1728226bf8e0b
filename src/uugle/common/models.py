"""
Record types shared by the indexer, the store and the search engine.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional


class DocumentKind(str, Enum):
    """Source shape of an ingested payload."""
    STRUCTURED = 'structured'
    LOOSE = 'loose'


def parse_timestamp(value):
    """Parse an ISO-8601 string (or epoch milliseconds) into an aware UTC datetime."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise ValueError(f"Unsupported timestamp: {value!r}")


def format_timestamp(value):
    return value.astimezone(timezone.utc).isoformat()


@dataclass
class Breadcrumb:
    code: str
    name: str

    def to_dict(self):
        return {'code': self.code, 'name': self.name}

    @classmethod
    def from_dict(cls, data):
        return cls(code=data.get('code'), name=data.get('name'))


@dataclass
class Book:
    document_key: str
    name: str
    last_update: datetime

    def to_dict(self):
        """Interchange (export) form."""
        return {
            'documentKey': self.document_key,
            'name': self.name,
            'lastUpdate': format_timestamp(self.last_update),
        }

    @classmethod
    def from_dict(cls, data):
        """Build a book from its interchange form; `awid` is accepted for older exports."""
        key = data.get('documentKey') or data.get('awid')
        if not key:
            raise ValueError("Book record has no documentKey")
        last_update = data.get('lastUpdate')
        return cls(
            document_key=key,
            name=data.get('name') or '',
            last_update=parse_timestamp(last_update) if last_update is not None else datetime.now(timezone.utc),
        )


@dataclass
class Page:
    document_key: str
    code: str
    name: str
    book_name: str
    book_id: Optional[str] = None
    breadcrumbs: List[Breadcrumb] = field(default_factory=list)
    color: Optional[str] = None
    state: Optional[str] = None
    content: str = ''
    url: Optional[str] = None
    id: Optional[int] = None

    def with_id(self, page_id):
        return replace(self, id=page_id)

    def to_dict(self):
        """Interchange (export) form."""
        data = {
            'id': self.id,
            'bookId': self.book_id,
            'documentKey': self.document_key,
            'code': self.code,
            'name': self.name,
            'bookName': self.book_name,
            'breadcrumbs': [crumb.to_dict() for crumb in self.breadcrumbs],
            'color': self.color,
            'state': self.state,
            'content': self.content,
            'url': self.url,
        }
        return data

    @classmethod
    def from_dict(cls, data):
        key = data.get('documentKey') or data.get('awid')
        if not key or data.get('code') is None:
            raise ValueError("Page record needs documentKey and code")
        return cls(
            id=data.get('id'),
            book_id=data.get('bookId'),
            document_key=key,
            code=str(data['code']),
            name=data.get('name') or '',
            book_name=data.get('bookName') or '',
            breadcrumbs=[Breadcrumb.from_dict(crumb) for crumb in data.get('breadcrumbs') or []],
            color=data.get('color'),
            state=data.get('state'),
            content=data.get('content') or '',
            url=data.get('url'),
        )


@dataclass
class SearchHit:
    ref: int
    score: float


@dataclass
class SearchResult:
    """A page returned by the query engine, with URLs derived from its stored fields."""
    page: Page
    url: str
    book_url: str

    def to_dict(self):
        data = self.page.to_dict()
        data['url'] = self.url
        data['bookUrl'] = self.book_url
        return data


@dataclass
class SearchPage:
    pages: List[SearchResult]
    total_pages: int
    has_more: bool


@dataclass
class IndexOutcome:
    success: bool
    document_key: Optional[str] = None
    skipped: bool = False
    added: int = 0
    removed: int = 0
    error: Optional[str] = None

    def to_dict(self):
        data = {'success': self.success}
        if self.document_key is not None:
            data['documentKey'] = self.document_key
        if self.success:
            data.update({'skipped': self.skipped, 'added': self.added, 'removed': self.removed})
        if self.error:
            data['error'] = self.error
        return data
