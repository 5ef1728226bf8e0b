"""
Configuration settings for the uugle indexing and search engine.
"""
import os

# Storage
DATABASE_PATH = os.environ.get('UUGLE_DB_PATH', os.path.join(os.path.expanduser('~'), '.uugle', 'books.db'))
SCHEMA_VERSION = 5
INDEX_OBJECT_ID = 1

# Logging
LOG_FILE = os.environ.get('UUGLE_LOG_FILE', 'uugle.log')

# Indexing settings
BOOK_INDEX_EXPIRATION = 60 * 60  # seconds, re-index a book at most once per hour

# Search settings
MAX_SUGGESTIONS = 30
DEFAULT_PAGE_SIZE = 100
RESOLVE_BATCH_SIZE = 10  # pages loaded from the store per batch
CURSOR_ADVANCE_STEP = 100  # max records skipped per cursor advance
FUZZY_MIN_TOKEN_LENGTH = 4  # shorter query tokens only get prefix expansion
FUZZY_MAX_DISTANCE = 1

# URLs
PAGE_URL_BASE = 'https://uuapp.plus4u.net/uu-bookkit-maing01'

# Loosely-structured documents
PAGE_POINTER_PARAM = 'pageOid'
DOCUMENT_ID_PARAM = 'oid'
DEFAULT_PAGE_POINTER = 'main'
FALLBACK_KEY_PREFIX = 'mngkit-'
FALLBACK_KEY_LENGTH = 20
ERROR_KEY_PREFIX = 'mngkit-err-'
ERROR_KEY_LENGTH = 15
UNNAMED_DOCUMENT = 'Unnamed Document'
UNNAMED_ITEM = 'Unnamed Item'
DEFAULT_PAGE_STATE = 'active'

# Structured-content widget carrying string-encoded JSON payloads
TABLE_WIDGET_TAG = 'Uu5TilesBricks.Table'
UU5_JSON_MARKER = '<uu5json/>'
