"""
Exceptions raised by the uugle indexing and search engine.
"""


class UugleError(Exception):
    """Base class for all engine errors."""


class UrlResolutionError(UugleError):
    """A document key could not be derived from the source URL."""

    def __init__(self, url, message=None):
        self.url = url
        super().__init__(message or f"invalid bookkit page url: {url}")


class StoreTransactionError(UugleError):
    """The underlying storage engine failed."""


class IndexNotInitializedError(UugleError):
    """Search was invoked before the index was initialized."""

    def __init__(self, message="Index must be initialized first. Call initialize_index()."):
        super().__init__(message)


class ImportFormatError(UugleError):
    """An interchange payload is missing its books or pages arrays."""


class PayloadFormatError(UugleError):
    """A raw document payload does not have the expected shape."""
