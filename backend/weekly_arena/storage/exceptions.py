class StoreError(Exception):
    """Base exception for document store errors."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class PermissionDenied(StoreError):
    """Security rules rejected the read."""

    pass


class IndexUnavailable(StoreError):
    """The query needs a composite index that does not exist (yet)."""

    pass


class NotFound(StoreError):
    """Collection or document not found."""

    pass


class InvalidQuery(StoreError):
    """The store rejected the query shape (e.g. too many "in" values)."""

    pass
