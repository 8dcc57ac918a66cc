class CatalogError(Exception):
    """Base class for every failure the catalog reports to its callers."""


class ValidationError(CatalogError, ValueError):
    """Raised when a required field is missing, empty or malformed."""

    def __init__(self, field, message=None):
        self.field = field
        super().__init__(message or f"missing required field {field}")


class NotFound(CatalogError, LookupError):
    """Raised when a referenced id does not resolve to a stored document."""

    def __init__(self, collection, document_id):
        self.collection = collection
        self.document_id = document_id
        super().__init__(f"No {collection} document with id {document_id!r}")


class StorageError(CatalogError):
    """Raised when the underlying store is unreachable or rejects an operation."""

    def __init__(self, operation, cause=None):
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Storage operation '{operation}' failed{detail}")
