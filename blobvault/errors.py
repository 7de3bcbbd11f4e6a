"""Exceptions raised by the storage, index and retention layers."""


class StorageError(Exception):
    """Base class for blob storage errors"""


class BlobNotFoundError(StorageError, KeyError):
    """A blob is missing from the index or from the storage backend."""

    def __init__(self, sha256: str, message: str = "Object not found"):
        self.sha256 = sha256
        super().__init__(f"{message} {sha256}")

    def __str__(self):
        return self.args[0]


class BackendUnreachableError(StorageError):
    """The storage backend could not be reached during setup."""


class InvalidQueryError(ValueError):
    """A list/search request is malformed (bad direction, bad range, ...)."""


class InvalidColumnError(InvalidQueryError):
    """A filter or sort key is not in the column allow-list."""

    def __init__(self, column: str):
        self.column = column
        super().__init__(f"Invalid column name: {column}")
