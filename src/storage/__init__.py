"""Store access: connections, error classification and cursor paging."""

from src.storage.connection import (
    ConnectionProvider,
    MongoConnectionProvider,
    build_uri,
    mask_password,
    parse_uri,
)
from src.storage.cursor import iter_batches
from src.storage.errors import ErrorKind, classify_error

__all__ = [
    "ConnectionProvider",
    "MongoConnectionProvider",
    "build_uri",
    "mask_password",
    "parse_uri",
    "iter_batches",
    "ErrorKind",
    "classify_error",
]
