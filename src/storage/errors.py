"""Classification of store-client errors into stable kinds."""

from enum import Enum

from pymongo.errors import (
    BulkWriteError,
    ConnectionFailure,
    DuplicateKeyError,
    OperationFailure,
)

NAMESPACE_NOT_FOUND_CODE = 26
AUTHENTICATION_FAILED_CODE = 18
DUPLICATE_KEY_CODE = 11000
# IndexAlreadyExists, IndexOptionsConflict, IndexKeySpecsConflict
INDEX_EXISTS_CODES = frozenset({68, 85, 86})


class ErrorKind(str, Enum):
    """Store failures the sync engine needs to tell apart."""

    NAMESPACE_NOT_FOUND = "namespace_not_found"
    INDEX_ALREADY_EXISTS = "index_already_exists"
    AUTHENTICATION_FAILED = "authentication_failed"
    CONNECTION_FAILURE = "connection_failure"
    DUPLICATE_KEY = "duplicate_key"
    OTHER = "other"


def classify_error(error: BaseException) -> ErrorKind:
    """Map a pymongo exception onto an ErrorKind."""
    if isinstance(error, DuplicateKeyError):
        return ErrorKind.DUPLICATE_KEY
    if isinstance(error, ConnectionFailure):
        return ErrorKind.CONNECTION_FAILURE
    if isinstance(error, BulkWriteError):
        write_errors = error.details.get("writeErrors", []) if error.details else []
        if write_errors and all(e.get("code") == DUPLICATE_KEY_CODE for e in write_errors):
            return ErrorKind.DUPLICATE_KEY
        return ErrorKind.OTHER
    if isinstance(error, OperationFailure):
        code = error.code
        if code == NAMESPACE_NOT_FOUND_CODE:
            return ErrorKind.NAMESPACE_NOT_FOUND
        if code in INDEX_EXISTS_CODES:
            return ErrorKind.INDEX_ALREADY_EXISTS
        if code == AUTHENTICATION_FAILED_CODE:
            return ErrorKind.AUTHENTICATION_FAILED
        if code == DUPLICATE_KEY_CODE:
            return ErrorKind.DUPLICATE_KEY
        # Servers older than 3.2 report a missing namespace without a code.
        if code is None and "ns not found" in str(error):
            return ErrorKind.NAMESPACE_NOT_FOUND
        return ErrorKind.OTHER
    return ErrorKind.OTHER


def is_benign(error: BaseException, *kinds: ErrorKind) -> bool:
    return classify_error(error) in kinds


class EndpointConnectionError(Exception):
    """An endpoint could not be reached or refused our credentials."""

    def __init__(self, endpoint: str, message: str, kind: ErrorKind = ErrorKind.OTHER):
        super().__init__(f"Failed to connect to {endpoint} endpoint: {message}")
        self.endpoint = endpoint
        self.kind = kind
