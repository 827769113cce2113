"""Connection provider for MongoDB endpoints.

This module is the only place that builds connection strings and opens
clients. Swap the provider passed to the orchestrator to change how
endpoints are reached (e.g. through a tunnel that exposes a local port).
"""

import re
from typing import Protocol
from urllib.parse import parse_qsl, quote_plus, unquote_plus

import structlog
from pymongo import MongoClient
from pymongo.errors import ConnectionFailure, OperationFailure, PyMongoError

from src.models.config import EndpointConfig
from src.storage.errors import EndpointConnectionError, ErrorKind, classify_error
from src.utils.retry import exponential_backoff_retry

log = structlog.stdlib.get_logger()

DEFAULT_PORT = 27017
_PASSWORD_PATTERN = re.compile(r":([^:@/]+)@")


class ConnectionProvider(Protocol):
    """Opens a connected client for an endpoint."""

    def connect(self, endpoint: EndpointConfig, label: str) -> MongoClient:
        """Return a client whose server answered a ping.

        Raises:
            EndpointConnectionError: If the endpoint is unreachable or
                rejects the credentials
        """
        ...


def build_uri(endpoint: EndpointConfig) -> str:
    """Build a ``mongodb://`` connection string for an endpoint.

    Raises:
        ValueError: If host or port is missing
    """
    if not endpoint.host or endpoint.port is None:
        raise ValueError("host and port are required to build a connection string")

    auth = ""
    if endpoint.username and endpoint.password:
        auth = f"{quote_plus(endpoint.username)}:{quote_plus(endpoint.password)}@"
    elif endpoint.username:
        auth = f"{quote_plus(endpoint.username)}@"

    params: list[str] = []
    if endpoint.username:
        params.append(f"authSource={endpoint.auth_source or 'admin'}")
    for key, value in endpoint.options.items():
        if isinstance(value, bool):
            value = "true" if value else "false"
        params.append(f"{key}={value}")

    query = f"?{'&'.join(params)}" if params else ""
    return f"mongodb://{auth}{endpoint.host}:{endpoint.port}/{endpoint.database or ''}{query}"


def mask_password(uri: str) -> str:
    """Hide the password in a connection string for logging."""
    if not uri:
        return ""
    return _PASSWORD_PATTERN.sub(":****@", uri, count=1)


def parse_uri(uri: str) -> EndpointConfig:
    """Parse a single-host ``mongodb://`` connection string into an EndpointConfig.

    Raises:
        ValueError: If the string is not a mongodb:// URI
    """
    if not uri or not uri.startswith("mongodb://"):
        raise ValueError(f"Not a mongodb:// connection string: {uri!r}")

    rest = uri[len("mongodb://"):]
    username = password = None
    if "@" in rest:
        auth_part, rest = rest.rsplit("@", 1)
        if ":" in auth_part:
            user, pwd = auth_part.split(":", 1)
            username, password = unquote_plus(user), unquote_plus(pwd)
        else:
            username = unquote_plus(auth_part)

    rest, _, query = rest.partition("?")
    host_part, _, database = rest.partition("/")
    host, _, port = host_part.partition(":")

    auth_source = "admin"
    options: dict[str, str] = {}
    for key, value in parse_qsl(query):
        if key == "authSource":
            auth_source = value
        else:
            options[key] = value

    return EndpointConfig(
        host=host,
        port=int(port) if port else DEFAULT_PORT,
        username=username,
        password=password,
        database=database or None,
        auth_source=auth_source,
        options=options,
    )


class MongoConnectionProvider:
    """Default provider: one pymongo MongoClient per endpoint."""

    def __init__(
        self,
        server_selection_timeout_ms: int = 10_000,
        max_retries: int = 2,
        base_delay: float = 1.0,
    ):
        self._server_selection_timeout_ms = server_selection_timeout_ms
        self._max_retries = max_retries
        self._base_delay = base_delay

    def connect(self, endpoint: EndpointConfig, label: str) -> MongoClient:
        try:
            uri = build_uri(endpoint)
        except ValueError as e:
            raise EndpointConnectionError(label, str(e)) from e

        log.info("connecting_to_endpoint", endpoint=label, address=endpoint.address)
        log.debug("connection_uri", endpoint=label, uri=mask_password(uri))

        try:
            client: MongoClient = MongoClient(
                uri, serverSelectionTimeoutMS=self._server_selection_timeout_ms
            )
        except PyMongoError as e:
            raise EndpointConnectionError(label, str(e), classify_error(e)) from e

        try:
            self._ping(client)
        except PyMongoError as e:
            client.close()
            kind = classify_error(e)
            if isinstance(e, OperationFailure) and kind is ErrorKind.OTHER:
                # A command failure before any work was done is an auth problem.
                kind = ErrorKind.AUTHENTICATION_FAILED
            log.error("endpoint_connection_failed", endpoint=label, kind=kind.value, error=str(e))
            raise EndpointConnectionError(label, str(e), kind) from e

        log.info("endpoint_connected", endpoint=label, address=endpoint.address)
        return client

    def _ping(self, client: MongoClient) -> None:
        @exponential_backoff_retry(
            max_retries=self._max_retries,
            base_delay=self._base_delay,
            exceptions=(ConnectionFailure, OperationFailure),
            give_up=lambda e: classify_error(e) is not ErrorKind.CONNECTION_FAILURE,
        )
        def ping() -> None:
            client.admin.command("ping")

        ping()
