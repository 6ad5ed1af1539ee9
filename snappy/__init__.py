"""Client-side sync layer for the Snappy todo API."""

from snappy.client import SnappyClient
from snappy.core.errors import ErrorKind, GatewayError
from snappy.core.gateway import GatewayState, HttpGateway
from snappy.core.mutations import MutationController
from snappy.core.query_cache import QueryCache, make_query_key
from snappy.core.secure_storage import FileStorage, MemoryStorage, SecureStorage
from snappy.interface.notifier import Notification, Notifier


__all__ = [
    "ErrorKind",
    "FileStorage",
    "GatewayError",
    "GatewayState",
    "HttpGateway",
    "MemoryStorage",
    "MutationController",
    "Notification",
    "Notifier",
    "QueryCache",
    "SecureStorage",
    "SnappyClient",
    "make_query_key",
]
