"""
Error Classification

Decides whether a failure is a transient infrastructure problem (worth a
reconnect and a retry) or an application error that must reach the caller
on its first occurrence.

The retry executor only talks to the ``ErrorClassifier`` interface; each
backing store supplies its own classifier.
"""

import builtins
import errno
import socket
from abc import ABC, abstractmethod
from typing import Any, Dict, FrozenSet, Iterable, Optional, Tuple, Type

from pymongo import errors as mongo_errors

from connection_management.connection_exceptions import ConnectionInitializationError

# Error kinds reported by drivers for connectivity problems
TRANSIENT_KINDS: FrozenSet[str] = frozenset({
    "MongoNotConnectedError",
    "MongoNetworkError",
    "MongoTimeoutError",
    "MongoServerSelectionError",
})

# Low-level OS / resolver codes
TRANSIENT_CODES: FrozenSet[str] = frozenset({
    "ESERVFAIL",     # DNS server failure
    "ENOTFOUND",     # host not found
    "ETIMEDOUT",
    "ECONNREFUSED",
    "ECONNRESET",
})

DNS_SYSCALLS: FrozenSet[str] = frozenset({"queryTxt", "querySrv", "getaddrinfo"})

TRANSIENT_MESSAGE_FRAGMENTS: Tuple[str, ...] = (
    "not connected",
    "disconnected",
    "timed out",
    "network",
    "topology",
    "dns",
    "server selection",
)

# getaddrinfo failures expressed as resolver codes
_GAI_CODES: Dict[int, str] = {socket.EAI_AGAIN: "ESERVFAIL", socket.EAI_NONAME: "ENOTFOUND"}
if hasattr(socket, "EAI_FAIL"):
    _GAI_CODES[socket.EAI_FAIL] = "ESERVFAIL"


def error_code(error: BaseException) -> Optional[str]:
    """
    Symbolic low-level code of an error.

    A string ``code`` attribute wins; otherwise resolver failures map to
    ``ESERVFAIL``/``ENOTFOUND`` and other ``OSError``s to their errno name.
    Numeric server error codes (pymongo ``OperationFailure.code``) are not
    low-level codes and are ignored.
    """
    code = getattr(error, "code", None)
    if isinstance(code, str):
        return code
    if isinstance(error, socket.gaierror):
        return _GAI_CODES.get(error.errno)
    if isinstance(error, OSError) and error.errno is not None:
        return errno.errorcode.get(error.errno)
    return None


def error_syscall(error: BaseException) -> Optional[str]:
    syscall = getattr(error, "syscall", None)
    if isinstance(syscall, str):
        return syscall
    if isinstance(error, socket.gaierror):
        return "getaddrinfo"
    return None


def describe_error(error: BaseException) -> Dict[str, str]:
    """Flat description of an error for diagnostic log lines."""
    hostname = getattr(error, "hostname", None)
    return {
        "name": type(error).__name__,
        "code": error_code(error) or "UNKNOWN",
        "message": str(error) or "No message",
        "syscall": error_syscall(error) or "none",
        "hostname": hostname if isinstance(hostname, str) else "unknown",
    }


def is_dns_error(error: BaseException) -> bool:
    """True when the failure happened while resolving the database host."""
    if error_code(error) == "ESERVFAIL":
        return True
    if error_syscall(error) in ("queryTxt", "querySrv"):
        return True
    return "dns" in str(error).lower()


class ErrorClassifier(ABC):
    """Pluggable retriability check for one backing store."""

    @abstractmethod
    def is_retriable(self, error: BaseException) -> bool:
        """True if ``error`` is transient and the operation may be retried."""

    def explain(self, error: BaseException) -> str:
        """Short reason for the classification, used in log lines."""
        return "retriable" if self.is_retriable(error) else "non-retriable"


class PatternErrorClassifier(ErrorClassifier):
    """
    Classifies errors by type, kind name, low-level code, syscall and message.

    An error is retriable if any of the following hold:
    - it is an instance of one of ``transient_types``
    - its class (or a base class) name, or its ``name`` attribute, is a
      transient kind
    - its low-level code is a transient code, or its syscall a DNS query
    - its lower-cased message contains a transient fragment

    Args:
        transient_types: Exception classes that are always transient
        kinds: Transient kind names
        codes: Transient low-level codes
        syscalls: Syscalls whose failure is transient
        message_fragments: Lower-case message fragments
    """

    def __init__(
        self,
        transient_types: Iterable[Type[BaseException]] = (),
        kinds: Iterable[str] = TRANSIENT_KINDS,
        codes: Iterable[str] = TRANSIENT_CODES,
        syscalls: Iterable[str] = DNS_SYSCALLS,
        message_fragments: Iterable[str] = TRANSIENT_MESSAGE_FRAGMENTS,
    ):
        self.transient_types: Tuple[Type[BaseException], ...] = (
            builtins.ConnectionError,
            builtins.TimeoutError,
            ConnectionInitializationError,
        ) + tuple(transient_types)
        self.kinds = frozenset(kinds)
        self.codes = frozenset(codes)
        self.syscalls = frozenset(syscalls)
        self.message_fragments = tuple(fragment.lower() for fragment in message_fragments)

    def classify(self, error: Any) -> Optional[str]:
        """
        Return the reason an error is retriable, or None if it is not.

        Only ``Exception`` instances can be retriable; cancellation and
        interpreter exits always propagate.
        """
        if not isinstance(error, Exception):
            return None

        if isinstance(error, self.transient_types):
            return f"type:{type(error).__name__}"

        for cls in type(error).__mro__:
            if cls.__name__ in self.kinds:
                return f"kind:{cls.__name__}"
        name = getattr(error, "name", None)
        if isinstance(name, str) and name in self.kinds:
            return f"kind:{name}"

        code = error_code(error)
        if code in self.codes:
            return f"code:{code}"
        syscall = error_syscall(error)
        if syscall in self.syscalls:
            return f"syscall:{syscall}"

        message = str(error).lower()
        for fragment in self.message_fragments:
            if fragment in message:
                return f"message:{fragment!r}"

        return None

    def is_retriable(self, error: BaseException) -> bool:
        return self.classify(error) is not None

    def explain(self, error: BaseException) -> str:
        reason = self.classify(error)
        return f"retriable ({reason})" if reason else "non-retriable"


class MongoErrorClassifier(PatternErrorClassifier):
    """
    Classifier for pymongo errors.

    ``AutoReconnect`` covers network timeouts, lost primaries and server
    selection timeouts; ``ConnectionFailure`` covers pool wait timeouts.
    Errors carrying the server's transient labels are retriable too.
    ``ExecutionTimeout`` (the server hit maxTimeMS) is not: the server is
    reachable and re-running the query would hit the same limit. Duplicate
    keys, write errors and document validation failures are not retriable
    either.
    """

    TRANSIENT_LABELS = ("TransientTransactionError", "RetryableWriteError")

    def __init__(self, **kwargs: Any):
        transient_types = tuple(kwargs.pop("transient_types", ())) + (
            mongo_errors.AutoReconnect,
            mongo_errors.ConnectionFailure,
            mongo_errors.NetworkTimeout,
            mongo_errors.ServerSelectionTimeoutError,
        )
        super().__init__(transient_types=transient_types, **kwargs)

    def classify(self, error: Any) -> Optional[str]:
        if isinstance(error, mongo_errors.PyMongoError):
            for label in self.TRANSIENT_LABELS:
                if error.has_error_label(label):
                    return f"label:{label}"
        return super().classify(error)
