from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Literal, TypeVar


T = TypeVar("T")

Retryable = Literal[True, False, "maybe"]


class ErrorKind(str, Enum):
    REACHABILITY = "reachability"
    PROTOCOL = "protocol"
    INVALID_ACTION = "invalid_action"
    CONFIGURATION = "configuration"


@dataclass(frozen=True)
class BridgeError:
    kind: ErrorKind
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def recoverable(self) -> bool:
        return self.kind in (ErrorKind.REACHABILITY, ErrorKind.PROTOCOL)


@dataclass(frozen=True)
class BridgeResult(Generic[T]):
    """Either a value or a BridgeError, never both."""

    value: T | None = None
    error: BridgeError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "BridgeResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str, **details: Any) -> "BridgeResult[T]":
        return cls(error=BridgeError(kind=kind, message=message, details=details))


def reachability_error(message: str, **details: Any) -> BridgeResult[Any]:
    return BridgeResult.failure(ErrorKind.REACHABILITY, message, **details)


def protocol_error(message: str, **details: Any) -> BridgeResult[Any]:
    return BridgeResult.failure(ErrorKind.PROTOCOL, message, **details)


def invalid_action(message: str, **details: Any) -> BridgeResult[Any]:
    return BridgeResult.failure(ErrorKind.INVALID_ACTION, message, **details)


def configuration_error(message: str, **details: Any) -> BridgeResult[Any]:
    return BridgeResult.failure(ErrorKind.CONFIGURATION, message, **details)


@dataclass(frozen=True)
class ErrorRegistryEntry:
    code: str
    http_status: int
    retryable: Retryable


ERROR_CODE_REGISTRY: tuple[ErrorRegistryEntry, ...] = (
    ErrorRegistryEntry(code="invalid_json", http_status=400, retryable=False),
    ErrorRegistryEntry(code="invalid_request", http_status=400, retryable=False),
    ErrorRegistryEntry(code="invalid_args", http_status=400, retryable=False),
    ErrorRegistryEntry(code="unknown_action", http_status=400, retryable=False),
    ErrorRegistryEntry(code="invalid_action", http_status=400, retryable=False),
    ErrorRegistryEntry(code="unauthorized", http_status=401, retryable=False),
    ErrorRegistryEntry(code="not_found", http_status=404, retryable=False),
    ErrorRegistryEntry(code="bridge_unreachable", http_status=424, retryable=True),
    ErrorRegistryEntry(code="internal_error", http_status=500, retryable="maybe"),
    ErrorRegistryEntry(code="bridge_protocol_error", http_status=502, retryable="maybe"),
    ErrorRegistryEntry(code="bridge_misconfigured", http_status=503, retryable=False),
)

_BY_CODE = {entry.code: entry for entry in ERROR_CODE_REGISTRY}

# ErrorKind -> public error code emitted by the gateway API.
KIND_TO_CODE: dict[ErrorKind, str] = {
    ErrorKind.REACHABILITY: "bridge_unreachable",
    ErrorKind.PROTOCOL: "bridge_protocol_error",
    ErrorKind.INVALID_ACTION: "invalid_action",
    ErrorKind.CONFIGURATION: "bridge_misconfigured",
}


def lookup(code: str) -> ErrorRegistryEntry:
    return _BY_CODE.get(code, _BY_CODE["internal_error"])
