"""
Operation status objects returned by mutating storage operations.

A status is OK until a fatal message is added. Message keys form a small
closed vocabulary; provider-specific wording only ever goes to the log.
"""

from dataclasses import dataclass, field
from typing import List, Tuple

FAIL_INVALID_PATH = "backend-fail-invalidpath"
FAIL_CREATE = "backend-fail-create"
FAIL_STORE = "backend-fail-store"
FAIL_COPY = "backend-fail-copy"
FAIL_DELETE = "backend-fail-delete"
FAIL_INTERNAL = "backend-fail-internal"


@dataclass(frozen=True)
class StatusMessage:
    """A message key plus the path(s) or backend name it refers to."""
    key: str
    params: Tuple[str, ...] = ()

    def __str__(self) -> str:
        if not self.params:
            return self.key
        return f"{self.key}: {', '.join(self.params)}"


@dataclass
class OperationStatus:
    """Outcome of a storage operation (ok, or fatal with reasons)."""
    errors: List[StatusMessage] = field(default_factory=list)
    warnings: List[StatusMessage] = field(default_factory=list)

    @classmethod
    def good(cls) -> "OperationStatus":
        return cls()

    @classmethod
    def new_fatal(cls, key: str, *params: str) -> "OperationStatus":
        status = cls()
        status.fatal(key, *params)
        return status

    @property
    def ok(self) -> bool:
        return not self.errors

    def __bool__(self) -> bool:
        return self.ok

    def fatal(self, key: str, *params: str) -> None:
        self.errors.append(StatusMessage(key, tuple(params)))

    def warning(self, key: str, *params: str) -> None:
        self.warnings.append(StatusMessage(key, tuple(params)))

    def merge(self, other: "OperationStatus") -> "OperationStatus":
        """Fold another status into this one and return self."""
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        return self

    def has_message(self, key: str) -> bool:
        return any(m.key == key for m in self.errors + self.warnings)

    @property
    def messages(self) -> List[StatusMessage]:
        return self.errors + self.warnings

    def __str__(self) -> str:
        if self.ok:
            return "OK"
        return "; ".join(str(m) for m in self.errors)
