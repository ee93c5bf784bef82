"""
results.py — Tagged operation results shared by every SDK module.

Every public async operation returns either Ok(value) or Failure(...); nothing
raises across a module boundary. Failure.kind carries the error taxonomy:

  precondition: checked synchronously before any network call
                (not authenticated, no current record, bad caller input)
  transport:    timeout, network error or non-2xx status; status_code and
                raw_body are filled whenever the server answered
  decode:       the response body did not match the expected shape

Callers that prefer exceptions can call .unwrap(), which raises SaiGameError
for a Failure.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Literal, Optional, TypeVar, Union

T = TypeVar("T")

NOT_AUTHENTICATED = "Not authenticated! Please login first."


class FailureKind(str, Enum):
    precondition = "precondition"
    transport = "transport"
    decode = "decode"


class SaiGameError(Exception):
    """Raised by Failure.unwrap(); the original Failure is kept on .failure."""

    def __init__(self, failure: "Failure") -> None:
        super().__init__(failure.message)
        self.failure = failure


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T
    ok: Literal[True] = True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Failure:
    kind: FailureKind
    message: str
    status_code: Optional[int] = None
    raw_body: str = ""
    ok: Literal[False] = False

    def unwrap(self):
        raise SaiGameError(self)


Result = Union[Ok[T], Failure]


# ---------------------------------------------------------------------------
# Constructors
# ---------------------------------------------------------------------------

def precondition_failed(message: str) -> Failure:
    return Failure(kind=FailureKind.precondition, message=message)


def not_authenticated() -> Failure:
    return precondition_failed(NOT_AUTHENTICATED)


def decode_failed(operation: str, exc: Exception, raw_body: str = "") -> Failure:
    """Wrap a parse fault as 'Parse <operation> response error: ...'."""
    return Failure(
        kind=FailureKind.decode,
        message=f"Parse {operation} response error: {exc}",
        raw_body=raw_body,
    )
