# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import time
from enum import Enum, unique
from typing import Callable, Iterable, List, Optional, Set

from catalogpolicy.core.entity import CoreData
from catalogpolicy.core.errors import DeadlineExceeded, MalformedInput
from catalogpolicy.core.policy import Statement, get_sid

CONFLICT_RETRY_EXHAUSTED_REASON = "conflict retry exhausted"
DEADLINE_EXCEEDED_REASON = "deadline exceeded"


@unique
class ReconciliationOperation(str, Enum):
    CREATE = "Create"
    UPDATE = "Update"
    DELETE = "Delete"

    @classmethod
    def from_request_type(cls, request_type: str) -> "ReconciliationOperation":
        try:
            return cls(request_type)
        except ValueError:
            raise MalformedInput(f"Unsupported request type {request_type!r}! Expected one of {[op.value for op in cls]}.")

    @property
    def keeps_owned_statements(self) -> bool:
        return self in [ReconciliationOperation.CREATE, ReconciliationOperation.UPDATE]


@unique
class ReconcilerState(str, Enum):
    START = "START"
    FETCHED = "FETCHED"
    MERGED = "MERGED"
    UNCHANGED = "UNCHANGED"
    WRITING = "WRITING"
    CONFLICT = "CONFLICT"
    DONE = "DONE"
    FAILED = "FAILED"


class ReconciliationRequest(CoreData):
    """One reconciliation call.

    owned_sids is the ownership set used to partition the fetched document. It defaults to the Sids of
    owned_statements. Delete requests carry no statements, only the Sids to be removed. Update requests might extend it
    with the Sids of the previous revision of the resource so that retired statements get dropped.
    """

    def __init__(
        self,
        operation: ReconciliationOperation,
        owned_statements: Optional[List[Statement]] = None,
        request_id: Optional[str] = None,
        owned_sids: Optional[Iterable[str]] = None,
    ) -> None:
        self.operation = operation
        self.owned_statements = list(owned_statements) if owned_statements else []
        if self.owned_statements and operation == ReconciliationOperation.DELETE:
            raise MalformedInput("Delete requests cannot carry owned statements, provide owned_sids instead.")
        self.request_id = request_id
        sids: Set[str] = {get_sid(s) for s in self.owned_statements}
        if owned_sids:
            sids.update(owned_sids)
        self.owned_sids = sids


class ReconciliationOutcome(CoreData):
    def __init__(
        self,
        success: bool,
        correlation_id: Optional[str],
        physical_resource_id: str,
        reason: Optional[str] = None,
        attempts: int = 0,
        written: bool = False,
    ) -> None:
        self.success = success
        self.correlation_id = correlation_id
        self.physical_resource_id = physical_resource_id
        self.reason = reason
        self.attempts = attempts
        self.written = written

    @classmethod
    def succeeded(
        cls, correlation_id: Optional[str], physical_resource_id: str, attempts: int = 0, written: bool = False
    ) -> "ReconciliationOutcome":
        return cls(True, correlation_id, physical_resource_id, None, attempts, written)

    @classmethod
    def failed(cls, correlation_id: Optional[str], physical_resource_id: str, reason: str, attempts: int = 0) -> "ReconciliationOutcome":
        # failure reason is shown verbatim to the operator, never leave it empty
        return cls(False, correlation_id, physical_resource_id, reason or "unknown error", attempts, False)


class Deadline:
    """Absolute deadline on the monotonic clock."""

    def __init__(self, expires_at: float, clock: Callable[[], float] = time.monotonic) -> None:
        self._expires_at = expires_at
        self._clock = clock

    @classmethod
    def after(cls, seconds: float, clock: Callable[[], float] = time.monotonic) -> "Deadline":
        return cls(clock() + seconds, clock)

    def remaining(self) -> float:
        return max(self._expires_at - self._clock(), 0.0)

    @property
    def expired(self) -> bool:
        return self._clock() >= self._expires_at

    def check(self) -> None:
        if self.expired:
            raise DeadlineExceeded(DEADLINE_EXCEEDED_REASON)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(remaining={self.remaining():.3f}s)"
