# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

"""Reusable test doubles for the policy store and the outcome reporter.

They allow conflict, not-found and transport failure scenarios to be driven deterministically (no network, no AWS
account).
"""

import copy
import threading
from typing import Callable, List, Optional

from overrides import overrides

from catalogpolicy.core.errors import ConflictError, NotFoundError, PolicyStoreError
from catalogpolicy.core.policy import PolicyDocument, get_statements
from catalogpolicy.core.reconciliation import ReconciliationOutcome
from catalogpolicy.core.reporting import OutcomeReporter
from catalogpolicy.core.store import FetchedPolicy, PolicyStore


class InMemoryPolicyStore(PolicyStore):
    """Thread-safe, versioned, in-memory policy document with the same conditional write semantics as Glue.

    :param document: initial document, None means there is no document (fetch raises NotFoundError).
    :param rejected_writes: number of upcoming writes to reject with ConflictError regardless of their precondition.
    :param before_replace: hook called (with the store) at the beginning of each replace, outside of the lock. Use it to
        simulate a concurrent writer sneaking in between a fetch and a write.

    A None precondition only succeeds while there is no document, like a Glue put with PolicyExistsCondition=NOT_EXIST.
    """

    def __init__(
        self,
        document: Optional[PolicyDocument] = None,
        rejected_writes: int = 0,
        before_replace: Optional[Callable[["InMemoryPolicyStore"], None]] = None,
    ) -> None:
        self._lock = threading.RLock()
        self._document = copy.deepcopy(document) if document is not None else None
        self._revision = 1 if document is not None else 0
        self.rejected_writes = rejected_writes
        self.before_replace = before_replace
        self.fetch_error: Optional[PolicyStoreError] = None
        self.replace_error: Optional[PolicyStoreError] = None
        self.fetch_count = 0
        self.replace_count = 0
        self.preconditions: List[Optional[str]] = []
        self.written_documents: List[Optional[PolicyDocument]] = []

    @property
    def document(self) -> Optional[PolicyDocument]:
        with self._lock:
            return copy.deepcopy(self._document)

    @property
    def version(self) -> Optional[str]:
        with self._lock:
            return self._version()

    def _version(self) -> Optional[str]:
        return f"hash-{self._revision}" if self._document is not None else None

    def put(self, document: Optional[PolicyDocument]) -> None:
        """Out-of-band write (another party), always bumps the version."""
        with self._lock:
            self._document = copy.deepcopy(document) if document is not None else None
            self._revision = self._revision + 1

    @overrides
    def fetch(self) -> FetchedPolicy:
        with self._lock:
            self.fetch_count = self.fetch_count + 1
            if self.fetch_error is not None:
                raise self.fetch_error
            if self._document is None:
                raise NotFoundError("no policy document")
            return FetchedPolicy(copy.deepcopy(self._document), self._version())

    @overrides
    def replace(self, document: PolicyDocument, precondition: Optional[str]) -> None:
        if self.before_replace is not None:
            self.before_replace(self)
        with self._lock:
            self.replace_count = self.replace_count + 1
            self.preconditions.append(precondition)
            if self.replace_error is not None:
                raise self.replace_error
            if self.rejected_writes > 0:
                self.rejected_writes = self.rejected_writes - 1
                raise ConflictError("write rejected", "ConditionCheckFailureException")
            if precondition != self._version():
                raise ConflictError(f"precondition {precondition!r} does not match {self._version()!r}", "ConditionCheckFailureException")
            new_document = copy.deepcopy(document) if get_statements(document) else None
            self.written_documents.append(copy.deepcopy(new_document))
            self._document = new_document
            self._revision = self._revision + 1


class RecordingOutcomeReporter(OutcomeReporter):
    def __init__(self) -> None:
        self.outcomes: List[ReconciliationOutcome] = []

    @overrides
    def report(self, outcome: ReconciliationOutcome) -> bool:
        self.outcomes.append(outcome)
        return True


class LambdaContextStub:
    def __init__(self, remaining_time_in_millis: int = 300000) -> None:
        self.remaining_time_in_millis = remaining_time_in_millis

    def get_remaining_time_in_millis(self) -> int:
        return self.remaining_time_in_millis
