# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import logging
import time
from typing import Callable, List, Optional

from catalogpolicy.core.errors import ConflictError, DeadlineExceeded, NotFoundError, PolicyReconciliationError
from catalogpolicy.core.policy import Statement, get_statements, new_document, partition_statements, statements_equal
from catalogpolicy.core.reconciliation import (
    CONFLICT_RETRY_EXHAUSTED_REASON,
    DEADLINE_EXCEEDED_REASON,
    Deadline,
    ReconcilerState,
    ReconciliationOutcome,
    ReconciliationRequest,
)
from catalogpolicy.core.store import FetchedPolicy, PolicyStore

logger = logging.getLogger(__name__)

DEFAULT_PHYSICAL_RESOURCE_ID = "CatalogPolicy"
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_BACKOFF_IN_SECS = 0.2
MAX_BACKOFF_IN_SECS = 3.2


class Reconciler:
    """Merges a caller owned set of statements into a shared policy document.

    Statements whose Sid is not owned by the request are foreign and pass through untouched (in their original order).
    Owned statements are always re-appended after the foreign ones, so re-applying the same request is a no-op.

    Writes are guarded by the version token of the fetch they are based on. Upon a conflict the whole
    fetch/merge/write cycle is repeated (up to 'max_attempts' cycles) since the merge is a pure function of the remote
    state. Any other error fails the outcome immediately.
    """

    def __init__(
        self,
        store: PolicyStore,
        physical_resource_id: str = DEFAULT_PHYSICAL_RESOURCE_ID,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_in_secs: float = DEFAULT_BACKOFF_IN_SECS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"'max_attempts' should be a positive integer, got {max_attempts!r}.")
        self._store = store
        self._physical_resource_id = physical_resource_id
        self._max_attempts = max_attempts
        self._backoff_in_secs = backoff_in_secs
        self._sleep = sleep

    @property
    def store(self) -> PolicyStore:
        return self._store

    @property
    def physical_resource_id(self) -> str:
        return self._physical_resource_id

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def merge(self, request: ReconciliationRequest, current: List[Statement]) -> List[Statement]:
        foreign, discarded = partition_statements(current, request.owned_sids)
        if discarded:
            logger.debug("Discarding %d owned statements from the current document.", len(discarded))
        if request.operation.keeps_owned_statements:
            return foreign + list(request.owned_statements)
        return foreign

    def reconcile(self, request: ReconciliationRequest, deadline: Optional[Deadline] = None) -> ReconciliationOutcome:
        """Never raises, every failure is captured into the returned outcome."""
        attempts = 0
        state = self._transition(request, ReconcilerState.START)
        try:
            while True:
                attempts = attempts + 1
                self._check_deadline(deadline)
                fetched = self._fetch()
                state = self._transition(request, ReconcilerState.FETCHED, attempts)

                current = get_statements(fetched.document)
                statements = self.merge(request, current)
                state = self._transition(request, ReconcilerState.MERGED, attempts)

                if statements_equal(statements, current):
                    state = self._transition(request, ReconcilerState.UNCHANGED, attempts)
                    return ReconciliationOutcome.succeeded(request.request_id, self._physical_resource_id, attempts, written=False)

                self._check_deadline(deadline)
                state = self._transition(request, ReconcilerState.WRITING, attempts)
                try:
                    self._store.replace(new_document(statements, fetched.document), fetched.version)
                except ConflictError as conflict:
                    state = self._transition(request, ReconcilerState.CONFLICT, attempts)
                    logger.warning(
                        "Policy changed concurrently (attempt %d/%d) for request %r: %s",
                        attempts,
                        self._max_attempts,
                        request.request_id,
                        conflict,
                    )
                    if attempts >= self._max_attempts:
                        return self._fail(request, CONFLICT_RETRY_EXHAUSTED_REASON, attempts)
                    self._backoff(attempts, deadline)
                    continue

                state = self._transition(request, ReconcilerState.DONE, attempts)
                return ReconciliationOutcome.succeeded(request.request_id, self._physical_resource_id, attempts, written=True)
        except DeadlineExceeded:
            return self._fail(request, DEADLINE_EXCEEDED_REASON, attempts)
        except PolicyReconciliationError as error:
            return self._fail(request, str(error), attempts)
        except Exception as error:
            logger.error("Unexpected error in state %s while reconciling request %r!", state.value, request.request_id, exc_info=True)
            return self._fail(request, f"internal error: {error}", attempts)

    def _fetch(self) -> FetchedPolicy:
        try:
            return self._store.fetch()
        except NotFoundError:
            logger.info("No policy document exists yet, starting from an empty one.")
            return FetchedPolicy(new_document([]), None)

    def _backoff(self, attempts: int, deadline: Optional[Deadline]) -> None:
        sleepy_time = min(self._backoff_in_secs * (2 ** (attempts - 1)), MAX_BACKOFF_IN_SECS)
        if deadline is not None:
            self._check_deadline(deadline)
            sleepy_time = min(sleepy_time, deadline.remaining())
        if sleepy_time > 0:
            self._sleep(sleepy_time)

    @staticmethod
    def _check_deadline(deadline: Optional[Deadline]) -> None:
        if deadline is not None:
            deadline.check()

    @staticmethod
    def _transition(request: ReconciliationRequest, state: ReconcilerState, attempts: int = 0) -> ReconcilerState:
        logger.info(
            "Reconciliation of request %r (%s) -> %s [attempt=%d]", request.request_id, request.operation.value, state.value, attempts
        )
        return state

    def _fail(self, request: ReconciliationRequest, reason: str, attempts: int) -> ReconciliationOutcome:
        logger.error("Reconciliation of request %r -> %s: %s", request.request_id, ReconcilerState.FAILED.value, reason)
        return ReconciliationOutcome.failed(request.request_id, self._physical_resource_id, reason, attempts)
