# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import concurrent.futures

import pytest

from catalogpolicy.core.errors import TransportError
from catalogpolicy.core.policy import POLICY_VERSION, new_document
from catalogpolicy.core.reconciler import Reconciler
from catalogpolicy.core.reconciliation import Deadline, ReconciliationOperation, ReconciliationRequest
from catalogpolicy.mixins.test import InMemoryPolicyStore


def _statement(sid: str, action: str = "glue:CreateInboundIntegration"):
    return {
        "Sid": sid,
        "Effect": "Allow",
        "Principal": {"AWS": "arn:aws:iam::123456789012:root"},
        "Action": action,
        "Resource": ["arn:aws:glue:us-east-1:123456789012:catalog"],
    }


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestReconciler:
    foreign_a = _statement("A", "glue:GetDatabase")
    foreign_c = {"Effect": "Allow", "Principal": {"Service": "lakeformation.amazonaws.com"}, "Action": "glue:*", "Resource": "*"}
    owned_b = _statement("B")
    owned_x = _statement("X", "glue:AuthorizeInboundIntegration")

    @staticmethod
    def _reconciler(store, **kwargs) -> Reconciler:
        kwargs.setdefault("sleep", lambda secs: None)
        return Reconciler(store, "CatalogPolicy", **kwargs)

    @staticmethod
    def _create(*statements) -> ReconciliationRequest:
        return ReconciliationRequest(ReconciliationOperation.CREATE, list(statements), "req-create")

    @staticmethod
    def _delete(*sids) -> ReconciliationRequest:
        return ReconciliationRequest(ReconciliationOperation.DELETE, [], "req-delete", owned_sids=sids)

    def test_create_appends_after_foreign_statements(self):
        store = InMemoryPolicyStore(new_document([self.foreign_a]))
        fetched_version = store.version

        outcome = self._reconciler(store).reconcile(self._create(self.owned_b))

        assert outcome.success
        assert outcome.written
        assert outcome.correlation_id == "req-create"
        assert outcome.physical_resource_id == "CatalogPolicy"
        assert store.document == {"Version": POLICY_VERSION, "Statement": [self.foreign_a, self.owned_b]}
        assert store.preconditions == [fetched_version]

    def test_delete_removes_owned_statement(self):
        store = InMemoryPolicyStore(new_document([self.foreign_a, self.owned_b]))

        outcome = self._reconciler(store).reconcile(self._delete("B"))

        assert outcome.success
        assert outcome.written
        assert store.document == {"Version": POLICY_VERSION, "Statement": [self.foreign_a]}

    def test_create_on_absent_document_has_no_precondition(self):
        store = InMemoryPolicyStore(None)

        outcome = self._reconciler(store).reconcile(self._create(self.owned_x))

        assert outcome.success
        assert store.document == {"Version": POLICY_VERSION, "Statement": [self.owned_x]}
        assert store.preconditions == [None]

    def test_create_on_absent_document_keeps_a_policy_created_meanwhile(self):
        foreign_f = _statement("FOREIGN", "glue:GetDatabases")

        def _create_first(store: InMemoryPolicyStore):
            # another stack creates the policy right after our not-found fetch
            if store.replace_count == 0:
                store.put(new_document([foreign_f]))

        store = InMemoryPolicyStore(None, before_replace=_create_first)

        outcome = self._reconciler(store).reconcile(self._create(self.owned_x))

        assert outcome.success
        assert outcome.attempts == 2
        assert store.preconditions[0] is None
        assert store.preconditions[1] is not None
        assert store.written_documents == [{"Version": POLICY_VERSION, "Statement": [foreign_f, self.owned_x]}]
        assert store.document["Statement"] == [foreign_f, self.owned_x]

    def test_create_is_idempotent(self):
        store = InMemoryPolicyStore(new_document([self.foreign_a]))
        reconciler = self._reconciler(store)

        first = reconciler.reconcile(self._create(self.owned_b, self.owned_x))
        document_after_first = store.document
        second = reconciler.reconcile(self._create(self.owned_b, self.owned_x))

        assert first.success and first.written
        assert second.success and not second.written
        assert store.document == document_after_first
        assert store.replace_count == 1

    def test_update_replaces_stale_owned_statement(self):
        stale_b = _statement("B", "glue:GetTables")
        store = InMemoryPolicyStore(new_document([stale_b, self.foreign_a]))

        request = ReconciliationRequest(ReconciliationOperation.UPDATE, [self.owned_b], "req-update")
        outcome = self._reconciler(store).reconcile(request)

        assert outcome.success
        assert store.document["Statement"] == [self.foreign_a, self.owned_b]

    def test_update_drops_retired_sids(self):
        store = InMemoryPolicyStore(new_document([self.foreign_a, _statement("OLD"), self.owned_b]))

        request = ReconciliationRequest(ReconciliationOperation.UPDATE, [self.owned_b], "req-update", owned_sids={"OLD"})
        outcome = self._reconciler(store).reconcile(request)

        assert outcome.success
        assert store.document["Statement"] == [self.foreign_a, self.owned_b]

    def test_owned_statements_keep_request_order(self):
        store = InMemoryPolicyStore(new_document([self.owned_x, self.foreign_a, self.owned_b]))

        self._reconciler(store).reconcile(self._create(self.owned_b, self.owned_x))

        assert store.document["Statement"] == [self.foreign_a, self.owned_b, self.owned_x]

    @pytest.mark.parametrize(
        "request_",
        [
            ReconciliationRequest(ReconciliationOperation.CREATE, [_statement("B")], "req"),
            ReconciliationRequest(ReconciliationOperation.UPDATE, [_statement("B"), _statement("Z")], "req"),
            ReconciliationRequest(ReconciliationOperation.DELETE, [], "req", owned_sids={"B", "Z"}),
        ],
    )
    def test_foreign_statements_are_preserved(self, request_):
        foreign_d = _statement("D", "glue:GetTable")
        store = InMemoryPolicyStore(new_document([self.foreign_a, _statement("B", "glue:Old"), self.foreign_c, foreign_d]))

        outcome = self._reconciler(store).reconcile(request_)

        assert outcome.success
        statements = store.document["Statement"]
        assert [s for s in statements if s.get("Sid", None) not in {"B", "Z"}] == [self.foreign_a, self.foreign_c, foreign_d]

    def test_delete_absent_statements_is_a_noop(self):
        store = InMemoryPolicyStore(new_document([self.foreign_a]))

        outcome = self._reconciler(store).reconcile(self._delete("B"))

        assert outcome.success
        assert not outcome.written
        assert store.replace_count == 0

    def test_delete_on_absent_document_is_a_noop(self):
        store = InMemoryPolicyStore(None)

        outcome = self._reconciler(store).reconcile(self._delete("B"))

        assert outcome.success
        assert store.replace_count == 0
        assert store.document is None

    def test_delete_of_the_last_statements_removes_the_document(self):
        store = InMemoryPolicyStore(new_document([self.owned_b]))

        outcome = self._reconciler(store).reconcile(self._delete("B"))

        assert outcome.success
        assert outcome.written
        assert store.document is None

    def test_unchanged_document_is_not_written(self):
        store = InMemoryPolicyStore({"Version": POLICY_VERSION, "Id": "shared", "Statement": [self.foreign_a, self.owned_b]})

        outcome = self._reconciler(store).reconcile(ReconciliationRequest(ReconciliationOperation.UPDATE, [self.owned_b], "req"))

        assert outcome.success
        assert not outcome.written
        assert outcome.attempts == 1
        assert store.replace_count == 0

    def test_other_top_level_keys_are_kept(self):
        store = InMemoryPolicyStore({"Version": POLICY_VERSION, "Id": "shared", "Statement": [self.foreign_a]})

        self._reconciler(store).reconcile(self._create(self.owned_b))

        assert store.document == {"Version": POLICY_VERSION, "Id": "shared", "Statement": [self.foreign_a, self.owned_b]}

    @pytest.mark.parametrize("rejected_writes", [0, 1, 2, 4])
    def test_conflict_retry_converges(self, rejected_writes):
        store = InMemoryPolicyStore(new_document([self.foreign_a]), rejected_writes=rejected_writes)

        outcome = self._reconciler(store, max_attempts=5).reconcile(self._create(self.owned_b))

        assert outcome.success
        assert outcome.attempts == rejected_writes + 1
        assert store.fetch_count == rejected_writes + 1
        assert store.replace_count == rejected_writes + 1
        assert store.document["Statement"] == [self.foreign_a, self.owned_b]

    def test_conflict_retry_exhausted(self):
        store = InMemoryPolicyStore(new_document([self.foreign_a]), rejected_writes=5)

        outcome = self._reconciler(store, max_attempts=5).reconcile(self._create(self.owned_b))

        assert not outcome.success
        assert outcome.reason == "conflict retry exhausted"
        assert outcome.attempts == 5
        assert store.replace_count == 5
        assert store.document["Statement"] == [self.foreign_a]

    def test_conflict_backoff_doubles(self):
        sleeps = []
        store = InMemoryPolicyStore(new_document([self.foreign_a]), rejected_writes=3)

        outcome = self._reconciler(store, backoff_in_secs=0.2, sleep=sleeps.append).reconcile(self._create(self.owned_b))

        assert outcome.success
        assert sleeps == pytest.approx([0.2, 0.4, 0.8])

    def test_concurrent_writer_statements_survive_the_retry(self):
        foreign_e = _statement("E", "glue:GetPartitions")

        def _sneak_in(store: InMemoryPolicyStore):
            # another party adds its statement right after our first fetch
            if store.replace_count == 0:
                store.put(new_document(store.document["Statement"] + [foreign_e]))

        store = InMemoryPolicyStore(new_document([self.foreign_a]), before_replace=_sneak_in)

        outcome = self._reconciler(store).reconcile(self._create(self.owned_b))

        assert outcome.success
        assert outcome.attempts == 2
        assert store.document["Statement"] == [self.foreign_a, foreign_e, self.owned_b]

    def test_transport_error_on_fetch_is_not_retried(self):
        store = InMemoryPolicyStore(new_document([self.foreign_a]))
        store.fetch_error = TransportError("AccessDeniedException: not authorized to perform glue:GetResourcePolicy", "AccessDenied")

        outcome = self._reconciler(store).reconcile(self._create(self.owned_b))

        assert not outcome.success
        assert outcome.reason == "AccessDeniedException: not authorized to perform glue:GetResourcePolicy"
        assert store.fetch_count == 1
        assert store.replace_count == 0

    def test_transport_error_on_replace_is_not_retried(self):
        store = InMemoryPolicyStore(new_document([self.foreign_a]))
        store.replace_error = TransportError("ThrottlingException: Rate exceeded", "ThrottlingException")

        outcome = self._reconciler(store).reconcile(self._create(self.owned_b))

        assert not outcome.success
        assert outcome.reason == "ThrottlingException: Rate exceeded"
        assert store.fetch_count == 1
        assert store.replace_count == 1

    def test_unexpected_error_is_captured(self):
        store = InMemoryPolicyStore(new_document([self.foreign_a]))

        def _boom(store):
            raise RuntimeError("boom")

        store.before_replace = _boom

        outcome = self._reconciler(store).reconcile(self._create(self.owned_b))

        assert not outcome.success
        assert outcome.reason == "internal error: boom"

    def test_expired_deadline_fails_before_any_remote_call(self):
        store = InMemoryPolicyStore(new_document([self.foreign_a]))

        outcome = self._reconciler(store).reconcile(self._create(self.owned_b), Deadline.after(0, FakeClock()))

        assert not outcome.success
        assert outcome.reason == "deadline exceeded"
        assert store.fetch_count == 0

    def test_deadline_stops_conflict_retries(self):
        clock = FakeClock()

        def _sleep(secs):
            clock.now = clock.now + secs

        store = InMemoryPolicyStore(new_document([self.foreign_a]), rejected_writes=10)
        reconciler = self._reconciler(store, max_attempts=10, backoff_in_secs=1.0, sleep=_sleep)

        outcome = reconciler.reconcile(self._create(self.owned_b), Deadline.after(2.5, clock))

        assert not outcome.success
        assert outcome.reason == "deadline exceeded"
        # 1s + 1.5s (capped by the deadline) of backoff leaves no time for a third cycle
        assert store.replace_count == 2
        assert store.document["Statement"] == [self.foreign_a]

    def test_invalid_max_attempts(self):
        with pytest.raises(ValueError):
            Reconciler(InMemoryPolicyStore(), max_attempts=0)

    def test_concurrent_reconciliations_keep_every_owner(self):
        store = InMemoryPolicyStore(new_document([self.foreign_a]))
        owners = [f"Owner{i}" for i in range(8)]

        def _run(sid: str):
            return self._reconciler(store, max_attempts=100, backoff_in_secs=0).reconcile(
                ReconciliationRequest(ReconciliationOperation.CREATE, [_statement(sid)], f"req-{sid}")
            )

        with concurrent.futures.ThreadPoolExecutor(max_workers=len(owners)) as executor:
            outcomes = list(executor.map(_run, owners))

        assert all(outcome.success for outcome in outcomes)
        statements = store.document["Statement"]
        assert statements[0] == self.foreign_a
        assert sorted(s["Sid"] for s in statements[1:]) == sorted(owners)

    def test_concurrent_first_creates_keep_every_owner(self):
        store = InMemoryPolicyStore(None)
        owners = [f"Owner{i}" for i in range(8)]

        def _run(sid: str):
            return self._reconciler(store, max_attempts=100, backoff_in_secs=0).reconcile(
                ReconciliationRequest(ReconciliationOperation.CREATE, [_statement(sid)], f"req-{sid}")
            )

        with concurrent.futures.ThreadPoolExecutor(max_workers=len(owners)) as executor:
            outcomes = list(executor.map(_run, owners))

        assert all(outcome.success for outcome in outcomes)
        assert sorted(s["Sid"] for s in store.document["Statement"]) == sorted(owners)
        # only one of them creates the document from scratch
        assert len([d for d in store.written_documents if len(d["Statement"]) == 1]) == 1
