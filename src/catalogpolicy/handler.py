# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

"""CloudFormation custom resource handler for the Glue Data Catalog resource policy.

The declarative stack cannot merge statements into the catalog policy (it is shared with other stacks and services),
so this handler owns the statements passed in its resource properties and leaves the rest of the policy untouched.

Resource properties:
    Statements: JSON array (string or list) of statements, each with a unique 'Sid'.
    PolicyId: (optional) physical resource id to report. Defaults to the 'CATALOG_POLICY_ID' configuration.
"""

import logging
from typing import Any, Dict, Optional, Set

from catalogpolicy._logging_config import init_basic_logging
from catalogpolicy.config import HandlerConfiguration
from catalogpolicy.core.errors import MalformedInput
from catalogpolicy.core.platform.definitions.aws.common import get_session
from catalogpolicy.core.platform.drivers.reporting.aws import CloudFormationResponseReporter
from catalogpolicy.core.platform.drivers.store.aws import GlueCatalogPolicyStore
from catalogpolicy.core.policy import get_sid, parse_statements
from catalogpolicy.core.reconciler import Reconciler
from catalogpolicy.core.reconciliation import Deadline, ReconciliationOperation, ReconciliationOutcome, ReconciliationRequest
from catalogpolicy.core.reporting import OutcomeReporter
from catalogpolicy.core.store import PolicyStore

logger = logging.getLogger(__name__)

STATEMENTS_PROPERTY = "Statements"
POLICY_ID_PROPERTY = "PolicyId"

_logging_initialized = False


def _init_logging() -> None:
    global _logging_initialized
    if not _logging_initialized:
        init_basic_logging(True, HandlerConfiguration.log_level)
        _logging_initialized = True


def get_physical_resource_id(event: Dict[str, Any]) -> str:
    """Stable across invocations. A changing id would make CloudFormation delete the 'old' resource, which would
    remove the very statements that have just been written."""
    properties = event.get("ResourceProperties", None)
    if isinstance(properties, dict) and properties.get(POLICY_ID_PROPERTY, None):
        return str(properties[POLICY_ID_PROPERTY])
    return event.get("PhysicalResourceId", None) or HandlerConfiguration.policy_id


def build_request(event: Dict[str, Any]) -> ReconciliationRequest:
    """Turn the custom resource event into a reconciliation request.

    :raises MalformedInput: before any remote call is attempted.
    """
    operation = ReconciliationOperation.from_request_type(event.get("RequestType", None))
    request_id = event.get("RequestId", None)
    if not request_id:
        raise MalformedInput("'RequestId' is missing.")

    properties = event.get("ResourceProperties", None)
    if not isinstance(properties, dict):
        raise MalformedInput("'ResourceProperties' is missing or not an object.")
    statements = parse_statements(properties.get(STATEMENTS_PROPERTY, None))
    sids: Set[str] = {get_sid(statement) for statement in statements}

    if operation == ReconciliationOperation.DELETE:
        return ReconciliationRequest(operation, [], request_id, owned_sids=sids)

    if operation == ReconciliationOperation.UPDATE:
        old_properties = event.get("OldResourceProperties", None)
        if isinstance(old_properties, dict):
            try:
                retired_sids = {get_sid(s) for s in parse_statements(old_properties.get(STATEMENTS_PROPERTY, None))} - sids
            except MalformedInput as error:
                # previous revision got applied with these, cannot be fatal now. Its statements might leak though.
                logger.warning("Ignoring malformed statements of the previous resource properties: %s", error)
                retired_sids = set()
            if retired_sids:
                logger.info("Statements %s are not part of the resource anymore, they will be removed.", sorted(retired_sids))
            sids.update(retired_sids)

    return ReconciliationRequest(operation, statements, request_id, owned_sids=sids)


def create_deadline(context) -> Optional[Deadline]:
    if context is None or not hasattr(context, "get_remaining_time_in_millis"):
        return None
    budget_in_secs = context.get_remaining_time_in_millis() / 1000.0 - HandlerConfiguration.callback_reserve_in_secs
    return Deadline.after(max(budget_in_secs, 0.0))


def create_store() -> PolicyStore:
    return GlueCatalogPolicyStore.from_session(
        get_session(HandlerConfiguration.region),
        HandlerConfiguration.region,
        HandlerConfiguration.enable_hybrid,
        HandlerConfiguration.catalog_resource_arn,
    )


def create_reporter(event: Dict[str, Any]) -> OutcomeReporter:
    return CloudFormationResponseReporter(
        event.get("ResponseURL", None),
        event.get("StackId", None),
        event.get("RequestId", None),
        event.get("LogicalResourceId", None),
    )


def handle(
    event: Dict[str, Any],
    context=None,
    store: Optional[PolicyStore] = None,
    reporter: Optional[OutcomeReporter] = None,
) -> ReconciliationOutcome:
    """Reconcile and report the outcome exactly once, whichever step fails."""
    event = event if isinstance(event, dict) else dict()
    request_id = event.get("RequestId", None)
    physical_resource_id = get_physical_resource_id(event)
    reporter = reporter if reporter is not None else create_reporter(event)

    outcome: Optional[ReconciliationOutcome] = None
    try:
        request = build_request(event)
        deadline = create_deadline(context)
        reconciler = Reconciler(
            store if store is not None else create_store(),
            physical_resource_id,
            HandlerConfiguration.max_attempts,
            HandlerConfiguration.backoff_in_secs,
        )
        outcome = reconciler.reconcile(request, deadline)
    except MalformedInput as error:
        logger.error("Malformed custom resource event (request=%r): %s", request_id, error)
        outcome = ReconciliationOutcome.failed(request_id, physical_resource_id, f"malformed input: {error}")
    except Exception as error:
        logger.error("Unexpected error while handling request %r!", request_id, exc_info=True)
        outcome = ReconciliationOutcome.failed(request_id, physical_resource_id, f"internal error: {error}")
    finally:
        if outcome is None:
            # interrupted by a BaseException, still let the orchestrator know before it propagates
            outcome = ReconciliationOutcome.failed(request_id, physical_resource_id, "internal error: invocation interrupted")
        reporter.report(outcome)

    return outcome


def lambda_handler(event, context):
    """
    Entrypoint to Lambda.
    :param event: CloudFormation custom resource event
    :param context: Context object containing Lambda metadata
    """
    _init_logging()
    event = event if isinstance(event, dict) else dict()
    logger.info(
        "Received %s request %r for %r.", event.get("RequestType", None), event.get("RequestId", None), event.get("LogicalResourceId", None)
    )
    outcome = handle(event, context)
    return {
        "Status": "SUCCESS" if outcome.success else "FAILED",
        "Reason": outcome.reason or "",
        "PhysicalResourceId": outcome.physical_resource_id,
    }
