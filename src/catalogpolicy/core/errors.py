# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

from typing import Optional

# Error taxonomy of policy reconciliation
# ---------------------------------------
# Only ConflictError is recovered locally (by re-running the fetch/merge/write cycle). Every other kind terminates the
# invocation and is reported to the orchestrator as a failed outcome.


class PolicyReconciliationError(Exception):
    pass


class PolicyStoreError(PolicyReconciliationError):
    """Base for errors raised by a policy store. Keeps the error code of the underlying service (if any)."""

    def __init__(self, message: str, error_code: Optional[str] = None) -> None:
        super().__init__(message)
        self.error_code = error_code


class NotFoundError(PolicyStoreError):
    """No policy document exists in the store. This is a valid state, normalized to an empty document by callers."""


class ConflictError(PolicyStoreError):
    """The store rejected a conditional write since the document changed after it was fetched."""


class TransportError(PolicyStoreError):
    """Auth, network, throttling or malformed response. Fatal for the current invocation."""


class DeadlineExceeded(PolicyReconciliationError):
    def __init__(self, message: str = "deadline exceeded") -> None:
        super().__init__(message)


class MalformedInput(PolicyReconciliationError, ValueError):
    """Invocation payload cannot be turned into a reconciliation request. Detected before any remote call."""
