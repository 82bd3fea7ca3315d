# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

from abc import ABC, abstractmethod

from catalogpolicy.core.reconciliation import ReconciliationOutcome


class OutcomeReporter(ABC):
    """Sink for the terminal outcome of a reconciliation (e.g the CloudFormation response URL).

    Called exactly once per invocation. Implementations must not raise on delivery failures, those are terminal and
    only logged.
    """

    @abstractmethod
    def report(self, outcome: ReconciliationOutcome) -> bool:
        """Returns True if the outcome got delivered."""
        ...
