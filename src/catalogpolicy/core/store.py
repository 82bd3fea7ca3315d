# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

from abc import ABC, abstractmethod
from typing import Optional

from catalogpolicy.core.entity import CoreData
from catalogpolicy.core.policy import PolicyDocument


class FetchedPolicy(CoreData):
    def __init__(self, document: PolicyDocument, version: Optional[str]) -> None:
        self.document = document
        # opaque revision token of the remote document (e.g Glue 'PolicyHash'), None if there was no document
        self.version = version


class PolicyStore(ABC):
    """Remote home of a shared policy document.

    Implementations keep no state between calls (no caching) and do not retry. Every call reflects the remote state at
    call time and acquires/releases its own transport resources.
    """

    @abstractmethod
    def fetch(self) -> FetchedPolicy:
        """Get the current document along with its version token.

        :raises NotFoundError: there is no document in the store.
        :raises TransportError: any other failure (auth, network, malformed response).
        """
        ...

    @abstractmethod
    def replace(self, document: PolicyDocument, precondition: Optional[str]) -> None:
        """Overwrite the document if the remote version still matches 'precondition'.

        A None precondition means there was no document to take the version of: the document is created only if there
        is still none (ConflictError otherwise).

        :raises ConflictError: remote version changed since the fetch that produced 'precondition'.
        :raises TransportError: any other failure.
        """
        ...
