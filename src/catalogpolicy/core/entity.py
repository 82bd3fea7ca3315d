# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0


class CoreData:
    """Provide basic dunder implementations for the value objects exchanged between the reconciler, the policy store
    and the outcome reporter.

    Payloads carried by these entities (policy statements) are plain JSON-like dicts, so entities are compared by value
    but are intentionally not hashable.
    """

    __hash__ = None

    def __eq__(self, other) -> bool:
        return type(other) is type(self) and self.__dict__ == other.__dict__

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({','.join([f'{name}={repr(value)}' for name, value in self.__dict__.items()])})"

    def __str__(self) -> str:
        return self.__repr__()
