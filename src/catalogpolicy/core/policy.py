# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

"""Policy document primitives.

A policy document is kept in its JSON form (``dict``) all the way to the store. Statements are opaque values keyed
by their ``Sid``; no other statement field is inspected or transformed here.
"""

import copy
import json
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from catalogpolicy.core.errors import MalformedInput

POLICY_VERSION = "2012-10-17"
VERSION_KEY = "Version"
STATEMENT_KEY = "Statement"
SID_KEY = "Sid"

Statement = Dict[str, Any]
PolicyDocument = Dict[str, Any]


def new_document(statements: Sequence[Statement], base: Optional[PolicyDocument] = None) -> PolicyDocument:
    """Create a document with the given statements, carrying over the other top-level keys (e.g 'Id') of 'base'."""
    document: PolicyDocument = {VERSION_KEY: POLICY_VERSION}
    if base:
        document.update({key: value for key, value in base.items() if key != STATEMENT_KEY})
        document.setdefault(VERSION_KEY, POLICY_VERSION)
    document[STATEMENT_KEY] = list(statements)
    return document


def get_statements(document: Optional[PolicyDocument]) -> List[Statement]:
    if not document:
        return []
    statements = document.get(STATEMENT_KEY, [])
    # IAM grammar allows a single statement object in place of the list
    if isinstance(statements, dict):
        return [statements]
    return list(statements)


def get_sid(statement: Statement) -> Optional[str]:
    return statement.get(SID_KEY, None) if isinstance(statement, dict) else None


def serialize_statements(statements: Sequence[Statement]) -> str:
    return json.dumps(list(statements), sort_keys=True, separators=(",", ":"))


def statements_equal(left: Sequence[Statement], right: Sequence[Statement]) -> bool:
    return serialize_statements(left) == serialize_statements(right)


def partition_statements(statements: Iterable[Statement], owned_sids: Set[str]) -> Tuple[List[Statement], List[Statement]]:
    """Split statements into (foreign, discarded), preserving relative order within each group."""
    foreign: List[Statement] = []
    discarded: List[Statement] = []
    for statement in statements:
        if get_sid(statement) in owned_sids:
            discarded.append(statement)
        else:
            foreign.append(statement)
    return foreign, discarded


def parse_statements(raw: Union[str, Sequence[Statement], None], allow_empty: bool = True) -> List[Statement]:
    """Parse and validate caller owned statements.

    :param raw: JSON array string (as passed in by CloudFormation resource properties) or an already decoded list.
    :param allow_empty: whether an absent/empty array is acceptable.
    :return: deep copy of the statements, in the given order.
    :raises MalformedInput: invalid JSON, non-object elements, missing/empty or duplicate 'Sid' values.
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        statements = []
    elif isinstance(raw, str):
        try:
            statements = json.loads(raw)
        except ValueError as err:
            raise MalformedInput(f"Statements is not valid JSON: {err}")
    else:
        statements = raw

    if not isinstance(statements, list):
        raise MalformedInput(f"Statements should be a JSON array, got {type(statements).__name__!r}.")
    if not statements and not allow_empty:
        raise MalformedInput("At least one statement is required.")

    seen_sids: Set[str] = set()
    for i, statement in enumerate(statements):
        if not isinstance(statement, dict):
            raise MalformedInput(f"Statement at index {i} is not a JSON object.")
        sid = statement.get(SID_KEY, None)
        if not isinstance(sid, str) or not sid:
            raise MalformedInput(f"Statement at index {i} is missing a non-empty {SID_KEY!r}.")
        if sid in seen_sids:
            raise MalformedInput(f"Duplicate {SID_KEY} {sid!r} in statements.")
        seen_sids.add(sid)

    return copy.deepcopy(statements)
