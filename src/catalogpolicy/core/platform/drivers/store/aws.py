# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import json
import logging
from typing import Optional

import boto3
from overrides import overrides

from catalogpolicy.core.errors import ConflictError, NotFoundError, TransportError
from catalogpolicy.core.policy import STATEMENT_KEY, PolicyDocument, get_statements
from catalogpolicy.core.store import FetchedPolicy, PolicyStore

from ...definitions.aws.common import create_client, get_code_for_exception, get_message_for_exception, is_transport_exception
from ...definitions.aws.glue.client_wrapper import (
    GLUE_CONFLICT_ERRORS,
    GLUE_NOT_FOUND_ERRORS,
    GlueHybridAccess,
    delete_catalog_policy,
    get_catalog_policy,
    put_catalog_policy,
)

module_logger = logging.getLogger(__name__)


class GlueCatalogPolicyStore(PolicyStore):
    """Glue Data Catalog resource policy as a policy store.

    'PolicyHash' is used as the version token. Glue does not accept a policy without statements, so replacing the
    document with an empty one deletes the resource policy (under the same hash condition).

    botocore errors are translated here, nothing above this layer sees them.
    """

    def __init__(self, glue_client, enable_hybrid: GlueHybridAccess = GlueHybridAccess.TRUE, resource_arn: Optional[str] = None) -> None:
        self._glue = glue_client
        self._enable_hybrid = GlueHybridAccess(enable_hybrid)
        self._resource_arn = resource_arn

    @classmethod
    def from_session(
        cls,
        session: boto3.Session,
        region: Optional[str] = None,
        enable_hybrid: GlueHybridAccess = GlueHybridAccess.TRUE,
        resource_arn: Optional[str] = None,
    ) -> "GlueCatalogPolicyStore":
        return cls(create_client(session, "glue", region), enable_hybrid, resource_arn)

    @property
    def resource(self) -> str:
        return self._resource_arn or "catalog"

    @overrides
    def fetch(self) -> FetchedPolicy:
        try:
            policy_in_json, policy_hash = get_catalog_policy(self._glue, self._resource_arn)
        except Exception as error:
            if is_transport_exception(error):
                raise TransportError(get_message_for_exception(error), get_code_for_exception(error))
            raise

        if policy_in_json is None:
            raise NotFoundError(f"Glue {self.resource} has no resource policy.", GLUE_NOT_FOUND_ERRORS[0])

        try:
            document = json.loads(policy_in_json)
        except ValueError as err:
            raise TransportError(f"Malformed resource policy returned by Glue {self.resource}: {err}")
        if not isinstance(document, dict) or not isinstance(document.get(STATEMENT_KEY, []), (list, dict)):
            raise TransportError(f"Malformed resource policy returned by Glue {self.resource}: {policy_in_json!r}")

        module_logger.info(
            "Fetched Glue %s policy with %d statements (hash=%s).", self.resource, len(get_statements(document)), policy_hash
        )
        return FetchedPolicy(document, policy_hash)

    @overrides
    def replace(self, document: PolicyDocument, precondition: Optional[str]) -> None:
        try:
            if get_statements(document):
                new_hash = put_catalog_policy(self._glue, json.dumps(document), precondition, self._enable_hybrid, self._resource_arn)
                module_logger.info("Updated Glue %s policy (hash: %s -> %s).", self.resource, precondition, new_hash)
            else:
                delete_catalog_policy(self._glue, precondition, self._resource_arn)
                module_logger.info("Deleted Glue %s policy (hash=%s) since no statements are left.", self.resource, precondition)
        except Exception as error:
            if not is_transport_exception(error):
                raise
            error_code = get_code_for_exception(error)
            message = get_message_for_exception(error)
            if error_code in GLUE_CONFLICT_ERRORS:
                raise ConflictError(message, error_code)
            if error_code in GLUE_NOT_FOUND_ERRORS:
                if precondition:
                    # removed by another party after our fetch
                    raise ConflictError(message, error_code)
                if not get_statements(document):
                    module_logger.info("Glue %s policy is already gone.", self.resource)
                    return
            raise TransportError(message, error_code)
