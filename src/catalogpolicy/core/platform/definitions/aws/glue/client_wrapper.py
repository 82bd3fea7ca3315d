# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import logging
from enum import Enum, unique
from typing import Any, Dict, Optional, Tuple

from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

# refer
#   https://docs.aws.amazon.com/glue/latest/webapi/API_PutResourcePolicy.html
#   https://docs.aws.amazon.com/glue/latest/webapi/API_DeleteResourcePolicy.html
GLUE_NOT_FOUND_ERRORS = ["EntityNotFoundException"]
# 'PolicyHashCondition' or 'PolicyExistsCondition' mismatch and concurrent writers
GLUE_CONFLICT_ERRORS = ["ConditionCheckFailureException", "ConcurrentModificationException"]


@unique
class GlueHybridAccess(str, Enum):
    """'EnableHybrid' param of PutResourcePolicy. TRUE keeps Lake Formation hybrid access mode working alongside the
    resource policy (required when other parties still grant access through the catalog policy)."""

    TRUE = "TRUE"
    FALSE = "FALSE"


@unique
class GluePolicyExistsCondition(str, Enum):
    """'PolicyExistsCondition' param of PutResourcePolicy. Used in place of a hash condition when there was no policy to
    take the hash of, so that a policy created by another party in the meantime is not overwritten."""

    MUST_EXIST = "MUST_EXIST"
    NOT_EXIST = "NOT_EXIST"
    NONE = "NONE"


def get_catalog_policy(glue_client, resource_arn: Optional[str] = None) -> Tuple[Optional[str], Optional[str]]:
    """Refer
        https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/glue/client/get_resource_policy.html

    :return Tuple(PolicyInJson, PolicyHash), both None if the catalog has no resource policy
    """
    kwargs: Dict[str, Any] = {"ResourceArn": resource_arn} if resource_arn else {}
    try:
        response = glue_client.get_resource_policy(**kwargs)
    except ClientError as err:
        if err.response["Error"]["Code"] not in GLUE_NOT_FOUND_ERRORS:
            logger.info("Couldn't get Glue resource policy (resource=%s).", resource_arn or "catalog")
            raise
        return None, None

    policy_in_json = response.get("PolicyInJson", None)
    if not policy_in_json:
        return None, None
    return policy_in_json, response.get("PolicyHash", None)


def put_catalog_policy(
    glue_client,
    policy_in_json: str,
    policy_hash_condition: Optional[str] = None,
    enable_hybrid: GlueHybridAccess = GlueHybridAccess.TRUE,
    resource_arn: Optional[str] = None,
) -> Optional[str]:
    """Overwrite the resource policy, conditionally on 'policy_hash_condition'. Without a hash condition, the policy is
    created only if there is none yet (ConditionCheckFailureException otherwise).

    :return new 'PolicyHash'
    """
    kwargs: Dict[str, Any] = {"PolicyInJson": policy_in_json, "EnableHybrid": GlueHybridAccess(enable_hybrid).value}
    if policy_hash_condition:
        kwargs["PolicyHashCondition"] = policy_hash_condition
    else:
        kwargs["PolicyExistsCondition"] = GluePolicyExistsCondition.NOT_EXIST.value
    if resource_arn:
        kwargs["ResourceArn"] = resource_arn
    try:
        response = glue_client.put_resource_policy(**kwargs)
    except ClientError:
        logger.info("Couldn't put Glue resource policy (resource=%s).", resource_arn or "catalog")
        raise
    return response.get("PolicyHash", None)


def delete_catalog_policy(glue_client, policy_hash_condition: Optional[str] = None, resource_arn: Optional[str] = None) -> None:
    kwargs: Dict[str, Any] = {}
    if policy_hash_condition:
        kwargs["PolicyHashCondition"] = policy_hash_condition
    if resource_arn:
        kwargs["ResourceArn"] = resource_arn
    try:
        glue_client.delete_resource_policy(**kwargs)
    except ClientError:
        logger.info("Couldn't delete Glue resource policy (resource=%s).", resource_arn or "catalog")
        raise
