# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import logging
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, WaiterError

module_logger = logging.getLogger(__name__)

# botocore would otherwise retry throttling and 5xx errors internally. Retry policy of a reconciliation belongs to the
# reconciler (conflicts) and to the orchestrator (everything else).
NO_RETRY_ATTEMPTS = 1
DEFAULT_CONNECT_TIMEOUT_IN_SECS = 5
DEFAULT_READ_TIMEOUT_IN_SECS = 20


def get_code_for_exception(error) -> str:
    if isinstance(error, ClientError) and "Code" in error.response.get("Error", {}):
        return error.response["Error"]["Code"]
    elif isinstance(error, WaiterError) and "Error" in error.last_response:
        return error.last_response["Error"]["Code"]
    elif hasattr(error, "error_code"):
        return error.error_code

    return error.__class__.__name__


def get_message_for_exception(error) -> str:
    if isinstance(error, ClientError):
        message = error.response.get("Error", {}).get("Message", None)
        if message:
            return f"{get_code_for_exception(error)}: {message}"
    return str(error) or error.__class__.__name__


def is_transport_exception(error) -> bool:
    """ClientError (service side) and BotoCoreError (credentials, endpoint, connection, timeouts) hierarchy"""
    return isinstance(error, (ClientError, BotoCoreError))


def get_session(region: Optional[str] = None) -> boto3.Session:
    """Wrapper around boto3.Session() using system defaults for credentials (env, Lambda execution role, ~/.aws)."""
    return boto3.Session(region_name=region) if region else boto3.Session()


def create_client(
    session: boto3.Session,
    service_name: str,
    region: Optional[str] = None,
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_IN_SECS,
    read_timeout: float = DEFAULT_READ_TIMEOUT_IN_SECS,
):
    config = Config(
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
        retries={"max_attempts": NO_RETRY_ATTEMPTS, "mode": "standard"},
    )
    module_logger.debug("Creating %s client (region=%s, config=%r).", service_name, region or session.region_name, config)
    if region:
        return session.client(service_name=service_name, region_name=region, config=config)
    return session.client(service_name=service_name, config=config)
