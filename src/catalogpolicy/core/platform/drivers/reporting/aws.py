# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import json
import logging
from enum import Enum, unique
from typing import Any, Dict, Optional

import requests
from overrides import overrides

from catalogpolicy.core.reconciliation import ReconciliationOutcome
from catalogpolicy.core.reporting import OutcomeReporter
from catalogpolicy.utils.url_validation import validate_callback_url

logger = logging.getLogger(__name__)

# CloudFormation rejects response objects larger than 4096 bytes
MAX_REASON_LENGTH = 2048
DEFAULT_RESPONSE_TIMEOUT_IN_SECS = 10


@unique
class CloudFormationResponseStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class CloudFormationResponseReporter(OutcomeReporter):
    """Sends the outcome of a custom resource invocation to the pre-signed 'ResponseURL' of the CloudFormation event.

    One instance per invocation. 'StackId', 'RequestId' and 'LogicalResourceId' are echoed verbatim from the event.
    Delivery is attempted once; failures are logged and swallowed since there is nowhere else to report them.
    """

    def __init__(
        self,
        response_url: str,
        stack_id: Optional[str],
        request_id: Optional[str],
        logical_resource_id: Optional[str],
        timeout_in_secs: float = DEFAULT_RESPONSE_TIMEOUT_IN_SECS,
    ) -> None:
        self._response_url = response_url
        self._stack_id = stack_id
        self._request_id = request_id
        self._logical_resource_id = logical_resource_id
        self._timeout_in_secs = timeout_in_secs
        self._reported = False

    @property
    def reported(self) -> bool:
        return self._reported

    def create_body(self, outcome: ReconciliationOutcome) -> Dict[str, Any]:
        status = CloudFormationResponseStatus.SUCCESS if outcome.success else CloudFormationResponseStatus.FAILED
        return {
            "Status": status.value,
            "Reason": (outcome.reason or "")[:MAX_REASON_LENGTH],
            "PhysicalResourceId": outcome.physical_resource_id,
            "StackId": self._stack_id,
            "RequestId": self._request_id,
            "LogicalResourceId": self._logical_resource_id,
        }

    @overrides
    def report(self, outcome: ReconciliationOutcome) -> bool:
        if self._reported:
            logger.critical("Outcome of request %r has already been reported! Ignoring %r.", self._request_id, outcome)
            return False
        self._reported = True

        if not validate_callback_url(self._response_url):
            logger.critical("Cannot report outcome %r, response URL validation failed.", outcome)
            return False

        body_dict = self.create_body(outcome)
        body = json.dumps(body_dict).encode("utf-8")
        # pre-signed S3 URL, signature does not cover a content-type
        headers = {"content-type": "", "content-length": str(len(body))}
        try:
            response = requests.put(url=self._response_url, data=body, headers=headers, timeout=self._timeout_in_secs)
            response.raise_for_status()
        except requests.exceptions.HTTPError as errh:
            logger.error("A HTTP error occurred with status: %r when sending the response to CloudFormation", errh)
            return False
        except requests.exceptions.ConnectionError as errc:
            logger.error("A Connecting Error occurred when sending the response to CloudFormation: %r", errc)
            return False
        except requests.exceptions.Timeout as errt:
            logger.error("A Timeout Error occurred when sending the response to CloudFormation: %r", errt)
            return False
        except requests.exceptions.RequestException as err:
            logger.error("An Unknown Error occurred when sending the response to CloudFormation: %r", err)
            return False

        logger.info("Reported %s for request %r (status code: %d).", body_dict["Status"], self._request_id, response.status_code)
        return True
