# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import pytest

from catalogpolicy.config import HandlerConfiguration

TESTING_KEYNAME = "testing"


@pytest.fixture(autouse=True)
def reset_handler_configuration():
    HandlerConfiguration.reset()
    yield
    HandlerConfiguration.reset()


@pytest.fixture
def aws_credentials(monkeypatch):
    # make sure that a misconfigured test can never reach a real account
    for key in ["AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_SECURITY_TOKEN", "AWS_SESSION_TOKEN"]:
        monkeypatch.setenv(key, TESTING_KEYNAME)
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
