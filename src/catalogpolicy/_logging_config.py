# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import logging
import os
import sys

"""
Provide default logging setup
"""

LOG_DATE_FORMAT = "%m/%d/%Y %I:%M:%S %p"
LOG_FORMAT = "%(levelname)s | %(asctime)-15s | %(message)s"


def is_on_aws_lambda() -> bool:
    return bool(os.getenv("AWS_LAMBDA_FUNCTION_NAME", None))


def init_basic_logging(enable_console_logging=True, root_level=logging.INFO):
    logger = logging.getLogger()
    logger.setLevel(root_level)

    # Lambda runtime already attaches a handler that forwards stdout/stderr to CloudWatch Logs
    if enable_console_logging and not is_on_aws_lambda():
        console = logging.StreamHandler(sys.stdout)
        console.setLevel(root_level)
        console.setFormatter(logging.Formatter("%(asctime)s - %(name)-13s: %(levelname)-8s %(message)s"))
        logger.addHandler(console)

    # refer
    #   https://docs.python.org/3/library/logging.html#logging.basicConfig
    # for more details.
    logging.basicConfig(format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT, level=root_level)

    return logger
