# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

from setuptools import find_packages, setup
from src.catalogpolicy import __version__ as version

# Lambda Python runtime already provides boto3, bundle the rest along with the handler
REQUIRED_PACKAGES = [
    'boto3 >= 1.34.0',
    'requests >= 2.32.4',
    'overrides >= 3.1.0',
    'validators >= 0.11.0',
]

TEST_PACKAGES = [
    'pytest',
    'mock',
    'responses >= 0.23.3',
]

setup(
    name="catalogpolicy",
    python_requires=">=3.10",
    version=version,
    description="CloudFormation custom resource that merges owned statements into the shared AWS Glue Data Catalog resource policy.",
    keywords="aws cloudformation custom resource glue data catalog resource policy lake formation lambda",
    author="Amazon.com Inc.",
    license="Apache 2.0",

    packages=find_packages(where="src", exclude=("test",)),
    package_dir={"": "src"},
    install_requires=REQUIRED_PACKAGES,
    tests_require=TEST_PACKAGES,
    extras_require={"test": TEST_PACKAGES},
    test_suite='test',
)
