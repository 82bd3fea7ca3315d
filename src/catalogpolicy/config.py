# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import logging
import os
from typing import Any, Callable, Dict, Optional

from catalogpolicy.core.platform.definitions.aws.glue.client_wrapper import GlueHybridAccess
from catalogpolicy.core.reconciler import DEFAULT_BACKOFF_IN_SECS, DEFAULT_MAX_ATTEMPTS, DEFAULT_PHYSICAL_RESOURCE_ID

logger = logging.getLogger(__name__)


def _to_int(key: str, value: Any) -> int:
    try:
        result = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid value {value!r} for {key!r}! An integer is expected.")
    if result < 1:
        raise ValueError(f"Invalid value {value!r} for {key!r}! A positive integer is expected.")
    return result


def _to_float(key: str, value: Any) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid value {value!r} for {key!r}! A number is expected.")
    if result < 0:
        raise ValueError(f"Invalid value {value!r} for {key!r}! A non-negative number is expected.")
    return result


def _to_hybrid(key: str, value: Any) -> GlueHybridAccess:
    if isinstance(value, GlueHybridAccess):
        return value
    try:
        return GlueHybridAccess(str(value).upper())
    except ValueError:
        raise ValueError(f"Invalid value {value!r} for {key!r}! Expected one of {[h.value for h in GlueHybridAccess]}.")


def _to_log_level(key: str, value: Any) -> int:
    if isinstance(value, int):
        return value
    level = logging.getLevelName(str(value).upper())
    if not isinstance(level, int):
        raise ValueError(f"Invalid log level {value!r} for {key!r}!")
    return level


class _HandlerConfiguration(type):
    def __init__(cls, *args, **kwargs):
        cls._conf = dict()

    @property
    def conf(cls) -> Dict[str, Any]:
        return cls._conf

    def _get(cls, key: str, default: Any, converter: Optional[Callable[[str, Any], Any]] = None) -> Any:
        """First checks whether the user has set the value programmatically, then falls back to environment variable"""
        if key in cls._conf:
            value = cls._conf[key]
        else:
            value = os.getenv(key, None)
            if value is None or value == "":
                return default
        return converter(key, value) if converter else value

    @property
    def policy_id(cls) -> str:
        return cls._get(cls.POLICY_ID, DEFAULT_PHYSICAL_RESOURCE_ID)

    @policy_id.setter
    def policy_id(cls, value: str) -> None:
        cls._conf[cls.POLICY_ID] = value

    @property
    def max_attempts(cls) -> int:
        return cls._get(cls.MAX_ATTEMPTS, DEFAULT_MAX_ATTEMPTS, _to_int)

    @max_attempts.setter
    def max_attempts(cls, value: int) -> None:
        cls._conf[cls.MAX_ATTEMPTS] = _to_int(cls.MAX_ATTEMPTS, value)

    @property
    def backoff_in_secs(cls) -> float:
        return cls._get(cls.BACKOFF_IN_SECS, DEFAULT_BACKOFF_IN_SECS, _to_float)

    @backoff_in_secs.setter
    def backoff_in_secs(cls, value: float) -> None:
        cls._conf[cls.BACKOFF_IN_SECS] = _to_float(cls.BACKOFF_IN_SECS, value)

    @property
    def enable_hybrid(cls) -> GlueHybridAccess:
        return cls._get(cls.ENABLE_HYBRID, GlueHybridAccess.TRUE, _to_hybrid)

    @enable_hybrid.setter
    def enable_hybrid(cls, value: str) -> None:
        cls._conf[cls.ENABLE_HYBRID] = _to_hybrid(cls.ENABLE_HYBRID, value)

    @property
    def callback_reserve_in_secs(cls) -> float:
        """Part of the Lambda's remaining time kept aside for reporting the outcome."""
        return cls._get(cls.CALLBACK_RESERVE_IN_SECS, cls.DEFAULT_CALLBACK_RESERVE_IN_SECS, _to_float)

    @callback_reserve_in_secs.setter
    def callback_reserve_in_secs(cls, value: float) -> None:
        cls._conf[cls.CALLBACK_RESERVE_IN_SECS] = _to_float(cls.CALLBACK_RESERVE_IN_SECS, value)

    @property
    def log_level(cls) -> int:
        return cls._get(cls.LOG_LEVEL, logging.INFO, _to_log_level)

    @log_level.setter
    def log_level(cls, value: str) -> None:
        cls._conf[cls.LOG_LEVEL] = value

    @property
    def catalog_resource_arn(cls) -> Optional[str]:
        """Glue resource whose policy is reconciled. Default (None) is the account's Data Catalog."""
        return cls._get(cls.CATALOG_RESOURCE_ARN, None)

    @catalog_resource_arn.setter
    def catalog_resource_arn(cls, value: Optional[str]) -> None:
        cls._conf[cls.CATALOG_RESOURCE_ARN] = value

    @property
    def region(cls) -> Optional[str]:
        return cls._get(cls.REGION, None)

    @region.setter
    def region(cls, value: Optional[str]) -> None:
        cls._conf[cls.REGION] = value

    def reset(cls) -> None:
        cls._conf.clear()


class HandlerConfiguration(metaclass=_HandlerConfiguration):
    """Configuration of the catalog policy handler.

    Each key can be set programmatically (e.g `HandlerConfiguration.max_attempts = 3`) or via the environment variable
    of the same name (Lambda function environment).
    """

    POLICY_ID = "CATALOG_POLICY_ID"
    MAX_ATTEMPTS = "CATALOG_POLICY_MAX_ATTEMPTS"
    BACKOFF_IN_SECS = "CATALOG_POLICY_BACKOFF_SECS"
    ENABLE_HYBRID = "CATALOG_POLICY_ENABLE_HYBRID"
    CALLBACK_RESERVE_IN_SECS = "CATALOG_POLICY_CALLBACK_RESERVE_SECS"
    LOG_LEVEL = "CATALOG_POLICY_LOG_LEVEL"
    CATALOG_RESOURCE_ARN = "CATALOG_POLICY_RESOURCE_ARN"
    REGION = "AWS_REGION"

    DEFAULT_CALLBACK_RESERVE_IN_SECS = 5.0
