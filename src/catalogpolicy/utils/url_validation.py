# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import logging
from ipaddress import ip_address
from urllib.parse import urlparse

from validators import domain

logger = logging.getLogger(__name__)

ALLOWED_CALLBACK_SCHEMES = ["https"]


def validate_callback_url(url: str) -> bool:
    """Accept https URLs with a domain name host only (the orchestrator's pre-signed response URL).

    URLs with an IP address or localhost as the host are refused (SSRF).
    """
    if not url or not isinstance(url, str):
        logger.critical("Callback URL is missing.")
        return False

    url_object = urlparse(url)
    if url_object.scheme.lower() not in ALLOWED_CALLBACK_SCHEMES:
        logger.critical("Callback URL scheme %r is not allowed.", url_object.scheme)
        return False

    host = url_object.hostname or ""
    if host.lower() == "localhost":
        logger.critical("Potential SSRF attack by providing localhost in callback URL.")
        return False
    try:
        ip_address(host)
        logger.critical("Potential SSRF attack by providing an IP address in callback URL.")
        return False
    except ValueError:
        pass

    if domain(host):
        return True
    logger.critical("Callback URL validation: invalid domain name %r.", host)
    return False
