# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""Credential scope and signing key derivation for SigV4."""

import datetime
import hmac
from dataclasses import dataclass
from hashlib import sha256

from .exceptions import MalformedHostException, MissingExpectedParameterException

SIGV4_TIMESTAMP_FORMAT: str = "%Y%m%dT%H%M%SZ"
SIGV4_DATE_FORMAT: str = "%Y%m%d"
SCOPE_TERMINATOR: str = "aws4_request"
DEFAULT_REGION: str = "us-east-1"


@dataclass(kw_only=True, frozen=True)
class SigningScope:
    """The region and service a signature is bound to."""

    region: str
    service: str

    def __post_init__(self) -> None:
        if not self.region or not self.service:
            raise MissingExpectedParameterException(
                "Both region and service are required to sign a request. Received "
                f"region={self.region!r}, service={self.service!r}."
            )

    @classmethod
    def from_host(cls, host: str) -> "SigningScope":
        """Infer a signing scope from an AWS style host name.

        The first label is taken as the service. A four label host such as
        ``sqs.eu-west-1.amazonaws.com`` carries the region in its second label; any
        other host defaults to ``us-east-1``. This follows AWS endpoint naming and
        will not hold for arbitrary hosts, so prefer an explicit scope.

        :param host: A host name, optionally with a ``:port`` suffix.
        :raises MalformedHostException: If the host has fewer than 3 labels.
        """
        hostname = host.rsplit(":", 1)[0] if ":" in host else host
        parts = hostname.split(".")
        if len(parts) < 3:
            raise MalformedHostException(
                f"Unable to infer a service and region from host {host!r}. The host "
                "must have at least 3 dot-separated labels, or an explicit "
                "SigningScope must be provided."
            )

        region = DEFAULT_REGION
        if len(parts) == 4:
            region = parts[1]
        return cls(region=region, service=parts[0])


def format_timestamp(timestamp: datetime.datetime) -> str:
    """Format a timestamp as ISO8601 basic, for example ``20110909T233600Z``."""
    return normalize_timestamp(timestamp).strftime(SIGV4_TIMESTAMP_FORMAT)


def format_date(timestamp: datetime.datetime) -> str:
    """Format the date portion of a timestamp, for example ``20110909``."""
    return normalize_timestamp(timestamp).strftime(SIGV4_DATE_FORMAT)


def normalize_timestamp(timestamp: datetime.datetime) -> datetime.datetime:
    """Convert ``timestamp`` to UTC. Naive values are assumed to already be UTC."""
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=datetime.UTC)
    return timestamp.astimezone(datetime.UTC)


def credential_scope(*, scope: SigningScope, timestamp: datetime.datetime) -> str:
    # Scope format: <YYYYMMDD>/<AWS Region>/<AWS Service>/aws4_request
    return f"{format_date(timestamp)}/{scope.region}/{scope.service}/{SCOPE_TERMINATOR}"


def derive_signing_key(
    *, secret_key: str, scope: SigningScope, timestamp: datetime.datetime
) -> bytes:
    """Derive the signing key for a single signature.

    In SigV4, a signing key is created that is scoped to a specific date, region and
    service. Each step's raw digest is the key for the next step.
    """
    # Components of Signing Key Calculation
    #
    # DateKey              = HMAC-SHA256("AWS4"+"<SecretAccessKey>", "<YYYYMMDD>")
    # DateRegionKey        = HMAC-SHA256(<DateKey>, "<aws-region>")
    # DateRegionServiceKey = HMAC-SHA256(<DateRegionKey>, "<aws-service>")
    # SigningKey = HMAC-SHA256(<DateRegionServiceKey>, "aws4_request")
    k_date = hmac_sha256(key=f"AWS4{secret_key}".encode(), value=format_date(timestamp))
    k_region = hmac_sha256(key=k_date, value=scope.region)
    k_service = hmac_sha256(key=k_region, value=scope.service)
    return hmac_sha256(key=k_service, value=SCOPE_TERMINATOR)


def hmac_sha256(*, key: bytes, value: str) -> bytes:
    return hmac.new(key=key, msg=value.encode(), digestmod=sha256).digest()
