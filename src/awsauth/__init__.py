# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""AWS Auth signs HTTP requests with AWS Signature Version 4 and sends them through
any HTTP client that implements :py:class:`awsauth.interfaces.http.HTTPClient`."""

from __future__ import annotations

from ._http import URI, AWSRequest, Field, Fields, HTTPResponse
from ._identity import AWSCredentialIdentity
from .client import AWSClient
from .credentials import (
    ChainedCredentialsResolver,
    EnvironmentCredentialsResolver,
    StaticCredentialsResolver,
)
from .request import SignedRequest
from .scope import SigningScope
from .signers import SigV4Signer

__license__ = "Apache-2.0"
__version__ = "0.1.0"

__all__ = (
    "URI",
    "AWSClient",
    "AWSCredentialIdentity",
    "AWSRequest",
    "ChainedCredentialsResolver",
    "EnvironmentCredentialsResolver",
    "Field",
    "Fields",
    "HTTPResponse",
    "SigV4Signer",
    "SignedRequest",
    "SigningScope",
    "StaticCredentialsResolver",
)
