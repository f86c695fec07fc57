# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0


class BaseAWSAuthException(Exception):
    """Top-level exception to capture request signing errors."""


class MissingExpectedParameterException(BaseAWSAuthException, ValueError):
    """Signing requires specific scope values to be present."""


class MalformedHostException(BaseAWSAuthException, ValueError):
    """The request host is too short to infer a signing region and service."""


class PayloadReadException(BaseAWSAuthException):
    """The request body could not be read to compute the payload hash."""


class MissingCredentialsException(BaseAWSAuthException):
    """No credentials could be resolved for signing."""


class AWSHTTPException(BaseAWSAuthException):
    """An error occurred while sending a request over the wire."""
