# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
import logging
import os
from collections.abc import Sequence
from typing import Final

from ._identity import AWSCredentialIdentity
from .exceptions import MissingCredentialsException
from .interfaces.identity import AWSCredentialsIdentity, CredentialsResolver

logger: Final = logging.getLogger(__name__)


class EnvironmentCredentialsResolver(CredentialsResolver):
    """Resolves AWS Credentials from system environment variables."""

    def __init__(self) -> None:
        self._credentials: AWSCredentialIdentity | None = None

    def get_identity(self) -> AWSCredentialIdentity:
        if self._credentials is not None:
            return self._credentials

        access_key_id = os.getenv("AWS_ACCESS_KEY_ID")
        secret_access_key = os.getenv("AWS_SECRET_ACCESS_KEY")
        session_token = os.getenv("AWS_SESSION_TOKEN")

        if not access_key_id or not secret_access_key:
            raise MissingCredentialsException(
                "AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY are required"
            )

        self._credentials = AWSCredentialIdentity(
            access_key_id=access_key_id,
            secret_access_key=secret_access_key,
            session_token=session_token or None,
        )
        return self._credentials


class StaticCredentialsResolver(CredentialsResolver):
    """Resolve Static AWS Credentials."""

    def __init__(self, *, credentials: AWSCredentialIdentity) -> None:
        self._credentials = credentials

    def get_identity(self) -> AWSCredentialIdentity:
        return self._credentials


class ChainedCredentialsResolver(CredentialsResolver):
    """Attempts to resolve credentials by checking a sequence of sub-resolvers.

    If a nested resolver raises a :py:class:`MissingCredentialsException`, the next
    resolver in the chain will be attempted.
    """

    def __init__(self, resolvers: Sequence[CredentialsResolver]) -> None:
        """Construct a ChainedCredentialsResolver.

        :param resolvers: The sequence of resolvers to resolve credentials from.
        """
        self._resolvers = resolvers

    def get_identity(self) -> AWSCredentialsIdentity:
        logger.debug("Attempting to resolve credentials from resolver chain.")
        for resolver in self._resolvers:
            try:
                logger.debug(
                    "Attempting to resolve credentials from %s.", type(resolver)
                )
                return resolver.get_identity()
            except MissingCredentialsException as e:
                logger.debug(
                    "Failed to resolve credentials from %s: %s", type(resolver), e
                )

        raise MissingCredentialsException(
            "Failed to resolve credentials from resolver chain."
        )
