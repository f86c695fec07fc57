# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
import logging
from typing import Final

from ._http import AWSRequest
from .credentials import EnvironmentCredentialsResolver
from .interfaces.http import HTTPClient, HTTPRequestConfiguration, Response
from .interfaces.identity import CredentialsResolver
from .request import SignedRequest
from .scope import SigningScope
from .signers import SigV4Signer

logger: Final = logging.getLogger(__name__)


class AWSClient:
    """Signs requests with SigV4 and sends them through an HTTP client.

    Retries, timeouts, and cancellation are left to the HTTP client.
    """

    def __init__(
        self,
        http_client: HTTPClient,
        *,
        credentials_resolver: CredentialsResolver | None = None,
        scope: SigningScope | None = None,
        signer: SigV4Signer | None = None,
    ) -> None:
        """
        :param http_client: The transport signed requests are handed to.
        :param credentials_resolver: Source of the credentials to sign with. Defaults
            to an :py:class:`EnvironmentCredentialsResolver`.
        :param scope: The region and service to sign for. Inferred from each request's
            host when omitted.
        :param signer: The signer to use. Defaults to a new :py:class:`SigV4Signer`.
        """
        self._http_client = http_client
        if credentials_resolver is None:
            credentials_resolver = EnvironmentCredentialsResolver()
        self._credentials_resolver = credentials_resolver
        self._scope = scope
        self._signer = signer if signer is not None else SigV4Signer()

    @classmethod
    def from_env(
        cls, http_client: HTTPClient, *, scope: SigningScope | None = None
    ) -> "AWSClient":
        """Create a client that signs with credentials from ``AWS_ACCESS_KEY_ID``,
        ``AWS_SECRET_ACCESS_KEY`` and, when set, ``AWS_SESSION_TOKEN``."""
        return cls(
            http_client,
            credentials_resolver=EnvironmentCredentialsResolver(),
            scope=scope,
        )

    def send(
        self,
        request: AWSRequest,
        *,
        request_config: HTTPRequestConfiguration | None = None,
    ) -> Response:
        """Sign ``request`` in place and send it.

        The HTTP client's response is returned, and its exceptions are raised, as is.

        :param request: The request to sign and send.
        :param request_config: Configuration passed through to the HTTP client.
        :raises MalformedHostException: If no scope was configured and one cannot be
            inferred from the request host.
        """
        identity = self._credentials_resolver.get_identity()
        signed_request = SignedRequest(
            request, identity, scope=self._scope, signer=self._signer
        )
        signed_request.sign()
        logger.debug(
            "Sending %s request signed for %s to %s",
            request.method,
            signed_request.scope,
            request.host,
        )
        return self._http_client.send(request, request_config=request_config)
