# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
import datetime
import io
from copy import deepcopy

from ._http import AWSRequest
from .exceptions import PayloadReadException
from .interfaces.identity import AWSCredentialsIdentity
from .interfaces.io import Seekable
from .scope import SigningScope, normalize_timestamp
from .signers import SigV4Signer


class SignedRequest:
    """A request bound to the credentials, scope, and time it is signed with.

    The signing time is fixed when the wrapper is created, so repeated calls to
    :py:meth:`signature` and :py:meth:`sign` agree with each other. A request body
    that can only be read once is copied into a ``BytesIO`` before anything hashes
    it, including a body assigned after construction, so it can still be sent.
    """

    def __init__(
        self,
        request: AWSRequest,
        identity: AWSCredentialsIdentity,
        *,
        scope: SigningScope | None = None,
        timestamp: datetime.datetime | None = None,
        signer: SigV4Signer | None = None,
    ) -> None:
        """
        :param request: The request to sign. :py:meth:`sign` mutates its fields.
        :param identity: The credentials to sign with.
        :param scope: The region and service to sign for. Inferred from the request
            host when omitted.
        :param timestamp: The signing time. Defaults to the current time in UTC.
        :param signer: The signer to use. Defaults to a new :py:class:`SigV4Signer`.
        :raises MalformedHostException: If ``scope`` is omitted and the host is too
            short to infer one from.
        :raises PayloadReadException: If a one-shot body could not be buffered.
        """
        if scope is None:
            scope = SigningScope.from_host(request.destination.host)
        if timestamp is None:
            timestamp = datetime.datetime.now(datetime.UTC)

        self._request = request
        self._identity = identity
        self._scope = scope
        self._timestamp = normalize_timestamp(timestamp)
        self._signer = signer if signer is not None else SigV4Signer()
        _buffer_body(request)

    @property
    def request(self) -> AWSRequest:
        return self._request

    @property
    def identity(self) -> AWSCredentialsIdentity:
        return self._identity

    @property
    def scope(self) -> SigningScope:
        return self._scope

    @property
    def timestamp(self) -> datetime.datetime:
        return self._timestamp

    def signature(self) -> str:
        """Compute the hex signature ``sign`` would apply, without mutating the
        request."""
        return self._signer.signature(
            request=self._prepared_request(),
            identity=self._identity,
            scope=self._scope,
            timestamp=self._timestamp,
        )

    def canonical_request(self) -> str:
        return self._signer.canonical_request(request=self._prepared_request())

    def string_to_sign(self) -> str:
        return self._signer.string_to_sign(
            canonical_request=self.canonical_request(),
            scope=self._scope,
            timestamp=self._timestamp,
        )

    def sign(self) -> AWSRequest:
        """Set the default fields and the ``Authorization`` field on the request."""
        _buffer_body(self._request)
        return self._signer.sign(
            request=self._request,
            identity=self._identity,
            scope=self._scope,
            timestamp=self._timestamp,
        )

    def _prepared_request(self) -> AWSRequest:
        # The copy shares the body, so it must be rewindable first.
        _buffer_body(self._request)
        prepared = deepcopy(self._request)
        self._signer.apply_default_fields(
            request=prepared, identity=self._identity, timestamp=self._timestamp
        )
        return prepared

    def __repr__(self) -> str:
        return (
            f"SignedRequest(request={self._request!r}, scope={self._scope!r}, "
            f"timestamp={self._timestamp.isoformat()!r})"
        )


def _buffer_body(request: AWSRequest) -> None:
    body = request.body
    if body is None or isinstance(body, bytes | bytearray):
        return
    if isinstance(body, Seekable):
        return
    try:
        request.body = io.BytesIO(b"".join(body))
    except (OSError, ValueError) as e:
        raise PayloadReadException(f"Unable to buffer the request body: {e}") from e
