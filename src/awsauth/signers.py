# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
import datetime
import logging
from typing import Final

from . import canonical
from ._http import AWSRequest, Field
from .interfaces.identity import AWSCredentialsIdentity
from .scope import (
    SigningScope,
    credential_scope,
    derive_signing_key,
    format_timestamp,
    hmac_sha256,
)

logger: Final = logging.getLogger(__name__)

SIGNING_ALGORITHM: str = "AWS4-HMAC-SHA256"
DEFAULT_POST_CONTENT_TYPE: str = "application/x-www-form-urlencoded; charset=utf-8"


class SigV4Signer:
    """Request signer for applying the AWS Signature Version 4 algorithm.

    The signer holds no per-request state, so a single instance can be shared by
    concurrent callers as long as each caller owns the request it is signing.
    """

    def __init__(self, *, content_checksum_enabled: bool = False) -> None:
        """
        :param content_checksum_enabled: Whether to send the payload hash in an
            ``X-Amz-Content-SHA256`` header, as required by S3.
        """
        self._content_checksum_enabled = content_checksum_enabled

    def sign(
        self,
        *,
        request: AWSRequest,
        identity: AWSCredentialsIdentity,
        scope: SigningScope,
        timestamp: datetime.datetime,
    ) -> AWSRequest:
        """Generate and apply a SigV4 Signature to the supplied request in place.

        The default fields are applied before the request is canonicalized, so they
        are covered by the signature. Signing the same request twice with the same
        inputs produces the same ``Authorization`` field.

        :param request: An AWSRequest to sign prior to sending to the service.
        :param identity: A set of credentials representing an AWS Identity or role
            capacity.
        :param scope: The region and service the signature is valid for.
        :param timestamp: The signing time, used everywhere a date appears.
        """
        self._validate_identity(identity=identity)
        self.apply_default_fields(
            request=request, identity=identity, timestamp=timestamp
        )

        signature = self.signature(
            request=request, identity=identity, scope=scope, timestamp=timestamp
        )
        credential = (
            f"{identity.access_key_id}/"
            f"{credential_scope(scope=scope, timestamp=timestamp)}"
        )
        authorization = self.generate_authorization_field(
            credential=credential,
            signed_headers=canonical.signed_headers(request.fields),
            signature=signature,
        )
        request.fields.set_field(authorization)
        return request

    def apply_default_fields(
        self,
        *,
        request: AWSRequest,
        identity: AWSCredentialsIdentity,
        timestamp: datetime.datetime,
    ) -> None:
        """Set the fields SigV4 requires on ``request`` before canonicalization."""
        request.fields.set_field(Field(name="Host", values=[request.host]))
        request.fields.set_field(
            Field(name="X-Amz-Date", values=[format_timestamp(timestamp)])
        )
        if (
            canonical.canonical_method(request.method) == "POST"
            and "Content-Type" not in request.fields
        ):
            request.fields.set_field(
                Field(name="Content-Type", values=[DEFAULT_POST_CONTENT_TYPE])
            )
        # Apply required X-Amz-Security-Token if token present on identity
        if identity.session_token is not None:
            request.fields.set_field(
                Field(name="X-Amz-Security-Token", values=[identity.session_token])
            )
        if self._content_checksum_enabled:
            request.fields.set_field(
                Field(
                    name="X-Amz-Content-SHA256",
                    values=[canonical.hashed_payload(request)],
                )
            )

    def signature(
        self,
        *,
        request: AWSRequest,
        identity: AWSCredentialsIdentity,
        scope: SigningScope,
        timestamp: datetime.datetime,
    ) -> str:
        """Compute the lowercase hex signature of ``request`` as it currently stands.

        No fields are added; callers that want the default fields signed apply them
        first with :py:meth:`apply_default_fields`.
        """
        canonical_request = self.canonical_request(request=request)
        string_to_sign = self.string_to_sign(
            canonical_request=canonical_request, scope=scope, timestamp=timestamp
        )
        signing_key = self.signing_key(
            secret_key=identity.secret_access_key, scope=scope, timestamp=timestamp
        )
        return hmac_sha256(key=signing_key, value=string_to_sign).hex()

    def canonical_request(self, *, request: AWSRequest) -> str:
        """Build the canonical request for ``request``.

        See :py:func:`awsauth.canonical.canonical_request`.
        """
        canonical_request = canonical.canonical_request(request)
        logger.debug(
            "Canonical request for %s %s signs headers: %s",
            request.method,
            request.destination.path or "/",
            canonical.signed_headers(request.fields),
        )
        return canonical_request

    def string_to_sign(
        self,
        *,
        canonical_request: str,
        scope: SigningScope,
        timestamp: datetime.datetime,
    ) -> str:
        """The string to sign is the second step of our signing algorithm which
        concatenates the formal identifier of our signing algorithm, the signing
        DateTime, the scope of our credentials, and a hash of our previously generated
        canonical request. This is another checkpoint that can be used to ensure we're
        constructing our signature as intended.

        The SigV4 specification defines the string to sign as:
            Algorithm \n
            RequestDateTime \n
            CredentialScope  \n
            HashedCanonicalRequest

        :param canonical_request:
            String generated from the `canonical_request` method.
        :param scope:
            The region and service the signature is valid for.
        :param timestamp:
            The signing time.
        """
        string_to_sign = (
            f"{SIGNING_ALGORITHM}\n"
            f"{format_timestamp(timestamp)}\n"
            f"{credential_scope(scope=scope, timestamp=timestamp)}\n"
            f"{canonical.hash_canonical_request(canonical_request)}"
        )
        logger.debug("String to sign:\n%s", string_to_sign)
        return string_to_sign

    def signing_key(
        self,
        *,
        secret_key: str,
        scope: SigningScope,
        timestamp: datetime.datetime,
    ) -> bytes:
        return derive_signing_key(
            secret_key=secret_key, scope=scope, timestamp=timestamp
        )

    def generate_authorization_field(
        self, *, credential: str, signed_headers: str, signature: str
    ) -> Field:
        """Generate the `Authorization` field.

        :param credential:
            Credential scope string for generating the Authorization header.
            Defined as:
                <access_key>/<date>/<region>/<service>/aws4_request
        :param signed_headers:
            The semicolon separated field names used in signing.
        :param signature:
            Final hash of the SigV4 signing algorithm generated from the
            canonical request and string to sign.
        """
        auth_str = (
            f"{SIGNING_ALGORITHM} Credential={credential}, "
            f"SignedHeaders={signed_headers}, Signature={signature}"
        )
        return Field(name="Authorization", values=[auth_str])

    def _validate_identity(self, *, identity: AWSCredentialsIdentity) -> None:
        """Perform runtime and expiration checks before attempting signing."""
        if not isinstance(identity, AWSCredentialsIdentity):  # pyright: ignore
            raise ValueError(
                "Received unexpected value for identity parameter. Expected "
                f"AWSCredentialIdentity but received {type(identity)}."
            )
        elif identity.is_expired:
            raise ValueError(
                f"Provided identity expired at {identity.expiration}. Please "
                "refresh the credentials or update the expiration parameter."
            )
