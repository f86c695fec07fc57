# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
import re
import typing
from datetime import UTC, datetime
from io import BytesIO

import awscrt.auth
import awscrt.http
import pytest
from awsauth import (
    URI,
    AWSCredentialIdentity,
    AWSRequest,
    Field,
    Fields,
    SigV4Signer,
    SigningScope,
)
from awsauth.canonical import EMPTY_SHA256_HASH

SIGV4_RE = re.compile(
    r"AWS4-HMAC-SHA256 "
    r"Credential=(?P<access_key>\w+)/(?P<date>\d+)/"
    r"(?P<signing_region>[a-z0-9-]+)/(?P<service>[a-z0-9-]+)/aws4_request, "
    r"SignedHeaders=(?P<signed_headers>[a-z0-9;-]+), "
    r"Signature=(?P<signature>[0-9a-f]{64})$"
)

TEST_SUITE_DATE = datetime(2015, 8, 30, 12, 36, 0, tzinfo=UTC)
TEST_SUITE_SCOPE = SigningScope(region="us-east-1", service="service")
IAM_DATE = datetime(2011, 9, 9, 23, 36, 0, tzinfo=UTC)
IAM_SCOPE = SigningScope(region="us-east-1", service="iam")
IAM_SIGNATURE = "ced6826de92d2bdeed8f846f0bf508e8559e98e4b0199114b84c54174deb456c"
CRT_TIMEOUT = 10.0


@pytest.fixture(scope="module")
def example_identity() -> AWSCredentialIdentity:
    return AWSCredentialIdentity(
        access_key_id="AKIDEXAMPLE",
        secret_access_key="wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY",
    )


@pytest.fixture
def aws_request() -> AWSRequest:
    return AWSRequest(
        destination=URI(host="example.amazonaws.com", path="/"),
        method="GET",
        body=None,
        fields=Fields(),
    )


@pytest.fixture
def iam_request() -> AWSRequest:
    return AWSRequest.from_url(
        method="POST",
        url="https://iam.amazonaws.com/",
        body=b"Action=ListUsers&Version=2010-05-08",
    )


def _signature(request: AWSRequest) -> str:
    match = SIGV4_RE.match(request.fields["authorization"].as_string())
    assert match is not None
    return match.group("signature")


def _render_path(uri: URI) -> str:
    query = f"?{uri.query}" if uri.query else ""
    return f"{uri.path or '/'}{query}"


class TestSigV4Signer:
    SIGV4_SYNC_SIGNER = SigV4Signer()

    def test_sign(
        self, example_identity: AWSCredentialIdentity, iam_request: AWSRequest
    ) -> None:
        signed_request = self.SIGV4_SYNC_SIGNER.sign(
            request=iam_request,
            identity=example_identity,
            scope=IAM_SCOPE,
            timestamp=IAM_DATE,
        )
        assert signed_request is iam_request
        assert signed_request.fields["authorization"].as_string() == (
            "AWS4-HMAC-SHA256 "
            "Credential=AKIDEXAMPLE/20110909/us-east-1/iam/aws4_request, "
            "SignedHeaders=content-type;host;x-amz-date, "
            f"Signature={IAM_SIGNATURE}"
        )
        assert signed_request.fields["host"].as_string() == "iam.amazonaws.com"
        assert signed_request.fields["x-amz-date"].as_string() == "20110909T233600Z"
        assert signed_request.fields["content-type"].as_string() == (
            "application/x-www-form-urlencoded; charset=utf-8"
        )
        assert signed_request.body is not None
        assert signed_request.body.read() == (  # type: ignore
            b"Action=ListUsers&Version=2010-05-08"
        )

    def test_string_to_sign(
        self, example_identity: AWSCredentialIdentity, iam_request: AWSRequest
    ) -> None:
        self.SIGV4_SYNC_SIGNER.apply_default_fields(
            request=iam_request, identity=example_identity, timestamp=IAM_DATE
        )
        canonical_request = self.SIGV4_SYNC_SIGNER.canonical_request(
            request=iam_request
        )
        string_to_sign = self.SIGV4_SYNC_SIGNER.string_to_sign(
            canonical_request=canonical_request, scope=IAM_SCOPE, timestamp=IAM_DATE
        )
        assert string_to_sign == (
            "AWS4-HMAC-SHA256\n"
            "20110909T233600Z\n"
            "20110909/us-east-1/iam/aws4_request\n"
            "3511de7e95d28ecd39e9513b642aee07e54f4941150d8df8bf94b328ef7e55e2"
        )
        assert len(string_to_sign.encode()) == 134

    @pytest.mark.parametrize(
        "path,query,headers,expected",
        [
            (
                "/",
                None,
                [],
                "5fa00fa31553b73ebf1942676e86291e8372ff2a2260956d9b8aae1d763fbf31",
            ),
            (
                "/",
                "Param2=value2&Param1=value1",
                [],
                "b97d918cfa904a5beff61c982a1b6f458b799221646efd99d3219ec94cdf2500",
            ),
            (
                "/",
                None,
                [
                    ("My-Header1", "value4"),
                    ("My-Header1", "value1"),
                    ("My-Header1", "value3"),
                    ("My-Header1", "value2"),
                ],
                "d06cb30ea7154bfaeca958263dd05f9e1d4db1b14ad15dd5edec0f292f22d67e",
            ),
            (
                "/example/",
                None,
                [],
                "9a624bd73a37c9a373b5312afbebe7a714a789de108f0bdfe846570885f57e84",
            ),
            (
                "//example//",
                None,
                [],
                "9a624bd73a37c9a373b5312afbebe7a714a789de108f0bdfe846570885f57e84",
            ),
            (
                "/example/./",
                None,
                [],
                "9a624bd73a37c9a373b5312afbebe7a714a789de108f0bdfe846570885f57e84",
            ),
        ],
    )
    def test_signature_vectors(
        self,
        example_identity: AWSCredentialIdentity,
        path: str,
        query: str | None,
        headers: list[tuple[str, str]],
        expected: str,
    ) -> None:
        request = AWSRequest(
            destination=URI(host="example.amazonaws.com", path=path, query=query),
            method="GET",
            body=None,
            fields=Fields.from_headers(headers),
        )
        self.SIGV4_SYNC_SIGNER.sign(
            request=request,
            identity=example_identity,
            scope=TEST_SUITE_SCOPE,
            timestamp=TEST_SUITE_DATE,
        )
        assert _signature(request) == expected

    def test_signature_ignores_header_insertion_order(
        self, example_identity: AWSCredentialIdentity
    ) -> None:
        headers = [
            ("Content-Type", "application/json"),
            ("X-Amz-Target", "Service.Operation"),
            ("my-header", "value"),
        ]
        signatures: list[str] = []
        for ordered in (headers, list(reversed(headers))):
            request = AWSRequest(
                destination=URI(host="example.amazonaws.com"),
                method="POST",
                body=b"{}",
                fields=Fields.from_headers(ordered),
            )
            self.SIGV4_SYNC_SIGNER.sign(
                request=request,
                identity=example_identity,
                scope=TEST_SUITE_SCOPE,
                timestamp=TEST_SUITE_DATE,
            )
            signatures.append(_signature(request))
        assert signatures[0] == signatures[1]

    def test_sign_is_idempotent(
        self, example_identity: AWSCredentialIdentity, iam_request: AWSRequest
    ) -> None:
        kwargs: dict[str, typing.Any] = {
            "request": iam_request,
            "identity": example_identity,
            "scope": IAM_SCOPE,
            "timestamp": IAM_DATE,
        }
        first = self.SIGV4_SYNC_SIGNER.sign(**kwargs).fields["authorization"]
        first_value = first.as_string()
        second = self.SIGV4_SYNC_SIGNER.sign(**kwargs).fields["authorization"]
        assert second.as_string() == first_value
        assert _signature(iam_request) == IAM_SIGNATURE

    def test_timestamp_changes_signature(
        self, example_identity: AWSCredentialIdentity, iam_request: AWSRequest
    ) -> None:
        self.SIGV4_SYNC_SIGNER.sign(
            request=iam_request,
            identity=example_identity,
            scope=IAM_SCOPE,
            timestamp=datetime(2011, 9, 9, 23, 36, 1, tzinfo=UTC),
        )
        assert _signature(iam_request) != IAM_SIGNATURE
        assert iam_request.fields["x-amz-date"].as_string() == "20110909T233601Z"

    def test_signature_does_not_add_fields(
        self, example_identity: AWSCredentialIdentity, aws_request: AWSRequest
    ) -> None:
        signature = self.SIGV4_SYNC_SIGNER.signature(
            request=aws_request,
            identity=example_identity,
            scope=TEST_SUITE_SCOPE,
            timestamp=TEST_SUITE_DATE,
        )
        assert re.fullmatch("[0-9a-f]{64}", signature)
        assert len(aws_request.fields) == 0

    def test_host_field_is_overwritten(
        self, example_identity: AWSCredentialIdentity, aws_request: AWSRequest
    ) -> None:
        aws_request.fields.set_field(Field(name="Host", values=["wrong.example"]))
        self.SIGV4_SYNC_SIGNER.sign(
            request=aws_request,
            identity=example_identity,
            scope=TEST_SUITE_SCOPE,
            timestamp=TEST_SUITE_DATE,
        )
        assert aws_request.fields["host"].values == ["example.amazonaws.com"]
        assert _signature(aws_request) == (
            "5fa00fa31553b73ebf1942676e86291e8372ff2a2260956d9b8aae1d763fbf31"
        )

    def test_existing_content_type_is_kept(
        self, example_identity: AWSCredentialIdentity
    ) -> None:
        request = AWSRequest.from_url(
            method="POST",
            url="https://example.amazonaws.com/",
            headers={"content-type": "application/json"},
            body=b"{}",
        )
        self.SIGV4_SYNC_SIGNER.sign(
            request=request,
            identity=example_identity,
            scope=TEST_SUITE_SCOPE,
            timestamp=TEST_SUITE_DATE,
        )
        assert request.fields["content-type"].values == ["application/json"]

    def test_get_has_no_default_content_type(
        self, example_identity: AWSCredentialIdentity, aws_request: AWSRequest
    ) -> None:
        self.SIGV4_SYNC_SIGNER.sign(
            request=aws_request,
            identity=example_identity,
            scope=TEST_SUITE_SCOPE,
            timestamp=TEST_SUITE_DATE,
        )
        assert "content-type" not in aws_request.fields

    def test_every_header_is_signed(
        self, example_identity: AWSCredentialIdentity
    ) -> None:
        request = AWSRequest.from_url(
            method="GET",
            url="https://iam.amazonaws.com/",
            headers={"User-Agent": "x", "Accept": "*/*"},
        )
        self.SIGV4_SYNC_SIGNER.sign(
            request=request,
            identity=example_identity,
            scope=IAM_SCOPE,
            timestamp=IAM_DATE,
        )
        match = SIGV4_RE.match(request.fields["authorization"].as_string())
        assert match is not None
        assert match.group("signed_headers") == "accept;host;user-agent;x-amz-date"

    def test_sign_with_session_token(self, aws_request: AWSRequest) -> None:
        identity = AWSCredentialIdentity(
            access_key_id="AKID123456",
            secret_access_key="EXAMPLE1234SECRET",
            session_token="X123456SESSION",
        )
        self.SIGV4_SYNC_SIGNER.sign(
            request=aws_request,
            identity=identity,
            scope=TEST_SUITE_SCOPE,
            timestamp=TEST_SUITE_DATE,
        )
        assert aws_request.fields["x-amz-security-token"].values == ["X123456SESSION"]
        match = SIGV4_RE.match(aws_request.fields["authorization"].as_string())
        assert match is not None
        assert match.group("signed_headers") == "host;x-amz-date;x-amz-security-token"

    def test_sign_with_content_checksum(
        self, example_identity: AWSCredentialIdentity, aws_request: AWSRequest
    ) -> None:
        signer = SigV4Signer(content_checksum_enabled=True)
        signer.sign(
            request=aws_request,
            identity=example_identity,
            scope=TEST_SUITE_SCOPE,
            timestamp=TEST_SUITE_DATE,
        )
        assert aws_request.fields["x-amz-content-sha256"].values == [EMPTY_SHA256_HASH]
        match = SIGV4_RE.match(aws_request.fields["authorization"].as_string())
        assert match is not None
        assert match.group("signed_headers") == "host;x-amz-content-sha256;x-amz-date"

    @typing.no_type_check
    def test_sign_with_invalid_identity(self, aws_request: AWSRequest) -> None:
        """Ignore typing as we're testing an invalid input state."""
        identity = object()
        assert not isinstance(identity, AWSCredentialIdentity)
        with pytest.raises(ValueError):
            self.SIGV4_SYNC_SIGNER.sign(
                request=aws_request,
                identity=identity,
                scope=TEST_SUITE_SCOPE,
                timestamp=TEST_SUITE_DATE,
            )

    def test_sign_with_expired_identity(self, aws_request: AWSRequest) -> None:
        identity = AWSCredentialIdentity(
            access_key_id="AKID123456",
            secret_access_key="EXAMPLE1234SECRET",
            session_token="X123456SESSION",
            expiration=datetime(1970, 1, 1, tzinfo=UTC),
        )
        with pytest.raises(ValueError):
            self.SIGV4_SYNC_SIGNER.sign(
                request=aws_request,
                identity=identity,
                scope=TEST_SUITE_SCOPE,
                timestamp=TEST_SUITE_DATE,
            )
        assert "authorization" not in aws_request.fields


@pytest.mark.parametrize(
    "method,url,headers,body,session_token",
    [
        ("GET", "https://example.amazonaws.com/", [], None, None),
        (
            "GET",
            "https://example.amazonaws.com/path/to/resource?b=2&a=1&a=0&empty=",
            [("X-Amz-Target", "Service.Operation")],
            None,
            None,
        ),
        (
            "POST",
            "https://example.amazonaws.com/",
            [("My-Header", "  value  with   spaces ")],
            b"Action=ListUsers&Version=2010-05-08",
            None,
        ),
        (
            "PUT",
            "https://example.amazonaws.com/bucket/key",
            [("Content-Type", "application/octet-stream")],
            b"\x00\x01binary payload",
            "X123456SESSION",
        ),
    ],
)
def test_signature_matches_awscrt(
    method: str,
    url: str,
    headers: list[tuple[str, str]],
    body: bytes | None,
    session_token: str | None,
) -> None:
    identity = AWSCredentialIdentity(
        access_key_id="AKIDEXAMPLE",
        secret_access_key="wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY",
        session_token=session_token,
    )
    request = AWSRequest.from_url(method=method, url=url, headers=headers, body=body)
    SigV4Signer().sign(
        request=request,
        identity=identity,
        scope=TEST_SUITE_SCOPE,
        timestamp=TEST_SUITE_DATE,
    )

    # awscrt adds its own date, token and authorization headers.
    crt_added = {"authorization", "x-amz-date", "x-amz-security-token"}
    crt_request = awscrt.http.HttpRequest(
        method=method,
        path=_render_path(request.destination),
        headers=awscrt.http.HttpHeaders(
            [
                pair
                for fld in request.fields
                if fld.name.lower() not in crt_added
                for pair in fld.as_tuples()
            ]
        ),
        body_stream=BytesIO(body or b""),
    )
    signing_config = awscrt.auth.AwsSigningConfig(
        algorithm=awscrt.auth.AwsSigningAlgorithm.V4,
        signature_type=awscrt.auth.AwsSignatureType.HTTP_REQUEST_HEADERS,
        credentials_provider=awscrt.auth.AwsCredentialsProvider.new_static(
            identity.access_key_id, identity.secret_access_key, session_token
        ),
        region=TEST_SUITE_SCOPE.region,
        service=TEST_SUITE_SCOPE.service,
        date=TEST_SUITE_DATE,
    )
    awscrt.auth.aws_sign_request(crt_request, signing_config).result(CRT_TIMEOUT)

    assert crt_request.headers.get("authorization") == (
        request.fields["authorization"].as_string()
    )
