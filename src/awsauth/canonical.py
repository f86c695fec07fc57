# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""Conversion of an HTTP request into the SigV4 canonical request.

Every function here is deterministic for a given request state: header insertion
order and query parameter order never affect the output.
"""

import io
import re
from hashlib import sha256
from urllib.parse import quote, unquote_to_bytes

from ._http import AWSRequest
from .exceptions import PayloadReadException
from .interfaces.http import FieldPosition, Fields
from .interfaces.io import ByteStream, Seekable

# The Authorization field carries the signature, so it is never part of it.
HEADERS_EXCLUDED_FROM_SIGNING: tuple[str, ...] = ("authorization",)
EMPTY_SHA256_HASH = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"

# Characters that may appear unescaped in a path per RFC 3986, plus "%" so existing
# escapes are kept as they are.
PATH_SAFE_CHARS = "/%:@!$&'()*+,;="
READ_CHUNK_SIZE = 64 * 1024


def canonical_method(method: str) -> str:
    return method.upper()


def canonical_uri(path: str | None) -> str:
    """Normalize a request path for signing.

    Dot segments are resolved and repeated slashes collapsed before any query string
    still attached to the path is dropped. Characters that cannot appear in a path
    on the wire are percent-encoded; existing escapes are left untouched.
    """
    if not path:
        return "/"

    normalized_path = _remove_dot_segments(path).partition("?")[0]
    return quote(string=normalized_path or "/", safe=PATH_SAFE_CHARS)


def canonical_query_string(query: str | None) -> str:
    if not query:
        return ""

    query_parts: list[tuple[str, str]] = []
    for param in query.split("&"):
        if not param:
            continue
        key, _, value = param.partition("=")
        query_parts.append(
            (_encode_query_component(key), _encode_query_component(value))
        )
    # key-value pairs must be in sorted order for their encoded forms.
    return "&".join(f"{key}={value}" for key, value in sorted(query_parts))


def _encode_query_component(component: str) -> str:
    # Escapes are decoded to raw bytes so non UTF-8 octets survive re-encoding.
    return quote(unquote_to_bytes(component.replace("+", " ")), safe="")


def normalize_signing_fields(fields: Fields) -> dict[str, str]:
    """Map each signable header's lower-cased name to its canonical value.

    Values are trimmed, inner runs of whitespace are collapsed, and multiple values
    are sorted then comma-joined. The result is ordered by name.
    """
    normalized_fields = {
        field.name.lower(): ",".join(sorted(_trim_value(val) for val in field.values))
        for field in fields.get_by_type(FieldPosition.HEADER)
        if is_signable_header(field.name.lower())
    }
    return dict(sorted(normalized_fields.items()))


def _trim_value(value: str) -> str:
    return " ".join(value.split())


def is_signable_header(field_name: str) -> bool:
    return field_name not in HEADERS_EXCLUDED_FROM_SIGNING


def canonical_headers(fields: Fields) -> str:
    return "".join(
        f"{key}:{value}\n" for key, value in normalize_signing_fields(fields).items()
    )


def signed_headers(fields: Fields) -> str:
    return ";".join(normalize_signing_fields(fields))


def hashed_payload(request: AWSRequest) -> str:
    """Compute the lowercase hex SHA-256 of the request body.

    Seekable bodies are read from their current position and seeked back afterwards.
    Any other iterable body is copied into a ``BytesIO`` as it is hashed and the copy
    replaces ``request.body``, so the transport still sees every byte.

    :raises PayloadReadException: If the body could not be read.
    """
    body = request.body

    if body is None:
        return EMPTY_SHA256_HASH

    if isinstance(body, bytes | bytearray):
        return sha256(body).hexdigest()

    checksum = sha256()
    try:
        if isinstance(body, Seekable) and isinstance(body, ByteStream):
            position = body.tell()
            while chunk := body.read(READ_CHUNK_SIZE):
                checksum.update(chunk)
            body.seek(position)
        else:
            buffer = io.BytesIO()
            for chunk in body:
                buffer.write(chunk)
                checksum.update(chunk)
            buffer.seek(0)
            request.body = buffer
    except (OSError, ValueError) as e:
        raise PayloadReadException(
            f"Unable to read the request body to compute its hash: {e}"
        ) from e
    return checksum.hexdigest()


def canonical_request(request: AWSRequest) -> str:
    """The canonical request is a standardized string laying out the components used
    in the SigV4 signing algorithm. This is useful to quickly compare inputs to find
    signature mismatches and unintended variances.

    The SigV4 specification defines the canonical request to be:
        <HTTPMethod>\n
        <CanonicalURI>\n
        <CanonicalQueryString>\n
        <CanonicalHeaders>\n
        <SignedHeaders>\n
        <HashedPayload>

    :param request:
        An AWSRequest to use for generating a SigV4 signature.
    """
    payload_hash = hashed_payload(request)
    return (
        f"{canonical_method(request.method)}\n"
        f"{canonical_uri(request.destination.path)}\n"
        f"{canonical_query_string(request.destination.query)}\n"
        f"{canonical_headers(request.fields)}\n"
        f"{signed_headers(request.fields)}\n"
        f"{payload_hash}"
    )


def hash_canonical_request(canonical_request: str) -> str:
    return sha256(canonical_request.encode()).hexdigest()


def _remove_dot_segments(path: str) -> str:
    """Removes dot segments from a path per :rfc:`3986#section-5.2.4`.

    Consecutive slashes are collapsed into one.
    :param path: The path to modify.
    :returns: The path with dot segments removed.
    """
    output: list[str] = []
    for segment in path.split("/"):
        if segment == ".":
            continue
        elif segment != "..":
            output.append(segment)
        elif output:
            output.pop()
    if path.startswith("/") and (not output or output[0]):
        output.insert(0, "")
    if output and path.endswith(("/.", "/..")):
        output.append("")
    return re.sub(r"/{2,}", "/", "/".join(output))
