# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
#  pyright: reportMissingTypeStubs=false,reportUnknownMemberType=false
import logging
from collections.abc import Iterable
from concurrent.futures import Future
from dataclasses import dataclass
from io import BytesIO
from threading import Lock
from typing import Any, Final

from awscrt import http as crt_http
from awscrt import io as crt_io

from ._http import DEFAULT_PORTS, Field, Fields, HTTPResponse
from .exceptions import AWSHTTPException
from .interfaces import http as http_interfaces
from .interfaces.http import FieldPosition
from .interfaces.io import ByteStream, Seekable

logger: Final = logging.getLogger(__name__)


class _AWSCRTEventLoop:
    def __init__(self) -> None:
        self.bootstrap = self._initialize_default_loop()

    def _initialize_default_loop(self) -> crt_io.ClientBootstrap:
        event_loop_group = crt_io.EventLoopGroup(1)
        host_resolver = crt_io.DefaultHostResolver(event_loop_group)
        return crt_io.ClientBootstrap(event_loop_group, host_resolver)


@dataclass(kw_only=True)
class AWSCRTHTTPClientConfig(http_interfaces.HTTPClientConfiguration):
    """AWS CRT HTTP client configuration.

    :param connect_timeout: How long, in seconds, to wait for a new connection to be
        established. ``None`` waits indefinitely.
    """

    connect_timeout: float | None = None


class _ResponseCollector:
    """Gathers the status, headers and body chunks delivered by CRT callbacks."""

    def __init__(self) -> None:
        self.status: int | None = None
        self.fields = Fields()
        self._chunks: list[bytes] = []
        self._chunk_lock: Lock = Lock()

    def on_response(
        self, status_code: int, headers: list[tuple[str, str]], **kwargs: Any
    ) -> None:  # pragma: crt-callback
        # Informational responses are replaced by the final one.
        fields = Fields()
        for header_name, header_val in headers:
            if header_name in fields:
                fields[header_name].add(header_val)
            else:
                fields.set_field(
                    Field(
                        name=header_name,
                        values=[header_val],
                        kind=FieldPosition.HEADER,
                    )
                )
        self.status = status_code
        self.fields = fields

    def on_body(self, chunk: bytes, **kwargs: Any) -> None:  # pragma: crt-callback
        with self._chunk_lock:
            self._chunks.append(chunk)

    @property
    def body(self) -> bytes:
        with self._chunk_lock:
            return b"".join(self._chunks)


ConnectionPoolKey = tuple[str, str, int | None]
ConnectionPoolDict = dict[ConnectionPoolKey, crt_http.HttpClientConnection]


class AWSCRTHTTPClient(http_interfaces.HTTPClient):
    """Synchronous implementation of :py:class:`.interfaces.http.HTTPClient` using
    awscrt."""

    _HTTP_PORT = 80
    _HTTPS_PORT = 443

    def __init__(
        self,
        eventloop: _AWSCRTEventLoop | None = None,
        client_config: AWSCRTHTTPClientConfig | None = None,
    ) -> None:
        """
        :param client_config: Configuration that applies to all requests made with this
        client.
        """
        self._config = (
            AWSCRTHTTPClientConfig() if client_config is None else client_config
        )
        if eventloop is None:
            eventloop = _AWSCRTEventLoop()
        self._eventloop = eventloop
        self._client_bootstrap = self._eventloop.bootstrap
        self._tls_ctx = crt_io.ClientTlsContext(crt_io.TlsContextOptions())
        self._socket_options = crt_io.SocketOptions()
        self._connections: ConnectionPoolDict = {}
        self._connections_lock: Lock = Lock()

    def send(
        self,
        request: http_interfaces.Request,
        *,
        request_config: http_interfaces.HTTPRequestConfiguration | None = None,
    ) -> HTTPResponse:
        """Send HTTP request using awscrt client and wait for the full response.

        :param request: The request including destination URI, fields, payload.
        :param request_config: Configuration specific to this request.
        :raises TimeoutError: If the response does not complete within the
            configured ``read_timeout``.
        """
        if request_config is None:
            request_config = http_interfaces.HTTPRequestConfiguration()

        crt_request = self._marshal_request(request)
        connection = self._get_connection(request.destination)
        collector = _ResponseCollector()
        crt_stream = connection.request(
            crt_request,
            collector.on_response,
            collector.on_body,
        )
        crt_stream.activate()
        try:
            status = crt_stream.completion_future.result(request_config.read_timeout)
        except TimeoutError:
            # The unfinished stream leaves the connection unusable.
            self._discard_connection(request.destination, connection)
            raise
        return HTTPResponse(
            status=status,
            fields=collector.fields,
            body=collector.body,
        )

    def _get_connection(
        self, url: http_interfaces.URI
    ) -> crt_http.HttpClientConnection:
        # TODO: Use CRT connection pooling instead of this basic kind
        connection_key = (url.scheme, url.host, url.port)
        with self._connections_lock:
            connection = self._connections.get(connection_key)
            if connection is not None and connection.is_open():
                return connection

            connection = self._create_connection(url)
            self._connections[connection_key] = connection
            return connection

    def _discard_connection(
        self,
        url: http_interfaces.URI,
        connection: crt_http.HttpClientConnection,
    ) -> None:
        connection_key = (url.scheme, url.host, url.port)
        with self._connections_lock:
            if self._connections.get(connection_key) is connection:
                del self._connections[connection_key]
        connection.close()
        logger.debug("Closed connection to %s after a timeout", url.host)

    def _create_connection(
        self, url: http_interfaces.URI
    ) -> crt_http.HttpClientConnection:
        """Builds and validates connection to ``url``."""
        connect_future = self._build_new_connection(url)
        connection = connect_future.result(self._config.connect_timeout)
        self._validate_connection(connection)
        logger.debug(
            "Opened connection to %s://%s", url.scheme, self._render_host(url)
        )
        return connection

    def _build_new_connection(
        self, url: http_interfaces.URI
    ) -> "Future[crt_http.HttpClientConnection]":
        if url.scheme == "http":
            port = self._HTTP_PORT
            tls_connection_options = None
        elif url.scheme == "https":
            port = self._HTTPS_PORT
            tls_connection_options = self._tls_ctx.new_connection_options()
            tls_connection_options.set_server_name(url.host)
            tls_connection_options.set_alpn_list(["h2", "http/1.1"])
        else:
            raise AWSHTTPException(
                f"AWSCRTHTTPClient does not support URL scheme {url.scheme}"
            )
        if url.port is not None:
            port = url.port

        return crt_http.HttpClientConnection.new(
            bootstrap=self._client_bootstrap,
            host_name=url.host,
            port=port,
            socket_options=self._socket_options,
            tls_connection_options=tls_connection_options,
        )

    def _validate_connection(self, connection: crt_http.HttpClientConnection) -> None:
        """Validates an existing connection against the client config.

        Checks performed:
        * If ``force_http_2`` is enabled: Is the connection HTTP/2?
        """
        force_http_2 = self._config.force_http_2
        if force_http_2 and connection.version is not crt_http.HttpVersion.Http2:
            connection.close()
            negotiated = crt_http.HttpVersion(connection.version).name
            raise AWSHTTPException(f"HTTP/2 could not be negotiated: {negotiated}")

    def _render_host(self, url: http_interfaces.URI) -> str:
        # Userinfo is never sent, and the port only when it is not the default.
        if url.port is None or DEFAULT_PORTS.get(url.scheme) == url.port:
            return url.host
        return f"{url.host}:{url.port}"

    def _render_path(self, url: http_interfaces.URI) -> str:
        path = url.path if url.path else "/"
        query = f"?{url.query}" if url.query else ""
        return f"{path}{query}"

    def _marshal_request(
        self, request: http_interfaces.Request
    ) -> crt_http.HttpRequest:
        """Create :py:class:`awscrt.http.HttpRequest` from a signed request.

        Wire-only headers are added to the CRT request, never to ``request.fields``,
        so the signed fields are left exactly as they were signed.
        """
        headers_list: list[tuple[str, str]] = []
        for fld in request.fields.get_by_type(FieldPosition.HEADER):
            headers_list.extend(fld.as_tuples())

        if "host" not in request.fields:
            headers_list.append(("Host", self._render_host(request.destination)))

        body = _read_body(request.body)
        if body and "content-length" not in request.fields:
            headers_list.append(("Content-Length", str(len(body))))

        return crt_http.HttpRequest(
            method=request.method,
            path=self._render_path(request.destination),
            headers=crt_http.HttpHeaders(headers_list),
            body_stream=BytesIO(body),
        )


def _read_body(body: bytes | Iterable[bytes] | None) -> bytes:
    if body is None:
        return b""
    if isinstance(body, bytes | bytearray):
        return bytes(body)
    if isinstance(body, Seekable) and isinstance(body, ByteStream):
        position = body.tell()
        data = body.read()
        body.seek(position)
        return data
    return b"".join(body)
