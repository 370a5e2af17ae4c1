"""HTTP/SIP client with redirect following and WebSocket upgrade."""

from __future__ import annotations

import re
import socket
import ssl
import threading
import typing
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import IntEnum

from hdlink.headers import HeaderList
from hdlink.uri import parse_uri
from hdlink.websocket import (
    MAX_WEBSOCKET_HEADER_SIZE,
    WsStatus,
    accept_key,
    decode_frame,
    encode_frame,
    make_client_key,
)

REQ_BUFFER_LEN = 512
DEFAULT_TIMEOUT = 10
USER_AGENT = "ESP32 Http Client"

_REDIRECT_CODES = (301, 302)
_ATOI = re.compile(r"[ \t\n\v\f\r]*([+-]?[0-9]+)")


class Protocol(IntEnum):
    """Protocol spoken on the request line."""

    HTTP = 1
    WEBSOCKET = 2
    SIP = 3


_PROTOCOL_NAMES = {Protocol.HTTP: "HTTP/1.1", Protocol.SIP: "SIP/2.0"}


class RequestError(Exception):
    """Raised when a request cannot be sent or its answer cannot be read."""


@dataclass
class Response:
    """Status line and headers of the last answer."""

    headers: HeaderList = field(default_factory=HeaderList)
    status_code: int = 0
    length: int = 0


class _Connection(typing.Protocol):
    def send(self, data: bytes) -> None: ...

    def recv(self, size: int) -> bytes: ...

    def close(self) -> None: ...


Connector = Callable[[str, int, bool, float], _Connection]


class _SocketConnection:
    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock

    def send(self, data: bytes) -> None:
        self._sock.sendall(data)

    def recv(self, size: int) -> bytes:
        return self._sock.recv(size)

    def close(self) -> None:
        self._sock.close()


def _open_socket(host: str, port: int, secure: bool, timeout: float) -> _Connection:
    sock = socket.create_connection((host, port), timeout=timeout)
    if secure:
        context = ssl.create_default_context()
        sock = context.wrap_socket(sock, server_hostname=host)
    return _SocketConnection(sock)


def _atoi(text: str) -> int:
    match = _ATOI.match(text)
    return int(match.group(1)) if match else 0


def _pop_line(buffer: bytearray) -> str | None:
    end = buffer.find(b"\r\n")
    if end < 0:
        return None
    line = bytes(buffer[:end]).decode("latin-1")
    del buffer[: end + 2]
    return line


class Request:
    """One request to a server, reusable across redirects.

    ``upload_callback(request, max_len)`` returns further body bytes (empty to
    stop); ``download_callback(request, chunk)`` receives body data and may
    return ``False`` to stop; ``websocket_callback(request, status, data)``
    receives WebSocket events.
    """

    def __init__(self, uri: str, connector: Connector | None = None) -> None:
        self.options = HeaderList()
        self.headers = HeaderList()
        self.response = Response()
        self.protocol = Protocol.HTTP
        self.is_websocket = False
        self.valid_websocket = False
        self.upload_callback: Callable[[Request, int], bytes] | None = None
        self.download_callback: Callable[[Request, bytes], object] | None = None
        self.websocket_callback: Callable[[Request, WsStatus, bytes | None], object] | None = None
        self._connector: Connector = connector or _open_socket
        self._connection: _Connection | None = None
        self._lock = threading.Lock()

        self.set_protocol(Protocol.HTTP)
        self.set_uri(uri)
        if self.is_websocket:
            self.set_header("Connection: Upgrade")
            self.set_header("Upgrade: websocket")
            self.set_header("Sec-WebSocket-Version: 13")
            self.headers.set("Sec-WebSocket-Key", make_client_key())
        self.set_follow_redirects(True)
        self.set_method("GET")
        self.set_header(f"User-Agent: {USER_AGENT}")

    @property
    def secure(self) -> bool:
        return self.options.check("secure", "true")

    def set_method(self, method: str) -> None:
        self.options.set("method", method)

    def set_header(self, line: str) -> None:
        """Add a ``Name: value`` header line."""
        self.headers.set_from_string(line)

    def set_host(self, host: str) -> None:
        self.options.set("host", host)
        port = self.options.get("port")
        self.headers.set("Host", f"{host}:{port}" if port is not None else host)

    def set_port(self, port: str | int) -> None:
        port = str(port)
        self.options.set("port", port)
        host = self.options.get("host")
        if host is not None:
            self.headers.set("Host", f"{host}:{port}")

    def set_path(self, path: str) -> None:
        self.options.set("path", path)

    def set_uri(self, uri: str) -> None:
        """Take scheme, credentials, host, port and path from ``uri``."""
        parsed = parse_uri(uri)
        scheme = parsed.scheme.lower()
        self.is_websocket = False
        default_port = "443"
        if scheme == "https":
            self.set_security(True)
        elif scheme == "ws":
            self.set_security(False)
            self.is_websocket = True
            default_port = "80"
        elif scheme == "wss":
            self.set_security(True)
            self.is_websocket = True
        else:
            self.set_security(False)
            default_port = "80"

        if parsed.username is not None:
            self.options.set("username", parsed.username)
        if parsed.password is not None:
            self.options.set("password", parsed.password)
        if parsed.host is not None:
            self.set_host(parsed.host)
        self.set_path(parsed.path)
        self.set_port(parsed.port if parsed.port is not None else default_port)

    def set_security(self, secure: bool | str) -> None:
        if isinstance(secure, bool):
            secure = "true" if secure else "false"
        self.options.set("secure", secure)

    def set_post_fields(self, data: str) -> None:
        """Send ``data`` as a form-encoded POST body."""
        self.headers.set("Content-Type", "application/x-www-form-urlencoded")
        self.options.set("method", "POST")
        self.set_data_fields(data)

    def set_data_fields(self, data: str) -> None:
        """Send ``data`` as the body without changing the method."""
        self.options.set("postfield", data)
        self.headers.set("Content-Length", str(len(data.encode("utf-8"))))

    def set_protocol(self, protocol: Protocol) -> None:
        self.protocol = Protocol(protocol)
        self.options.set("protocol", _PROTOCOL_NAMES.get(self.protocol, "Unknown"))

    def set_follow_redirects(self, follow: bool) -> None:
        self.options.set("follow", "true" if follow else "false")

    def build_head(self) -> bytes:
        """Return the request line and headers, ending with a blank line."""
        method = self.options.get("method")
        if method is None:
            raise RequestError("method required")
        path = self.options.get("path")
        if path is None:
            raise RequestError("path required")
        protocol = self.options.get("protocol")
        if protocol is None:
            raise RequestError("protocol required")
        lines = [f"{method} {path} {protocol}"]
        lines.extend(f"{key}: {value}" for key, value in self.headers.items())
        return ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8")

    def perform(self) -> int:
        """Send the request, read the answer, follow redirects; return the status."""
        while True:
            if self._connection is None:
                self._connect()
            self._upload()
            self._download()
            if self.valid_websocket:
                self._start_websocket()
            if self.response.status_code in _REDIRECT_CODES and self.options.check(
                "follow", "true"
            ):
                location = self.response.headers.get("Location")
                if location is not None:
                    self.headers.set("Referer", location)
                    self.set_uri(location)
                    self._disconnect()
                    continue
            break
        if self.protocol is Protocol.HTTP and not self.valid_websocket:
            self._disconnect()
        return self.response.status_code

    def write(self, data: bytes) -> int:
        """Send ``data``, framed when a WebSocket is open; return its length."""
        data = bytes(data)
        self._send(encode_frame(data) if self.valid_websocket else data)
        return len(data)

    def close(self) -> None:
        """Stop any WebSocket and drop the connection."""
        self.valid_websocket = False
        self._disconnect()

    def __enter__(self) -> Request:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _connect(self) -> None:
        host = self.options.get("host")
        if host is None:
            raise RequestError("host is not set")
        port = self.options.get("port")
        if port is None:
            raise RequestError("port is not set")
        timeout = self.options.get("timeout")
        seconds = _atoi(timeout) if timeout is not None else DEFAULT_TIMEOUT
        try:
            self._connection = self._connector(host, _atoi(port), self.secure, seconds)
        except OSError as exc:
            raise RequestError(f"cannot connect to {host}:{port}") from exc

    def _disconnect(self) -> None:
        with self._lock:
            connection, self._connection = self._connection, None
        if connection is not None:
            try:
                connection.close()
            except OSError:
                pass

    def _send(self, data: bytes) -> None:
        connection = self._connection
        if connection is None:
            raise RequestError("not connected")
        try:
            connection.send(data)
        except OSError as exc:
            raise RequestError("write failed") from exc

    def _recv(self, size: int) -> bytes:
        connection = self._connection
        if connection is None:
            return b""
        try:
            return connection.recv(size)
        except OSError:
            return b""

    def _upload(self) -> None:
        self.write(self.build_head())
        body = self.options.get("postfield")
        if body is not None:
            self.write(body.encode("utf-8"))
        if self.upload_callback is not None:
            while chunk := self.upload_callback(self, REQ_BUFFER_LEN):
                self.write(chunk)

    def _read_status(self, line: str) -> None:
        marker, offset = ("SIP/2.0", 8) if self.protocol is Protocol.SIP else ("HTTP/1.", 9)
        if self.protocol not in (Protocol.HTTP, Protocol.SIP):
            return
        start = line.find(marker)
        if start >= 0:
            self.response.status_code = _atoi(line[start + offset : start + offset + 3])

    def _check_handshake(self) -> None:
        server_key = self.response.headers.get("Sec-WebSocket-Accept")
        client_key = self.headers.get("Sec-WebSocket-Key")
        if server_key is None or client_key is None:
            return
        if accept_key(client_key) == server_key:
            self.valid_websocket = True
            if self.websocket_callback is not None:
                self.websocket_callback(self, WsStatus.CONNECTED, None)

    def _download(self) -> None:
        response = self.response
        response.status_code = -1
        response.headers.clear()
        response.length = 0
        buffer = bytearray()
        in_header = True
        total = 0
        while True:
            chunk = self._recv(REQ_BUFFER_LEN)
            at_eof = not chunk
            buffer += chunk
            if in_header:
                while (line := _pop_line(buffer)) is not None:
                    if not line:
                        in_header = False
                        self._check_handshake()
                        break
                    if response.status_code < 0:
                        self._read_status(line)
                    else:
                        try:
                            response.headers.set_from_string(line)
                        except ValueError:
                            pass
            if not in_header:
                content_length = response.headers.get("Content-Length")
                if content_length is not None:
                    response.length = _atoi(content_length)
                if response.length and self.download_callback is not None and buffer:
                    body = bytes(buffer)
                    buffer.clear()
                    if self.download_callback(self, body) is False:
                        break
                    total += len(body)
                    if total >= response.length:
                        break
                else:
                    buffer.clear()
                if response.length == 0:
                    break
            if at_eof:
                break

    def _start_websocket(self) -> None:
        thread = threading.Thread(
            target=self._websocket_loop, name="hdlink-websocket", daemon=True
        )
        thread.start()

    def _websocket_loop(self) -> None:
        while self.valid_websocket:
            data = self._recv(REQ_BUFFER_LEN + MAX_WEBSOCKET_HEADER_SIZE)
            if not data:
                break
            try:
                frame = decode_frame(data)
            except ValueError:
                break
            if frame.payload and self.websocket_callback is not None:
                self.websocket_callback(self, WsStatus.DATA, frame.payload)
        self.valid_websocket = False
        self._disconnect()
        if self.websocket_callback is not None:
            self.websocket_callback(self, WsStatus.DISCONNECTED, None)