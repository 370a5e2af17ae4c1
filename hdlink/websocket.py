"""Client-side WebSocket framing and handshake keys."""

from __future__ import annotations

import base64
import hashlib
import os
import random
from dataclasses import dataclass
from enum import IntEnum

WS_FIN = 0x80
WS_MASK = 0x80
WS_SIZE16 = 126
WS_SIZE64 = 127
MAX_WEBSOCKET_HEADER_SIZE = 10
WS_RESPONSE_OK = 101

_HANDSHAKE_GUID = "258EAFA5-E914-47DA-95CA-C5AB0DC85B11"
_MAX_SHORT_PAYLOAD = 125
_MAX_PAYLOAD = 0xFFFF
_MASK_KEY_SIZE = 4
_CLIENT_KEY_SIZE = 16


class WsOpcode(IntEnum):
    """Frame opcodes carried in the low nibble of the first byte."""

    TEXT = 0x01
    BINARY = 0x02
    CLOSE = 0x08
    PING = 0x09
    PONG = 0x0A


class WsStatus(IntEnum):
    """Events reported to a WebSocket callback."""

    CONNECTED = 0x01
    DATA = 0x02
    DISCONNECTED = 0x03
    ERROR = 0x04


@dataclass(frozen=True)
class DecodedFrame:
    """One frame as read from the wire, with the payload already unmasked."""

    fin: bool
    opcode: int
    masked: bool
    payload: bytes


def _apply_mask(data: bytes, mask_key: bytes) -> bytes:
    return bytes(byte ^ mask_key[pos % _MASK_KEY_SIZE] for pos, byte in enumerate(data))


def encode_frame(payload: bytes, mask_key: bytes | None = None) -> bytes:
    """Wrap ``payload`` in a final, masked binary frame.

    Payloads above 65535 bytes are not supported. Without ``mask_key`` a
    random four-byte key is used.
    """
    payload = bytes(payload)
    if mask_key is None:
        mask_key = os.urandom(_MASK_KEY_SIZE)
    mask_key = bytes(mask_key)
    if len(mask_key) != _MASK_KEY_SIZE:
        raise ValueError(f"mask key must be {_MASK_KEY_SIZE} bytes, got {len(mask_key)}")

    size = len(payload)
    if size > _MAX_PAYLOAD:
        raise ValueError(f"payload of {size} bytes does not fit a 16-bit length")

    header = bytearray([WsOpcode.BINARY | WS_FIN])
    if size > _MAX_SHORT_PAYLOAD:
        header.append(WS_SIZE16 | WS_MASK)
        header += size.to_bytes(2, "big")
    else:
        header.append(size | WS_MASK)
    header += mask_key
    return bytes(header) + _apply_mask(payload, mask_key)


def _take(data: bytes, start: int, count: int) -> bytes:
    chunk = data[start : start + count]
    if len(chunk) != count:
        raise ValueError("frame is truncated")
    return chunk


def decode_frame(data: bytes) -> DecodedFrame:
    """Read one frame from ``data`` and return it with the payload unmasked."""
    data = bytes(data)
    if not data:
        raise ValueError("no frame data")
    first, second = _take(data, 0, 2)
    fin = bool(first & WS_FIN)
    opcode = first & 0x0F
    masked = bool((second >> 7) & 0x01)
    length = second & 0x7F
    pos = 2

    if length == WS_SIZE16:
        length = int.from_bytes(_take(data, pos, 2), "big")
        pos += 2
    elif length == WS_SIZE64:
        extended = _take(data, pos, 8)
        if any(extended[:4]):
            raise ValueError("frame payload is too large")
        length = int.from_bytes(extended[4:], "big")
        pos += 8

    if masked:
        mask_key = _take(data, pos, _MASK_KEY_SIZE)
        pos += _MASK_KEY_SIZE
        payload = _apply_mask(_take(data, pos, length), mask_key)
    else:
        payload = _take(data, pos, length)
    return DecodedFrame(fin=fin, opcode=opcode, masked=masked, payload=payload)


def make_client_key(rng: random.Random | None = None) -> str:
    """Return a base64 ``Sec-WebSocket-Key`` made of 16 random bytes."""
    if rng is None:
        raw = os.urandom(_CLIENT_KEY_SIZE)
    else:
        raw = bytes(rng.getrandbits(8) for _ in range(_CLIENT_KEY_SIZE))
    return base64.b64encode(raw).decode("ascii")


def accept_key(client_key: str) -> str:
    """Return the ``Sec-WebSocket-Accept`` value a server sends for ``client_key``."""
    digest = hashlib.sha1((client_key + _HANDSHAKE_GUID).encode("ascii")).digest()
    return base64.b64encode(digest).decode("ascii")