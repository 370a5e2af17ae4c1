import base64
import random

import pytest

from hdlink.websocket import (
    MAX_WEBSOCKET_HEADER_SIZE,
    DecodedFrame,
    WsOpcode,
    WsStatus,
    accept_key,
    decode_frame,
    encode_frame,
    make_client_key,
)

ZERO_MASK = b"\x00\x00\x00\x00"


def test_encode_small_frame_wire_bytes():
    assert encode_frame(b"abc", ZERO_MASK) == b"\x82\x83\x00\x00\x00\x00abc"


def test_encode_applies_mask():
    mask = b"\x01\x02\x03\x04"
    frame = encode_frame(b"hello", mask)
    assert frame[2:6] == mask
    body = frame[6:]
    assert bytes(b ^ mask[i % 4] for i, b in enumerate(body)) == b"hello"


def test_encode_uses_16bit_length_above_125():
    payload = bytes(range(200))
    frame = encode_frame(payload, ZERO_MASK)
    assert frame[0] == 0x82
    assert frame[1] == 126 | 0x80
    assert int.from_bytes(frame[2:4], "big") == len(payload)
    assert len(frame) == len(payload) + 8


def test_encode_125_uses_short_length():
    frame = encode_frame(b"x" * 125, ZERO_MASK)
    assert frame[1] == 125 | 0x80
    assert len(frame) == 125 + 6


def test_header_never_exceeds_limit():
    frame = encode_frame(b"y" * 1000, ZERO_MASK)
    assert len(frame) - 1000 <= MAX_WEBSOCKET_HEADER_SIZE


@pytest.mark.parametrize("size", [0, 1, 125, 126, 300, 0xFFFF])
def test_round_trip(size):
    payload = bytes(random.Random(size).getrandbits(8) for _ in range(size))
    decoded = decode_frame(encode_frame(payload, b"\x9a\x10\xfe\x33"))
    assert decoded == DecodedFrame(
        fin=True, opcode=WsOpcode.BINARY, masked=True, payload=payload
    )


def test_round_trip_random_mask():
    decoded = decode_frame(encode_frame(b"data"))
    assert decoded.payload == b"data"
    assert decoded.masked is True


def test_encode_rejects_oversized_payload():
    with pytest.raises(ValueError):
        encode_frame(b"\x00" * 0x10000, ZERO_MASK)


def test_encode_rejects_bad_mask():
    with pytest.raises(ValueError):
        encode_frame(b"abc", b"\x01\x02")


def test_decode_unmasked_text_frame():
    decoded = decode_frame(bytes([0x81, 5]) + b"hello")
    assert decoded.opcode == WsOpcode.TEXT
    assert decoded.masked is False
    assert decoded.fin is True
    assert decoded.payload == b"hello"


def test_decode_64bit_length():
    payload = b"z" * 10
    data = bytes([0x82, 127]) + (10).to_bytes(8, "big") + payload
    assert decode_frame(data).payload == payload


def test_decode_rejects_too_large():
    data = bytes([0x82, 127]) + b"\x00\x00\x00\x01" + b"\x00\x00\x00\x00"
    with pytest.raises(ValueError):
        decode_frame(data)


def test_decode_rejects_empty():
    with pytest.raises(ValueError):
        decode_frame(b"")


def test_decode_rejects_truncated():
    with pytest.raises(ValueError):
        decode_frame(bytes([0x82, 10]) + b"abc")


def test_make_client_key_is_16_bytes():
    key = make_client_key(random.Random(7))
    assert len(base64.b64decode(key)) == 16


def test_make_client_key_deterministic_with_seed():
    first = make_client_key(random.Random(3))
    second = make_client_key(random.Random(3))
    assert len(base64.b64decode(first)) == 16
    assert first == second


def test_make_client_key_default_random():
    assert len(base64.b64decode(make_client_key())) == 16


def test_accept_key_handshake_example():
    assert accept_key("dGhlIHNhbXBsZSBub25jZQ==") == "s3pPLMBiTxaQ9kYGzzhZRbK+xOo="


def test_accept_key_is_sha1_sized():
    assert len(base64.b64decode(accept_key(make_client_key(random.Random(1))))) == 20


def test_status_values():
    assert [s.value for s in WsStatus] == [1, 2, 3, 4]
    assert WsOpcode(0x0A) is WsOpcode.PONG