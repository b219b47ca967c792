import pytest

from upstreambalancer.b64 import (
    base64_decode,
    base64_decode_string,
    base64_encode,
    base64_encode_string,
)


def test_known_vectors():
    assert base64_encode(b"Man") == "TWFu"
    assert base64_encode(b"Ma") == "TWE="
    assert base64_encode(b"M") == "TQ=="


def test_empty():
    assert base64_encode(b"") == ""
    assert base64_decode("") == b""


@pytest.mark.parametrize("length", range(0, 20))
def test_binary_round_trip(length):
    data = bytes((i * 37 + 11) % 256 for i in range(length))
    encoded = base64_encode(data)
    assert len(encoded) % 4 == 0
    assert base64_decode(encoded) == data


@pytest.mark.parametrize("text", ["user:password", "", "héllo wörld", "a", "ab", "abc"])
def test_string_round_trip(text):
    assert base64_decode_string(base64_encode_string(text)) == text


def test_decode_without_padding():
    data = b"ab"
    encoded = base64_encode(data)
    assert base64_decode(encoded.rstrip("=")) == data


def test_decode_accepts_bytes():
    encoded = base64_encode(b"xyz123").encode("ascii")
    assert base64_decode(encoded) == b"xyz123"


def test_encode_accepts_bytearray():
    assert base64_decode(base64_encode(bytearray(b"\x00\xff"))) == b"\x00\xff"


def test_decode_invalid_character_raises():
    with pytest.raises(ValueError):
        base64_decode("ab!d")


def test_decode_invalid_length_raises():
    with pytest.raises(ValueError):
        base64_decode("abcde")


def test_decode_non_ascii_raises():
    with pytest.raises(ValueError):
        base64_decode("ééé=")