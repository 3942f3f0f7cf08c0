"""Tests for the versioned snapshot encoding."""

from __future__ import annotations

import pytest

from mediacat.errors import PayloadError
from mediacat.history import PAYLOAD_VERSION, decode_snapshot, encode_snapshot


def test_encode_is_versioned_and_canonical() -> None:
    encoded = encode_snapshot({"rating": 4, "favorite": True})

    assert PAYLOAD_VERSION == 1
    assert encoded == 'v1:{"favorite":true,"rating":4}'
    assert decode_snapshot(encoded) == {"favorite": True, "rating": 4}


def test_none_passes_through() -> None:
    assert encode_snapshot(None) is None
    assert decode_snapshot(None) is None


@pytest.mark.parametrize("payload", ["v2:{}", "plain text", '{"rating": 1}'])
def test_unknown_encodings_are_rejected(payload: str) -> None:
    with pytest.raises(PayloadError):
        decode_snapshot(payload)


def test_corrupt_body_is_rejected() -> None:
    with pytest.raises(PayloadError):
        decode_snapshot("v1:{not json")


def test_unserializable_snapshot_is_rejected() -> None:
    with pytest.raises(PayloadError):
        encode_snapshot({"tags": {1, 2}})
