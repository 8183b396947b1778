"""Tests for the stored window record format."""

import json

import pytest

from zebra_crossing.adapters.rate_limit.base import WindowState
from zebra_crossing.core.errors import MalformedRecordError


def test_serializes_with_wire_field_names() -> None:
    raw = WindowState(hits=3, expires_at=1_700_000_060_000).to_json()

    assert json.loads(raw) == {"hits": 3, "expiresAt": 1_700_000_060_000}


def test_decodes_stored_record() -> None:
    state = WindowState.from_json('{"hits": 2, "expiresAt": 60000}')

    assert state == WindowState(hits=2, expires_at=60_000)


def test_decodes_bytes_payload() -> None:
    assert WindowState.from_json(b'{"hits": 1, "expiresAt": 5}') == WindowState(1, 5)


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        "",
        "[1, 2]",
        "null",
        '{"hits": 1}',
        '{"expiresAt": 100}',
        '{"hits": "1", "expiresAt": 100}',
        '{"hits": 1.5, "expiresAt": 100}',
        '{"hits": -1, "expiresAt": 100}',
        '{"hits": true, "expiresAt": 100}',
        '{"hits": 1, "expiresAt": null}',
    ],
)
def test_malformed_records_raise(raw: str) -> None:
    with pytest.raises(MalformedRecordError) as exc_info:
        WindowState.from_json(raw)

    assert exc_info.value.code == "malformed_record"


def test_expiry_is_strictly_after_window_end() -> None:
    state = WindowState(hits=1, expires_at=1_000)

    assert state.is_expired(999) is False
    assert state.is_expired(1_000) is False
    assert state.is_expired(1_001) is True
