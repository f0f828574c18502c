"""
Tests for deterministic hashing utilities.
"""

from datetime import UTC, datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum

import pytest

from payroll_kernel.utils.hashing import (
    canonicalize_json,
    hash_bytes,
    hash_payload,
    hash_status_change,
)

WHEN = datetime(2024, 1, 15, 10, 0, 0, tzinfo=UTC)


class Color(Enum):
    RED = "red"


class TestCanonicalJson:

    def test_sorted_and_compact(self):
        assert canonicalize_json({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'

    def test_special_types(self):
        encoded = canonicalize_json({
            "amount": Decimal("1.50"),
            "at": WHEN,
            "color": Color.RED,
            "raw": b"\x01\x02",
        })

        assert '"amount":"1.5"' in encoded
        assert '"at":"2024-01-15T10:00:00+00:00"' in encoded
        assert '"color":"red"' in encoded
        assert '"raw":"0102"' in encoded

    def test_unsupported_type(self):
        with pytest.raises(TypeError):
            canonicalize_json({"x": object()})

    def test_equal_decimals_hash_equal(self):
        assert hash_payload({"a": Decimal("1.5")}) == hash_payload({"a": Decimal("1.50")})


class TestStatusChangeHash:

    def test_known_value(self):
        ms = int(WHEN.timestamp() * 1000)
        expected = hash_bytes(f"D1|GENERATING|GENERATED|hr-1|{ms}".encode())

        assert hash_status_change("D1", "GENERATING", "GENERATED", "hr-1", WHEN) == expected

    def test_timezone_independent(self):
        casablanca = WHEN.astimezone(timezone(timedelta(hours=1)))

        assert hash_status_change("D1", "A", "B", "u", WHEN) == hash_status_change(
            "D1", "A", "B", "u", casablanca
        )

    def test_naive_is_utc(self):
        naive = WHEN.replace(tzinfo=None)

        assert hash_status_change("D1", "A", "B", "u", WHEN) == hash_status_change(
            "D1", "A", "B", "u", naive
        )

    @pytest.mark.parametrize("field", range(5))
    def test_every_component_matters(self, field):
        base = ["D1", "A", "B", "u", WHEN]
        changed = list(base)
        changed[field] = WHEN + timedelta(milliseconds=1) if field == 4 else "other"

        assert hash_status_change(*base) != hash_status_change(*changed)


def test_hash_bytes_is_sha256_hex():
    digest = hash_bytes(b"")

    assert digest == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
