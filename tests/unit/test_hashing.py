"""Tests for deterministic hashing utilities."""

from datetime import date
from decimal import Decimal
from types import MappingProxyType

from pam_kernel.utils.hashing import canonicalize_json, hash_payload, short_fingerprint


class TestCanonicalJson:

    def test_sorted_keys_no_whitespace(self):
        assert canonicalize_json({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'

    def test_decimal_representation_normalized(self):
        assert canonicalize_json({"v": Decimal("105.00")}) == canonicalize_json(
            {"v": Decimal("105")}
        )

    def test_dates_and_mapping_proxies(self):
        payload = {"as_of": date(2026, 3, 31), "m": MappingProxyType({"z": 1, "y": 2})}
        assert canonicalize_json(payload) == '{"as_of":"2026-03-31","m":{"y":2,"z":1}}'


class TestHashPayload:

    def test_sha256_hex(self):
        digest = hash_payload({"a": 1})
        assert len(digest) == 64
        int(digest, 16)

    def test_key_order_independent(self):
        assert hash_payload({"a": 1, "b": 2}) == hash_payload({"b": 2, "a": 1})

    def test_different_values_differ(self):
        assert hash_payload({"a": Decimal("1")}) != hash_payload({"a": Decimal("1.1")})

    def test_short_fingerprint_length(self):
        assert len(short_fingerprint("abc")) == 16
        assert short_fingerprint("abc", length=8) == short_fingerprint("abc")[:8]
