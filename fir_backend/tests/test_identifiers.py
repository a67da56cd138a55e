"""
Case Identifier Tests
=====================
"""

import random
from datetime import datetime, timedelta, timezone

from fir_backend.identifiers import FIR_ID_PATTERN, generate_fir_id, is_valid_fir_id


class TestGenerateFirId:

    def test_shape(self):
        fir_id = generate_fir_id()
        assert FIR_ID_PATTERN.match(fir_id)

    def test_uses_given_date(self):
        fir_id = generate_fir_id(now=datetime(2024, 3, 15, 10, 0))
        assert fir_id.startswith("FIR-20240315-")

    def test_aware_timestamp_converted_to_utc(self):
        """23:30 at UTC-5 is already the next day in UTC"""
        local = datetime(2024, 3, 15, 23, 30, tzinfo=timezone(timedelta(hours=-5)))
        assert generate_fir_id(now=local).startswith("FIR-20240316-")

    def test_suffix_range(self):
        rng = random.Random(42)
        for _ in range(500):
            suffix = int(generate_fir_id(now=datetime(2024, 1, 1), rng=rng)[-3:])
            assert 100 <= suffix <= 999

    def test_seeded_rng_is_deterministic(self):
        now = datetime(2024, 1, 1)
        assert generate_fir_id(now, random.Random(7)) == generate_fir_id(now, random.Random(7))


class TestIsValidFirId:

    def test_accepts_generated(self):
        assert is_valid_fir_id(generate_fir_id())

    def test_rejects_malformed(self):
        for value in ["", "FIR-2024031-123", "FIR-20240315-12", "fir-20240315-123",
                      "FIR-20240315-1234", "XYZ-20240315-123", None, 12345]:
            assert not is_valid_fir_id(value)
