"""Tests for rng.py — reproducible draws and seed priority."""

import pytest

from opus_fuzz.rng import MASK32, FastRand, clock_seed, resolve_seed


class TestFastRand:
    def test_known_sequence_seed_1(self):
        rng = FastRand(1)
        assert rng.next() == 2422818384
        assert rng.next() == 1583405312

    def test_zero_seed_is_a_fixed_point(self):
        rng = FastRand(0)
        assert [rng.next() for _ in range(5)] == [0] * 5

    def test_same_seed_same_sequence(self):
        a = FastRand(123456789)
        b = FastRand(123456789)
        assert [a.next() for _ in range(1000)] == [b.next() for _ in range(1000)]

    def test_different_seeds_diverge(self):
        a = FastRand(1)
        b = FastRand(2)
        assert [a.next() for _ in range(10)] != [b.next() for _ in range(10)]

    def test_values_stay_32_bit(self):
        rng = FastRand(0xFFFFFFFF)
        for _ in range(10000):
            value = rng.next()
            assert 0 <= value <= MASK32
            assert 0 <= rng.rz <= MASK32
            assert 0 <= rng.rw <= MASK32

    def test_reseed_restarts_sequence(self):
        rng = FastRand(42)
        first = [rng.next() for _ in range(5)]
        rng.seed(42)
        assert [rng.next() for _ in range(5)] == first

    def test_seed_reduced_modulo_2_32(self):
        a = FastRand(7)
        b = FastRand(7 + (1 << 32))
        assert a.next() == b.next()

    def test_choose_uses_modulo(self):
        rng = FastRand(1)
        # 2422818384 % 5 == 4
        assert rng.choose(("a", "b", "c", "d", "e")) == "e"

    def test_choose_empty_raises(self):
        with pytest.raises(ValueError):
            FastRand(1).choose(())


class TestResolveSeed:
    def test_argument_wins(self):
        assert resolve_seed("1234", {"SEED": "99"}) == (1234, "argument")

    def test_non_integer_argument_falls_back_to_env(self):
        assert resolve_seed("abc", {"SEED": "99"}) == (99, "environment")

    def test_env_parsed_like_atoi(self):
        assert resolve_seed(None, {"SEED": "42xyz"}) == (42, "environment")
        assert resolve_seed(None, {"SEED": "garbage"}) == (0, "environment")

    def test_negative_argument_wraps(self):
        seed, source = resolve_seed("-1", {})
        assert seed == MASK32
        assert source == "argument"

    def test_argument_must_parse_fully(self):
        assert resolve_seed("12 ", {"SEED": "7"}) == (7, "environment")
        assert resolve_seed("1_000", {"SEED": "7"}) == (7, "environment")
        assert resolve_seed("12abc", {"SEED": "7"}) == (7, "environment")

    def test_leading_whitespace_and_sign_accepted(self):
        assert resolve_seed("  +12", {"SEED": "7"}) == (12, "argument")

    def test_clock_fallback(self):
        seed, source = resolve_seed(None, {})
        assert source == "clock"
        assert 0 <= seed <= MASK32

    def test_clock_seed_in_range(self):
        assert 0 <= clock_seed() <= MASK32
