"""Seed-driven encode/decode round-trip fuzzing for libopus."""

__version__ = "0.1.0"
