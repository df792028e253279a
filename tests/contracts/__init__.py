"""Tests for the contracts package.

Covers the shared vocabulary every other package relies on: reference
parsing and raw-path lookup, and the two error families (fatal
configuration errors and per-field data errors).
"""
