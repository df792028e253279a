# tests/property/__init__.py
"""Property-based tests for fieldwright.

Property-based testing validates invariants that must hold for ALL inputs,
not just the examples we think of. For a resolution engine that means
strategy agreement, determinism and bounded model calls.
"""
