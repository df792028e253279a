"""Sentinel distinguishing "no value was found" from an explicit None.

Raw input trees routinely carry ``None`` as real data, so lookups into the
raw snapshot or the instance-in-progress return ``MISSING`` when a key or
path is absent. Compare with ``is``, never ``==``.
"""

from typing import Final


class MissingSentinel:
    """Singleton type for MISSING. Use the instance, not the class."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "<MISSING>"

    def __bool__(self) -> bool:
        return False

    def __copy__(self) -> "MissingSentinel":
        return self

    def __deepcopy__(self, memo: dict[int, object]) -> "MissingSentinel":
        return self


MISSING: Final[MissingSentinel] = MissingSentinel()
"""Singleton sentinel indicating a value was not found.

Use identity comparison: ``if value is MISSING:``
"""
