"""Reference variants read by stages.

A stage that reads anything other than its own input value declares what it
reads as one of four explicit variants:

- SelfValue: the field's own in-progress value (never a graph edge)
- FieldRef: another field's resolved value (an edge to that field)
- RawPath: a path into the original raw input snapshot (never an edge)
- ParentRef: a field of the enclosing parent instance (a cross-graph edge)

Declarations may use the short string forms accepted by parse_reference():
``"quantity"``, ``"$"``, ``"$.display.theme"``, ``"^.currency"``, ``"@"``.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from fieldwright.contracts.errors import RegistrationError
from fieldwright.contracts.sentinels import MISSING


@dataclass(frozen=True, slots=True)
class SelfValue:
    """The current field's own in-progress value."""

    def __str__(self) -> str:
        return "@"


@dataclass(frozen=True, slots=True)
class FieldRef:
    """Another field of the same instance."""

    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True, slots=True)
class RawPath:
    """A dotted path into the original raw input. Empty path = whole input."""

    path: tuple[str, ...] = ()

    def __str__(self) -> str:
        return "$" + "".join(f".{part}" for part in self.path)


@dataclass(frozen=True, slots=True)
class ParentRef:
    """A field of the enclosing parent instance."""

    name: str

    def __str__(self) -> str:
        return f"^.{self.name}"


type Reference = SelfValue | FieldRef | RawPath | ParentRef


def parse_reference(spec: "str | Reference") -> Reference:
    """Turn a declaration string into an explicit reference variant.

    Already-parsed references pass through unchanged.

    Raises:
        RegistrationError: If the string is empty or malformed
    """
    if isinstance(spec, SelfValue | FieldRef | RawPath | ParentRef):
        return spec
    text = spec.strip()
    if not text:
        raise RegistrationError("Empty reference")
    if text == "@":
        return SelfValue()
    if text == "$":
        return RawPath()
    if text.startswith("$."):
        parts = tuple(text[2:].split("."))
        if any(not part for part in parts):
            raise RegistrationError(f"Malformed raw-input path: '{spec}'")
        return RawPath(parts)
    if text.startswith("^."):
        name = text[2:]
        if not name or "." in name:
            raise RegistrationError(f"Malformed parent reference: '{spec}'")
        return ParentRef(name)
    if not text.isidentifier():
        raise RegistrationError(f"Field reference '{spec}' is not a valid field name")
    return FieldRef(text)


def parse_references(specs: "str | Reference | tuple[str | Reference, ...] | list[str | Reference]") -> tuple[Reference, ...]:
    """Normalize one reference or a sequence of them."""
    if isinstance(specs, str | SelfValue | FieldRef | RawPath | ParentRef):
        return (parse_reference(specs),)
    return tuple(parse_reference(spec) for spec in specs)


def lookup_path(data: Any, path: tuple[str, ...]) -> Any:
    """Walk a raw input tree along ``path``.

    Mapping keys are matched exactly; sequence positions accept integer
    segments (``$.items.0.sku``). Returns MISSING if any segment is absent.
    This never coerces: it returns exactly what is found.
    """
    current: Any = data
    for part in path:
        if isinstance(current, Mapping):
            if part not in current:
                return MISSING
            current = current[part]
        elif isinstance(current, Sequence) and not isinstance(current, str | bytes):
            try:
                index = int(part)
            except ValueError:
                return MISSING
            if not -len(current) <= index < len(current):
                return MISSING
            current = current[index]
        else:
            return MISSING
    return current
