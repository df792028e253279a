# tests/engine/test_convergent.py
"""Tests for convergent execution: fixed points, oscillation, timeouts."""

import threading

import pytest

from fieldwright.contracts import (
    MISSING,
    ConvergenceTimeoutError,
    ExecutionStrategy,
    InstanceState,
    OscillationError,
    ValidationFailed,
)
from fieldwright.engine import ValidationFactory
from fieldwright.engine.convergent import detect_cycle, same_value
from fieldwright.schema import Field, Schema
from fieldwright.stages import Catch, Coerce, CoerceFromSet, CoerceType, DerivedFrom, ValidateRange


def _unit_price(quantity: object) -> int:
    return 8 if isinstance(quantity, int) and quantity > 100 else 10


def _total(quantity: object, price: object) -> object:
    if not isinstance(quantity, int) or price is None:
        return None
    return quantity * price


class Order(Schema, strategy="convergent"):
    quantity = Field(CoerceType(int), ValidateRange(minimum=1))
    unit_price = Field(DerivedFrom("quantity", _unit_price))
    total = Field(DerivedFrom(["quantity", "unit_price"], _total))


def _to_celsius(raw: float | None, fahrenheit: float | None) -> float | None:
    if raw is not None:
        return raw
    return None if fahrenheit is None else round((fahrenheit - 32) * 5 / 9, 2)


def _to_fahrenheit(raw: float | None, celsius: float | None) -> float | None:
    if raw is not None:
        return raw
    return None if celsius is None else round(celsius * 9 / 5 + 32, 2)


class Temperature(Schema):
    celsius = Field(DerivedFrom(["$.celsius", "fahrenheit"], _to_celsius))
    fahrenheit = Field(DerivedFrom(["$.fahrenheit", "celsius"], _to_fahrenheit))


class Flip(Schema, strategy="convergent"):
    a = Field(DerivedFrom("b", lambda b: not b))
    b = Field(DerivedFrom("a", lambda a: a))


class Runaway(Schema, strategy="convergent"):
    a = Field(DerivedFrom("b", lambda b: (b or 0) + 1))
    b = Field(DerivedFrom("a", lambda a: a))


class Warehouse:
    """Catalog entry with identity equality and an uncopyable lock."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.lock = threading.Lock()


class Shipment(Schema, strategy="convergent"):
    site = Field(CoerceFromSet(lambda ctx: ctx["sites"], selector=lambda w: w.name, threshold=0.6))
    label = Field(DerivedFrom("site", lambda site: site.name.upper() if site is not None else None))


class TestFixedPoint:
    @pytest.mark.asyncio
    async def test_order_pricing_converges(self, factory: ValidationFactory) -> None:
        resolution = await factory.resolve(Order, {"quantity": "150"})
        assert resolution.instance.to_dict() == {"quantity": 150, "unit_price": 8, "total": 1200}
        assert resolution.report.iterations <= 3
        assert resolution.report.converged is True
        assert resolution.report.state is InstanceState.DONE

    @pytest.mark.asyncio
    async def test_small_order_uses_list_price(self, factory: ValidationFactory) -> None:
        order = await factory.create(Order, {"quantity": "3"})
        assert order.to_dict() == {"quantity": 3, "unit_price": 10, "total": 30}

    @pytest.mark.asyncio
    async def test_mutual_dependency_from_either_side(self, factory: ValidationFactory) -> None:
        from_celsius = await factory.create(Temperature, {"celsius": 100})
        from_fahrenheit = await factory.create(Temperature, {"fahrenheit": 212})
        assert (from_celsius.celsius, from_celsius.fahrenheit) == (100, 212.0)
        assert (from_fahrenheit.celsius, from_fahrenheit.fahrenheit) == (100.0, 212)

    @pytest.mark.asyncio
    async def test_engine_default_strategy_is_convergent(self, factory: ValidationFactory) -> None:
        resolution = await factory.resolve(Temperature, {"celsius": 0})
        assert resolution.report.strategy is ExecutionStrategy.CONVERGENT

    @pytest.mark.asyncio
    async def test_only_final_iteration_errors_reported(self, factory: ValidationFactory) -> None:
        with pytest.raises(ValidationFailed) as exc_info:
            await factory.create(Order, {"quantity": "0"})
        assert exc_info.value.paths == ["quantity"]
        assert exc_info.value.errors[0].rule == "validate_range"

    @pytest.mark.asyncio
    async def test_repaired_field_converges(self, factory: ValidationFactory) -> None:
        class Recovering(Schema, strategy="convergent"):
            count = Field(Coerce(int), Catch(1))
            double = Field(DerivedFrom("count", lambda c: (c or 0) * 2))

        resolution = await factory.resolve(Recovering, {"count": "n/a"})
        assert resolution.instance.to_dict() == {"count": 1, "double": 2}
        assert resolution.report.repairs >= 1


class TestCandidateObjects:
    @pytest.mark.asyncio
    async def test_matched_object_converges_as_itself(self, factory: ValidationFactory) -> None:
        north, south = Warehouse("north"), Warehouse("south")
        resolution = await factory.resolve(Shipment, {"site": "nort"}, context={"sites": [north, south]})

        assert resolution.instance.site is north
        assert resolution.instance.label == "NORTH"
        assert resolution.report.converged
        assert resolution.report.iterations <= 3


class TestOscillation:
    @pytest.mark.asyncio
    async def test_negation_cycle_detected(self, factory: ValidationFactory) -> None:
        with pytest.raises(OscillationError) as exc_info:
            await factory.create(Flip, {})
        error = exc_info.value
        assert error.iteration <= 4
        assert set(error.cycles) == {"a", "b"}
        assert set(map(bool, error.cycles["a"])) == {True, False}


class TestTimeout:
    @pytest.mark.asyncio
    async def test_budget_exhausted(self, factory: ValidationFactory) -> None:
        with pytest.raises(ConvergenceTimeoutError) as exc_info:
            await factory.create(Runaway, {}, max_iterations=5)
        assert exc_info.value.max_iterations == 5
        assert exc_info.value.changing_fields == ["a", "b"]


class TestDetectCycle:
    def test_period_two(self) -> None:
        assert detect_cycle([1, 2, 1, 2]) == [1, 2]

    def test_period_three(self) -> None:
        assert detect_cycle(["x", "a", "b", "c", "a", "b", "c"]) == ["a", "b", "c"]

    def test_constant_tail_is_not_a_cycle(self) -> None:
        assert detect_cycle([5, 5, 5, 5]) is None

    def test_progress_is_not_a_cycle(self) -> None:
        assert detect_cycle([1, 2, 3, 4, 5, 6]) is None

    def test_single_repeat_is_not_enough(self) -> None:
        assert detect_cycle([1, 2, 1]) is None


class TestSameValue:
    def test_missing_by_identity(self) -> None:
        assert same_value(MISSING, MISSING)
        assert not same_value(MISSING, None)

    def test_numeric_equality(self) -> None:
        assert same_value(3, 3.0)

    def test_uncomparable_values(self) -> None:
        class Grumpy:
            def __eq__(self, other: object) -> bool:
                raise TypeError("no comparisons")

        assert not same_value(Grumpy(), Grumpy())

    def test_objects_without_eq_compare_by_identity(self) -> None:
        site = Warehouse("north")
        assert same_value(site, site)
        assert not same_value(site, Warehouse("north"))
