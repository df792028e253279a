# tests/engine/test_single_pass.py
"""Tests for single-pass execution."""

import pytest

from fieldwright.contracts import CyclicDependencyError, ExecutionStrategy, InstanceState, ValidationFailed
from fieldwright.core.config import EngineSettings
from fieldwright.engine import ValidationFactory
from fieldwright.schema import Field, Schema
from fieldwright.stages import CoerceType, DerivedFrom, ValidateRange


def _line_total(quantity: int | None, price: float | None) -> float | None:
    if quantity is None or price is None:
        return None
    return quantity * price


class LineItem(Schema, strategy="single_pass"):
    # Declared before its dependencies on purpose.
    total = Field(DerivedFrom(["quantity", "price"], _line_total))
    quantity = Field(CoerceType(int), ValidateRange(minimum=1))
    price = Field(CoerceType(float), ValidateRange(minimum=0))
    sku = Field(CoerceType(str))


class Ring(Schema, strategy="convergent"):
    a = Field(DerivedFrom(["$.a", "b"], lambda raw, b: raw if raw is not None else b))
    b = Field(DerivedFrom(["$.b", "a"], lambda raw, a: raw if raw is not None else a))


class TestOrdering:
    @pytest.mark.asyncio
    async def test_dependencies_resolve_first(self, factory: ValidationFactory) -> None:
        item = await factory.create(LineItem, {"quantity": "3", "price": "2.50", "sku": 1001})
        assert item.total == 7.5
        assert item.sku == "1001"

    @pytest.mark.asyncio
    async def test_report(self, factory: ValidationFactory) -> None:
        resolution = await factory.resolve(LineItem, {"quantity": 1, "price": 1, "sku": "x"})
        report = resolution.report
        assert report.strategy is ExecutionStrategy.SINGLE_PASS
        assert report.iterations == 1
        assert report.converged is True
        assert report.state is InstanceState.DONE

    @pytest.mark.asyncio
    async def test_failed_dependency_reads_as_none(self, factory: ValidationFactory) -> None:
        seen: list[object] = []

        class Probe(Schema, strategy="single_pass"):
            quantity = Field(CoerceType(int))
            echo = Field(DerivedFrom("quantity", lambda q: seen.append(q)))

        with pytest.raises(ValidationFailed) as exc_info:
            await factory.create(Probe, {"quantity": "lots"})
        assert exc_info.value.paths == ["quantity"]
        assert seen == [None]


class TestErrorCollection:
    @pytest.mark.asyncio
    async def test_collects_every_error(self, factory: ValidationFactory) -> None:
        with pytest.raises(ValidationFailed) as exc_info:
            await factory.create(LineItem, {"quantity": "0", "price": "-1", "sku": "x"})
        assert exc_info.value.paths == ["quantity", "price"]
        assert {error.rule for error in exc_info.value.errors} == {"validate_range"}

    @pytest.mark.asyncio
    async def test_fail_fast_stops_at_first_error(self, factory: ValidationFactory) -> None:
        with pytest.raises(ValidationFailed) as exc_info:
            await factory.create(LineItem, {"quantity": "0", "price": "-1", "sku": "x"}, fail_fast=True)
        assert exc_info.value.paths == ["quantity"]

    @pytest.mark.asyncio
    async def test_fail_fast_from_settings(self) -> None:
        factory = ValidationFactory(EngineSettings(fail_fast=True))
        with pytest.raises(ValidationFailed) as exc_info:
            await factory.create(LineItem, {"quantity": "0", "price": "-1", "sku": "x"})
        assert len(exc_info.value.errors) == 1


class TestParallelGenerations:
    @pytest.mark.asyncio
    async def test_same_result_as_sequential(self) -> None:
        raw = {"quantity": "4", "price": "1.25", "sku": "A-9"}
        sequential = await ValidationFactory().create(LineItem, raw)
        parallel = await ValidationFactory(EngineSettings(parallel_fields=True)).create(LineItem, raw)
        assert parallel == sequential
        assert parallel.total == 5.0

    @pytest.mark.asyncio
    async def test_errors_keep_declaration_order(self) -> None:
        factory = ValidationFactory(EngineSettings(parallel_fields=True))
        with pytest.raises(ValidationFailed) as exc_info:
            await factory.create(LineItem, {"quantity": "0", "price": "-1", "sku": "x"})
        assert exc_info.value.paths == ["quantity", "price"]


class TestStrategyOverride:
    @pytest.mark.asyncio
    async def test_single_pass_override_on_cyclic_schema(self, factory: ValidationFactory) -> None:
        with pytest.raises(CyclicDependencyError) as exc_info:
            await factory.create(Ring, {"a": 1}, strategy=ExecutionStrategy.SINGLE_PASS)
        assert set(exc_info.value.cycle) == {"a", "b"}

    @pytest.mark.asyncio
    async def test_convergent_override_on_acyclic_schema(self, factory: ValidationFactory) -> None:
        resolution = await factory.resolve(LineItem, {"quantity": 2, "price": 3, "sku": "s"}, strategy="convergent")
        assert resolution.report.strategy is ExecutionStrategy.CONVERGENT
        assert resolution.instance.total == 6.0
