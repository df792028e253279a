# tests/conftest.py
"""Shared test fixtures and helpers.

Property tests read their example budget from HYPOTHESIS_PROFILE
(ci, nightly or debug; ci by default):

    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

import os
from collections.abc import Callable, Mapping, Sequence
from typing import Any

import pytest
from hypothesis import Verbosity, settings

from fieldwright.contracts import AIRequest, StageContext
from fieldwright.engine import ValidationFactory


class ScriptedHandler:
    """Model handler that replays a fixed list of answers.

    Records every request so tests can assert on attempt numbers and the
    error context handed back to the model.
    """

    def __init__(self, answers: Sequence[Any]) -> None:
        self.answers = list(answers)
        self.requests: list[AIRequest] = []
        self.values: list[Any] = []

    async def __call__(self, value: Any, instance: Mapping[str, Any], context: Any, request: AIRequest) -> Any:
        self.requests.append(request)
        self.values.append(value)
        index = min(len(self.requests), len(self.answers)) - 1
        return self.answers[index]

    @property
    def calls(self) -> int:
        return len(self.requests)


@pytest.fixture
def scripted() -> type[ScriptedHandler]:
    return ScriptedHandler


@pytest.fixture
def factory() -> ValidationFactory:
    return ValidationFactory()


@pytest.fixture
def make_ctx() -> Callable[..., StageContext]:
    def _make(field: str = "value", raw: Any = None, instance: Mapping[str, Any] | None = None, **kwargs: Any) -> StageContext:
        return StageContext(field=field, raw=raw if raw is not None else {}, instance=instance or {}, **kwargs)

    return _make


# Hypothesis profiles. Each engine example spins up its own event loop, so
# the default profile stays small; deadlines are off for the same reason.
settings.register_profile("ci", max_examples=60, deadline=None)
settings.register_profile("nightly", max_examples=600, deadline=None)
settings.register_profile("debug", max_examples=10, deadline=None, verbosity=Verbosity.verbose, print_blob=True)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))
