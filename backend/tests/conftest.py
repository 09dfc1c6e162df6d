"""Shared fixtures: fake CLI gateway, controllable clock, cache store."""

from typing import Callable, Dict, List

import pytest

from codescout.services.cache.store import CacheStore
from codescout.services.tools.base import CommandSpec, Result


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGateway:
    """Stands in for CommandGateway; answers by a handler on the CommandSpec."""

    def __init__(self, handler: Callable[[CommandSpec], Result]):
        self.handler = handler
        self.calls: List[CommandSpec] = []

    async def run(self, spec: CommandSpec) -> Result:
        self.calls.append(spec)
        return self.handler(spec)


def endpoint_of(spec: CommandSpec) -> str:
    return spec.args[0]


def ref_router(responses: Dict[str, Result], default: Result) -> Callable[[CommandSpec], Result]:
    """Route `gh api` calls by the ?ref= suffix of the endpoint."""

    def handler(spec: CommandSpec) -> Result:
        endpoint = endpoint_of(spec)
        ref = endpoint.split("?ref=", 1)[1] if "?ref=" in endpoint else None
        return responses.get(ref, default)

    return handler


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> CacheStore:
    return CacheStore(
        {"gh-code": 3600, "npm-view": 14400, "default": 86400},
        max_entries=100,
        clock=clock,
    )
