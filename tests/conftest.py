"""Shared fakes for the sweep tests. Nothing here talks to a real Solr."""

from typing import List

import pytest

from strategies import IngestionStrategy, StrategySpec


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingStrategy(IngestionStrategy):
    """Records batches; optionally advances a fake clock on every call."""

    name = "Recording"

    def __init__(self, clock=None, submit_cost=0.0, flush_cost=1.0, fail_on_batch=None):
        self.clock = clock
        self.submit_cost = submit_cost
        self.flush_cost = flush_cost
        self.fail_on_batch = fail_on_batch
        self.batches: List[list] = []
        self.flushed = 0
        self.closed = False

    def submit(self, batch):
        self.batches.append(list(batch))
        if self.fail_on_batch is not None and len(self.batches) == self.fail_on_batch:
            raise RuntimeError("connection reset by peer")
        if self.clock is not None:
            self.clock.advance(self.submit_cost)

    def flush(self):
        self.flushed += 1
        if self.clock is not None:
            self.clock.advance(self.flush_cost)

    def close(self):
        self.closed = True


class FakeCluster:
    """Counts collection resets instead of shelling out to bin/solr."""

    def __init__(self, fail_on_reset=None):
        self.resets = 0
        self.fail_on_reset = fail_on_reset

    def reset_collection(self):
        self.resets += 1
        if self.fail_on_reset is not None and self.resets == self.fail_on_reset:
            raise RuntimeError("bin/solr create_collection exited with status 1")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cluster():
    return FakeCluster()


@pytest.fixture
def make_specs(clock):
    """Build StrategySpecs whose instances are kept for inspection."""
    created = {}

    def build(names, **strategy_kwargs):
        specs = []
        for name in names:
            created[name] = []

            def factory(name=name):
                strategy = RecordingStrategy(clock=clock, **strategy_kwargs)
                strategy.name = name
                created[name].append(strategy)
                return strategy

            specs.append(StrategySpec(name, factory))
        return specs

    build.created = created
    return build
