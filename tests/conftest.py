"""
Pytest fixtures and configuration for tests.
"""

from typing import Any, Optional
from unittest.mock import AsyncMock

import pytest

from workflow_dag.config import (
    CompilerSettings,
    Environment,
    InterpreterSettings,
    Settings,
    SimulatorSettings,
)
from workflow_dag.core.models import Graph
from workflow_dag.runners.base import TaskRunner


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        environment=Environment.TEST,
        debug=True,
        log_level="DEBUG",
    )


@pytest.fixture
def interpreter_settings() -> InterpreterSettings:
    return InterpreterSettings()


@pytest.fixture
def fast_simulator_settings() -> SimulatorSettings:
    """Simulator settings with no delays and a fixed seed."""
    return SimulatorSettings(
        task_delay_ms=0,
        gate_delay_ms=0,
        structural_delay_ms=0,
        collect_delay_ms=0,
        seed=42,
    )


@pytest.fixture
def compiler_settings() -> CompilerSettings:
    return CompilerSettings()


class RecordingRunner(TaskRunner):
    """
    Runner double that records calls and lets tests script results.

    Task calls go through ``task_mock`` (an AsyncMock), so tests can set
    ``side_effect`` or ``return_value`` on it.
    """

    def __init__(self, gate_results: Optional[dict[str, bool]] = None):
        self.gate_results = gate_results or {}
        self.calls: list[str] = []
        self.task_mock = AsyncMock(return_value=None)

    async def run_task(self, node, context: dict[str, Any]):
        self.calls.append(node.id)
        return await self.task_mock(node, context)

    async def evaluate_gate(self, node, context: dict[str, Any]) -> bool:
        self.calls.append(node.id)
        return self.gate_results.get(node.id, True)

    async def on_fanout(self, node, context: dict[str, Any]) -> None:
        self.calls.append(node.id)

    async def on_fanin(self, node, context: dict[str, Any]) -> None:
        self.calls.append(node.id)

    async def on_collect(self, node, context: dict[str, Any]) -> None:
        self.calls.append(node.id)


@pytest.fixture
def make_runner():
    """Factory for RecordingRunner with scripted gate results."""
    return RecordingRunner


@pytest.fixture
def recording_runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture
def linear_graph_data() -> dict:
    """Linear chain: checkout -> build -> test."""
    return {
        "name": "linear",
        "version": "1.0.0",
        "triggers": [{"_tag": "push", "branches": ["main"]}],
        "nodes": [
            {"_tag": "task", "id": "checkout", "uses": "actions/checkout@v4"},
            {"_tag": "task", "id": "build", "run": "pnpm build"},
            {"_tag": "task", "id": "test", "run": "pnpm test"},
        ],
        "edges": [
            {"from": "checkout", "to": "build", "condition": "always"},
            {"from": "build", "to": "test", "condition": "always"},
        ],
    }


@pytest.fixture
def linear_graph(linear_graph_data) -> Graph:
    return Graph.model_validate(linear_graph_data)


@pytest.fixture
def diamond_graph_data() -> dict:
    """Fan-out/fan-in: checkout -> split -> (lint, unit) -> join -> package."""
    return {
        "name": "diamond",
        "version": "1.0.0",
        "triggers": [{"_tag": "pull_request"}],
        "nodes": [
            {"_tag": "task", "id": "checkout", "uses": "actions/checkout@v4"},
            {"_tag": "fanout", "id": "split"},
            {"_tag": "task", "id": "lint", "run": "pnpm lint"},
            {"_tag": "task", "id": "unit", "run": "pnpm test"},
            {"_tag": "fanin", "id": "join"},
            {"_tag": "task", "id": "package", "run": "pnpm pack"},
        ],
        "edges": [
            {"from": "checkout", "to": "split"},
            {"from": "split", "to": "lint"},
            {"from": "split", "to": "unit"},
            {"from": "lint", "to": "join"},
            {"from": "unit", "to": "join"},
            {"from": "join", "to": "package"},
        ],
    }


@pytest.fixture
def diamond_graph(diamond_graph_data) -> Graph:
    return Graph.model_validate(diamond_graph_data)


@pytest.fixture
def gated_deploy_graph_data() -> dict:
    """Build and release: build -> only_main (gate) -> deploy."""
    return {
        "name": "build_and_release",
        "version": "1.0.0",
        "triggers": [{"_tag": "push", "branches": ["main"]}],
        "nodes": [
            {"_tag": "task", "id": "build", "run": "pnpm build"},
            {"_tag": "gate", "id": "only_main", "condition": "github.ref == 'refs/heads/main'"},
            {
                "_tag": "task",
                "id": "deploy",
                "run": "pnpm deploy",
                "env": {"STAGE": "prod"},
                "secrets": ["DEPLOY_TOKEN"],
            },
        ],
        "edges": [
            {"from": "build", "to": "only_main"},
            {"from": "only_main", "to": "deploy"},
        ],
    }


@pytest.fixture
def gated_deploy_graph(gated_deploy_graph_data) -> Graph:
    return Graph.model_validate(gated_deploy_graph_data)


@pytest.fixture
def cyclic_graph_data() -> dict:
    """Invalid graph with a cycle: a -> b -> c -> a."""
    return {
        "name": "cyclic",
        "version": "1.0.0",
        "triggers": [{"_tag": "push"}],
        "nodes": [
            {"_tag": "task", "id": "a", "run": "echo a"},
            {"_tag": "task", "id": "b", "run": "echo b"},
            {"_tag": "task", "id": "c", "run": "echo c"},
        ],
        "edges": [
            {"from": "a", "to": "b"},
            {"from": "b", "to": "c"},
            {"from": "c", "to": "a"},
        ],
    }
