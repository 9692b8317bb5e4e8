"""
End-to-end flow for a build-and-release workflow.

Covers the complete lifecycle of one workflow file:
1. Load the YAML definition
2. Validate it
3. Execute it with real shell commands
4. Simulate it and replay the events
5. Compile it to every target

Shell steps only use ``echo`` and ``test``, so no external services are
needed.
"""

import json
import logging
import sys

import pytest
import yaml

from workflow_dag.compilers import (
    GitHubActionsCompiler,
    MermaidCompiler,
    StepFunctionsCompiler,
)
from workflow_dag.config import GatePolicy, InterpreterSettings
from workflow_dag.core.dag import validate_graph
from workflow_dag.core.serialization import load_graph_file, save_graph_file
from workflow_dag.core.state_machine import NodeState, RunState
from workflow_dag.engine import DAGSimulator, SimulationPlayback, TaskExecutionError, execute
from workflow_dag.runners import ShellTaskRunner

logger = logging.getLogger(__name__)

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="shell commands assume a POSIX shell")

WORKFLOW_YAML = """
name: build_and_release
version: 2.1.0
triggers:
  - _tag: push
    branches: [main]
  - _tag: pull_request
defaults:
  timeout: 60000
  retry:
    maxAttempts: 2
nodes:
  - _tag: task
    id: checkout
    uses: actions/checkout@v4
  - _tag: fanout
    id: checks
  - _tag: task
    id: lint
    run: echo lint-ok
  - _tag: task
    id: unit
    run: echo "unit $SUITE"
    env:
      SUITE: fast
  - _tag: fanin
    id: checks_done
  - _tag: gate
    id: only_main
    condition: "github.ref == 'refs/heads/main' && gate_checks_done != false"
  - _tag: collect
    id: approve
    formId: release_approval
    timeout: 3600000
  - _tag: task
    id: release
    run: test "$NPM_TOKEN" = token-123 && echo released
    secrets: [NPM_TOKEN]
edges:
  - {from: checkout, to: checks}
  - {from: checks, to: lint}
  - {from: checks, to: unit}
  - {from: lint, to: checks_done}
  - {from: unit, to: checks_done}
  - {from: checks_done, to: only_main}
  - {from: only_main, to: approve}
  - {from: approve, to: release}
"""

MAIN_CONTEXT = {"github": {"ref": "refs/heads/main"}, "gate_checks_done": True}


@pytest.fixture
def workflow_file(tmp_path):
    path = tmp_path / "build_and_release.yaml"
    path.write_text(WORKFLOW_YAML)
    return path


@pytest.fixture
def shell_runner():
    """Shell runner with a stub checkout action and the release secret."""

    async def checkout(node, context):
        context["checked_out"] = True

    return ShellTaskRunner(
        secrets={"NPM_TOKEN": "token-123"},
        uses_handlers={"actions/checkout": checkout},
    )


class TestBuildAndRelease:
    """Load, validate, run, simulate and compile one workflow."""

    @pytest.mark.asyncio
    async def test_happy_flow(self, workflow_file, shell_runner):
        """Run the workflow on main: every node completes."""
        graph = load_graph_file(workflow_file)
        logger.info(f"Loaded {graph.name} v{graph.version} with {len(graph.nodes)} nodes")

        validation = validate_graph(graph)
        assert validation.is_valid, validation.errors
        assert validation.get_parallel_batches() == [
            ["checkout"],
            ["checks"],
            ["lint", "unit"],
            ["checks_done"],
            ["only_main"],
            ["approve"],
            ["release"],
        ]

        result = await execute(graph, shell_runner, context=dict(MAIN_CONTEXT))

        assert result.state == RunState.COMPLETED
        assert result.batches == validation.get_parallel_batches()
        assert set(result.completed) == set(graph.node_ids)
        assert result.context["checked_out"] is True
        assert result.context["task_lint"]["stdout"].strip() == "lint-ok"
        assert result.context["task_unit"]["stdout"].strip() == "unit fast"
        assert result.context["task_release"]["stdout"].strip() == "released"
        assert result.context["gate_only_main"] is True

    @pytest.mark.asyncio
    async def test_feature_branch_stops_at_gate(self, workflow_file, shell_runner):
        """Run on a feature branch: the release never happens."""
        graph = load_graph_file(workflow_file)
        context = {"github": {"ref": "refs/heads/feature"}, "gate_checks_done": True}

        result = await execute(graph, shell_runner, context=context)

        assert result.node_states["only_main"] == NodeState.BLOCKED
        assert result.pending == ["approve", "release"]
        assert "task_release" not in result.context

    @pytest.mark.asyncio
    async def test_feature_branch_with_skip_policy(self, workflow_file, shell_runner):
        graph = load_graph_file(workflow_file)
        settings = InterpreterSettings(gate_policy=GatePolicy.SKIP)
        context = {"github": {"ref": "refs/heads/feature"}, "gate_checks_done": True}

        result = await execute(graph, shell_runner, context=context, settings=settings)

        assert result.skipped == ["approve", "release"]
        assert result.pending == []

    @pytest.mark.asyncio
    async def test_missing_secret_aborts(self, workflow_file):
        """Run without the release secret: the run fails at the release task."""
        graph = load_graph_file(workflow_file)

        async def checkout(node, context):
            return None

        runner = ShellTaskRunner(secrets={}, uses_handlers={"actions/checkout": checkout})

        with pytest.raises(TaskExecutionError) as exc_info:
            await execute(graph, runner, context=dict(MAIN_CONTEXT))

        assert exc_info.value.node_id == "release"
        assert exc_info.value.attempts == 1

    @pytest.mark.asyncio
    async def test_simulate_and_replay(self, workflow_file, fast_simulator_settings):
        graph = load_graph_file(workflow_file)
        settings = fast_simulator_settings.model_copy(update={"gate_pass_rate": 1.0})

        result = await DAGSimulator(graph, settings=settings).run(MAIN_CONTEXT)
        playback = SimulationPlayback(result.events)

        while playback.step() is not None:
            pass

        final = playback.current
        assert final.finished
        assert final.completed_nodes == set(graph.node_ids)
        assert final.gate_results == {"only_main": True}
        assert result.context["collect_approve"] == {"submitted": True}

    def test_compile_to_every_target(self, workflow_file, compiler_settings):
        graph = load_graph_file(workflow_file)

        github = yaml.safe_load(GitHubActionsCompiler(compiler_settings).preview(graph))
        assert list(github["jobs"]) == ["checkout", "lint", "unit", "release"]
        assert github["jobs"]["release"]["needs"] == ["lint", "unit"]
        assert github["jobs"]["release"]["if"] == (
            "github.ref == 'refs/heads/main' && gate_checks_done != false"
        )
        assert github["jobs"]["release"]["timeout-minutes"] == 1
        assert github["jobs"]["release"]["steps"][0]["env"] == {"NPM_TOKEN": "${{ secrets.NPM_TOKEN }}"}

        machine = json.loads(StepFunctionsCompiler(compiler_settings).preview(graph))
        assert machine["StartAt"] == "checkout"
        assert machine["States"]["checks"]["Type"] == "Parallel"
        assert machine["States"]["checks"]["Next"] == "checks_done"

        diagram = MermaidCompiler(compiler_settings).preview(graph)
        assert diagram.startswith("graph TD\n")
        assert "  only_main{only_main}" in diagram.splitlines()
        assert "  approve[/approve/]" in diagram.splitlines()

    def test_round_trip_through_json_file(self, workflow_file, tmp_path):
        graph = load_graph_file(workflow_file)
        target = tmp_path / "build_and_release.json"

        save_graph_file(graph, target)

        assert load_graph_file(target) == graph
        assert json.loads(target.read_text())["nodes"][6]["formId"] == "release_approval"
