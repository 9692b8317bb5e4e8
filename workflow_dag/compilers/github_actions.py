"""
Compile a graph to a GitHub Actions workflow.

Mapping:
- task -> job with a single step
- gate -> ``if`` on the downstream job(s)
- fanout / fanin / collect -> no job; dependencies are traced through them
- triggers -> ``on``
"""

import math
from typing import Any, Optional

import yaml

from workflow_dag.compilers.base import Compiler
from workflow_dag.config import CompilerSettings
from workflow_dag.core.models import (
    AnyNode,
    GateNode,
    Graph,
    PullRequestTrigger,
    PushTrigger,
    ScheduleTrigger,
    TaskNode,
)


def secret_ref(name: str) -> str:
    return f"${{{{ secrets.{name} }}}}"


class GitHubActionsCompiler(Compiler[dict[str, Any]]):
    """Graph -> GitHub Actions workflow mapping."""

    target = "github-actions"

    def _compile(self, graph: Graph) -> dict[str, Any]:
        nodes = {node.id: node for node in graph.nodes}
        jobs: dict[str, Any] = {}

        for node in graph.nodes:
            if isinstance(node, TaskNode):
                jobs[str(node.id)] = self._compile_job(graph, nodes, node)

        workflow: dict[str, Any] = {
            "name": graph.name,
            "on": self._compile_triggers(graph),
        }
        if graph.defaults and graph.defaults.env:
            workflow["env"] = dict(graph.defaults.env)
        workflow["jobs"] = jobs

        return workflow

    def _compile_job(self, graph: Graph, nodes: dict[str, AnyNode], node: TaskNode) -> dict[str, Any]:
        needs, gates = self._trace_upstream(graph, nodes, node.id)

        job: dict[str, Any] = {"runs-on": self.settings.runs_on}
        if needs:
            job["needs"] = needs

        condition = self._combine_conditions(gates)
        if condition:
            job["if"] = condition

        if graph.defaults and graph.defaults.timeout:
            job["timeout-minutes"] = math.ceil(graph.defaults.timeout / 60000)

        step: dict[str, Any] = {"name": str(node.id)}
        if node.uses:
            step["uses"] = node.uses
        if node.run:
            step["run"] = node.run
        if node.env or node.secrets:
            step["env"] = self._compile_env(node.env, node.secrets)

        job["steps"] = [step]
        return job

    def _trace_upstream(
        self,
        graph: Graph,
        nodes: dict[str, AnyNode],
        task_id: str,
    ) -> tuple[list[str], list[GateNode]]:
        """
        Walk incoming edges back through non-task nodes.

        Returns the task ancestors the walk stops at (``needs``) and the
        gates it passes through, both deduplicated in first-seen order.
        """
        needs: list[str] = []
        gates: list[GateNode] = []
        visited: set[str] = set()

        def walk(node_id: str) -> None:
            if node_id in visited:
                return
            visited.add(node_id)

            for source_id in graph.predecessors(node_id):
                source = nodes.get(source_id)
                if source is None:
                    continue
                if isinstance(source, TaskNode):
                    if source.id not in needs:
                        needs.append(str(source.id))
                    continue
                if isinstance(source, GateNode) and source not in gates:
                    gates.append(source)
                walk(source.id)

        walk(task_id)
        return needs, gates

    @staticmethod
    def _combine_conditions(gates: list[GateNode]) -> Optional[str]:
        """One gate keeps its condition; several are ANDed."""
        if not gates:
            return None
        if len(gates) == 1:
            return gates[0].condition
        return " && ".join(f"({gate.condition})" for gate in gates)

    @staticmethod
    def _compile_env(env: Optional[dict[str, str]], secrets: Optional[list[str]]) -> dict[str, str]:
        result = dict(env or {})
        for name in secrets or []:
            result[name] = secret_ref(name)
        return result

    @staticmethod
    def _compile_triggers(graph: Graph) -> dict[str, Any]:
        on: dict[str, Any] = {}

        for trigger in graph.triggers:
            if isinstance(trigger, PushTrigger):
                push: dict[str, Any] = {}
                if trigger.branches:
                    push["branches"] = list(trigger.branches)
                if trigger.paths:
                    push["paths"] = list(trigger.paths)
                on["push"] = push
            elif isinstance(trigger, PullRequestTrigger):
                pull_request: dict[str, Any] = {}
                if trigger.branches:
                    pull_request["branches"] = list(trigger.branches)
                on["pull_request"] = pull_request
            elif isinstance(trigger, ScheduleTrigger):
                on.setdefault("schedule", []).append({"cron": trigger.cron})

        return on

    def _format(self, compiled: dict[str, Any]) -> str:
        return yaml.safe_dump(compiled, sort_keys=False)


def compile_to_github_actions(
    graph: Graph,
    settings: Optional[CompilerSettings] = None,
) -> dict[str, Any]:
    """Compile a validated graph to a GitHub Actions workflow mapping."""
    return GitHubActionsCompiler(settings).compile(graph)
