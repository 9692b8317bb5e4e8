"""
Compile a graph to an AWS Step Functions state machine (ASL).

Mapping:
- task -> Task state invoking ``<id>-function``
- gate -> Choice state comparing ``$.ref`` with the condition's quoted literal
- fanout -> Parallel state, one branch per successor, joined at the fanin
- fanin -> Succeed state, or a Pass state inside a branch when it closes a nested Parallel
- collect -> callback Task state waiting for a task token

All states are built in a first pass; Parallel branches are wired from
those states afterwards, so node order does not matter.
"""

import copy
import json
import logging
import math
import re
from typing import Any, Optional

from workflow_dag.compilers.base import Compiler, CompilerError, CompilerPhase
from workflow_dag.config import CompilerSettings
from workflow_dag.core.models import (
    AnyNode,
    CollectNode,
    FaninNode,
    FanoutNode,
    GateNode,
    Graph,
    TaskNode,
)

logger = logging.getLogger(__name__)

SUCCESS_STATE = "SuccessState"

QUOTED_LITERAL = re.compile(r"""['"]([^'"]+)['"]""")


def extract_gate_value(condition: str) -> str:
    """First quoted literal in a condition, or the whole condition."""
    match = QUOTED_LITERAL.search(condition)
    return match.group(1) if match else condition


def _next_of(state: dict[str, Any]) -> Optional[str]:
    """The state a branch walk continues to."""
    if state["Type"] == "Choice":
        target = state["Choices"][0]["Next"]
        return None if target == SUCCESS_STATE else target
    return state.get("Next")


def _end_here(state: dict[str, Any]) -> None:
    """Make a state terminate its branch."""
    if state["Type"] == "Choice":
        state["Choices"][0]["Next"] = SUCCESS_STATE
    elif state["Type"] not in ("Succeed", "Fail"):
        state.pop("Next", None)
        state["End"] = True


def _references(state: dict[str, Any]) -> set[str]:
    refs = set()
    if "Next" in state:
        refs.add(state["Next"])
    if "Default" in state:
        refs.add(state["Default"])
    for choice in state.get("Choices", []):
        refs.add(choice["Next"])
    return refs


def _closes(graph: Graph, fanout_id: str, fanin_id: Optional[str]) -> bool:
    """True when every input of ``fanin_id`` comes from inside ``fanout_id``."""
    if fanin_id is None:
        return False
    inside: set[str] = set()
    frontier = [str(s) for s in graph.successors(fanout_id)]
    while frontier:
        node_id = frontier.pop()
        if node_id in inside or node_id == fanin_id:
            continue
        inside.add(node_id)
        frontier.extend(str(s) for s in graph.successors(node_id))
    return all(str(p) in inside for p in graph.predecessors(fanin_id))


def _add_success_state(states: dict[str, Any]) -> None:
    if any(SUCCESS_STATE in _references(s) for s in states.values() if s["Type"] == "Choice"):
        states[SUCCESS_STATE] = {"Type": "Succeed"}


class StepFunctionsCompiler(Compiler[dict[str, Any]]):
    """Graph -> Amazon States Language mapping."""

    target = "step-functions"

    def _compile(self, graph: Graph) -> dict[str, Any]:
        start = self._find_start(graph)

        states: dict[str, dict[str, Any]] = {}
        for node in graph.nodes:
            states[str(node.id)] = self._build_state(graph, node)

        fanin_ids = {str(node.id) for node in graph.nodes if isinstance(node, FaninNode)}
        owned: set[str] = set()
        wired: set[str] = set()

        for node in graph.nodes:
            if isinstance(node, FanoutNode):
                self._wire_parallel(graph, str(node.id), states, fanin_ids, owned, wired)

        # States moved into a branch only live there, unless still targeted from outside
        top_level = {name: state for name, state in states.items() if name not in owned}
        referenced = set().union(*(_references(s) for s in top_level.values())) if top_level else set()
        for name in owned & referenced:
            top_level[name] = states[name]

        _add_success_state(top_level)

        return {
            "Comment": graph.name,
            "StartAt": start,
            "States": top_level,
        }

    def _find_start(self, graph: Graph) -> str:
        targets = {edge.to for edge in graph.edges}
        for node in graph.nodes:
            if isinstance(node, TaskNode) and node.id not in targets:
                return str(node.id)

        raise CompilerError(
            CompilerPhase.VALIDATION,
            "No start node found (task without incoming edges)",
            source=graph,
        )

    def _build_state(self, graph: Graph, node: AnyNode) -> dict[str, Any]:
        successors = graph.successors(node.id)
        next_id = str(successors[0]) if successors else None

        if isinstance(node, TaskNode):
            state: dict[str, Any] = {
                "Type": "Task",
                "Resource": self.settings.lambda_resource,
                "Parameters": {
                    "FunctionName": f"{node.id}-function",
                    "Payload": {
                        "command": node.command,
                        "env": dict(node.env or {}),
                    },
                },
            }
            return self._link(state, next_id)

        if isinstance(node, GateNode):
            return {
                "Type": "Choice",
                "Choices": [
                    {
                        "Variable": self.settings.choice_variable,
                        "StringEquals": extract_gate_value(node.condition),
                        "Next": next_id or SUCCESS_STATE,
                    }
                ],
                "Default": SUCCESS_STATE,
            }

        if isinstance(node, FanoutNode):
            # Branches are filled in once every state exists
            return {"Type": "Parallel", "Branches": []}

        if isinstance(node, FaninNode):
            return {"Type": "Succeed"}

        if isinstance(node, CollectNode):
            state = {
                "Type": "Task",
                "Resource": self.settings.callback_resource,
                "Parameters": {
                    "FunctionName": f"{node.id}-function",
                    "Payload": {
                        "formId": node.form_id,
                        "taskToken.$": "$$.Task.Token",
                    },
                },
            }
            if node.timeout:
                state["TimeoutSeconds"] = math.ceil(node.timeout / 1000)
            return self._link(state, next_id)

        raise CompilerError(
            CompilerPhase.COMPILATION,
            f"Unsupported node type: {type(node).__name__}",
            source=node,
        )

    @staticmethod
    def _link(state: dict[str, Any], next_id: Optional[str]) -> dict[str, Any]:
        if next_id:
            state["Next"] = next_id
        else:
            state["End"] = True
        return state

    def _wire_parallel(
        self,
        graph: Graph,
        fanout_id: str,
        states: dict[str, dict[str, Any]],
        fanin_ids: set[str],
        owned: set[str],
        wired: set[str],
    ) -> None:
        """Fill a Parallel state's branches; nested fanouts are wired first."""
        if fanout_id in wired:
            return
        wired.add(fanout_id)

        branches = []
        joins: set[Optional[str]] = set()

        for successor in graph.successors(fanout_id):
            branch, join = self._build_branch(graph, str(successor), states, fanin_ids, owned, wired)
            branches.append(branch)
            joins.add(join)

        parallel = states[fanout_id]
        parallel["Branches"] = branches
        parallel.pop("Next", None)
        parallel.pop("End", None)

        if len(joins) == 1 and None not in joins:
            parallel["Next"] = joins.pop()
        else:
            parallel["End"] = True

        logger.debug(f"Parallel {fanout_id}: {len(branches)} branch(es), next={parallel.get('Next')}")

    def _build_branch(
        self,
        graph: Graph,
        start: str,
        states: dict[str, dict[str, Any]],
        fanin_ids: set[str],
        owned: set[str],
        wired: set[str],
    ) -> tuple[dict[str, Any], Optional[str]]:
        """
        Follow a branch from ``start`` up to the first fanin.

        Returns the branch definition and the fanin it converges on, if any.
        """
        if start in fanin_ids:
            # Empty branch straight into the join
            name = f"{start}_passthrough"
            return {"StartAt": name, "States": {name: {"Type": "Pass", "End": True}}}, start

        branch_states: dict[str, Any] = {}
        join: Optional[str] = None
        current: Optional[str] = start

        while current is not None and current not in branch_states:
            if current in fanin_ids:
                # Join of a nested Parallel: the branch carries on past it
                successors = graph.successors(current)
                state = self._link({"Type": "Pass"}, str(successors[0]) if successors else None)
            else:
                if states[current]["Type"] == "Parallel":
                    self._wire_parallel(graph, current, states, fanin_ids, owned, wired)
                state = copy.deepcopy(states[current])

            owned.add(current)
            following = _next_of(state)
            closes_inner = state["Type"] == "Parallel" and _closes(graph, current, following)

            if following is None or (following in fanin_ids and not closes_inner):
                join = following
                _end_here(state)
                branch_states[current] = state
                break

            branch_states[current] = state
            current = following

        _add_success_state(branch_states)
        return {"StartAt": start, "States": branch_states}, join

    def _format(self, compiled: dict[str, Any]) -> str:
        return json.dumps(compiled, indent=2)


def compile_to_step_functions(
    graph: Graph,
    settings: Optional[CompilerSettings] = None,
) -> dict[str, Any]:
    """Compile a validated graph to an ASL state machine definition."""
    return StepFunctionsCompiler(settings).compile(graph)
