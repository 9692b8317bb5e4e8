"""
Event-emitting simulator for step-by-step visualization.

Walks the graph in the same topological batches as the interpreter, but:
- nodes in a batch run one after another in node order, so the event log
  is deterministic
- every step is recorded as an event
- a node that raises becomes a ``node_error`` event and the run goes on

The continue-on-error policy is for visualization only; use the
Interpreter to actually run a workflow.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional

from pydantic import BaseModel, Field

from workflow_dag.config import SimulatorSettings, get_settings
from workflow_dag.core.models import (
    AnyNode,
    CollectNode,
    FaninNode,
    FanoutNode,
    GateNode,
    Graph,
    TaskNode,
)
from workflow_dag.engine.events import (
    BatchCompleteEvent,
    BatchStartEvent,
    CollectWaitingEvent,
    GateEvaluatedEvent,
    NodeCompleteEvent,
    NodeErrorEvent,
    NodeStartEvent,
    SimulationCompleteEvent,
    SimulationEvent,
)
from workflow_dag.runners.base import TaskRunner
from workflow_dag.runners.simulated import SimulatedTaskRunner

logger = logging.getLogger(__name__)


class SimulationResult(BaseModel):
    """Full event log of a simulation plus the final context."""

    events: list[SimulationEvent] = Field(default_factory=list)
    context: dict[str, Any] = Field(default_factory=dict)
    completed_nodes: set[str] = Field(default_factory=set)

    @property
    def failed_nodes(self) -> set[str]:
        return {e.node_id for e in self.events if isinstance(e, NodeErrorEvent)}

    @property
    def batches(self) -> list[list[str]]:
        return [e.node_ids for e in self.events if isinstance(e, BatchStartEvent)]


@dataclass
class _SimulationRun:
    context: dict[str, Any] = field(default_factory=dict)
    completed_nodes: set[str] = field(default_factory=set)


class DAGSimulator:
    """
    Simulates a graph, recording what happens.

    Example:
        result = await DAGSimulator(graph).run()
        playback = SimulationPlayback(result.events)
    """

    def __init__(
        self,
        graph: Graph,
        runner: Optional[TaskRunner] = None,
        settings: Optional[SimulatorSettings] = None,
    ):
        self.graph = graph
        self.settings = settings or get_settings().simulator
        self.runner = runner or SimulatedTaskRunner(self.settings)

    async def run(self, context: Optional[dict[str, Any]] = None) -> SimulationResult:
        """Run the whole simulation and return the event log."""
        run = _SimulationRun(context=dict(context or {}))
        events = [event async for event in self._simulate(run)]

        return SimulationResult(
            events=events,
            context=run.context,
            completed_nodes=run.completed_nodes,
        )

    async def stream(self, context: Optional[dict[str, Any]] = None) -> AsyncIterator[SimulationEvent]:
        """Yield events as the simulation produces them."""
        run = _SimulationRun(context=dict(context or {}))
        async for event in self._simulate(run):
            yield event

    async def _simulate(self, run: _SimulationRun) -> AsyncIterator[SimulationEvent]:
        nodes: dict[str, AnyNode] = {node.id: node for node in self.graph.nodes}
        adjacency: dict[str, list[str]] = defaultdict(list)
        in_degree = {node_id: 0 for node_id in nodes}

        for edge in self.graph.edges:
            adjacency[edge.from_].append(edge.to)
            in_degree[edge.to] += 1

        batch = [node_id for node_id in nodes if in_degree[node_id] == 0]
        scheduled = set(batch)

        while batch:
            yield BatchStartEvent(node_ids=list(batch))

            for node_id in batch:
                node = nodes[node_id]
                yield NodeStartEvent(node_id=node_id, node=node)

                propagate = True
                try:
                    async for event in self._simulate_node(node, run):
                        if isinstance(event, GateEvaluatedEvent) and not event.passed:
                            propagate = False
                        yield event
                    run.completed_nodes.add(node_id)
                except Exception as e:
                    logger.warning(f"Simulated node {node_id} failed: {e}")
                    yield NodeErrorEvent(node_id=node_id, node=node, error=str(e) or type(e).__name__)

                # A failed node still releases its successors; a closed gate does not
                if propagate:
                    for successor in adjacency.get(node_id, []):
                        in_degree[successor] -= 1

            yield BatchCompleteEvent(node_ids=list(batch))

            batch = [
                node_id
                for node_id in nodes
                if node_id not in scheduled and in_degree[node_id] == 0
            ]
            scheduled.update(batch)

        yield SimulationCompleteEvent()
        logger.debug(f"Simulation of '{self.graph.name}' finished: {len(run.completed_nodes)} node(s) completed")

    async def _simulate_node(self, node: AnyNode, run: _SimulationRun) -> AsyncIterator[SimulationEvent]:
        """Yield the events of a single node after its ``node_start``."""
        if isinstance(node, TaskNode):
            outcome = await self.runner.run_task(node, run.context)
            if outcome is not None and not outcome.success:
                raise RuntimeError(outcome.error_message or f"Task {node.id} failed")
            result = outcome.output if outcome is not None and outcome.output else {"status": "success"}
            yield NodeCompleteEvent(node_id=node.id, node=node, result=result)

        elif isinstance(node, GateNode):
            passed = await self.runner.evaluate_gate(node, run.context)
            run.context[f"gate_{node.id}"] = passed
            yield GateEvaluatedEvent(node_id=node.id, passed=passed)
            yield NodeCompleteEvent(node_id=node.id, node=node)

        elif isinstance(node, FanoutNode):
            await self.runner.on_fanout(node, run.context)
            yield NodeCompleteEvent(node_id=node.id, node=node)

        elif isinstance(node, FaninNode):
            await self.runner.on_fanin(node, run.context)
            yield NodeCompleteEvent(node_id=node.id, node=node)

        elif isinstance(node, CollectNode):
            yield CollectWaitingEvent(node_id=node.id, form_id=node.form_id)
            await self.runner.on_collect(node, run.context)
            yield NodeCompleteEvent(node_id=node.id, node=node)

        else:
            raise TypeError(f"Unknown node type: {type(node).__name__}")


@dataclass
class SimulationState:
    """Snapshot of a simulation after replaying a prefix of its events."""

    current_batch: list[str] = field(default_factory=list)
    completed_nodes: set[str] = field(default_factory=set)
    active_node: Optional[str] = None
    failed_nodes: set[str] = field(default_factory=set)
    gate_results: dict[str, bool] = field(default_factory=dict)
    events: list[SimulationEvent] = field(default_factory=list)
    finished: bool = False


class SimulationPlayback:
    """
    Index-driven playback over a recorded event log.

    The cursor starts before the first event; ``step()`` moves it forward.
    """

    def __init__(self, events: list[SimulationEvent]):
        self.events = list(events)
        self.position = -1

    def __len__(self) -> int:
        return len(self.events)

    def event_at(self, index: int) -> SimulationEvent:
        return self.events[index]

    def state_at(self, index: int) -> SimulationState:
        """
        State after applying events ``0..index`` inclusive.

        ``index = -1`` gives the initial, empty state.

        Raises:
            IndexError: If index is outside ``-1..len-1``
        """
        if index < -1 or index >= len(self.events):
            raise IndexError(f"Event index {index} out of range (0..{len(self.events) - 1})")

        state = SimulationState(events=self.events[: index + 1])

        for event in state.events:
            if isinstance(event, BatchStartEvent):
                state.current_batch = list(event.node_ids)
            elif isinstance(event, NodeStartEvent):
                state.active_node = event.node_id
            elif isinstance(event, NodeCompleteEvent):
                state.completed_nodes.add(event.node_id)
                state.active_node = None
            elif isinstance(event, NodeErrorEvent):
                state.failed_nodes.add(event.node_id)
                state.active_node = None
            elif isinstance(event, GateEvaluatedEvent):
                state.gate_results[event.node_id] = event.passed
            elif isinstance(event, BatchCompleteEvent):
                state.current_batch = []
            elif isinstance(event, SimulationCompleteEvent):
                state.finished = True

        return state

    @property
    def current(self) -> SimulationState:
        return self.state_at(self.position)

    @property
    def at_end(self) -> bool:
        return self.position >= len(self.events) - 1

    def step(self) -> Optional[SimulationState]:
        """Advance one event; None once the log is exhausted."""
        if self.at_end:
            return None
        self.position += 1
        return self.current

    def reset(self) -> None:
        self.position = -1
