"""
Topological batch interpreter.

Executes a validated graph batch by batch:
- every node whose predecessors have all finished runs in the same batch
- nodes within a batch run concurrently, batches run strictly in sequence
- node semantics are delegated to a TaskRunner
- a gate that evaluates false stops propagation downstream of it

The graph is not re-validated here; run the validator first.
"""

import asyncio
import contextlib
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Optional

from workflow_dag.config import GatePolicy, InterpreterSettings, get_settings
from workflow_dag.core.models import (
    AnyNode,
    CollectNode,
    FaninNode,
    FanoutNode,
    GateNode,
    Graph,
    TaskNode,
)
from workflow_dag.core.state_machine import (
    NodeState,
    NodeStateMachine,
    RunState,
    RunStateMachine,
    StateTransition,
)
from workflow_dag.errors import WorkflowDAGError
from workflow_dag.runners.base import TaskOutcome, TaskRunner, utcnow

logger = logging.getLogger(__name__)


class TaskExecutionError(WorkflowDAGError):
    """Raised when a task still fails after its last attempt."""

    def __init__(
        self,
        node_id: str,
        attempts: int,
        message: str,
        outcome: Optional[TaskOutcome] = None,
    ):
        self.node_id = node_id
        self.attempts = attempts
        self.message = message
        self.outcome = outcome
        super().__init__(f"Task '{node_id}' failed after {attempts} attempt(s): {message}")


@dataclass
class ExecutionResult:
    """What happened during a run."""

    state: RunState
    batches: list[list[str]] = field(default_factory=list)
    node_states: dict[str, NodeState] = field(default_factory=dict)
    context: dict[str, Any] = field(default_factory=dict)
    outcomes: dict[str, TaskOutcome] = field(default_factory=dict)  # task id -> last attempt
    transitions: dict[str, list[StateTransition]] = field(default_factory=dict)

    def _with_state(self, state: NodeState) -> list[str]:
        return [node_id for node_id, s in self.node_states.items() if s == state]

    @property
    def completed(self) -> list[str]:
        """Nodes that ran and released their successors."""
        return self._with_state(NodeState.COMPLETED)

    @property
    def blocked(self) -> list[str]:
        """Gates that evaluated false."""
        return self._with_state(NodeState.BLOCKED)

    @property
    def skipped(self) -> list[str]:
        """Nodes passed over because every input was dead."""
        return self._with_state(NodeState.SKIPPED)

    @property
    def pending(self) -> list[str]:
        """Nodes never reached, e.g. behind a blocked gate."""
        return self._with_state(NodeState.PENDING)

    @property
    def execution_order(self) -> list[str]:
        """Batches flattened into a single list."""
        return [node_id for batch in self.batches for node_id in batch]


class _Run:
    """Mutable bookkeeping for a single execution."""

    def __init__(self, graph: Graph, context: dict[str, Any]):
        self.graph = graph
        self.context = context
        self.nodes: dict[str, AnyNode] = {node.id: node for node in graph.nodes}
        self.machines = {node_id: NodeStateMachine() for node_id in self.nodes}
        self.outcomes: dict[str, TaskOutcome] = {}
        self.batches: list[list[str]] = []

        self.adjacency: dict[str, list[str]] = defaultdict(list)
        self.in_degree = {node_id: 0 for node_id in self.nodes}
        self.live_inputs = {node_id: 0 for node_id in self.nodes}
        for edge in graph.edges:
            self.adjacency[edge.from_].append(edge.to)
            self.in_degree[edge.to] += 1

        self.has_inputs = {node_id: degree > 0 for node_id, degree in self.in_degree.items()}

    def release(self, node_id: str, live: bool) -> None:
        """Decrement successors' in-degree, carrying a live or dead edge."""
        for successor in self.adjacency.get(node_id, []):
            self.in_degree[successor] -= 1
            if live:
                self.live_inputs[successor] += 1

    def to_result(self, state: RunState) -> ExecutionResult:
        return ExecutionResult(
            state=state,
            batches=self.batches,
            node_states={node_id: m.state for node_id, m in self.machines.items()},
            context=self.context,
            outcomes=self.outcomes,
            transitions={node_id: m.history for node_id, m in self.machines.items()},
        )


class Interpreter:
    """
    Runs graphs through a TaskRunner.

    Failure handling:
    - a task failure is retried per the task's (or the graph default) retry
      policy; the last failure raises TaskExecutionError
    - any unrecovered error aborts the run and cancels the rest of the batch
    """

    def __init__(
        self,
        runner: TaskRunner,
        settings: Optional[InterpreterSettings] = None,
    ):
        self.runner = runner
        self.settings = settings or get_settings().interpreter

    async def execute(
        self,
        graph: Graph,
        context: Optional[dict[str, Any]] = None,
    ) -> ExecutionResult:
        """
        Execute a validated graph.

        Args:
            graph: Graph that already passed validation
            context: Initial context visible to gates (e.g. ``{"github": {...}}``)

        Returns:
            ExecutionResult describing every node

        Raises:
            TaskExecutionError: If a task fails after all attempts
            Exception: Anything else the runner raises, unchanged
        """
        run = _Run(graph, context if context is not None else {})
        run_machine = RunStateMachine()
        run_machine.transition(RunState.RUNNING, reason="execution started")

        semaphore = (
            asyncio.Semaphore(self.settings.max_concurrency)
            if self.settings.max_concurrency
            else None
        )

        ready = [node_id for node_id in run.nodes if run.in_degree[node_id] == 0]
        scheduled = set(ready)

        logger.info(f"Executing graph '{graph.name}' v{graph.version} ({len(run.nodes)} nodes)")

        try:
            while ready:
                run.batches.append(ready)
                logger.info(f"Batch {len(run.batches)}: {ready}")

                await self._run_batch(run, ready, semaphore)

                for node_id in ready:
                    self._propagate(run, node_id)

                ready = [
                    node_id
                    for node_id in run.nodes
                    if node_id not in scheduled and run.in_degree[node_id] == 0
                ]
                scheduled.update(ready)
        except BaseException as e:
            run_machine.transition(RunState.FAILED, reason=str(e) or type(e).__name__)
            logger.error(f"Execution of '{graph.name}' aborted: {e}")
            raise

        run_machine.transition(RunState.COMPLETED, reason="ready set exhausted")
        result = run.to_result(run_machine.state)

        if result.pending:
            logger.info(f"Nodes never reached: {result.pending}")
        logger.info(f"Execution of '{graph.name}' completed in {len(run.batches)} batch(es)")

        return result

    def _propagate(self, run: _Run, node_id: str) -> None:
        """Release successors according to how the node finished."""
        state = run.machines[node_id].state

        if state == NodeState.COMPLETED:
            run.release(node_id, live=True)
        elif state == NodeState.BLOCKED:
            if self.settings.gate_policy == GatePolicy.SKIP:
                run.release(node_id, live=False)
        elif state == NodeState.SKIPPED:
            run.release(node_id, live=False)

    async def _run_batch(
        self,
        run: _Run,
        batch: list[str],
        semaphore: Optional[asyncio.Semaphore],
    ) -> None:
        """Run a batch concurrently; on the first failure cancel the rest."""
        tasks = [
            asyncio.create_task(self._run_node(run, node_id, semaphore), name=node_id)
            for node_id in batch
        ]

        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _run_node(
        self,
        run: _Run,
        node_id: str,
        semaphore: Optional[asyncio.Semaphore],
    ) -> None:
        node = run.nodes[node_id]
        machine = run.machines[node_id]

        if run.has_inputs[node_id] and run.live_inputs[node_id] == 0:
            # Only reachable under the skip policy: every input edge is dead
            machine.transition(NodeState.SKIPPED, reason="all inputs dead")
            logger.info(f"Skipping {node_id}: no live inputs")
            return

        async with semaphore or contextlib.nullcontext():
            machine.transition(NodeState.RUNNING)
            try:
                final_state = await self._dispatch(run, node)
            except asyncio.CancelledError:
                machine.transition(NodeState.CANCELLED, reason="run aborted")
                raise
            except BaseException as e:
                machine.transition(NodeState.FAILED, reason=str(e) or type(e).__name__)
                raise

            machine.transition(final_state)

    async def _dispatch(self, run: _Run, node: AnyNode) -> NodeState:
        """Delegate a node to the runner by its kind; return its final state."""
        if isinstance(node, TaskNode):
            await self._run_task(run, node)
            return NodeState.COMPLETED

        if isinstance(node, GateNode):
            passed = await self.runner.evaluate_gate(node, run.context)
            run.context[f"gate_{node.id}"] = passed
            logger.info(f"Gate {node.id} ({node.condition}) -> {'passed' if passed else 'blocked'}")
            return NodeState.COMPLETED if passed else NodeState.BLOCKED

        if isinstance(node, FanoutNode):
            await self.runner.on_fanout(node, run.context)
            return NodeState.COMPLETED

        if isinstance(node, FaninNode):
            await self.runner.on_fanin(node, run.context)
            return NodeState.COMPLETED

        if isinstance(node, CollectNode):
            await self.runner.on_collect(node, run.context)
            return NodeState.COMPLETED

        raise TypeError(f"Unknown node type: {type(node).__name__}")

    async def _run_task(self, run: _Run, node: TaskNode) -> TaskOutcome:
        """Run a task with retry, backoff and timeout."""
        policy = run.graph.effective_retry(node) if self.settings.honor_retry else None
        max_attempts = policy.max_attempts if policy else 1

        timeout = None
        if self.settings.honor_timeout and run.graph.defaults is not None:
            timeout = run.graph.defaults.timeout_seconds

        for attempt in range(1, max_attempts + 1):
            started_at = utcnow()
            cause: Optional[BaseException] = None

            try:
                async with asyncio.timeout(timeout):
                    outcome = await self.runner.run_task(node, run.context)
                if outcome is None:
                    outcome = TaskOutcome(node_id=node.id, success=True, started_at=started_at)
                outcome = outcome.model_copy(update={"attempt": attempt})
            except TimeoutError as e:
                cause = e
                outcome = TaskOutcome(
                    node_id=node.id,
                    success=False,
                    error_message=f"Task timed out after {timeout} seconds",
                    error_type="TaskTimeoutError",
                    is_retryable=True,
                    attempt=attempt,
                    started_at=started_at,
                )
            except Exception as e:
                cause = e
                outcome = TaskOutcome.from_error(node.id, e, started_at, attempt)

            run.outcomes[node.id] = outcome

            if outcome.success:
                return outcome

            if not outcome.is_retryable or attempt == max_attempts:
                raise TaskExecutionError(
                    node.id,
                    attempt,
                    outcome.error_message or "task failed",
                    outcome=outcome,
                ) from cause

            delay = policy.delay_seconds(attempt - 1) if policy else 0.0
            logger.warning(
                f"Task {node.id} failed on attempt {attempt}/{max_attempts}: "
                f"{outcome.error_message}; retrying in {delay:.3f}s"
            )
            await self._backoff(delay)

        raise AssertionError("unreachable")

    async def _backoff(self, delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)


async def execute(
    graph: Graph,
    runner: TaskRunner,
    context: Optional[dict[str, Any]] = None,
    settings: Optional[InterpreterSettings] = None,
) -> ExecutionResult:
    """Execute a validated graph with the given runner."""
    return await Interpreter(runner, settings).execute(graph, context)
