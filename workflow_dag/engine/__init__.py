"""Graph execution: the interpreter and the simulator."""

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
from workflow_dag.engine.interpreter import (
    ExecutionResult,
    Interpreter,
    TaskExecutionError,
    execute,
)
from workflow_dag.engine.simulator import (
    DAGSimulator,
    SimulationPlayback,
    SimulationResult,
    SimulationState,
)

__all__ = [
    "BatchCompleteEvent",
    "BatchStartEvent",
    "CollectWaitingEvent",
    "DAGSimulator",
    "ExecutionResult",
    "GateEvaluatedEvent",
    "Interpreter",
    "NodeCompleteEvent",
    "NodeErrorEvent",
    "NodeStartEvent",
    "SimulationCompleteEvent",
    "SimulationEvent",
    "SimulationPlayback",
    "SimulationResult",
    "SimulationState",
    "TaskExecutionError",
    "execute",
]
