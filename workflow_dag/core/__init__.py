"""Core domain models and graph validation."""

from workflow_dag.core.builder import collect, edge, fanin, fanout, gate, task, workflow
from workflow_dag.core.dag import (
    DAGValidator,
    GraphValidationError,
    ValidationError,
    ValidationErrorCode,
    ValidationResult,
    parse_graph,
    validate,
    validate_graph,
)
from workflow_dag.core.models import (
    AnyNode,
    CollectNode,
    Defaults,
    Edge,
    EdgeCondition,
    ExponentialBackoff,
    FaninNode,
    FanoutNode,
    GateNode,
    Graph,
    Node,
    NodeId,
    PullRequestTrigger,
    PushTrigger,
    RetryPolicy,
    ScheduleTrigger,
    TaskNode,
    Trigger,
)
from workflow_dag.core.state_machine import (
    NodeState,
    NodeStateMachine,
    RunState,
    RunStateMachine,
)

__all__ = [
    "AnyNode",
    "CollectNode",
    "DAGValidator",
    "Defaults",
    "Edge",
    "EdgeCondition",
    "ExponentialBackoff",
    "FaninNode",
    "FanoutNode",
    "GateNode",
    "Graph",
    "GraphValidationError",
    "Node",
    "NodeId",
    "NodeState",
    "NodeStateMachine",
    "PullRequestTrigger",
    "PushTrigger",
    "RetryPolicy",
    "RunState",
    "RunStateMachine",
    "ScheduleTrigger",
    "TaskNode",
    "Trigger",
    "ValidationError",
    "ValidationErrorCode",
    "ValidationResult",
    "collect",
    "edge",
    "fanin",
    "fanout",
    "gate",
    "parse_graph",
    "task",
    "validate",
    "validate_graph",
    "workflow",
]
