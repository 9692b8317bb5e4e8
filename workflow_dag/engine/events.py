"""Simulation event models, discriminated by ``type``."""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from workflow_dag.core.models import Node


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)


class BatchStartEvent(_Event):
    type: Literal["batch_start"] = "batch_start"
    node_ids: list[str]


class NodeStartEvent(_Event):
    type: Literal["node_start"] = "node_start"
    node_id: str
    node: Node


class NodeCompleteEvent(_Event):
    type: Literal["node_complete"] = "node_complete"
    node_id: str
    node: Node
    result: Optional[dict[str, Any]] = None


class NodeErrorEvent(_Event):
    type: Literal["node_error"] = "node_error"
    node_id: str
    node: Node
    error: str


class GateEvaluatedEvent(_Event):
    type: Literal["gate_evaluated"] = "gate_evaluated"
    node_id: str
    passed: bool


class CollectWaitingEvent(_Event):
    type: Literal["collect_waiting"] = "collect_waiting"
    node_id: str
    form_id: str


class BatchCompleteEvent(_Event):
    type: Literal["batch_complete"] = "batch_complete"
    node_ids: list[str]


class SimulationCompleteEvent(_Event):
    type: Literal["simulation_complete"] = "simulation_complete"


SimulationEvent = Annotated[
    Union[
        BatchStartEvent,
        NodeStartEvent,
        NodeCompleteEvent,
        NodeErrorEvent,
        GateEvaluatedEvent,
        CollectWaitingEvent,
        BatchCompleteEvent,
        SimulationCompleteEvent,
    ],
    Field(discriminator="type"),
]
