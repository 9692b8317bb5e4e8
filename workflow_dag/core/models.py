"""
Domain models for the workflow DAG engine.

All models use Pydantic for validation and serialization. Models are frozen:
a graph is built once, validated once, and then only read.

Serialized form follows the portable DAG format: discriminants live under
``_tag`` (``kind`` is accepted on input) and multi-word fields are camelCase.
"""

import re
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    model_validator,
)
from pydantic_core import core_schema

NODE_ID_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9_]*$")
SEMVER_PATTERN = r"^\d+\.\d+\.\d+$"

# Discriminant field: written as "_tag", read from "_tag" or "kind"
_TAG_ALIASES = AliasChoices("_tag", "kind", "tag")


class NodeId(str):
    """
    Validated node identifier.

    A ``str`` subclass so ids can be used as dict keys and compared with
    plain strings, but one can only be obtained through validation.
    """

    __slots__ = ()

    def __new__(cls, value: str) -> "NodeId":
        if isinstance(value, NodeId):
            return value
        if not isinstance(value, str) or not NODE_ID_PATTERN.match(value):
            raise ValueError(
                f"Invalid node ID {value!r}: must start with a letter and contain "
                "only letters, digits and underscores"
            )
        return super().__new__(cls, value)

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: Any) -> core_schema.CoreSchema:
        return core_schema.no_info_after_validator_function(
            cls,
            core_schema.str_schema(),
            serialization=core_schema.plain_serializer_function_ser_schema(str),
        )


class DAGModel(BaseModel):
    """Base configuration shared by every graph model."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
    )


# ==================== Retry / Defaults ====================


class ExponentialBackoff(DAGModel):
    """Exponential retry delay schedule, capped at a maximum."""

    tag: Literal["exponential"] = Field(
        default="exponential", validation_alias=_TAG_ALIASES, serialization_alias="_tag"
    )
    base_delay_ms: float = Field(..., gt=0, alias="baseDelayMs", description="Delay before the first retry")
    factor: float = Field(..., gt=1, description="Multiplier applied per retry")
    max_delay_ms: float = Field(..., gt=0, alias="maxDelayMs", description="Upper bound for any delay")

    def delay_ms(self, retry_index: int) -> float:
        """Delay before retry number ``retry_index`` (0 = first retry)."""
        return min(self.base_delay_ms * self.factor ** retry_index, self.max_delay_ms)


class RetryPolicy(DAGModel):
    """Configuration for retry behavior."""

    max_attempts: int = Field(..., ge=1, le=10, alias="maxAttempts", description="Total attempts, first included")
    backoff: Optional[ExponentialBackoff] = Field(default=None, description="Delay schedule between attempts")

    def delay_seconds(self, retry_index: int) -> float:
        """Seconds to wait before retry ``retry_index``; zero without backoff."""
        if self.backoff is None:
            return 0.0
        return self.backoff.delay_ms(retry_index) / 1000.0


class Defaults(DAGModel):
    """Graph-level defaults applied to tasks."""

    retry: Optional[RetryPolicy] = Field(default=None, description="Retry policy for tasks without their own")
    env: Optional[dict[str, str]] = Field(default=None, description="Environment shared by all tasks")
    timeout: Optional[int] = Field(default=None, gt=0, description="Per-attempt task timeout in milliseconds")

    @property
    def timeout_seconds(self) -> Optional[float]:
        """Timeout converted to seconds, if set."""
        return self.timeout / 1000.0 if self.timeout is not None else None


# ==================== Triggers ====================


class PushTrigger(DAGModel):
    """Run on pushes, optionally filtered by branch or path."""

    tag: Literal["push"] = Field(default="push", validation_alias=_TAG_ALIASES, serialization_alias="_tag")
    branches: Optional[list[str]] = None
    paths: Optional[list[str]] = None


class PullRequestTrigger(DAGModel):
    """Run on pull requests, optionally filtered by target branch."""

    tag: Literal["pull_request"] = Field(
        default="pull_request", validation_alias=_TAG_ALIASES, serialization_alias="_tag"
    )
    branches: Optional[list[str]] = None


class ScheduleTrigger(DAGModel):
    """Run on a cron schedule."""

    tag: Literal["schedule"] = Field(default="schedule", validation_alias=_TAG_ALIASES, serialization_alias="_tag")
    cron: str = Field(..., min_length=1, description="Cron expression")


def _tag_of(value: Any) -> Optional[str]:
    """Read the discriminant from raw input or from a model instance."""
    if isinstance(value, dict):
        for key in ("_tag", "kind", "tag"):
            if key in value:
                return value[key]
        return None
    return getattr(value, "tag", None)


Trigger = Annotated[
    Union[
        Annotated[PushTrigger, Tag("push")],
        Annotated[PullRequestTrigger, Tag("pull_request")],
        Annotated[ScheduleTrigger, Tag("schedule")],
    ],
    Discriminator(_tag_of),
]


# ==================== Nodes ====================


class TaskNode(DAGModel):
    """A unit of work: either a shell command (``run``) or an action (``uses``)."""

    tag: Literal["task"] = Field(default="task", validation_alias=_TAG_ALIASES, serialization_alias="_tag")
    id: NodeId
    uses: Optional[str] = Field(default=None, description="Action reference, e.g. actions/checkout@v4")
    run: Optional[str] = Field(default=None, description="Shell command")
    env: Optional[dict[str, str]] = Field(default=None, description="Task environment")
    secrets: Optional[list[str]] = Field(default=None, description="Secret names exposed as env vars")
    retry: Optional[RetryPolicy] = Field(default=None, description="Overrides the graph default retry")

    @model_validator(mode="after")
    def validate_command(self) -> "TaskNode":
        """Exactly one of ``uses`` and ``run`` must be given."""
        if self.uses == "" or self.run == "":
            raise ValueError(f"Task '{self.id}' has an empty 'uses' or 'run'")
        if self.uses is None and self.run is None:
            raise ValueError(f"Task '{self.id}' must have either 'uses' or 'run' specified")
        if self.uses is not None and self.run is not None:
            raise ValueError(f"Task '{self.id}' cannot have both 'uses' and 'run' specified")
        return self

    @property
    def command(self) -> str:
        """The command or action this task executes."""
        return self.run or self.uses or ""


class GateNode(DAGModel):
    """Permits or blocks downstream execution based on a boolean expression."""

    tag: Literal["gate"] = Field(default="gate", validation_alias=_TAG_ALIASES, serialization_alias="_tag")
    id: NodeId
    condition: str = Field(..., min_length=1, description="Opaque boolean expression")


class FanoutNode(DAGModel):
    """Marks the start of a set of parallel branches."""

    tag: Literal["fanout"] = Field(default="fanout", validation_alias=_TAG_ALIASES, serialization_alias="_tag")
    id: NodeId


class FaninNode(DAGModel):
    """Marks the join of a set of parallel branches."""

    tag: Literal["fanin"] = Field(default="fanin", validation_alias=_TAG_ALIASES, serialization_alias="_tag")
    id: NodeId


class CollectNode(DAGModel):
    """Pause point waiting on external input; the host runtime owns the pause."""

    tag: Literal["collect"] = Field(default="collect", validation_alias=_TAG_ALIASES, serialization_alias="_tag")
    id: NodeId
    form_id: str = Field(..., min_length=1, alias="formId", description="Form the host collects")
    timeout: Optional[int] = Field(default=None, gt=0, description="Wait limit in milliseconds")


Node = Annotated[
    Union[
        Annotated[TaskNode, Tag("task")],
        Annotated[GateNode, Tag("gate")],
        Annotated[FanoutNode, Tag("fanout")],
        Annotated[FaninNode, Tag("fanin")],
        Annotated[CollectNode, Tag("collect")],
    ],
    Discriminator(_tag_of),
]

# Plain union for isinstance checks and annotations
AnyNode = Union[TaskNode, GateNode, FanoutNode, FaninNode, CollectNode]


# ==================== Edges ====================


class EdgeCondition(str, Enum):
    """When an edge is followed."""

    ALWAYS = "always"
    EXPR = "expr"
    NEVER = "never"


class Edge(DAGModel):
    """Directed dependency: ``to`` runs after ``from``."""

    from_: NodeId = Field(..., alias="from")
    to: NodeId
    condition: EdgeCondition = Field(default=EdgeCondition.ALWAYS)


# ==================== Graph ====================


class Graph(DAGModel):
    """Root aggregate: a complete workflow definition."""

    name: str = Field(..., min_length=1, max_length=100, description="Workflow name")
    version: str = Field(..., pattern=SEMVER_PATTERN, description="Semantic version, e.g. 1.0.0")
    triggers: list[Trigger] = Field(..., min_length=1, description="What starts the workflow")
    defaults: Optional[Defaults] = Field(default=None, description="Graph-level task defaults")
    nodes: list[Node] = Field(..., min_length=1, description="Workflow nodes")
    edges: list[Edge] = Field(default_factory=list, description="Dependencies between nodes")

    @property
    def node_ids(self) -> list[NodeId]:
        """Node ids in declaration order."""
        return [node.id for node in self.nodes]

    def get_node(self, node_id: str) -> Optional[AnyNode]:
        """Get node by ID."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def outgoing(self, node_id: str) -> list[Edge]:
        """Edges leaving a node, in declaration order."""
        return [e for e in self.edges if e.from_ == node_id]

    def incoming(self, node_id: str) -> list[Edge]:
        """Edges entering a node, in declaration order."""
        return [e for e in self.edges if e.to == node_id]

    def successors(self, node_id: str) -> list[NodeId]:
        """Direct successor ids."""
        return [e.to for e in self.outgoing(node_id)]

    def predecessors(self, node_id: str) -> list[NodeId]:
        """Direct predecessor ids."""
        return [e.from_ for e in self.incoming(node_id)]

    def get_root_nodes(self) -> list[AnyNode]:
        """Get nodes with no incoming edges (entry points)."""
        targets = {e.to for e in self.edges}
        return [node for node in self.nodes if node.id not in targets]

    def get_leaf_nodes(self) -> list[AnyNode]:
        """Get nodes with no outgoing edges (exit points)."""
        sources = {e.from_ for e in self.edges}
        return [node for node in self.nodes if node.id not in sources]

    def effective_retry(self, node: TaskNode) -> Optional[RetryPolicy]:
        """Task's own retry policy, falling back to the graph default."""
        if node.retry is not None:
            return node.retry
        return self.defaults.retry if self.defaults else None
