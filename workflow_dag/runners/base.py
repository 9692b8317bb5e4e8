"""
Task runner interface.

A runner is the capability the interpreter and simulator delegate real work
to: running tasks, deciding gates, and reacting to structural nodes.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

from workflow_dag.core.models import CollectNode, FaninNode, FanoutNode, GateNode, TaskNode

logger = logging.getLogger(__name__)

# Errors that will fail the same way on every attempt
NON_RETRYABLE_ERRORS = (
    ValueError,
    TypeError,
    KeyError,
    AttributeError,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_retryable_error(error: BaseException) -> bool:
    """Determine if an error is retryable."""
    return not isinstance(error, NON_RETRYABLE_ERRORS)


class TaskOutcome(BaseModel):
    """Result of running a single task attempt."""

    node_id: str = Field(..., description="Task that produced this outcome")

    # Result
    success: bool = Field(..., description="Whether execution succeeded")
    output: Optional[dict[str, Any]] = Field(default=None)

    # Error details
    error_message: Optional[str] = Field(default=None)
    error_type: Optional[str] = Field(default=None)
    is_retryable: bool = Field(default=True, description="Whether error is retryable")

    # Timing
    attempt: int = Field(default=1, ge=1, description="Attempt number, first is 1")
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime = Field(default_factory=utcnow)
    duration_ms: int = Field(default=0, ge=0, description="Execution duration in milliseconds")

    @classmethod
    def from_error(
        cls,
        node_id: str,
        error: BaseException,
        started_at: Optional[datetime] = None,
        attempt: int = 1,
    ) -> "TaskOutcome":
        """Build a failed outcome from an exception."""
        started_at = started_at or utcnow()
        completed_at = utcnow()
        return cls(
            node_id=node_id,
            success=False,
            error_message=str(error) or type(error).__name__,
            error_type=type(error).__name__,
            is_retryable=is_retryable_error(error),
            attempt=attempt,
            started_at=started_at,
            completed_at=completed_at,
            duration_ms=int((completed_at - started_at).total_seconds() * 1000),
        )


class TaskRunner(ABC):
    """
    Base class for task-execution capabilities.

    Subclasses must run tasks and decide gates. Structural and collect
    nodes only log by default.
    """

    @abstractmethod
    async def run_task(self, node: TaskNode, context: dict[str, Any]) -> Optional[TaskOutcome]:
        """
        Run a task node.

        Args:
            node: Task to run
            context: Shared run context; write only keys owned by this node

        Returns:
            TaskOutcome, or None for a plain success

        Raises:
            Exception: Any failure; counted as a failed attempt
        """
        pass

    @abstractmethod
    async def evaluate_gate(self, node: GateNode, context: dict[str, Any]) -> bool:
        """Decide whether a gate lets execution continue."""
        pass

    async def on_fanout(self, node: FanoutNode, context: dict[str, Any]) -> None:
        logger.debug(f"Fanout {node.id}")

    async def on_fanin(self, node: FaninNode, context: dict[str, Any]) -> None:
        logger.debug(f"Fanin {node.id}")

    async def on_collect(self, node: CollectNode, context: dict[str, Any]) -> None:
        """Collect nodes pass straight through unless the host waits here."""
        logger.info(f"Collect node {node.id} waiting on form '{node.form_id}' (pass-through)")
