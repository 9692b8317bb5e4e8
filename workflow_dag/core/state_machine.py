"""
State machine definitions for node and run states.

Implements explicit state transitions with guards and validation. The
interpreter records every node's lifecycle through these machines.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Callable, ClassVar, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

from workflow_dag.errors import WorkflowDAGError


class NodeState(str, Enum):
    """
    Possible states for a node during a run.

    State transitions:
    - PENDING -> RUNNING -> COMPLETED
    - PENDING -> RUNNING -> BLOCKED (gate evaluated false)
    - PENDING -> RUNNING -> FAILED
    - PENDING -> RUNNING -> CANCELLED (run aborted by another node)
    - PENDING -> SKIPPED (every input edge is dead, skip policy only)
    """

    PENDING = "PENDING"      # Waiting for predecessors
    RUNNING = "RUNNING"      # Dispatched to the runner
    COMPLETED = "COMPLETED"  # Finished and released its successors
    BLOCKED = "BLOCKED"      # Gate evaluated false
    SKIPPED = "SKIPPED"      # Never run because nothing live led to it
    FAILED = "FAILED"        # Failed after all retries
    CANCELLED = "CANCELLED"  # Interrupted when the run aborted


class RunState(str, Enum):
    """
    Possible states for a whole run.

    State transitions:
    - PENDING -> RUNNING -> COMPLETED
    - PENDING -> RUNNING -> FAILED
    """

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class StateTransition(BaseModel):
    """Represents a state transition event."""

    from_state: str
    to_state: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    reason: Optional[str] = None
    metadata: dict = Field(default_factory=dict)


class InvalidStateTransitionError(WorkflowDAGError):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_state: str, to_state: str, message: str = ""):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid state transition from {from_state} to {to_state}"
            + (f": {message}" if message else "")
        )


# Type alias for transition guards
TransitionGuard = Callable[[], bool]

S = TypeVar("S", NodeState, RunState)


class _StateMachine(Generic[S]):
    """Shared transition bookkeeping; subclasses declare the state graph."""

    VALID_TRANSITIONS: ClassVar[dict] = {}
    TERMINAL_STATES: ClassVar[set] = set()
    SUCCESS_STATES: ClassVar[set] = set()
    FAILURE_STATES: ClassVar[set] = set()

    def __init__(self, initial_state: S):
        self._state = initial_state
        self._history: list[StateTransition] = []

    @property
    def state(self) -> S:
        """Get current state."""
        return self._state

    @property
    def history(self) -> list[StateTransition]:
        """Get state transition history."""
        return self._history.copy()

    @property
    def is_terminal(self) -> bool:
        """Check if current state is terminal."""
        return self._state in self.TERMINAL_STATES

    @property
    def is_success(self) -> bool:
        """Check if the machine ended successfully."""
        return self._state in self.SUCCESS_STATES

    @property
    def is_failure(self) -> bool:
        """Check if the machine ended in failure."""
        return self._state in self.FAILURE_STATES

    def can_transition_to(self, to_state: S) -> bool:
        """Check if transition to given state is valid."""
        return to_state in self.VALID_TRANSITIONS.get(self._state, set())

    def get_valid_transitions(self) -> set[S]:
        """Get all valid transitions from current state."""
        return set(self.VALID_TRANSITIONS.get(self._state, set()))

    def transition(
        self,
        to_state: S,
        reason: Optional[str] = None,
        guard: Optional[TransitionGuard] = None,
        metadata: Optional[dict] = None,
    ) -> StateTransition:
        """
        Transition to a new state.

        Args:
            to_state: Target state
            reason: Reason for transition
            guard: Optional guard function that must return True
            metadata: Additional metadata for the transition

        Returns:
            StateTransition record

        Raises:
            InvalidStateTransitionError: If transition is not valid
        """
        if not self.can_transition_to(to_state):
            raise InvalidStateTransitionError(
                self._state.value,
                to_state.value,
                f"Valid transitions: {sorted(s.value for s in self.get_valid_transitions())}",
            )

        if guard is not None and not guard():
            raise InvalidStateTransitionError(
                self._state.value,
                to_state.value,
                "Guard condition failed",
            )

        transition = StateTransition(
            from_state=self._state.value,
            to_state=to_state.value,
            reason=reason,
            metadata=metadata or {},
        )

        self._history.append(transition)
        self._state = to_state

        return transition


class NodeStateMachine(_StateMachine[NodeState]):
    """State machine for a single node within a run."""

    VALID_TRANSITIONS = {
        NodeState.PENDING: {NodeState.RUNNING, NodeState.SKIPPED},
        NodeState.RUNNING: {
            NodeState.COMPLETED,
            NodeState.BLOCKED,
            NodeState.FAILED,
            NodeState.CANCELLED,
        },
        NodeState.COMPLETED: set(),  # Terminal state
        NodeState.BLOCKED: set(),    # Terminal state
        NodeState.SKIPPED: set(),    # Terminal state
        NodeState.FAILED: set(),     # Terminal state
        NodeState.CANCELLED: set(),  # Terminal state
    }

    TERMINAL_STATES = {
        NodeState.COMPLETED,
        NodeState.BLOCKED,
        NodeState.SKIPPED,
        NodeState.FAILED,
        NodeState.CANCELLED,
    }

    # A blocked gate ran fine, it just said no
    SUCCESS_STATES = {NodeState.COMPLETED, NodeState.BLOCKED}

    FAILURE_STATES = {NodeState.FAILED, NodeState.CANCELLED}

    def __init__(self, initial_state: NodeState = NodeState.PENDING):
        super().__init__(initial_state)


class RunStateMachine(_StateMachine[RunState]):
    """State machine for a whole run."""

    VALID_TRANSITIONS = {
        RunState.PENDING: {RunState.RUNNING},
        RunState.RUNNING: {RunState.COMPLETED, RunState.FAILED},
        RunState.COMPLETED: set(),
        RunState.FAILED: set(),
    }

    TERMINAL_STATES = {RunState.COMPLETED, RunState.FAILED}
    SUCCESS_STATES = {RunState.COMPLETED}
    FAILURE_STATES = {RunState.FAILED}

    def __init__(self, initial_state: RunState = RunState.PENDING):
        super().__init__(initial_state)

    @property
    def is_active(self) -> bool:
        """Check if the run is in progress."""
        return self._state == RunState.RUNNING
