"""Task runners: the capability that does the actual work for a node."""

from workflow_dag.runners.base import (
    NON_RETRYABLE_ERRORS,
    TaskOutcome,
    TaskRunner,
    is_retryable_error,
)
from workflow_dag.runners.shell import ShellTaskRunner
from workflow_dag.runners.simulated import SimulatedTaskRunner

__all__ = [
    "NON_RETRYABLE_ERRORS",
    "ShellTaskRunner",
    "SimulatedTaskRunner",
    "TaskOutcome",
    "TaskRunner",
    "is_retryable_error",
]
