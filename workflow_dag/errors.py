"""Base exception for the workflow DAG engine."""


class WorkflowDAGError(Exception):
    """Root of every error raised deliberately by this package."""
