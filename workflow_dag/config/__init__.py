"""Configuration management."""

from workflow_dag.config.logging_config import configure_logging
from workflow_dag.config.settings import (
    CompilerSettings,
    Environment,
    GatePolicy,
    InterpreterSettings,
    Settings,
    SimulatorSettings,
    get_settings,
)

__all__ = [
    "CompilerSettings",
    "Environment",
    "GatePolicy",
    "InterpreterSettings",
    "Settings",
    "SimulatorSettings",
    "configure_logging",
    "get_settings",
]
