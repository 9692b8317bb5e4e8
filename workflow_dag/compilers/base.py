"""
Compiler contract shared by every target.

A compiler turns a validated graph into a target representation. Callers
validate first (``Compiler.validate``); ``compile`` itself never runs the
validator.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from workflow_dag.config import CompilerSettings, get_settings
from workflow_dag.core.dag import validate_graph
from workflow_dag.core.models import Graph
from workflow_dag.errors import WorkflowDAGError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CompilerPhase(str, Enum):
    """Where compilation failed."""

    VALIDATION = "validation"
    COMPILATION = "compilation"
    FORMATTING = "formatting"


class CompilerError(WorkflowDAGError):
    """Raised when a graph cannot be compiled or its output rendered."""

    def __init__(
        self,
        phase: CompilerPhase,
        message: str,
        source: Any = None,
        details: Optional[Any] = None,
    ):
        self.phase = CompilerPhase(phase)
        self.message = message
        self.source = source
        self.details = details
        super().__init__(f"[{self.phase.value}] {message}")


class Compiler(ABC, Generic[T]):
    """
    Base class for compilers.

    Subclasses implement ``_compile`` and ``_format``; unexpected errors
    raised there are wrapped in a CompilerError of the matching phase.
    """

    target: str = ""

    def __init__(self, settings: Optional[CompilerSettings] = None):
        self.settings = settings or get_settings().compiler

    def compile(self, graph: Graph) -> T:
        """
        Compile a validated graph.

        Raises:
            CompilerError: If the graph cannot be expressed in the target
        """
        logger.debug(f"Compiling '{graph.name}' to {self.target or type(self).__name__}")
        try:
            return self._compile(graph)
        except CompilerError:
            raise
        except Exception as e:
            raise CompilerError(CompilerPhase.COMPILATION, str(e), source=graph) from e

    def validate(self, graph: Graph) -> None:
        """
        Run the structural validator.

        Raises:
            CompilerError: validation phase, carrying every reported error
        """
        result = validate_graph(graph)
        if not result.is_valid:
            first = result.errors[0]
            raise CompilerError(
                CompilerPhase.VALIDATION,
                f"{first.code}: {first.message}",
                source=graph,
                details={"errors": result.errors},
            )

    def preview(self, graph: Graph) -> str:
        """Human-readable text of the compiled output."""
        compiled = self.compile(graph)
        try:
            return self._format(compiled)
        except Exception as e:
            raise CompilerError(CompilerPhase.FORMATTING, str(e), source=compiled) from e

    @abstractmethod
    def _compile(self, graph: Graph) -> T:
        pass

    @abstractmethod
    def _format(self, compiled: T) -> str:
        pass
