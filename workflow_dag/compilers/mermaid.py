"""
Render a graph as a Mermaid flowchart.

GitHub renders Mermaid inside markdown fences, e.g.::

    ```mermaid
    graph TD
      build --> deploy
    ```
"""

from typing import Optional

from workflow_dag.compilers.base import Compiler
from workflow_dag.config import CompilerSettings
from workflow_dag.core.models import (
    AnyNode,
    CollectNode,
    EdgeCondition,
    FaninNode,
    FanoutNode,
    GateNode,
    Graph,
)


def node_shape(node: AnyNode) -> Optional[str]:
    """Shape declaration for a node; tasks keep the default rectangle."""
    if isinstance(node, GateNode):
        return f"{node.id}{{{node.id}}}"
    if isinstance(node, (FanoutNode, FaninNode)):
        return f"{node.id}(({node.id}))"
    if isinstance(node, CollectNode):
        return f"{node.id}[/{node.id}/]"
    return None


class MermaidCompiler(Compiler[str]):
    """Graph -> Mermaid diagram text."""

    target = "mermaid"

    def _compile(self, graph: Graph) -> str:
        lines = [f"graph {self.settings.mermaid_direction}"]

        for edge in graph.edges:
            arrow = "-.-x" if edge.condition == EdgeCondition.NEVER else "-->"
            lines.append(f"  {edge.from_} {arrow} {edge.to}")

        for node in graph.nodes:
            shape = node_shape(node)
            if shape:
                lines.append(f"  {shape}")

        return "\n".join(lines)

    def _format(self, compiled: str) -> str:
        return compiled


def compile_to_mermaid(graph: Graph, settings: Optional[CompilerSettings] = None) -> str:
    """Render a graph as Mermaid flowchart text."""
    return MermaidCompiler(settings).compile(graph)
