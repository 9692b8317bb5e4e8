"""
Convenience constructors for authoring graphs in code.

Helpers only shape data (stamp the node kind, default the edge condition);
graph-level rules are checked by the validator.

Example:
    graph = workflow(
        "build_and_release",
        "1.0.0",
        [PushTrigger(branches=["main"])],
        task("checkout", uses="actions/checkout@v4"),
        gate("only_main", "github.ref == 'refs/heads/main'"),
        task("release", run="pnpm release", secrets=["NPM_TOKEN"]),
        edge("checkout", "only_main"),
        edge("only_main", "release", "expr"),
    )
"""

from typing import Optional, Sequence, Union

from workflow_dag.core.models import (
    AnyNode,
    CollectNode,
    Defaults,
    Edge,
    EdgeCondition,
    FaninNode,
    FanoutNode,
    GateNode,
    Graph,
    RetryPolicy,
    TaskNode,
    Trigger,
)


def task(
    id: str,
    *,
    uses: Optional[str] = None,
    run: Optional[str] = None,
    env: Optional[dict[str, str]] = None,
    secrets: Optional[list[str]] = None,
    retry: Optional[RetryPolicy] = None,
) -> TaskNode:
    """Create a task node that runs a shell command or uses an action."""
    return TaskNode(id=id, uses=uses, run=run, env=env, secrets=secrets, retry=retry)


def gate(id: str, condition: str) -> GateNode:
    """Create a gate node that conditionally allows execution."""
    return GateNode(id=id, condition=condition)


def fanout(id: str) -> FanoutNode:
    """Create a fanout node that starts parallel branches."""
    return FanoutNode(id=id)


def fanin(id: str) -> FaninNode:
    """Create a fanin node that joins parallel branches."""
    return FaninNode(id=id)


def collect(id: str, form_id: str, timeout: Optional[int] = None) -> CollectNode:
    """Create a collect node that waits for external input."""
    return CollectNode(id=id, form_id=form_id, timeout=timeout)


def edge(
    from_: str,
    to: str,
    condition: Union[EdgeCondition, str] = EdgeCondition.ALWAYS,
) -> Edge:
    """Create an edge; the condition defaults to ``always``."""
    return Edge(from_=from_, to=to, condition=EdgeCondition(condition))


def workflow(
    name: str,
    version: str,
    triggers: Sequence[Trigger],
    *elements: Union[AnyNode, Edge],
    defaults: Optional[Defaults] = None,
) -> Graph:
    """
    Group nodes and edges into a graph.

    Elements may be given in any mix; edges are told apart from nodes by type
    and both keep their relative order.
    """
    nodes = [el for el in elements if not isinstance(el, Edge)]
    edges = [el for el in elements if isinstance(el, Edge)]

    return Graph(
        name=name,
        version=version,
        triggers=list(triggers),
        defaults=defaults,
        nodes=nodes,
        edges=edges,
    )
