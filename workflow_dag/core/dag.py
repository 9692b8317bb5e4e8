"""
DAG (Directed Acyclic Graph) structural validation.

Checks run in a fixed order and fail fast by default: the first violation
found is the only one reported. Cycle detection uses a three-colour
depth-first search; the topological order of a valid graph is computed
with Kahn's algorithm.
"""

from collections import defaultdict, deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Optional, Sequence

from workflow_dag.core.models import AnyNode, Edge, EdgeCondition, GateNode, Graph, TaskNode
from workflow_dag.errors import WorkflowDAGError


class ValidationErrorCode(str, Enum):
    """Structural violations, in the order they are checked."""

    DUPLICATE_NODE_ID = "duplicate-node-id"
    EDGE_REFERENCES_MISSING_NODE = "edge-references-missing-node"
    SELF_LOOP = "self-loop"
    GATE_HAS_NEVER_CONDITION = "gate-has-never-condition"
    CYCLE_DETECTED = "cycle-detected"


class ValidationWarningCode(str, Enum):
    """Non-fatal findings on a valid graph."""

    MULTIPLE_INCOMING_GATES = "multiple-incoming-gates"


@dataclass
class ValidationError:
    """Represents a single validation error."""

    code: str
    message: str
    node_id: Optional[str] = None
    edge: Optional[Edge] = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class ValidationResult:
    """Result of DAG validation."""

    is_valid: bool
    errors: list[ValidationError] = field(default_factory=list)
    warnings: list[ValidationError] = field(default_factory=list)

    # The validated input, returned unchanged
    nodes: Sequence[AnyNode] = ()
    edges: Sequence[Edge] = ()

    # Computed graph properties (populated on successful validation)
    topological_order: list[str] = field(default_factory=list)
    levels: dict[str, int] = field(default_factory=dict)  # node_id -> batch index

    def add_error(self, error: ValidationError) -> None:
        """Add a validation error."""
        self.errors.append(error)
        self.is_valid = False

    def add_warning(
        self,
        code: str,
        message: str,
        node_id: Optional[str] = None,
        **details: Any,
    ) -> None:
        """Add a validation warning."""
        self.warnings.append(ValidationError(code, message, node_id, details=details))

    @property
    def first_error(self) -> Optional[ValidationError]:
        """The error a fail-fast run stopped on."""
        return self.errors[0] if self.errors else None

    def get_parallel_batches(self) -> list[list[str]]:
        """
        Get nodes grouped by level.

        Matches the batches the interpreter runs when every gate passes.
        """
        if not self.levels:
            return []

        level_groups: dict[int, list[str]] = defaultdict(list)
        for node_id in self.topological_order:
            level_groups[self.levels[node_id]].append(node_id)

        return [level_groups[level] for level in range(max(level_groups) + 1)]

    def raise_for_errors(self) -> "ValidationResult":
        """Raise GraphValidationError if validation failed, else return self."""
        if not self.is_valid:
            raise GraphValidationError(self.errors)
        return self


class GraphValidationError(WorkflowDAGError):
    """Raised when a graph fails structural validation."""

    def __init__(self, errors: list[ValidationError]):
        self.errors = errors
        summary = "; ".join(f"{e.code}: {e.message}" for e in errors)
        super().__init__(f"Graph validation failed: {summary}")


class DAGValidator:
    """
    Validates DAG structure and detects cycles.

    Checks, in order:
    1. node ids are unique
    2. every edge endpoint references an existing node
    3. no edge is a self-loop
    4. no outgoing edge of a gate carries the ``never`` condition
    5. the graph is acyclic

    With ``collect_all`` every check runs and every violation is reported.
    """

    def __init__(
        self,
        nodes: Sequence[AnyNode],
        edges: Sequence[Edge],
        collect_all: bool = False,
    ):
        self.nodes = nodes
        self.edges = edges
        self.collect_all = collect_all
        self._adjacency_list: dict[str, list[str]] = defaultdict(list)
        self._node_map: dict[str, AnyNode] = {}

        self._build_graph()

    def _build_graph(self) -> None:
        """Build internal graph representation."""
        for node in self.nodes:
            self._node_map.setdefault(node.id, node)

        for edge in self.edges:
            self._adjacency_list[edge.from_].append(edge.to)

    def validate(self) -> ValidationResult:
        """
        Perform full validation of the DAG.

        Returns:
            ValidationResult with errors, warnings, and computed properties
        """
        result = ValidationResult(is_valid=True, nodes=self.nodes, edges=self.edges)

        for error in self._run_checks():
            result.add_error(error)
            if not self.collect_all:
                break

        if result.is_valid:
            self._compute_order_and_levels(result)
            self._check_incoming_gates(result)

        return result

    def _run_checks(self) -> Iterator[ValidationError]:
        """Yield violations check by check, in the fixed order."""
        yield from self._validate_unique_ids()

        structural_errors = 0
        for error in self._validate_edge_references():
            structural_errors += 1
            yield error
        for error in self._validate_no_self_loops():
            structural_errors += 1
            yield error

        yield from self._validate_gate_conditions()

        # Dangling edges and self-loops would resurface as bogus cycles
        if structural_errors == 0:
            yield from self._validate_no_cycles()

    def _validate_unique_ids(self) -> Iterator[ValidationError]:
        """Each node id may appear only once."""
        seen: set[str] = set()
        reported: set[str] = set()

        for node in self.nodes:
            if node.id in seen and node.id not in reported:
                reported.add(node.id)
                yield ValidationError(
                    code=ValidationErrorCode.DUPLICATE_NODE_ID.value,
                    message=f"Duplicate node ID: {node.id}",
                    node_id=node.id,
                )
            seen.add(node.id)

    def _validate_edge_references(self) -> Iterator[ValidationError]:
        """Validate that all edges reference existing nodes."""
        node_ids = set(self._node_map)

        for edge in self.edges:
            for endpoint in (edge.from_, edge.to):
                if endpoint not in node_ids:
                    yield ValidationError(
                        code=ValidationErrorCode.EDGE_REFERENCES_MISSING_NODE.value,
                        message=f"Edge references non-existent node: {endpoint}",
                        node_id=endpoint,
                        edge=edge,
                    )

    def _validate_no_self_loops(self) -> Iterator[ValidationError]:
        """Check for edges from a node to itself."""
        for edge in self.edges:
            if edge.from_ == edge.to:
                yield ValidationError(
                    code=ValidationErrorCode.SELF_LOOP.value,
                    message=f"Self-loop detected: {edge.from_} -> {edge.to}",
                    node_id=edge.from_,
                    edge=edge,
                )

    def _validate_gate_conditions(self) -> Iterator[ValidationError]:
        """A gate must not have an outgoing edge that is never followed."""
        gate_ids = {node.id for node in self.nodes if isinstance(node, GateNode)}

        for edge in self.edges:
            if edge.from_ in gate_ids and edge.condition == EdgeCondition.NEVER:
                yield ValidationError(
                    code=ValidationErrorCode.GATE_HAS_NEVER_CONDITION.value,
                    message=f"Gate node {edge.from_} cannot have 'never' condition",
                    node_id=edge.from_,
                    edge=edge,
                )

    def _validate_no_cycles(self) -> Iterator[ValidationError]:
        """
        Detect a cycle with a three-colour depth-first search.

        White nodes are unvisited, gray nodes are on the current path and
        black nodes are finished. Reaching a gray node closes a cycle. Every
        unvisited node starts a new search, so disconnected components are
        all covered.
        """
        cycle = self._find_cycle()
        if cycle:
            yield ValidationError(
                code=ValidationErrorCode.CYCLE_DETECTED.value,
                message=f"DAG contains a cycle: {' -> '.join(cycle)}",
                node_id=cycle[0],
                details={"cycle_nodes": cycle},
            )

    def _find_cycle(self) -> list[str]:
        """Return the first cycle found as a closed path, or an empty list."""
        white, gray, black = 0, 1, 2
        color: dict[str, int] = {node_id: white for node_id in self._node_map}

        for start in self._node_map:
            if color[start] != white:
                continue

            color[start] = gray
            path = [start]
            stack = [iter(self._adjacency_list.get(start, []))]

            while stack:
                for neighbor in stack[-1]:
                    state = color.get(neighbor, white)
                    if state == gray:
                        return path[path.index(neighbor):] + [neighbor]
                    if state == white:
                        color[neighbor] = gray
                        path.append(neighbor)
                        stack.append(iter(self._adjacency_list.get(neighbor, [])))
                        break
                else:
                    color[path.pop()] = black
                    stack.pop()

        return []

    def _compute_order_and_levels(self, result: ValidationResult) -> None:
        """Kahn's algorithm over a valid graph; levels are batch indices."""
        in_degree = {node_id: 0 for node_id in self._node_map}
        for edge in self.edges:
            in_degree[edge.to] += 1

        queue = deque(node_id for node_id, degree in in_degree.items() if degree == 0)
        levels = {node_id: 0 for node_id in queue}
        order: list[str] = []

        while queue:
            node_id = queue.popleft()
            order.append(node_id)

            for neighbor in self._adjacency_list.get(node_id, []):
                levels[neighbor] = max(levels.get(neighbor, 0), levels[node_id] + 1)
                in_degree[neighbor] -= 1
                if in_degree[neighbor] == 0:
                    queue.append(neighbor)

        result.topological_order = order
        result.levels = levels

    def _check_incoming_gates(self, result: ValidationResult) -> None:
        """Warn when a task is guarded by several gates at once."""
        for node in self.nodes:
            if not isinstance(node, TaskNode):
                continue
            gates = [
                edge.from_
                for edge in self.edges
                if edge.to == node.id and isinstance(self._node_map.get(edge.from_), GateNode)
            ]
            if len(gates) > 1:
                result.add_warning(
                    code=ValidationWarningCode.MULTIPLE_INCOMING_GATES.value,
                    message=f"Task '{node.id}' is guarded by {len(gates)} gates: {gates}",
                    node_id=node.id,
                    gates=gates,
                )


def validate(
    nodes: Sequence[AnyNode],
    edges: Sequence[Edge],
    *,
    collect_all: bool = False,
) -> ValidationResult:
    """Validate nodes and edges; fail fast unless ``collect_all`` is set."""
    return DAGValidator(nodes, edges, collect_all=collect_all).validate()


def validate_graph(graph: Graph, *, collect_all: bool = False) -> ValidationResult:
    """Validate a graph's nodes and edges."""
    return validate(graph.nodes, graph.edges, collect_all=collect_all)


def parse_graph(data: dict[str, Any]) -> tuple[Graph, ValidationResult]:
    """
    Parse and validate a graph payload.

    Args:
        data: Raw graph mapping (as loaded from JSON or YAML)

    Returns:
        Tuple of (Graph, ValidationResult)

    Raises:
        pydantic.ValidationError: If the payload does not match the model
    """
    graph = Graph.model_validate(data)
    return graph, validate_graph(graph)
