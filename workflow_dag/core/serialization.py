"""
JSON and YAML (de)serialization of graphs.

Decoding validates the model shape only; structural graph rules are left to
the validator (see ``workflow_dag.core.dag.parse_graph``).
"""

import json
import logging
from pathlib import Path
from typing import Any, Union

import yaml

from workflow_dag.core.models import Graph

logger = logging.getLogger(__name__)

YAML_SUFFIXES = {".yaml", ".yml"}


def graph_from_dict(data: dict[str, Any]) -> Graph:
    """Decode a graph from a plain mapping."""
    return Graph.model_validate(data)


def graph_to_dict(graph: Graph) -> dict[str, Any]:
    """
    Encode a graph to a plain mapping.

    Unset optional fields are omitted; edge conditions are always written.
    """
    return graph.model_dump(mode="json", by_alias=True, exclude_none=True)


def graph_from_json(text: Union[str, bytes]) -> Graph:
    """Decode a graph from JSON text."""
    return Graph.model_validate_json(text)


def graph_to_json(graph: Graph, indent: int = 2) -> str:
    """Encode a graph as JSON text."""
    return json.dumps(graph_to_dict(graph), indent=indent)


def graph_from_yaml(text: str) -> Graph:
    """Decode a graph from YAML text."""
    data = yaml.safe_load(text)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a YAML mapping at the top level, got {type(data).__name__}")
    return graph_from_dict(data)


def graph_to_yaml(graph: Graph) -> str:
    """Encode a graph as YAML text, keeping field order."""
    return yaml.safe_dump(graph_to_dict(graph), sort_keys=False)


def load_graph_file(path: Union[str, Path]) -> Graph:
    """
    Load a graph from a ``.json``, ``.yaml`` or ``.yml`` file.

    Raises:
        ValueError: If the suffix is not supported
    """
    path = Path(path)
    text = path.read_text(encoding="utf-8")

    if path.suffix in YAML_SUFFIXES:
        graph = graph_from_yaml(text)
    elif path.suffix == ".json":
        graph = graph_from_json(text)
    else:
        raise ValueError(f"Unsupported graph file type: {path.suffix or '(none)'}")

    logger.info(f"Loaded graph '{graph.name}' v{graph.version} from {path}")
    return graph


def save_graph_file(graph: Graph, path: Union[str, Path]) -> None:
    """Write a graph to a ``.json``, ``.yaml`` or ``.yml`` file."""
    path = Path(path)

    if path.suffix in YAML_SUFFIXES:
        text = graph_to_yaml(graph)
    elif path.suffix == ".json":
        text = graph_to_json(graph)
    else:
        raise ValueError(f"Unsupported graph file type: {path.suffix or '(none)'}")

    path.write_text(text, encoding="utf-8")
    logger.info(f"Saved graph '{graph.name}' to {path}")
