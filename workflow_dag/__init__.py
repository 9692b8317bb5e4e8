"""
Workflow DAG Engine

Typed workflow graphs with structural validation, topological batch
execution, step-by-step simulation, and compilers to CI job graphs,
state machines, and diagrams.
"""

__version__ = "1.0.0"
