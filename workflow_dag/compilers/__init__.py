"""Compilers from workflow graphs to external targets."""

from workflow_dag.compilers.base import Compiler, CompilerError, CompilerPhase
from workflow_dag.compilers.github_actions import GitHubActionsCompiler, compile_to_github_actions
from workflow_dag.compilers.mermaid import MermaidCompiler, compile_to_mermaid
from workflow_dag.compilers.step_functions import StepFunctionsCompiler, compile_to_step_functions

__all__ = [
    "Compiler",
    "CompilerError",
    "CompilerPhase",
    "GitHubActionsCompiler",
    "MermaidCompiler",
    "StepFunctionsCompiler",
    "compile_to_github_actions",
    "compile_to_mermaid",
    "compile_to_step_functions",
]
