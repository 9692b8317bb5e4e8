"""
Shell task runner.

Runs ``run`` tasks as shell commands in a subprocess, dispatches ``uses``
tasks to registered handlers, and decides gates with an expression
evaluator.
"""

import asyncio
import contextlib
import logging
import os
from typing import Any, Awaitable, Callable, Mapping, Optional

from workflow_dag.core.models import GateNode, TaskNode
from workflow_dag.expressions import ExpressionEvaluator, SimpleExpressionEvaluator
from workflow_dag.runners.base import TaskOutcome, TaskRunner, utcnow

logger = logging.getLogger(__name__)

UsesHandler = Callable[[TaskNode, dict[str, Any]], Awaitable[Optional[TaskOutcome]]]


class ShellTaskRunner(TaskRunner):
    """
    Runner backed by the local shell.

    Environment precedence, lowest first: process environment, runner
    ``env``, task ``env``, task secrets.
    """

    def __init__(
        self,
        evaluator: Optional[ExpressionEvaluator] = None,
        env: Optional[Mapping[str, str]] = None,
        secrets: Optional[Mapping[str, str]] = None,
        uses_handlers: Optional[Mapping[str, UsesHandler]] = None,
    ):
        self.evaluator = evaluator or SimpleExpressionEvaluator()
        self.env = dict(env or {})
        self.secrets = secrets
        self._uses_handlers: dict[str, UsesHandler] = dict(uses_handlers or {})

    def register_handler(self, action: str, handler: UsesHandler) -> None:
        """Register a handler for an action reference such as ``actions/checkout``."""
        self._uses_handlers[action] = handler
        logger.debug(f"Registered handler for {action}")

    def _find_handler(self, uses: str) -> Optional[UsesHandler]:
        """Exact reference first, then the reference without its ``@version``."""
        if uses in self._uses_handlers:
            return self._uses_handlers[uses]
        return self._uses_handlers.get(uses.split("@", 1)[0])

    def _resolve_secret(self, name: str) -> Optional[str]:
        if self.secrets is not None:
            return self.secrets.get(name)
        return os.environ.get(name)

    def build_env(self, node: TaskNode) -> dict[str, str]:
        """
        Merge the environment for a task.

        Raises:
            KeyError: If a secret the task needs cannot be resolved
        """
        env = {**os.environ, **self.env, **(node.env or {})}
        for name in node.secrets or []:
            value = self._resolve_secret(name)
            if value is None:
                raise KeyError(f"Secret '{name}' required by task '{node.id}' is not available")
            env[name] = value
        return env

    async def run_task(self, node: TaskNode, context: dict[str, Any]) -> Optional[TaskOutcome]:
        if node.uses:
            return await self._run_uses(node, context)
        return await self._run_command(node, context)

    async def _run_uses(self, node: TaskNode, context: dict[str, Any]) -> Optional[TaskOutcome]:
        handler = self._find_handler(node.uses or "")
        if handler is None:
            logger.error(f"No handler registered for action '{node.uses}' (task {node.id})")
            return TaskOutcome(
                node_id=node.id,
                success=False,
                error_message=f"No handler registered for action '{node.uses}'",
                error_type="UnsupportedActionError",
                is_retryable=False,
            )
        return await handler(node, context)

    async def _run_command(self, node: TaskNode, context: dict[str, Any]) -> TaskOutcome:
        started_at = utcnow()

        try:
            env = self.build_env(node)
        except KeyError as e:
            return TaskOutcome.from_error(node.id, e, started_at)

        logger.info(f"Running task {node.id}: {node.run}")

        process = await asyncio.create_subprocess_shell(
            node.run or "",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=env,
        )
        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            # Timeout or run abort: do not leave the child behind
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()
            raise

        completed_at = utcnow()
        output = {
            "returncode": process.returncode,
            "stdout": stdout.decode(errors="replace"),
            "stderr": stderr.decode(errors="replace"),
        }
        context[f"task_{node.id}"] = output

        success = process.returncode == 0
        if not success:
            logger.warning(f"Task {node.id} exited with code {process.returncode}")

        return TaskOutcome(
            node_id=node.id,
            success=success,
            output=output,
            error_message=None if success else f"Command exited with code {process.returncode}",
            error_type=None if success else "CommandFailedError",
            started_at=started_at,
            completed_at=completed_at,
            duration_ms=int((completed_at - started_at).total_seconds() * 1000),
        )

    async def evaluate_gate(self, node: GateNode, context: dict[str, Any]) -> bool:
        """
        Evaluate the gate condition against the run context.

        Raises:
            ExpressionError: If the condition is malformed or not boolean
        """
        return self.evaluator.evaluate_boolean(node.condition, context)
