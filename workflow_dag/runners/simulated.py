"""
Simulated runner used by the simulator.

Sleeps instead of doing work and decides gates at random.
"""

import asyncio
import logging
import random
from typing import Any, Optional

from workflow_dag.config import SimulatorSettings, get_settings
from workflow_dag.core.models import CollectNode, FaninNode, FanoutNode, GateNode, TaskNode
from workflow_dag.runners.base import TaskOutcome, TaskRunner, utcnow

logger = logging.getLogger(__name__)


class SimulatedTaskRunner(TaskRunner):
    """
    Runner that fakes execution with fixed delays.

    Gates pass with probability ``gate_pass_rate``; pass a ``seed`` (or set
    it in settings) for reproducible runs.
    """

    def __init__(
        self,
        settings: Optional[SimulatorSettings] = None,
        rng: Optional[random.Random] = None,
    ):
        self.settings = settings or get_settings().simulator
        self._rng = rng or random.Random(self.settings.seed)

    async def _sleep(self, delay_ms: int) -> None:
        if delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000.0)

    async def run_task(self, node: TaskNode, context: dict[str, Any]) -> TaskOutcome:
        started_at = utcnow()
        await self._sleep(self.settings.task_delay_ms)
        completed_at = utcnow()

        return TaskOutcome(
            node_id=node.id,
            success=True,
            output={"simulated": True, "command": node.command},
            started_at=started_at,
            completed_at=completed_at,
            duration_ms=int((completed_at - started_at).total_seconds() * 1000),
        )

    async def evaluate_gate(self, node: GateNode, context: dict[str, Any]) -> bool:
        await self._sleep(self.settings.gate_delay_ms)
        passed = self._rng.random() < self.settings.gate_pass_rate
        logger.debug(f"Simulated gate {node.id} ({node.condition}) -> {passed}")
        return passed

    async def on_fanout(self, node: FanoutNode, context: dict[str, Any]) -> None:
        await self._sleep(self.settings.structural_delay_ms)

    async def on_fanin(self, node: FaninNode, context: dict[str, Any]) -> None:
        await self._sleep(self.settings.structural_delay_ms)

    async def on_collect(self, node: CollectNode, context: dict[str, Any]) -> None:
        """Pretend the form was filled in after a short wait."""
        await self._sleep(self.settings.collect_delay_ms)
        context[f"collect_{node.id}"] = {"submitted": True}
