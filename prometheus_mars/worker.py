"""Task worker -- one marketplace task from fetch to submission.

Lifecycle of run_once():
  1. Fetch available tasks
  2. Claim the first one
  3. Pick relevant skills and build prompts
  4. Solve through the agent loop (tools when a dispatcher is set)
  5. Submit the answer
"""

from __future__ import annotations

import logging

from prometheus_mars.agent import AgentLoop, LoopConfig
from prometheus_mars.llm.base import LLMAdapter
from prometheus_mars.marketplace import AvailableTask, SpaceMarsClient
from prometheus_mars.prompts import build_system_prompt, build_task_prompt
from prometheus_mars.skills import Skill, select_skills_for_task
from prometheus_mars.tools.dispatcher import ToolDispatcher

logger = logging.getLogger(__name__)

_DIRECT_TASK_SKILLS = 2


class TaskWorker:
    def __init__(
        self,
        client: SpaceMarsClient,
        llm: LLMAdapter,
        *,
        loop_config: LoopConfig | None = None,
        fetch_limit: int = 5,
    ) -> None:
        self._client = client
        self._loop = AgentLoop(llm, loop_config)
        self._fetch_limit = fetch_limit
        self._skills: list[Skill] = []
        self._dispatcher: ToolDispatcher | None = None
        self._soul = ""

    @property
    def skills(self) -> list[Skill]:
        return self._skills

    @property
    def dispatcher(self) -> ToolDispatcher | None:
        return self._dispatcher

    def set_skills(self, skills: list[Skill]) -> None:
        self._skills = list(skills)
        logger.info(
            "%d skill(s) available: %s",
            len(skills), ", ".join(s.meta.name for s in skills),
        )

    def set_dispatcher(self, dispatcher: ToolDispatcher) -> None:
        self._dispatcher = dispatcher
        logger.info(
            "%d tool(s) available: %s",
            len(dispatcher), ", ".join(dispatcher.tool_names()),
        )

    def set_soul_prompt(self, soul: str) -> None:
        self._soul = soul

    # ------------------------------------------------------------------
    # Lifecycle steps
    # ------------------------------------------------------------------

    async def fetch_and_claim_task(self) -> AvailableTask | None:
        """Claim the first available task, or return None."""
        logger.info("Fetching available tasks...")
        listing = await self._client.get_available_tasks(self._fetch_limit)

        if not listing.success or not listing.data:
            if listing.error:
                logger.info("No tasks fetched: %s", listing.error)
            else:
                logger.info("No tasks available right now")
            return None

        task = listing.data[0]
        logger.info("Found %d task(s), claiming %s", len(listing.data), task.id)

        claim = await self._client.claim_task(task.id)
        if not claim.success:
            logger.warning("Failed to claim task %s: %s", task.id, claim.error or "unknown")
            return None

        logger.info('Claimed task: "%s" (%s)', task.title, task.id)
        return task

    async def solve_task(self, task: AvailableTask) -> str:
        logger.info('Solving task: "%s"', task.title)

        relevant = select_skills_for_task(self._skills, task)
        if relevant:
            logger.info("Using skills: %s", ", ".join(s.meta.name for s in relevant))

        system_prompt = build_system_prompt(relevant, self._soul)
        return await self._loop.run(system_prompt, build_task_prompt(task), self._dispatcher)

    async def solve_direct_task(self, description: str) -> str:
        """Solve a free-form task string (no marketplace round trip)."""
        system_prompt = build_system_prompt(self._skills[:_DIRECT_TASK_SKILLS], self._soul)
        return await self._loop.run(system_prompt, description, self._dispatcher)

    async def submit_solution(self, task_id: str, solution: str) -> bool:
        logger.info("Submitting solution for task %s", task_id)
        result = await self._client.submit_result(task_id, solution)

        if result.success:
            logger.info("Solution submitted for task %s", task_id)
        else:
            logger.error("Submission failed for task %s: %s", task_id, result.error or "unknown error")
        return result.success

    async def run_once(self) -> bool:
        """Process at most one task. Returns True if a solution was accepted."""
        task = await self.fetch_and_claim_task()
        if task is None:
            return False

        try:
            solution = await self.solve_task(task)
            return await self.submit_solution(task.id, solution)
        except Exception as e:
            logger.error("Error processing task %s: %s", task.id, e)
            return False
