"""Prometheus agent runtime.

Wires the components together in dependency order:
  Settings -> SpaceMarsClient -> LLMAdapter -> ToolDispatcher -> TaskWorker -> Heartbeat

and runs the polling task loop until stop() is called.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import httpx

from prometheus_mars.agent import LoopConfig
from prometheus_mars.config import Settings
from prometheus_mars.heartbeat import Heartbeat
from prometheus_mars.llm import create_llm_adapter
from prometheus_mars.llm.base import LLMAdapter
from prometheus_mars.marketplace import SpaceMarsClient
from prometheus_mars.skills import load_skills_from_dir
from prometheus_mars.tools.builtin_tools import register_builtin_tools
from prometheus_mars.tools.dispatcher import ToolDispatcher
from prometheus_mars.tools.web_tools import register_web_tools
from prometheus_mars.worker import TaskWorker

logger = logging.getLogger(__name__)


def build_llm(settings: Settings) -> LLMAdapter:
    return create_llm_adapter(
        settings.llm_provider,
        settings.llm_api_key,
        settings.llm_model,
        max_tokens=settings.max_tokens,
        base_url=settings.llm_base_url or None,
        timeout=httpx.Timeout(
            connect=settings.api_timeout_connect,
            read=settings.api_timeout_read,
            write=10,
            pool=10,
        ),
    )


def build_dispatcher(settings: Settings, web_http: httpx.AsyncClient) -> ToolDispatcher:
    dispatcher = ToolDispatcher()
    register_builtin_tools(dispatcher, settings)
    register_web_tools(dispatcher, web_http)
    return dispatcher


def load_soul(settings: Settings) -> str:
    """Read the optional identity prompt file ("" when unset or unreadable)."""
    if not settings.soul_file:
        return ""
    path = Path(settings.soul_file)
    try:
        return path.read_text(encoding="utf-8").strip()
    except OSError as e:
        logger.warning("Could not read soul file %s: %s", path, e)
        return ""


class PrometheusAgent:
    """Long-running agent: heartbeat plus fetch/solve/submit polling."""

    def __init__(
        self,
        settings: Settings,
        *,
        client: SpaceMarsClient | None = None,
        llm: LLMAdapter | None = None,
    ) -> None:
        self._settings = settings
        self._client = client or SpaceMarsClient(settings.spacemars_api_url, settings.spacemars_api_key)
        self._llm = llm or build_llm(settings)
        self._web_http: httpx.AsyncClient | None = None
        self._worker = TaskWorker(
            self._client,
            self._llm,
            loop_config=LoopConfig(max_turns=settings.max_turns),
            fetch_limit=settings.task_fetch_limit,
        )
        self._heartbeat = Heartbeat(self._client, settings.heartbeat_interval)
        self._stop_event = asyncio.Event()
        self._running = False

    @property
    def worker(self) -> TaskWorker:
        return self._worker

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def setup(self) -> None:
        """Load skills, identity and tools into the worker."""
        settings = self._settings
        self._worker.set_skills(load_skills_from_dir(settings.skills_dir))

        soul = load_soul(settings)
        if soul:
            self._worker.set_soul_prompt(soul)

        if settings.tools_enabled:
            self._web_http = httpx.AsyncClient(
                timeout=httpx.Timeout(connect=10, read=30, write=10, pool=10),
            )
            self._worker.set_dispatcher(build_dispatcher(settings, self._web_http))

    async def start(self) -> None:
        """Boot the agent and run the task loop until stop()."""
        settings = self._settings
        logger.info('Starting agent "%s"', settings.agent_name)
        logger.info("API: %s", settings.spacemars_api_url)
        logger.info("LLM: %s / %s", self._llm.provider, self._llm.model)

        await self.setup()
        await self.verify_connection()
        await self._heartbeat.start()

        self._running = True
        self._stop_event.clear()
        try:
            await self._task_loop()
        finally:
            await self._shutdown()

    def request_stop(self) -> None:
        """Ask the task loop to exit; start() then tears everything down.

        Synchronous so it can be installed directly as a signal handler.
        """
        logger.info("Shutting down...")
        self._running = False
        self._stop_event.set()

    async def stop(self) -> None:
        self.request_stop()

    async def verify_connection(self) -> bool:
        try:
            profile = await self._client.get_profile()
        except httpx.HTTPError as e:
            logger.warning("Could not reach API: %s -- tasks will retry on next cycle", e)
            return False
        except Exception:
            logger.exception("Profile check failed -- tasks will retry on next cycle")
            return False

        if profile.success and profile.data:
            logger.info('Connected as "%s" (karma: %d)', profile.data.name, profile.data.karma)
            return True

        logger.warning(
            "Could not fetch profile: %s. Continuing anyway -- the API key may be invalid",
            profile.error or "unknown",
        )
        return False

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _task_loop(self) -> None:
        logger.info("Entering task loop")
        interval = self._settings.task_loop_interval

        while self._running:
            try:
                did_work = await self._worker.run_once()
                wait = interval if did_work else interval * 2
            except Exception:
                logger.exception("Task loop error")
                wait = self._settings.error_backoff
                logger.info("Backing off for %ds before retrying", wait)
            await self._sleep(wait)

    async def _sleep(self, seconds: float) -> None:
        """Sleep, waking early when stop() is called."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _shutdown(self) -> None:
        self._running = False
        await self._heartbeat.stop()
        if self._web_http is not None:
            await self._web_http.aclose()
            self._web_http = None
        await self._llm.aclose()
        await self._client.aclose()
        logger.info("Stopped")
