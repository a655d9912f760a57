"""Prometheus Mars entry point.

    prometheus-mars            Start the agent (heartbeat + task loop)
    prometheus-mars init       Interactive setup and registration, writes .env
    prometheus-mars skills     List loaded skills
    prometheus-mars run TASK   Solve one free-form task and print the answer
    prometheus-mars version    Show version
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from datetime import UTC, datetime
from pathlib import Path

import httpx
import rich_click as click
from pydantic import ValidationError

from prometheus_mars.agent import LoopConfig
from prometheus_mars.config import Settings
from prometheus_mars.marketplace import DEFAULT_API_URL, SpaceMarsClient
from prometheus_mars.runtime import PrometheusAgent, build_dispatcher, build_llm, load_soul
from prometheus_mars.skills import load_skills_from_dir
from prometheus_mars.worker import TaskWorker

logger = logging.getLogger(__name__)

__version__ = "0.2.0"

click.rich_click.TEXT_MARKUP = "markdown"

BANNER = r"""
  ____                          _   _
 |  _ \ _ __ ___  _ __ ___   ___| |_| |__   ___ _   _ ___
 | |_) | '__/ _ \| '_ ` _ \ / _ \ __| '_ \ / _ \ | | / __|
 |  __/| | | (_) | | | | | |  __/ |_| | | |  __/ |_| \__ \
 |_|   |_|  \___/|_| |_| |_|\___|\__|_| |_|\___|\__,_|___/
                                    M A R S
"""


def _print_banner() -> None:
    click.echo(BANNER)
    click.echo(f"  Autonomous AI Agent Runtime for SpaceMars  v{__version__}")
    click.echo("  https://spacemars.ai\n")


def _load_settings() -> Settings:
    try:
        return Settings()
    except ValidationError as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e


def _configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )


def render_env(
    *,
    api_url: str,
    api_key: str,
    agent_name: str,
    llm_provider: str,
    llm_api_key: str,
    llm_model: str,
    generated_at: datetime | None = None,
) -> str:
    """Render the .env file written by `init`."""
    stamp = (generated_at or datetime.now(UTC)).isoformat()
    lines = [
        "# Prometheus Mars Agent Configuration",
        f"# Generated on {stamp}",
        "",
        f"SPACEMARS_API_URL={api_url}",
        f"SPACEMARS_API_KEY={api_key}",
        f"AGENT_NAME={agent_name}",
        "",
        f"LLM_PROVIDER={llm_provider}",
        f"LLM_API_KEY={llm_api_key}",
        f"LLM_MODEL={llm_model}",
        "",
        "# Heartbeat interval in milliseconds (default: 30 min)",
        "HEARTBEAT_INTERVAL_MS=1800000",
        "",
    ]
    return "\n".join(lines)


async def _register_agent(api_url: str, name: str, description: str, skills: list[str]) -> str:
    """Register with the marketplace; returns the new API key or ""."""
    client = SpaceMarsClient(api_url, "")
    try:
        result = await client.register(name, description, skills)
    except httpx.HTTPError as e:
        click.echo(f"Registration failed: {e}", err=True)
        return ""
    finally:
        await client.aclose()

    if not result.success or result.data is None:
        click.echo(f"Registration failed: {result.error or 'unknown error'}", err=True)
        return ""

    agent = result.data
    click.echo(f"Agent registered! ID: {agent.id}")
    click.echo(f"API key: {agent.api_key}")
    click.echo(f"Claim URL: {agent.claim_url}")
    if agent.first_task:
        click.echo(f'First task: "{agent.first_task.title}" ({agent.first_task.difficulty})')
    return agent.api_key


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="prometheus-mars")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Autonomous AI agent runtime for the SpaceMars task marketplace."""
    if ctx.invoked_subcommand is None:
        ctx.invoke(start)


@cli.command()
def start() -> None:
    """Start the agent: heartbeat plus the fetch/solve/submit loop."""
    settings = _load_settings()
    _configure_logging(settings)
    _print_banner()

    if not settings.spacemars_api_key:
        raise click.ClickException(
            'No SPACEMARS_API_KEY found. Run "prometheus-mars init" to set up, '
            "or add SPACEMARS_API_KEY to your .env file."
        )

    asyncio.run(_run_agent(settings))


async def _run_agent(settings: Settings) -> None:
    agent = PrometheusAgent(settings)
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, agent.request_stop)
        except NotImplementedError:
            # Windows event loops lack add_signal_handler; Ctrl+C still raises
            pass
    await agent.start()


@cli.command()
@click.option("--env-file", type=click.Path(path_type=Path), default=Path(".env"), show_default=True,
              help="Where to write the configuration.")
def init(env_file: Path) -> None:
    """Interactive setup: register the agent and write a .env file."""
    _print_banner()
    click.echo("=== Agent Initialization ===\n")

    agent_name = click.prompt("Agent name", default="Prometheus-Agent")
    description = click.prompt(
        "Agent description", default="Autonomous AI agent powered by Prometheus runtime"
    )
    skills_raw = click.prompt("Skills (comma-separated, e.g. coding,research)", default="", show_default=False)
    skills = [s.strip() for s in skills_raw.split(",") if s.strip()] or ["general"]
    api_url = click.prompt("SpaceMars API URL", default=DEFAULT_API_URL)
    api_key = click.prompt(
        "SpaceMars API key (leave blank to register a new agent)", default="", show_default=False
    )

    if not api_key:
        click.echo("\nRegistering agent with SpaceMars...")
        api_key = asyncio.run(_register_agent(api_url, agent_name, description, skills))
        if not api_key:
            click.echo("You can still edit the .env file manually and set SPACEMARS_API_KEY.")

    llm_provider = click.prompt(
        "LLM provider", type=click.Choice(["anthropic", "openai", "google"]), default="anthropic"
    )
    llm_api_key = click.prompt("LLM API key (optional, can set later)", default="", show_default=False)
    llm_model = click.prompt("LLM model", default="claude-sonnet-4-5-20250929")

    env_file.write_text(
        render_env(
            api_url=api_url,
            api_key=api_key,
            agent_name=agent_name,
            llm_provider=llm_provider,
            llm_api_key=llm_api_key,
            llm_model=llm_model,
        ),
        encoding="utf-8",
    )
    click.echo(f"\nConfiguration saved to {env_file.resolve()}")
    click.echo('Run "prometheus-mars" to start the agent.')


@cli.command("skills")
def list_skills() -> None:
    """List the skills found in SKILLS_DIR."""
    settings = _load_settings()
    _configure_logging(settings)
    skills = load_skills_from_dir(settings.skills_dir)

    if not skills:
        click.echo("No skills found.")
        return

    click.echo(f"Found {len(skills)} skill(s):\n")
    for skill in skills:
        meta = skill.meta
        click.echo(f"  {meta.name} ({meta.category})")
        click.echo(f"    {meta.description}")
        click.echo(f"    Mission: {meta.mission} | Tools: {', '.join(meta.tools) or 'none'}\n")


@cli.command()
@click.argument("task")
@click.option("--no-tools", is_flag=True, help="Single completion without tool calling.")
def run(task: str, no_tools: bool) -> None:
    """Solve one free-form TASK locally and print the answer."""
    settings = _load_settings()
    _configure_logging(settings)
    click.echo(asyncio.run(_solve_direct(settings, task, tools=not no_tools)))


async def _solve_direct(settings: Settings, task: str, *, tools: bool) -> str:
    llm = build_llm(settings)
    client = SpaceMarsClient(settings.spacemars_api_url, settings.spacemars_api_key)
    web_http = httpx.AsyncClient(timeout=httpx.Timeout(connect=10, read=30, write=10, pool=10))
    worker = TaskWorker(client, llm, loop_config=LoopConfig(max_turns=settings.max_turns))
    try:
        worker.set_skills(load_skills_from_dir(settings.skills_dir))
        soul = load_soul(settings)
        if soul:
            worker.set_soul_prompt(soul)
        if tools and settings.tools_enabled:
            worker.set_dispatcher(build_dispatcher(settings, web_http))
        return await worker.solve_direct_task(task)
    finally:
        await web_http.aclose()
        await llm.aclose()
        await client.aclose()


@cli.command()
def version() -> None:
    """Show version."""
    click.echo(f"prometheus-mars v{__version__}")


def main() -> None:
    try:
        cli()
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    main()
