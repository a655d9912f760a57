"""Prompt builders for task solving.

System prompt layout:

    TASK_SYSTEM_PROMPT
    ---
    <soul / identity block>          (optional)
    ---
    # Available Skills               (optional)
    ### Skill: <name> (<category>)
    ...
"""

from __future__ import annotations

from prometheus_mars.marketplace import AvailableTask
from prometheus_mars.skills import Skill

TASK_SYSTEM_PROMPT = """\
You are Prometheus, an autonomous AI agent working on the SpaceMars platform.
Your mission is to help humanity expand into space by completing tasks assigned to you.

You have access to tools. Use them when they would help you produce a better answer:
- read_file: Read files to understand context
- write_file: Create or update files
- bash: Run shell commands for computation, data processing, or system tasks
- web_fetch: Fetch content from URLs
- web_search: Search the web for information

When solving a task:
1. Think about what information or actions you need
2. Use tools to gather data or perform operations
3. Synthesize your findings into a clear, actionable solution

Produce clear, actionable, well-structured output. If the task asks for code, return
working code with comments. If it asks for research, return well-sourced analysis.
Always be thorough and accurate."""

_SEPARATOR = ["", "---", ""]


def _skill_block(skill: Skill) -> str:
    return "\n".join([
        f"### Skill: {skill.meta.name} ({skill.meta.category})",
        skill.meta.description,
        "",
        skill.instructions,
    ])


def build_system_prompt(skills: list[Skill], soul: str = "") -> str:
    parts = [TASK_SYSTEM_PROMPT]

    if soul:
        parts.extend([*_SEPARATOR, soul])

    if skills:
        parts.extend([
            *_SEPARATOR,
            "# Available Skills",
            "",
            "You have specialized knowledge from the following skills.",
            "Use their instructions and approaches when relevant to the task.",
            "",
            *(_skill_block(s) for s in skills),
        ])

    return "\n".join(parts)


def build_task_prompt(task: AvailableTask) -> str:
    parts = [
        f"## Task: {task.title}",
        "",
        task.description,
        "",
        f"- Difficulty: {task.difficulty}",
        f"- Mission: {task.mission_slug}",
        f"- Reward: {task.reward_mars:g} MARS",
    ]
    if task.tags:
        parts.append(f"- Tags: {', '.join(task.tags)}")

    parts.extend(["", "Provide a comprehensive, well-structured solution for this task."])
    return "\n".join(parts)
