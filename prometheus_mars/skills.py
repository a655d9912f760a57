"""SKILL.md loading and relevance selection.

A skill file is markdown with a small front matter block:

    ---
    name: orbital-mechanics
    version: 1.0.0
    category: science
    mission: all
    description: Trajectory and delta-v calculations
    tools: [bash, web_search]
    ---

    # Instructions...

Only flat `key: value` pairs and `[a, b]` lists are understood.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

import httpx
from pydantic import BaseModel

from prometheus_mars.marketplace import AvailableTask

logger = logging.getLogger(__name__)

SKILL_FILENAME = "SKILL.md"
_REQUIRED_FIELDS = ("name", "version", "category", "mission", "description")
_FRONT_MATTER = re.compile(r"^---\n(.*?)\n---\n(.*)$", re.DOTALL)
_MAX_SELECTED = 2


class SkillFormatError(ValueError):
    """SKILL.md content is missing front matter or a required field."""


class SkillMeta(BaseModel):
    name: str
    version: str
    category: str
    mission: str
    description: str
    tools: list[str] = []


class Skill(BaseModel):
    meta: SkillMeta
    instructions: str
    file_path: str


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _parse_front_matter(block: str, source: str) -> SkillMeta:
    fields: dict[str, str | list[str]] = {}
    for line in block.split("\n"):
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or ":" not in stripped:
            continue
        key, _, value = stripped.partition(":")
        key, value = key.strip(), value.strip()
        if value.startswith("[") and value.endswith("]"):
            fields[key] = [item.strip() for item in value[1:-1].split(",") if item.strip()]
        else:
            fields[key] = value

    for name in _REQUIRED_FIELDS:
        if not fields.get(name):
            raise SkillFormatError(f"SKILL.md at {source} is missing required field: {name}")

    tools = fields.get("tools", [])
    return SkillMeta(
        name=str(fields["name"]),
        version=str(fields["version"]),
        category=str(fields["category"]),
        mission=str(fields["mission"]),
        description=str(fields["description"]),
        tools=tools if isinstance(tools, list) else [tools] if tools else [],
    )


def parse_skill_md(content: str, source: str) -> Skill:
    """Parse SKILL.md text into metadata plus the instruction body."""
    normalized = content.replace("\r\n", "\n")
    match = _FRONT_MATTER.match(normalized)
    if not match:
        raise SkillFormatError(f"Invalid SKILL.md format in {source}: no front matter found")

    meta = _parse_front_matter(match.group(1), source)
    return Skill(meta=meta, instructions=match.group(2).strip(), file_path=source)


def load_skill(path: str | Path) -> Skill:
    absolute = Path(path).resolve()
    return parse_skill_md(absolute.read_text(encoding="utf-8"), str(absolute))


def load_skills_from_dir(directory: str | Path) -> list[Skill]:
    """Load SKILL.md from `directory` and its immediate subdirectories.

    Unreadable or invalid files are skipped with a warning. A missing
    directory yields an empty list.
    """
    root = Path(directory).resolve()
    if not root.is_dir():
        logger.warning("Skills directory not found: %s", root)
        return []

    candidates: list[Path] = []
    for entry in sorted(root.iterdir()):
        if entry.is_dir():
            skill_file = entry / SKILL_FILENAME
            if skill_file.is_file():
                candidates.append(skill_file)
        elif entry.name == SKILL_FILENAME:
            candidates.append(entry)

    skills: list[Skill] = []
    for skill_file in candidates:
        try:
            skills.append(load_skill(skill_file))
        except (OSError, SkillFormatError) as e:
            logger.warning("Failed to load %s: %s", skill_file, e)

    logger.info("Loaded %d skill(s) from %s", len(skills), root)
    return skills


async def load_skill_from_url(url: str, http_client: httpx.AsyncClient | None = None) -> Skill:
    """Fetch and parse a remote SKILL.md."""
    client = http_client or httpx.AsyncClient(timeout=30)
    try:
        response = await client.get(url)
    finally:
        if http_client is None:
            await client.aclose()

    if response.status_code >= 400:
        raise SkillFormatError(f"Failed to fetch SKILL.md from {url}: HTTP {response.status_code}")
    return parse_skill_md(response.text, url)


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------


def score_skill(skill: Skill, task: AvailableTask) -> int:
    """Keyword relevance of a skill to a task (0 = unrelated)."""
    tags = {t.lower() for t in task.tags}
    title = task.title.lower()
    description = task.description.lower()
    name = skill.meta.name.lower()
    category = skill.meta.category.lower()
    skill_desc = skill.meta.description.lower()

    score = 0
    if category in tags:
        score += 3
    if name in tags:
        score += 3
    score += 2 * sum(1 for part in name.split("-") if part in tags)
    if name in title or category in title:
        score += 2
    if name in description or category in description:
        score += 1
    score += sum(1 for tag in tags if tag in skill_desc)
    return score


def select_skills_for_task(
    skills: list[Skill],
    task: AvailableTask,
    limit: int = _MAX_SELECTED,
) -> list[Skill]:
    """Return up to `limit` skills for the task's mission, best score first."""
    eligible = [s for s in skills if s.meta.mission in ("all", task.mission_slug)]
    scored = [(score_skill(s, task), s) for s in eligible]
    ranked = sorted((pair for pair in scored if pair[0] > 0), key=lambda pair: pair[0], reverse=True)
    return [skill for _, skill in ranked[:limit]]
