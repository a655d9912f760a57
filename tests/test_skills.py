"""Tests for SKILL.md parsing, discovery, selection, and prompt building."""

from __future__ import annotations

import httpx
import pytest

from prometheus_mars.config import DEFAULT_SKILLS_DIR
from prometheus_mars.marketplace import AvailableTask
from prometheus_mars.prompts import TASK_SYSTEM_PROMPT, build_system_prompt, build_task_prompt
from prometheus_mars.skills import (
    Skill,
    SkillFormatError,
    SkillMeta,
    load_skill_from_url,
    load_skills_from_dir,
    parse_skill_md,
    score_skill,
    select_skills_for_task,
)

_SKILL_MD = """---
name: orbital-mechanics
version: 1.2.0
category: science
mission: all
description: Trajectory and delta-v calculations
tools: [bash, web_search]
---

# Orbital Mechanics

Use the vis-viva equation.
"""


def _skill(name: str, category: str, description: str = "", mission: str = "all") -> Skill:
    meta = SkillMeta(name=name, version="1.0.0", category=category, mission=mission, description=description)
    return Skill(meta=meta, instructions=f"{name} instructions", file_path=f"/skills/{name}/SKILL.md")


def _task(**overrides) -> AvailableTask:
    data = {
        "id": "task-1",
        "title": "Plan a Hohmann transfer",
        "description": "Compute the delta-v budget",
        "difficulty": "advanced",
        "missionSlug": "mars-2030",
        "rewardMars": 250,
        "tags": ["science", "orbital"],
    }
    data.update(overrides)
    return AvailableTask.model_validate(data)


# ---------------------------------------------------------------------------
# Parsing and loading
# ---------------------------------------------------------------------------


class TestParseSkill:
    def test_parses_front_matter_and_body(self):
        skill = parse_skill_md(_SKILL_MD, "mem://skill")

        assert skill.meta.name == "orbital-mechanics"
        assert skill.meta.version == "1.2.0"
        assert skill.meta.tools == ["bash", "web_search"]
        assert skill.instructions == "# Orbital Mechanics\n\nUse the vis-viva equation."
        assert skill.file_path == "mem://skill"

    def test_crlf_line_endings(self):
        skill = parse_skill_md(_SKILL_MD.replace("\n", "\r\n"), "win")
        assert skill.meta.category == "science"

    def test_tools_optional(self):
        content = _SKILL_MD.replace("tools: [bash, web_search]\n", "")
        assert parse_skill_md(content, "x").meta.tools == []

    def test_missing_front_matter(self):
        with pytest.raises(SkillFormatError, match="no front matter"):
            parse_skill_md("# Just markdown", "plain.md")

    def test_missing_required_field(self):
        content = _SKILL_MD.replace("mission: all\n", "")
        with pytest.raises(SkillFormatError, match="missing required field: mission"):
            parse_skill_md(content, "x")


class TestLoadSkills:
    def test_loads_top_level_and_subdirectories(self, tmp_path):
        (tmp_path / "SKILL.md").write_text(_SKILL_MD)
        sub = tmp_path / "coding"
        sub.mkdir()
        (sub / "SKILL.md").write_text(_SKILL_MD.replace("orbital-mechanics", "python-coding"))
        deep = tmp_path / "a" / "b"
        deep.mkdir(parents=True)
        (deep / "SKILL.md").write_text(_SKILL_MD.replace("orbital-mechanics", "too-deep"))

        names = sorted(s.meta.name for s in load_skills_from_dir(tmp_path))

        assert names == ["orbital-mechanics", "python-coding"]

    def test_invalid_files_skipped(self, tmp_path, caplog):
        good = tmp_path / "good"
        bad = tmp_path / "bad"
        good.mkdir()
        bad.mkdir()
        (good / "SKILL.md").write_text(_SKILL_MD)
        (bad / "SKILL.md").write_text("no front matter here")

        skills = load_skills_from_dir(tmp_path)

        assert [s.meta.name for s in skills] == ["orbital-mechanics"]
        assert "Failed to load" in caplog.text

    def test_missing_directory(self, tmp_path):
        assert load_skills_from_dir(tmp_path / "nowhere") == []

    def test_bundled_skills_parse(self):
        skills = load_skills_from_dir(DEFAULT_SKILLS_DIR)
        assert {s.meta.name for s in skills} >= {"mars-research", "python-coding"}

    @pytest.mark.asyncio
    async def test_load_from_url(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200, text=_SKILL_MD)))
        skill = await load_skill_from_url("https://spacemars.test/skill.md", client)
        assert skill.meta.name == "orbital-mechanics"
        assert skill.file_path == "https://spacemars.test/skill.md"

    @pytest.mark.asyncio
    async def test_load_from_url_http_error(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(404)))
        with pytest.raises(SkillFormatError, match="HTTP 404"):
            await load_skill_from_url("https://spacemars.test/skill.md", client)


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------


class TestSelectSkills:
    def test_score_components(self):
        # category tag +3, name part "orbital" +2, category not in title, desc +0
        skill = _skill("orbital-mechanics", "science", "delta-v maths")
        assert score_skill(skill, _task()) == 5

    def test_title_and_description_matches(self):
        skill = _skill("hohmann", "logistics")
        task = _task(tags=[], description="uses hohmann and logistics")
        # title contains name +2, description contains name +1
        assert score_skill(skill, task) == 3

    def test_tag_in_skill_description(self):
        skill = _skill("writer", "docs", "Writes orbital reports")
        assert score_skill(skill, _task()) == 1

    def test_mission_filter(self):
        other = _skill("orbital-mechanics", "science", mission="venus")
        matching = _skill("orbital-helper", "science", mission="mars-2030")
        assert select_skills_for_task([other, matching], _task()) == [matching]

    def test_top_two_by_score(self):
        low = _skill("writer", "docs", "Writes orbital reports")
        high = _skill("orbital-mechanics", "science")
        mid = _skill("science-notes", "notes")
        none = _skill("cooking", "food")

        selected = select_skills_for_task([low, none, mid, high], _task())

        assert [s.meta.name for s in selected] == ["orbital-mechanics", "science-notes"]

    def test_no_skills(self):
        assert select_skills_for_task([], _task()) == []


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------


class TestPrompts:
    def test_base_prompt_only(self):
        assert build_system_prompt([]) == TASK_SYSTEM_PROMPT

    def test_soul_and_skills_sections(self):
        prompt = build_system_prompt([_skill("orbital-mechanics", "science", "Trajectories")], soul="I am Ares.")

        assert prompt.startswith(TASK_SYSTEM_PROMPT + "\n\n---\n\nI am Ares.\n\n---\n\n# Available Skills")
        assert "### Skill: orbital-mechanics (science)\nTrajectories\n\norbital-mechanics instructions" in prompt
        assert prompt.index("I am Ares.") < prompt.index("# Available Skills")

    def test_task_prompt(self):
        prompt = build_task_prompt(_task())

        assert prompt == "\n".join([
            "## Task: Plan a Hohmann transfer",
            "",
            "Compute the delta-v budget",
            "",
            "- Difficulty: advanced",
            "- Mission: mars-2030",
            "- Reward: 250 MARS",
            "- Tags: science, orbital",
            "",
            "Provide a comprehensive, well-structured solution for this task.",
        ])

    def test_task_prompt_without_tags(self):
        assert "- Tags:" not in build_task_prompt(_task(tags=[]))
