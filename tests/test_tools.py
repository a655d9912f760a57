"""Unit tests for the dispatcher and built-in tools (bash, read_file, write_file).

All tests are pure async. Filesystem tests use the pytest tmp_path
fixture for workspace isolation. Commands use sys.executable for
cross-platform behaviour.
"""

from __future__ import annotations

import sys

import pytest

from prometheus_mars.llm.schemas import ToolUseBlock
from prometheus_mars.tools.builtin_tools import (
    _MAX_FILE_SIZE,
    _MAX_OUTPUT_CHARS,
    bash_tool,
    read_file_tool,
    register_builtin_tools,
    write_file_tool,
)
from prometheus_mars.tools.dispatcher import ToolDispatcher, ToolError, make_tool

# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


async def _add(a: int, b: int) -> str:
    return str(a + b)


async def _crash() -> str:
    raise RuntimeError("kaboom")


class TestToolDispatcher:
    def test_definitions_in_registration_order(self):
        dispatcher = ToolDispatcher()
        dispatcher.register(make_tool("b_tool", "B", {}, [], _add))
        dispatcher.register(make_tool("a_tool", "A", {}, [], _add))

        assert [d.name for d in dispatcher.tool_definitions()] == ["b_tool", "a_tool"]
        assert dispatcher.tool_definitions()[0].input_schema == {
            "type": "object", "properties": {}, "required": [],
        }

    def test_last_registration_wins(self):
        dispatcher = ToolDispatcher()
        dispatcher.register(make_tool("t", "first", {}, [], _add))
        dispatcher.register(make_tool("t", "second", {}, [], _add))

        assert len(dispatcher) == 1
        assert dispatcher.tool_definitions()[0].description == "second"

    @pytest.mark.asyncio
    async def test_success(self):
        dispatcher = ToolDispatcher()
        dispatcher.register(make_tool("add", "", {}, [], _add))

        result = await dispatcher.execute(ToolUseBlock(id="1", name="add", input={"a": 2, "b": 3}))

        assert result.tool_use_id == "1"
        assert result.content == "5"
        assert result.is_error is False

    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        result = await ToolDispatcher().execute(ToolUseBlock(id="1", name="nope"))

        assert result.is_error
        assert result.content == "Unknown tool: nope"

    @pytest.mark.asyncio
    async def test_bad_kwargs(self):
        dispatcher = ToolDispatcher()
        dispatcher.register(make_tool("add", "", {}, [], _add))

        result = await dispatcher.execute(ToolUseBlock(id="1", name="add", input={"a": 1}))

        assert result.is_error
        assert result.content.startswith("Invalid arguments for add")

    @pytest.mark.asyncio
    async def test_undecodable_arguments_not_dispatched(self):
        calls = []

        async def _spy(**kwargs) -> str:
            calls.append(kwargs)
            return "ran"

        dispatcher = ToolDispatcher()
        dispatcher.register(make_tool("spy", "", {}, [], _spy))

        result = await dispatcher.execute(ToolUseBlock(id="1", name="spy", input_error="not JSON"))

        assert result.is_error
        assert "not JSON" in result.content
        assert calls == []

    @pytest.mark.asyncio
    async def test_unexpected_exception_folded(self, caplog):
        dispatcher = ToolDispatcher()
        dispatcher.register(make_tool("crash", "", {}, [], _crash))

        result = await dispatcher.execute(ToolUseBlock(id="1", name="crash"))

        assert result.is_error
        assert result.content == "Error: kaboom"
        assert "Tool dispatch error for crash" in caplog.text


# ---------------------------------------------------------------------------
# bash
# ---------------------------------------------------------------------------


class TestBashTool:
    @pytest.mark.asyncio
    async def test_success(self, tmp_path):
        output = await bash_tool(
            command=f'{sys.executable} -c "print(\'hello from bash tool\')"',
            _workspace_dir=str(tmp_path),
        )
        assert "hello from bash tool" in output

    @pytest.mark.asyncio
    async def test_runs_in_workspace(self, tmp_path):
        (tmp_path / "marker.txt").write_text("x")
        output = await bash_tool(
            command=f'{sys.executable} -c "import os; print(os.listdir(\'.\'))"',
            _workspace_dir=str(tmp_path),
        )
        assert "marker.txt" in output

    @pytest.mark.asyncio
    async def test_no_output(self, tmp_path):
        output = await bash_tool(command=f'{sys.executable} -c "pass"', _workspace_dir=str(tmp_path))
        assert output == "(no output)"

    @pytest.mark.asyncio
    async def test_timeout(self, tmp_path):
        with pytest.raises(ToolError, match="timed out after 1s"):
            await bash_tool(
                command=f'{sys.executable} -c "import time; time.sleep(30)"',
                timeout=1,
                _workspace_dir=str(tmp_path),
            )

    @pytest.mark.asyncio
    async def test_output_truncation(self, tmp_path):
        output = await bash_tool(
            command=f'{sys.executable} -c "print(\'x\' * 200000)"',
            _workspace_dir=str(tmp_path),
        )
        assert "truncated" in output
        assert len(output) < _MAX_OUTPUT_CHARS + 100

    @pytest.mark.asyncio
    async def test_nonzero_exit(self, tmp_path):
        with pytest.raises(ToolError, match="exit code 3"):
            await bash_tool(
                command=f'{sys.executable} -c "import sys; sys.stderr.write(\'bad\'); sys.exit(3)"',
                _workspace_dir=str(tmp_path),
            )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("command", ["sudo ls", "rm -rf /", "mkfs.ext4 /dev/x", "dd if=/dev/zero of=x"])
    async def test_blocked_patterns(self, tmp_path, command):
        with pytest.raises(ToolError, match="Blocked"):
            await bash_tool(command=command, _workspace_dir=str(tmp_path))


# ---------------------------------------------------------------------------
# read_file / write_file
# ---------------------------------------------------------------------------


class TestFileTools:
    @pytest.mark.asyncio
    async def test_write_then_read(self, tmp_path):
        message = await write_file_tool("notes/plan.md", "# Plan", _workspace_dir=str(tmp_path))

        assert message == "File written: notes/plan.md (6 chars)"
        assert await read_file_tool("notes/plan.md", _workspace_dir=str(tmp_path)) == "# Plan"

    @pytest.mark.asyncio
    async def test_traversal_blocked(self, tmp_path):
        with pytest.raises(ToolError, match="Path traversal blocked"):
            await read_file_tool("../../etc/passwd", _workspace_dir=str(tmp_path))
        with pytest.raises(ToolError, match="Path traversal blocked"):
            await write_file_tool("/tmp/evil.txt", "x", _workspace_dir=str(tmp_path))

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        with pytest.raises(ToolError, match="File not found"):
            await read_file_tool("nope.txt", _workspace_dir=str(tmp_path))

    @pytest.mark.asyncio
    async def test_directory_is_not_a_file(self, tmp_path):
        (tmp_path / "sub").mkdir()
        with pytest.raises(ToolError, match="Not a file"):
            await read_file_tool("sub", _workspace_dir=str(tmp_path))

    @pytest.mark.asyncio
    async def test_file_too_large(self, tmp_path):
        (tmp_path / "big.bin").write_bytes(b"x" * (_MAX_FILE_SIZE + 1))
        with pytest.raises(ToolError, match="too large"):
            await read_file_tool("big.bin", _workspace_dir=str(tmp_path))


class TestRegistration:
    @pytest.mark.asyncio
    async def test_registered_tools_use_settings_workspace(self, settings, tmp_path):
        dispatcher = ToolDispatcher()
        register_builtin_tools(dispatcher, settings)

        assert dispatcher.tool_names() == ["bash", "read_file", "write_file"]

        write = await dispatcher.execute(
            ToolUseBlock(id="w", name="write_file", input={"path": "a.txt", "content": "hello"}),
        )
        read = await dispatcher.execute(ToolUseBlock(id="r", name="read_file", input={"path": "a.txt"}))

        assert not write.is_error
        assert read.content == "hello"
        assert (tmp_path / "workspace" / "a.txt").read_text() == "hello"

    @pytest.mark.asyncio
    async def test_tool_error_surfaces_as_error_result(self, settings):
        dispatcher = ToolDispatcher()
        register_builtin_tools(dispatcher, settings)

        result = await dispatcher.execute(ToolUseBlock(id="r", name="read_file", input={"path": "missing"}))

        assert result.is_error
        assert result.content == "Error: File not found: missing"
