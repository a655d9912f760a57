"""Built-in tools for the Prometheus agent: bash, read_file, write_file.

All three are confined to the workspace directory. Failures raise
ToolError so the dispatcher reports them to the model as error results.
"""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path
from typing import Any

from prometheus_mars.config import Settings
from prometheus_mars.tools.dispatcher import ToolDispatcher, ToolError, make_tool

logger = logging.getLogger(__name__)

# Limits
_DEFAULT_BASH_TIMEOUT = 30  # seconds
_MAX_BASH_TIMEOUT = 300  # seconds
_MAX_OUTPUT_CHARS = 64 * 1024  # 64KB
_MAX_FILE_SIZE = 256 * 1024  # 256KB

_BLOCKED_PATTERNS = [
    re.compile(r"\brm\s+-rf\s+/"),
    re.compile(r"\bsudo\b"),
    re.compile(r"\bchmod\s+777"),
    re.compile(r"\bmkfs\b"),
    re.compile(r"\bdd\s+if="),
    re.compile(r">\s*/dev/sd"),
]


def _validate_path(path_str: str, workspace_dir: str) -> Path:
    """Resolve path under workspace_dir.

    Raises ToolError if the path escapes the workspace.
    """
    workspace = Path(workspace_dir).resolve()
    target = (workspace / path_str).resolve()

    if not target.is_relative_to(workspace):
        raise ToolError(
            f"Path traversal blocked: '{path_str}' is outside the working directory"
        )
    return target


def _truncate(text: str) -> str:
    if len(text) > _MAX_OUTPUT_CHARS:
        return text[:_MAX_OUTPUT_CHARS] + "\n... [output truncated at 64KB]"
    return text


# ---------------------------------------------------------------------------
# Tool handlers
# ---------------------------------------------------------------------------


async def bash_tool(
    command: str,
    timeout: int = _DEFAULT_BASH_TIMEOUT,
    *,
    _workspace_dir: str,
) -> str:
    """Execute a shell command in the workspace directory.

    Args:
        command: Shell command to execute
        timeout: Timeout in seconds (default 30, max 300)
        _workspace_dir: Internal param set by registration closure

    Returns:
        stdout, or "(no output)"
    """
    for pattern in _BLOCKED_PATTERNS:
        if pattern.search(command):
            raise ToolError(f"Blocked: command matches dangerous pattern {pattern.pattern}")

    effective_timeout = max(1, min(int(timeout), _MAX_BASH_TIMEOUT))

    workspace = Path(_workspace_dir)
    workspace.mkdir(parents=True, exist_ok=True)

    proc = await asyncio.create_subprocess_shell(
        command,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=str(workspace),
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=effective_timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise ToolError(f"Command timed out after {effective_timeout}s: {command}") from None

    stdout_text = _truncate(stdout.decode("utf-8", errors="replace"))
    stderr_text = _truncate(stderr.decode("utf-8", errors="replace"))

    if proc.returncode != 0:
        detail = stderr_text or stdout_text or f"exit code {proc.returncode}"
        raise ToolError(f"Command failed (exit code {proc.returncode}):\n{detail}")

    return stdout_text or "(no output)"


async def read_file_tool(path: str, *, _workspace_dir: str) -> str:
    """Read a UTF-8 file from the workspace directory."""
    target = _validate_path(path, _workspace_dir)

    if not target.exists():
        raise ToolError(f"File not found: {path}")
    if not target.is_file():
        raise ToolError(f"Not a file: {path}")

    file_size = target.stat().st_size
    if file_size > _MAX_FILE_SIZE:
        raise ToolError(f"File too large ({file_size} bytes, max {_MAX_FILE_SIZE})")

    return await asyncio.to_thread(target.read_text, encoding="utf-8", errors="replace")


async def write_file_tool(path: str, content: str, *, _workspace_dir: str) -> str:
    """Write content to a file in the workspace, creating parent directories."""
    target = _validate_path(path, _workspace_dir)

    await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
    await asyncio.to_thread(target.write_text, str(content), encoding="utf-8")

    return f"File written: {path} ({len(content):,} chars)"


# ---------------------------------------------------------------------------
# Tool schemas
# ---------------------------------------------------------------------------

_BASH_PROPERTIES: dict[str, Any] = {
    "command": {"type": "string", "description": "The shell command to execute"},
    "timeout": {
        "type": "integer",
        "description": "Timeout in seconds (default 30, max 300)",
        "default": _DEFAULT_BASH_TIMEOUT,
        "minimum": 1,
        "maximum": _MAX_BASH_TIMEOUT,
    },
}

_READ_FILE_PROPERTIES: dict[str, Any] = {
    "path": {"type": "string", "description": "Relative file path to read"},
}

_WRITE_FILE_PROPERTIES: dict[str, Any] = {
    "path": {"type": "string", "description": "Relative file path to write"},
    "content": {"type": "string", "description": "Content to write to the file"},
}


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def register_builtin_tools(dispatcher: ToolDispatcher, settings: Settings) -> None:
    """Register bash, read_file and write_file with the dispatcher.

    Creates closure wrappers that inject workspace_dir from settings.
    """
    workspace = settings.workspace_dir

    async def _bash(command: str, timeout: int = _DEFAULT_BASH_TIMEOUT) -> str:
        return await bash_tool(command, timeout, _workspace_dir=workspace)

    async def _read_file(path: str) -> str:
        return await read_file_tool(path, _workspace_dir=workspace)

    async def _write_file(path: str, content: str) -> str:
        return await write_file_tool(path, content, _workspace_dir=workspace)

    dispatcher.register(make_tool(
        "bash",
        "Execute a shell command in the working directory and return its output. "
        "Timeout: 30 seconds by default. Destructive commands are blocked.",
        _BASH_PROPERTIES, ["command"], _bash,
    ))
    dispatcher.register(make_tool(
        "read_file",
        "Read the contents of a file. The path is relative to the working directory.",
        _READ_FILE_PROPERTIES, ["path"], _read_file,
    ))
    dispatcher.register(make_tool(
        "write_file",
        "Write content to a file. Creates parent directories if needed. "
        "Path is relative to the working directory.",
        _WRITE_FILE_PROPERTIES, ["path", "content"], _write_file,
    ))
