from __future__ import annotations

"""backend/codescout/services/tools/base.py

Shared utilities for running the external discovery CLIs.

This module provides:

- ContentBlock / Result: the uniform envelope every operation returns
- Executable / CommandSpec: what to run, as an argument vector
- create_result: helper that wraps tool payloads into a Result
- is_command_allowed: read-only allowlist per executable, subcommand and arguments
- CommandGateway: async runner that executes a CommandSpec and normalizes
  stdout/stderr/exit status into a Result

Higher-level tool adapters (github_tool, npm_tool) build on top of these
helpers.

NOTE: arguments are always handed to the OS as a vector. Nothing here ever
goes through a shell.
"""

import asyncio
import enum
import json
import logging
import os
import signal
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Sequence, Tuple

logger = logging.getLogger(__name__)

# failure_reason markers set by the gateway when the cause is known for sure
FAILURE_TIMEOUT = "timeout"
FAILURE_MALFORMED_OUTPUT = "malformed-output"
FAILURE_NOT_ALLOWED = "command-not-allowed"
FAILURE_SPAWN_ERROR = "process-spawn-error"

ENVELOPE_KEY = "result"

# Upper bound on reaping a killed process group.
KILL_WAIT_SECONDS = 2.0


@dataclass(frozen=True)
class ContentBlock:
    """A single text block of a Result."""

    text: str
    type: str = "text"

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.type, "text": self.text}


@dataclass(frozen=True)
class Result:
    """Outcome of one operation, successful or not.

    ``failure_reason`` and ``return_code`` are diagnostic extras; only
    ``content`` and ``is_error`` cross the HTTP boundary.
    """

    content: Tuple[ContentBlock, ...]
    is_error: bool = False
    failure_reason: str | None = None
    return_code: int | None = None

    @classmethod
    def text_result(
        cls,
        text: str,
        *,
        is_error: bool = False,
        failure_reason: str | None = None,
        return_code: int | None = None,
    ) -> "Result":
        return cls(
            content=(ContentBlock(text=text),),
            is_error=is_error,
            failure_reason=failure_reason,
            return_code=return_code,
        )

    @classmethod
    def error(
        cls,
        text: str,
        *,
        failure_reason: str | None = None,
        return_code: int | None = None,
    ) -> "Result":
        return cls.text_result(
            text,
            is_error=True,
            failure_reason=failure_reason,
            return_code=return_code,
        )

    @property
    def text(self) -> str:
        return "\n".join(block.text for block in self.content)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "content": [block.to_dict() for block in self.content],
            "isError": self.is_error,
        }


class Executable(str, enum.Enum):
    HOSTING_CLI = "hosting-cli"
    REGISTRY_CLI = "registry-cli"


@dataclass(frozen=True)
class CommandSpec:
    """One CLI invocation: ``<binary> <subcommand> <args...>``."""

    executable: Executable
    subcommand: str
    args: Tuple[str, ...] = field(default_factory=tuple)
    timeout_ms: int = 30000

    def __post_init__(self) -> None:
        # Accept any iterable of strings but store an immutable tuple.
        object.__setattr__(self, "args", tuple(str(a) for a in self.args))


# Read-only subcommands only; anything that installs, publishes or mutates
# state is refused before a process is spawned.
ALLOWED_SUBCOMMANDS: Dict[Executable, frozenset[str]] = {
    Executable.HOSTING_CLI: frozenset({"search", "api", "auth", "version"}),
    Executable.REGISTRY_CLI: frozenset({"view", "search", "ping", "config", "whoami"}),
}

# Subcommands that are only safe with a read-only first argument.
READ_ONLY_ACTIONS: Dict[Tuple[Executable, str], frozenset[str]] = {
    (Executable.HOSTING_CLI, "auth"): frozenset({"status"}),
    (Executable.REGISTRY_CLI, "config"): frozenset({"get", "list", "ls"}),
}

# `gh api` switches to POST as soon as a body field is given.
API_BODY_FLAGS = ("-f", "-F", "--field", "--raw-field", "--input")
API_METHOD_FLAGS = ("-X", "--method")


def _api_args_read_only(args: Sequence[str]) -> bool:
    for index, arg in enumerate(args):
        if arg == "--":
            break
        if arg in API_BODY_FLAGS or arg.startswith(("--field=", "--raw-field=", "--input=")):
            return False
        if arg.startswith(("-f", "-F")) and len(arg) > 2 and not arg.startswith("--"):
            return False
        method = None
        if arg in API_METHOD_FLAGS:
            method = args[index + 1] if index + 1 < len(args) else ""
        elif arg.startswith("--method="):
            method = arg.split("=", 1)[1]
        elif arg.startswith("-X") and len(arg) > 2:
            method = arg[2:]
        if method is not None and method.upper() != "GET":
            return False
    return True


def is_command_allowed(
    executable: Executable, subcommand: str, args: Sequence[str] = ()
) -> bool:
    if subcommand not in ALLOWED_SUBCOMMANDS.get(executable, frozenset()):
        return False
    actions = READ_ONLY_ACTIONS.get((executable, subcommand))
    if actions is not None and (not args or args[0] not in actions):
        return False
    if executable is Executable.HOSTING_CLI and subcommand == "api":
        return _api_args_read_only(args)
    return True


def create_result(
    *,
    data: Any = None,
    hints: Iterable[str] | None = None,
    meta: Mapping[str, Any] | None = None,
    is_error: bool = False,
    error: str | None = None,
    failure_reason: str | None = None,
) -> Result:
    """Serialize a tool payload into a single-block Result.

    The text is always a JSON object with ``data`` and ``hints``; ``meta``
    and ``error`` are added when present.
    """
    body: Dict[str, Any] = {"data": data, "hints": list(hints or [])}
    if meta:
        body["meta"] = dict(meta)
    if error is not None:
        body["error"] = error
    return Result.text_result(
        json.dumps(body, ensure_ascii=False, default=str),
        is_error=is_error,
        failure_reason=failure_reason,
    )


def _decode(raw: bytes | None) -> str:
    return (raw or b"").decode("utf-8", errors="replace")


def parse_envelope(stdout: str) -> Result:
    """Turn successful stdout into a Result.

    ``{"result": ...}`` is unwrapped; any other JSON document is passed
    through whole. Unparseable output is an error flagged as malformed.
    """
    text = stdout.strip()
    if not text:
        return Result.text_result("")

    try:
        document = json.loads(text)
    except json.JSONDecodeError as exc:
        return Result.error(
            f"Malformed output (expected JSON): {exc}\n{stdout}",
            failure_reason=FAILURE_MALFORMED_OUTPUT,
        )

    if isinstance(document, dict) and ENVELOPE_KEY in document:
        document = document[ENVELOPE_KEY]

    if isinstance(document, str):
        return Result.text_result(document)
    return Result.text_result(json.dumps(document, ensure_ascii=False))


class CommandGateway:
    """Execute one CLI invocation and normalize the outcome.

    The gateway never retries and never classifies errors; it only wraps
    them. Callers decide what a failure means.
    """

    def __init__(
        self,
        binaries: Mapping[Executable, str] | None = None,
        *,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.binaries: Dict[Executable, str] = {
            Executable.HOSTING_CLI: "gh",
            Executable.REGISTRY_CLI: "npm",
        }
        self.binaries.update(binaries or {})
        self.env: Dict[str, str] = dict(env or {})

    @classmethod
    def from_settings(cls, settings: Any) -> "CommandGateway":
        return cls(
            {
                Executable.HOSTING_CLI: settings.gh_binary,
                Executable.REGISTRY_CLI: settings.npm_binary,
            },
            env=settings.command_env,
        )

    def build_argv(self, spec: CommandSpec) -> list[str]:
        return [self.binaries[spec.executable], spec.subcommand, *spec.args]

    async def run(self, spec: CommandSpec) -> Result:
        if not is_command_allowed(spec.executable, spec.subcommand, spec.args):
            logger.warning(
                "Refusing %s subcommand '%s'", spec.executable.value, spec.subcommand
            )
            return Result.error(
                f"Command not allowed: {spec.executable.value} {spec.subcommand}",
                failure_reason=FAILURE_NOT_ALLOWED,
            )

        argv = self.build_argv(spec)
        environment = os.environ.copy()
        environment.update(self.env)
        logger.debug("Running %s (timeout=%sms)", argv, spec.timeout_ms)

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=environment,
                # Own process group, so a timeout also reaches grandchildren
                # that inherited the output pipes.
                start_new_session=True,
            )
        except OSError as exc:
            logger.warning("Failed to start %s: %s", argv[0], exc)
            return Result.error(
                f"Failed to start '{argv[0]}': {exc}",
                failure_reason=FAILURE_SPAWN_ERROR,
            )

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=spec.timeout_ms / 1000
            )
        except asyncio.TimeoutError:
            await self._kill(proc)
            logger.warning("Command %s timed out after %sms", argv[:2], spec.timeout_ms)
            return Result.error(
                f"Command timed out after {spec.timeout_ms}ms: {' '.join(argv[:2])}",
                failure_reason=FAILURE_TIMEOUT,
            )

        out_text = _decode(stdout)
        err_text = _decode(stderr)

        if proc.returncode != 0:
            message = err_text.strip() or out_text.strip() or (
                f"Command exited with code {proc.returncode}"
            )
            logger.warning(
                "Command %s failed (exit=%s): %s", argv[:2], proc.returncode, message[:200]
            )
            return Result.error(message, return_code=proc.returncode)

        result = parse_envelope(out_text)
        if result.is_error:
            logger.warning("Command %s produced unparseable output", argv[:2])
        return result

    @staticmethod
    async def _kill(proc: asyncio.subprocess.Process) -> None:
        try:
            if hasattr(os, "killpg"):
                os.killpg(proc.pid, signal.SIGKILL)
            else:
                proc.kill()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(proc.wait(), timeout=KILL_WAIT_SECONDS)
        except asyncio.TimeoutError:
            logger.warning("Process %s did not exit after SIGKILL", proc.pid)
