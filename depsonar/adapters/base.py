"""Abstract audit adapter and the subprocess runner it shares.

An adapter knows which manifest files mark a project as belonging to its
ecosystem, which command to run, and how to turn that command's stdout into
``Vulnerability`` records.  Everything else (tool lookup, timeouts, partial
output, error conversion) lives here so the per-ecosystem modules stay pure
parsers.

Exit codes are not authoritative: most audit tools exit non-zero precisely
when they find something.  Parseable stdout is what counts.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import shlex
import shutil
import signal
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator

from ..errors import AuditError, ParseFailure, ToolFailed, ToolMissing, ToolTimeout
from ..models import AuditResult, Vulnerability

logger = logging.getLogger(__name__)

AUDIT_TIMEOUT = 60.0
PROBE_TIMEOUT = 15.0
KILL_GRACE = 5.0

_VERSION_TOKEN = re.compile(r"\d+\.\d+(?:\.\d+)?")


@dataclass
class ToolOutput:
    """Captured result of one subprocess run.

    Attributes:
        stdout: Decoded standard output (possibly partial after a timeout).
        stderr: Decoded standard error.
        returncode: Exit status, ``None`` when the process was killed.
        timed_out: Whether the wall-clock budget was exceeded.
    """

    stdout: str = ""
    stderr: str = ""
    returncode: int | None = 0
    timed_out: bool = False


def tool_available(name: str) -> bool:
    """Whether an executable is on ``PATH``."""
    return shutil.which(name) is not None


async def _drain(stream: asyncio.StreamReader | None, sink: bytearray) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(65536)
        if not chunk:
            return
        sink.extend(chunk)


def _kill(proc: asyncio.subprocess.Process) -> None:
    try:
        if os.name == "posix":
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()
    except ProcessLookupError:
        pass


async def run_tool(argv: list[str], cwd: Path, timeout: float) -> ToolOutput:
    """Run a command, capturing output, under a wall-clock timeout.

    On timeout the whole process group is killed and whatever stdout had been
    produced so far is returned with ``timed_out=True``.

    Args:
        argv: Command and arguments.
        cwd: Working directory.
        timeout: Seconds before the process is killed.

    Returns:
        ``ToolOutput`` with decoded streams.

    Raises:
        ToolMissing: if the executable cannot be started.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(cwd),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=os.name == "posix",
        )
    except FileNotFoundError as e:
        raise ToolMissing(f"{argv[0]} not found: {e}") from e

    out = bytearray()
    err = bytearray()
    readers = asyncio.gather(_drain(proc.stdout, out), _drain(proc.stderr, err))
    timed_out = False
    try:
        await asyncio.wait_for(proc.wait(), timeout)
    except asyncio.TimeoutError:
        timed_out = True
        _kill(proc)
        await proc.wait()

    try:
        await asyncio.wait_for(readers, KILL_GRACE)
    except asyncio.TimeoutError:
        # a grandchild outside the process group still holds a pipe open
        logger.debug("Output pipes of %s still open after exit", argv[0])

    return ToolOutput(
        stdout=out.decode("utf-8", errors="replace"),
        stderr=err.decode("utf-8", errors="replace"),
        returncode=None if timed_out else proc.returncode,
        timed_out=timed_out,
    )


def load_json(raw: str, tool: str) -> Any:
    """Parse a single JSON document, mapping decode errors to ``ParseFailure``."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise ParseFailure(f"Failed to parse {tool} output: {e.msg} (line {e.lineno})") from e


def iter_json_documents(raw: str) -> Iterator[Any]:
    """Yield each JSON value in a stream of concatenated documents.

    Handles newline-delimited JSON as well as pretty-printed objects that
    span several lines.  A line that cannot be decoded is skipped and
    decoding resumes at the next line.
    """
    decoder = json.JSONDecoder()
    pos = 0
    end = len(raw)
    while pos < end:
        while pos < end and raw[pos].isspace():
            pos += 1
        if pos >= end:
            return
        try:
            value, pos = decoder.raw_decode(raw, pos)
        except json.JSONDecodeError:
            nl = raw.find("\n", pos)
            if nl == -1:
                return
            pos = nl + 1
            continue
        yield value


class AuditAdapter(ABC):
    """Base class for per-ecosystem audit adapters.

    Subclasses set ``ecosystem``, ``manifests`` and implement ``command`` and
    ``parse``.  ``audit`` / ``audit_async`` never raise for per-project
    failures; they return an ``AuditResult`` carrying the error instead.

    Attributes:
        ecosystem: Ecosystem tag this adapter handles.
        manifests: File names whose presence marks a project as auditable.
        install_hint: Appended to the ``ToolMissing`` message.
        default_severity: Severity used when the tool reports none.
    """

    ecosystem: str = "base"
    manifests: tuple[str, ...] = ()
    install_hint: str = ""
    default_severity: str = "moderate"

    def __init__(self, timeout: float = AUDIT_TIMEOUT, probe_timeout: float = PROBE_TIMEOUT):
        self.timeout = timeout
        self.probe_timeout = probe_timeout

    @abstractmethod
    def command(self, project_path: Path) -> list[str]:
        """The audit command line for a project."""
        ...

    @abstractmethod
    def parse(self, raw: str, project_path: Path) -> list[Vulnerability]:
        """Normalize tool stdout into vulnerabilities.

        Raises:
            ParseFailure: if the output does not match the expected schema.
            ToolFailed: if the output is the tool's own error report.
        """
        ...

    def required_tools(self, project_path: Path) -> list[str]:
        """Executables that must be on ``PATH`` before running the audit."""
        return [self.command(project_path)[0]]

    def has_manifest(self, project_path: Path) -> bool:
        return any((project_path / name).is_file() for name in self.manifests)

    def _result(
        self,
        project_name: str,
        command: str,
        vulnerabilities: list[Vulnerability] | None = None,
        error: AuditError | None = None,
    ) -> AuditResult:
        return AuditResult(
            project=project_name,
            ecosystem=self.ecosystem,
            vulnerabilities=tuple(vulnerabilities or ()),
            command=command,
            error=str(error) if error else None,
            error_kind=error.kind if error else None,
        )

    async def audit_async(
        self,
        project_path: Path,
        project_name: str,
        timeout: float | None = None,
    ) -> AuditResult:
        """Audit one project.

        Args:
            project_path: Project root.
            project_name: Name recorded on the result.
            timeout: Overrides the adapter's audit timeout for this call.

        Returns:
            ``AuditResult`` for this project and ecosystem.
        """
        project_path = Path(project_path)
        argv = self.command(project_path)
        command = shlex.join(argv)

        if not self.has_manifest(project_path):
            return self._result(project_name, command)

        budget = self.timeout if timeout is None else timeout
        try:
            for tool in self.required_tools(project_path):
                if not tool_available(tool):
                    hint = f" {self.install_hint}" if self.install_hint else ""
                    raise ToolMissing(f"{tool} not installed.{hint}")
            output = await run_tool(argv, project_path, budget)
            vulns = self._interpret(output, argv, project_path)
        except AuditError as e:
            logger.warning("%s audit of %s failed: %s", self.ecosystem, project_name, e)
            return self._result(project_name, command, error=e)

        if output.timed_out:
            err = ToolTimeout(f"{command} timed out after {budget:g}s")
            logger.warning("%s audit of %s: %s", self.ecosystem, project_name, err)
            return self._result(project_name, command, vulns, error=err)
        return self._result(project_name, command, vulns)

    def _parse(self, raw: str, project_path: Path) -> list[Vulnerability]:
        """``parse`` with shape errors from unexpected JSON mapped to ``ParseFailure``."""
        try:
            return self.parse(raw, project_path)
        except (AttributeError, TypeError, KeyError, ValueError) as e:
            raise ParseFailure(f"Unexpected {self.ecosystem} audit output: {e}") from e

    def _interpret(self, output: ToolOutput, argv: list[str], project_path: Path) -> list[Vulnerability]:
        raw = output.stdout.strip()
        if output.timed_out:
            if not raw:
                return []
            try:
                return self._parse(raw, project_path)
            except AuditError:
                return []
        if not raw:
            if output.returncode:
                detail = output.stderr.strip().splitlines()[-1:] or [""]
                raise ToolFailed(f"{argv[0]} exited with status {output.returncode}. {detail[0]}".strip())
            return []
        return self._parse(raw, project_path)

    def audit(self, project_path: Path, project_name: str) -> AuditResult:
        """Synchronous wrapper around ``audit_async``."""
        return asyncio.run(self.audit_async(project_path, project_name))

    def probe_command(self) -> list[str]:
        """Command that prints the audit tool's version."""
        return [self.command(Path("."))[0], "--version"]

    async def probe_version_async(self) -> str | None:
        """Run the probe command and return the first version token, if any."""
        argv = self.probe_command()
        if not tool_available(argv[0]):
            return None
        try:
            output = await run_tool(argv, Path.cwd(), self.probe_timeout)
        except AuditError:
            return None
        m = _VERSION_TOKEN.search(output.stdout or output.stderr)
        return m.group(0) if m else None

    def probe_version(self) -> str | None:
        return asyncio.run(self.probe_version_async())
