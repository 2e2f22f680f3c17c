"""Adapters for the external command-line tools and the headless renderer.

Every process is started with :class:`subprocess.Popen`, waited on in short
slices so cancellation is noticed, and killed and reaped on every exit path.
Temporary files live in a :func:`temporary_workspace` that is removed when
its ``with`` block ends.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import tempfile
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Protocol, Sequence

from ..config import RecoverySettings
from ..exceptions import (
    BatchCancelledError,
    ExternalToolError,
    ExternalToolTimeout,
    ExternalToolUnavailable,
)
from .inspection import count_pages

LOGGER = logging.getLogger("casepdf.recovery.external")

POLL_INTERVAL = 0.1


@dataclass(frozen=True)
class ToolRun:
    """Captured result of one external process."""

    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str


class ToolRunner:
    """Locate and execute external programs with timeouts and cancellation."""

    def which(self, executables: Sequence[str]) -> str | None:
        """Return the first executable from *executables* found on ``PATH``."""

        for candidate in executables:
            found = shutil.which(candidate)
            if found:
                LOGGER.debug("Detected external tool: %s -> %s", candidate, found)
                return found
        return None

    def run(
        self,
        command: Sequence[str],
        *,
        timeout: float,
        cancel_event: threading.Event | None = None,
        accept_codes: Sequence[int] = (0,),
    ) -> ToolRun:
        command = tuple(str(part) for part in command)
        LOGGER.debug("Executing command: %s", " ".join(command))
        try:
            process = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
            )
        except OSError as exc:
            raise ExternalToolUnavailable(f"Unable to start {command[0]}: {exc}") from exc

        deadline = time.monotonic() + timeout
        try:
            while True:
                if cancel_event is not None and cancel_event.is_set():
                    raise BatchCancelledError(f"Cancelled while running {command[0]}")
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise ExternalToolTimeout(f"{command[0]} exceeded {timeout:.0f}s timeout")
                try:
                    stdout, stderr = process.communicate(timeout=min(POLL_INTERVAL, remaining))
                    break
                except subprocess.TimeoutExpired:
                    continue
        finally:
            if process.poll() is None:
                LOGGER.warning("Killing %s (pid %s)", command[0], process.pid)
                process.kill()
                process.communicate()

        LOGGER.debug("Command finished with exit code %s\nstderr: %s", process.returncode, stderr)
        if process.returncode not in accept_codes:
            raise ExternalToolError(
                f"{command[0]} exited with code {process.returncode}: {stderr.strip()[:500]}"
            )
        return ToolRun(command, process.returncode, stdout, stderr)


class ExternalSlots:
    """Counting semaphore bounding concurrent external processes."""

    def __init__(self, count: int) -> None:
        self.count = count
        self._semaphore = threading.BoundedSemaphore(count)

    @contextmanager
    def slot(self, cancel_event: threading.Event | None = None) -> Iterator[None]:
        while not self._semaphore.acquire(timeout=POLL_INTERVAL):
            if cancel_event is not None and cancel_event.is_set():
                raise BatchCancelledError("Cancelled while waiting for an external process slot")
        try:
            yield
        finally:
            self._semaphore.release()


@contextmanager
def temporary_workspace(settings: RecoverySettings) -> Iterator[Path]:
    root = settings.temp_root
    if root is not None:
        Path(root).mkdir(parents=True, exist_ok=True)
    with tempfile.TemporaryDirectory(prefix="casepdf-", dir=root) as directory:
        yield Path(directory)


class _CommandLineTool:
    label = "tool"
    accept_codes: tuple[int, ...] = (0,)

    def __init__(self, runner: ToolRunner, executables: Sequence[str]) -> None:
        self.runner = runner
        self.executables = tuple(executables)

    def executable(self) -> str:
        found = self.runner.which(self.executables)
        if not found:
            raise ExternalToolUnavailable(
                f"{self.label} not found on PATH (tried {', '.join(self.executables)})"
            )
        return found

    def command(self, executable: str, input_path: Path, output_path: Path) -> list[str]:
        raise NotImplementedError

    def run(
        self,
        input_path: Path,
        output_path: Path,
        *,
        timeout: float,
        cancel_event: threading.Event | None = None,
    ) -> Path:
        command = self.command(self.executable(), input_path, output_path)
        self.runner.run(
            command,
            timeout=timeout,
            cancel_event=cancel_event,
            accept_codes=self.accept_codes,
        )
        if not output_path.exists() or output_path.stat().st_size == 0:
            raise ExternalToolError(f"{self.label} produced no output")
        return output_path


class StructureNormalizer(_CommandLineTool):
    """Rewrite the object graph with qpdf, dropping encryption."""

    label = "qpdf"
    # qpdf exits with 3 when it recovered from damage with warnings.
    accept_codes = (0, 3)

    def command(self, executable: str, input_path: Path, output_path: Path) -> list[str]:
        return [
            executable,
            "--decrypt",
            "--object-streams=disable",
            str(input_path),
            str(output_path),
        ]


class RasterDistiller(_CommandLineTool):
    """Re-distill the document through Ghostscript's ``pdfwrite`` device."""

    label = "Ghostscript"

    def command(self, executable: str, input_path: Path, output_path: Path) -> list[str]:
        return [
            executable,
            "-sDEVICE=pdfwrite",
            "-dCompatibilityLevel=1.7",
            "-dNOPAUSE",
            "-dBATCH",
            "-dSAFER",
            "-dQUIET",
            f"-sOutputFile={output_path}",
            str(input_path),
        ]


@dataclass(frozen=True)
class RenderResult:
    success: bool
    data: bytes = b""
    page_count: int = 0
    message: str = ""


class Renderer(Protocol):
    """Headless "print to PDF" collaborator."""

    def render(
        self,
        data: bytes,
        display_name: str,
        timeout: float,
        *,
        cancel_event: threading.Event | None = None,
    ) -> RenderResult: ...

    def close(self) -> None: ...


class ChromiumRenderer:
    """Re-render documents through a headless Chromium ``--print-to-pdf`` run.

    Each call gets its own profile directory so instances can be shared
    between threads. :meth:`close` is idempotent; a closed renderer reports
    itself unavailable.
    """

    def __init__(self, runner: ToolRunner | None = None, settings: RecoverySettings | None = None) -> None:
        self.runner = runner or ToolRunner()
        self.settings = settings or RecoverySettings()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def render(
        self,
        data: bytes,
        display_name: str,
        timeout: float,
        *,
        cancel_event: threading.Event | None = None,
    ) -> RenderResult:
        if self._closed:
            raise ExternalToolUnavailable("Renderer has been shut down")
        executable = self.runner.which(self.settings.chromium_executables)
        if not executable:
            raise ExternalToolUnavailable("No headless Chromium executable found on PATH")

        with temporary_workspace(self.settings) as workspace:
            source = workspace / "input.pdf"
            target = workspace / "rendered.pdf"
            source.write_bytes(data)
            command = [
                executable,
                "--headless",
                "--disable-gpu",
                "--no-sandbox",
                f"--user-data-dir={workspace / 'profile'}",
                "--no-pdf-header-footer",
                f"--print-to-pdf={target}",
                source.as_uri(),
            ]
            try:
                self.runner.run(command, timeout=timeout, cancel_event=cancel_event)
            except ExternalToolUnavailable:
                raise
            except ExternalToolError as exc:
                LOGGER.info("Render of %r failed: %s", display_name, exc)
                return RenderResult(False, message=str(exc))
            if not target.exists():
                return RenderResult(False, message="Renderer produced no output")
            rendered = target.read_bytes()

        page_count = count_pages(rendered)
        if page_count == 0:
            return RenderResult(False, message="Rendered output could not be parsed")
        return RenderResult(True, rendered, page_count)

    def close(self) -> None:
        self._closed = True


__all__ = [
    "ToolRun",
    "ToolRunner",
    "ExternalSlots",
    "temporary_workspace",
    "StructureNormalizer",
    "RasterDistiller",
    "RenderResult",
    "Renderer",
    "ChromiumRenderer",
]
