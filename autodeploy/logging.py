# Copyright 2025 Roger Cibrian
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Logging interface for autodeploy.

Two sinks live here:

- The console Logger protocol (step/verbose/debug), used for progress
    output. Library code gets it from get_global_logger(); the CLI installs a
    configured one. The default global logger is silent.
- RunLog, the durable per-run event log. One file per application per day
    under <root>/Logs, one line per event:

        2026-10-19 03:00:12 - Installation successful with exit code: 0

    Each event is appended and flushed independently, so a crash loses at
    most the event being written. The log is never explicitly closed.

Example:
    Configure global logger:
        ```python
        from autodeploy.logging import get_logger, set_global_logger

        set_global_logger(get_logger(verbose=True))
        ```

    Write run events:
        ```python
        from autodeploy.logging import RunLog

        run_log = RunLog.open(Path("C:/ProgramData/AutoDeploy/Logs/Edge-2026-10-19.log"))
        run_log.event("Starting deployment of Microsoft Edge")
        ```
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Protocol

from autodeploy.exceptions import FatalIOError

LINE_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class Logger(Protocol):
    """Protocol for console logger implementations."""

    def step(self, step: int, total: int, message: str) -> None:
        """Print a step indicator.

        Args:
            step: Current step number (1-based).
            total: Total number of steps.
            message: Step description.
        """
        ...

    def verbose(self, prefix: str, message: str) -> None:
        """Print a verbose log message.

        Args:
            prefix: Message prefix (e.g., "CASCADE", "HTTP").
            message: Log message.
        """
        ...

    def debug(self, prefix: str, message: str) -> None:
        """Print a debug log message.

        Args:
            prefix: Message prefix (e.g., "PROBE", "SOURCE").
            message: Log message.
        """
        ...


class DefaultLogger:
    """Logger that prints to stdout, honouring verbose and debug flags."""

    def __init__(self, verbose: bool = False, debug: bool = False) -> None:
        self._verbose = verbose or debug
        self._debug = debug

    def step(self, step: int, total: int, message: str) -> None:
        print(f"[{step}/{total}] {message}")

    def verbose(self, prefix: str, message: str) -> None:
        if self._verbose:
            print(f"[{prefix}] {message}")

    def debug(self, prefix: str, message: str) -> None:
        if self._debug:
            print(f"[{prefix}] {message}")


class SilentLogger:
    """Logger that suppresses all output."""

    def step(self, step: int, total: int, message: str) -> None:
        pass

    def verbose(self, prefix: str, message: str) -> None:
        pass

    def debug(self, prefix: str, message: str) -> None:
        pass


# Global logger instance (defaults to silent)
_global_logger: Logger = SilentLogger()


def get_logger(verbose: bool = False, debug: bool = False) -> Logger:
    """Get a stdout logger with the given verbosity."""
    return DefaultLogger(verbose=verbose, debug=debug)


def get_global_logger() -> Logger:
    """Get the global logger instance (silent unless the CLI configured one)."""
    return _global_logger


def set_global_logger(logger: Logger) -> None:
    """Set the global logger instance.

    Note:
        Only console verbosity is global. Per-run state (log path, app name,
        working directory) travels in RunContext and RunLog instead.
    """
    global _global_logger
    _global_logger = logger


class RunLog:
    """Append-only, timestamped event sink for one deployment run.

    Attributes:
        path: Log file path (<root>/Logs/<App>-<yyyy-MM-dd>.log).
    """

    def __init__(
        self,
        path: Path,
        *,
        console: Logger | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.path = Path(path)
        self._console = console
        self._clock = clock

    @classmethod
    def open(
        cls,
        path: Path,
        *,
        console: Logger | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> RunLog:
        """Create the log directory and file, ready for events.

        Raises:
            FatalIOError: If the log directory or file cannot be created.
        """
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.touch(exist_ok=True)
        except OSError as err:
            raise FatalIOError(f"Cannot create run log {path}: {err}") from err
        return cls(path, console=console, clock=clock)

    def format_line(self, message: str) -> str:
        return f"{self._clock().strftime(LINE_TIMESTAMP_FORMAT)} - {message}"

    def event(self, message: str) -> None:
        """Append one event line and flush it to disk.

        A failed write is reported on the console but never aborts the run;
        the log is the diagnostic channel, not part of the deployment.
        """
        line = self.format_line(message)
        console = self._console or get_global_logger()
        console.verbose("RUN", message)
        try:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
                f.flush()
        except OSError as err:
            console.verbose("RUN", f"Warning: could not write to {self.path}: {err}")
