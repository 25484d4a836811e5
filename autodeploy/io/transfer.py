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

"""Background Intelligent Transfer Service (BITS) downloads.

BITS is the preferred transport for large installers on Windows: it survives
network blips and honours a priority hint. It is driven through the
BitsTransfer PowerShell module, so it is only available where PowerShell is.

Any failure (no PowerShell, module missing, transfer error, timeout) raises
NetworkError; the executor then falls back to a direct HTTP download.

Example:
    >>> from pathlib import Path
    >>> from autodeploy.io.transfer import background_transfer
    >>> background_transfer(
    ...     "https://vendor.example/app.msi",
    ...     Path(r"C:\\ProgramData\\AutoDeploy\\Edge\\app.msi"),
    ...     priority="Foreground",
    ... )
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
import shutil
import subprocess
from typing import Any

from autodeploy.exceptions import NetworkError

BITS_PRIORITIES = ("Foreground", "High", "Normal", "Low")


def _ps_quote(value: str) -> str:
    """Quote a value as a PowerShell single-quoted string literal."""
    return "'" + value.replace("'", "''") + "'"


def find_powershell() -> str | None:
    """Locate Windows PowerShell, or PowerShell 7 as a second choice."""
    return shutil.which("powershell") or shutil.which("pwsh")


def background_transfer(
    url: str,
    destination: Path,
    *,
    priority: str = "Foreground",
    timeout: int | None = None,
    runner: Callable[..., Any] = subprocess.run,
    powershell: str | None = None,
) -> Path:
    """Download url to destination with Start-BitsTransfer.

    Args:
        url: Source URL.
        destination: Full target file path. The parent must exist.
        priority: BITS priority (Foreground, High, Normal, Low).
        timeout: Seconds to wait for PowerShell. None waits indefinitely.
        runner: subprocess.run-compatible callable.
        powershell: PowerShell executable. Located on PATH when omitted.

    Returns:
        The destination path.

    Raises:
        NetworkError: If BITS is unavailable or the transfer fails.
    """
    from autodeploy.logging import get_global_logger

    logger = get_global_logger()
    if priority not in BITS_PRIORITIES:
        raise NetworkError(f"Invalid BITS priority: {priority!r}")

    exe = powershell or find_powershell()
    if not exe:
        raise NetworkError("Background transfer unavailable: PowerShell not found")

    script = (
        "Import-Module BitsTransfer -ErrorAction Stop; "
        f"Start-BitsTransfer -Source {_ps_quote(url)} "
        f"-Destination {_ps_quote(str(destination))} "
        f"-Priority {priority} -ErrorAction Stop"
    )
    logger.verbose("BITS", f"Start-BitsTransfer {url} -> {destination} ({priority})")
    try:
        result = runner(
            [exe, "-NoProfile", "-NonInteractive", "-Command", script],
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as err:
        raise NetworkError(f"Background transfer could not start: {err}") from err

    if result.returncode != 0:
        detail = (result.stderr or result.stdout or "").strip()
        raise NetworkError(
            f"Background transfer failed with exit code {result.returncode}: {detail}"
        )
    return Path(destination)
