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

"""Per-run configuration for autodeploy.

RunContext is the single explicit configuration object handed to every
component of a run (prober, cascade, executor, run log). It is derived once
from the merged recipe configuration and never mutated.

Filesystem layout (fixed root, one subtree per application):

    <root>/Logs/<App>-<yyyy-MM-dd>.log        run log
    <root>/Logs/<App>-<yyyy-MM-dd>-msi.log    verbose installer log for patches
    <root>/<App>/                             working directory (removed at run end)

Example:
    >>> from autodeploy.config import build_run_context, load_effective_config
    >>> ctx = build_run_context(load_effective_config(Path("recipes/Google/chrome.yaml")))
    >>> ctx.work_dir.name
    'Google-Chrome'
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from pathlib import Path
import re
from typing import Any

from autodeploy.exceptions import ConfigError

DEFAULT_ROOT = r"C:\ProgramData\AutoDeploy"
DEFAULT_INSTALLER = "msiexec.exe"


@dataclass(frozen=True)
class RunContext:
    """Explicit configuration for one deployment run.

    Attributes:
        app_name: Display name (e.g., "Microsoft Edge").
        app_id: Recipe identifier (e.g., "edge").
        app_slug: Filesystem-safe name used for the log file and working dir.
        root: Fixed filesystem root for logs and working directories.
        log_path: Run log file.
        installer_log_path: Verbose installer log used for patch runs.
        work_dir: Working directory for downloaded packages.
        installer: Installer executable (msiexec.exe).
        platform: Target OS family, matched against catalog entries.
        architecture: Target architecture, matched against catalog entries.
        timeout: Per-request HTTP timeout in seconds.
        transfer_priority: Priority hint for the background transfer.
    """

    app_name: str
    app_id: str
    app_slug: str
    root: Path
    log_path: Path
    installer_log_path: Path
    work_dir: Path
    installer: str = DEFAULT_INSTALLER
    platform: str = "Windows"
    architecture: str = "x64"
    timeout: int = 60
    transfer_priority: str = "Foreground"


def sanitize_name(name: str, fallback: str = "app") -> str:
    """Make a name safe for use as a Windows file or directory name.

    Spaces become hyphens, characters Windows rejects are dropped and
    repeated hyphens collapse.

    Example:
        >>> sanitize_name("Adobe Acrobat Reader")
        'Adobe-Acrobat-Reader'
    """
    sanitized = name.replace(" ", "-")
    sanitized = re.sub(r'[<>:"|?*\\/]', "", sanitized)
    sanitized = re.sub(r"-{2,}", "-", sanitized).strip("-.")
    return sanitized or fallback


def build_run_context(
    config: dict[str, Any],
    *,
    today: date | None = None,
    root: Path | None = None,
) -> RunContext:
    """Build the RunContext for the first app in a merged configuration.

    Args:
        config: Merged configuration from load_effective_config().
        today: Date used in log file names. Defaults to today.
        root: Override for defaults.root (used by tests and the CLI).

    Returns:
        The per-run configuration.

    Raises:
        ConfigError: If no app is defined, the app has no name, or the HTTP
            timeout is not a positive number.
    """
    apps = config.get("apps") or []
    if not apps or not isinstance(apps[0], dict):
        raise ConfigError("No apps defined in recipe")
    app = apps[0]

    app_name = app.get("name")
    if not app_name or not isinstance(app_name, str):
        raise ConfigError("App is missing required field: name")
    app_id = str(app.get("id") or sanitize_name(app_name).lower())
    app_slug = sanitize_name(str(app.get("log_name") or app_name), fallback=app_id)

    defaults = config.get("defaults", {}) or {}
    target = defaults.get("target", {}) or {}
    http = defaults.get("http", {}) or {}
    transfer = defaults.get("transfer", {}) or {}

    base = Path(root) if root is not None else Path(defaults.get("root") or DEFAULT_ROOT)
    raw_timeout = http.get("timeout", 60)
    try:
        timeout = int(raw_timeout)
    except (TypeError, ValueError) as err:
        raise ConfigError(f"defaults.http.timeout must be a number of seconds: {raw_timeout!r}") from err
    if timeout <= 0:
        raise ConfigError(f"defaults.http.timeout must be positive: {raw_timeout!r}")

    stamp = (today or date.today()).strftime("%Y-%m-%d")
    logs_dir = base / "Logs"

    return RunContext(
        app_name=app_name,
        app_id=app_id,
        app_slug=app_slug,
        root=base,
        log_path=logs_dir / f"{app_slug}-{stamp}.log",
        installer_log_path=logs_dir / f"{app_slug}-{stamp}-msi.log",
        work_dir=base / app_slug,
        installer=str(defaults.get("installer") or DEFAULT_INSTALLER),
        platform=str(target.get("platform", "Windows")),
        architecture=str(target.get("architecture", "x64")),
        timeout=timeout,
        transfer_priority=str(transfer.get("priority", "Foreground")),
    )
