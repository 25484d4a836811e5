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

"""Installation state probing for autodeploy.

Answers two questions before anything is downloaded:

- Is the target application installed, and at which version?
  (well-known install path plus file version metadata, or an uninstall
  registry entry)
- Are declared prerequisites (e.g. a Visual C++ runtime) present?

Probing never fails hard. An unreadable path or registry key reads as
"absent", because absence is the expected case on a first run.

Registry Locations (scanned in order):
    - HKLM\\SOFTWARE\\Microsoft\\Windows\\CurrentVersion\\Uninstall
    - HKLM\\SOFTWARE\\WOW6432Node\\Microsoft\\Windows\\CurrentVersion\\Uninstall
    - HKCU\\SOFTWARE\\Microsoft\\Windows\\CurrentVersion\\Uninstall

A prerequisite matches an entry whose DisplayName contains every configured
keyword (case-insensitive), e.g. ["Visual C++", "2015-2022", "x64"]. The
first match wins and the remaining locations are not read.

Example:
    >>> from autodeploy.probe import probe_install_state, probe_prerequisite
    >>> probe_install_state({"path": r"C:\\Program Files\\Google\\Chrome\\Application\\chrome.exe"})
    InstallState(present=True, installed_version='141.0.7390.123')
    >>> probe_prerequisite("VC++ x64", ["Visual C++", "x64"])
    PrerequisiteState(name='VC++ x64', present=True, version='14.44.35211')
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path
import subprocess
import sys
from typing import Any

from autodeploy.io.transfer import find_powershell
from autodeploy.logging import get_global_logger
from autodeploy.results import InstallState, PrerequisiteState

try:  # Windows-only standard library module
    import winreg  # type: ignore
except ImportError:  # pragma: no cover - not available on Linux runners
    winreg = None  # type: ignore

RegistryLocation = tuple[str, str]

UNINSTALL_LOCATIONS: tuple[RegistryLocation, ...] = (
    ("HKLM", r"SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall"),
    ("HKLM", r"SOFTWARE\WOW6432Node\Microsoft\Windows\CurrentVersion\Uninstall"),
    ("HKCU", r"SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall"),
)


@dataclass(frozen=True)
class RegistryEntry:
    display_name: str
    display_version: str | None = None


def read_file_version(path: Path) -> str | None:
    """Read the product version embedded in an executable's metadata.

    Returns None when the version cannot be read (no PowerShell, no
    version resource, query failure).
    """
    logger = get_global_logger()
    exe = find_powershell() if sys.platform.startswith("win") else None
    if not exe:
        logger.debug("PROBE", "No PowerShell available to read file version")
        return None
    literal = "'" + str(path).replace("'", "''") + "'"
    try:
        result = subprocess.run(
            [
                exe,
                "-NoProfile",
                "-NonInteractive",
                "-Command",
                f"(Get-Item -LiteralPath {literal}).VersionInfo.ProductVersion",
            ],
            capture_output=True,
            text=True,
            timeout=30,
            check=True,
        )
    except (OSError, subprocess.SubprocessError) as err:
        logger.debug("PROBE", f"File version query failed for {path}: {err}")
        return None
    return result.stdout.strip() or None


def _reg_value(key: Any, name: str) -> str | None:
    try:
        value, _ = winreg.QueryValueEx(key, name)
    except OSError:
        return None
    if value is None:
        return None
    return str(value).strip() or None


def read_registry_entries(location: RegistryLocation) -> Iterator[RegistryEntry]:
    """Yield uninstall entries (DisplayName/DisplayVersion) under one key.

    Yields nothing off Windows or when the key cannot be opened.
    """
    if winreg is None:
        return
    hive_name, path = location
    hive = winreg.HKEY_LOCAL_MACHINE if hive_name == "HKLM" else winreg.HKEY_CURRENT_USER
    try:
        root = winreg.OpenKey(hive, path, 0, winreg.KEY_READ)
    except OSError:
        return
    with root:
        index = 0
        while True:
            try:
                sub_name = winreg.EnumKey(root, index)
            except OSError:
                break
            index += 1
            try:
                with winreg.OpenKey(root, sub_name) as subkey:
                    name = _reg_value(subkey, "DisplayName")
                    if name:
                        yield RegistryEntry(name, _reg_value(subkey, "DisplayVersion"))
            except OSError:
                continue


def matches_keywords(display_name: str, keywords: Sequence[str]) -> bool:
    """True when display_name contains every keyword, ignoring case.

    A bare string is one keyword, not a sequence of characters.
    """
    if isinstance(keywords, str):
        keywords = [keywords]
    lowered = display_name.lower()
    return bool(keywords) and all(k.lower() in lowered for k in keywords)


def find_registry_entry(
    keywords: Sequence[str],
    *,
    locations: Iterable[RegistryLocation] = UNINSTALL_LOCATIONS,
    entries_reader: Callable[[RegistryLocation], Iterable[RegistryEntry]] = read_registry_entries,
) -> RegistryEntry | None:
    """Return the first entry matching keywords across locations, scanning lazily."""
    for location in locations:
        try:
            for entry in entries_reader(location):
                if matches_keywords(entry.display_name, keywords):
                    return entry
        except OSError as err:
            get_global_logger().debug("PROBE", f"Cannot read {location[0]}\\{location[1]}: {err}")
    return None


def probe_install_state(
    probe: dict[str, Any],
    *,
    version_reader: Callable[[Path], str | None] = read_file_version,
    entries_reader: Callable[[RegistryLocation], Iterable[RegistryEntry]] = read_registry_entries,
) -> InstallState:
    """Determine whether the target application is installed.

    Args:
        probe: The recipe's install_probe section. ``path`` is the
            well-known location of the main executable; ``keywords`` match
            an uninstall registry DisplayName. The path is checked first.
        version_reader: Reads a file's version metadata.
        entries_reader: Reads uninstall entries for one registry location.

    Returns:
        Install state. Present without a version when the file exists but
        its metadata cannot be read.
    """
    logger = get_global_logger()
    raw_path = probe.get("path")
    if raw_path:
        path = Path(raw_path)
        try:
            exists = path.is_file()
        except OSError as err:
            logger.debug("PROBE", f"Cannot inspect {path}: {err}")
            exists = False
        if exists:
            return InstallState(present=True, installed_version=version_reader(path))

    keywords = probe.get("keywords") or []
    if keywords:
        entry = find_registry_entry(keywords, entries_reader=entries_reader)
        if entry is not None:
            return InstallState(present=True, installed_version=entry.display_version)

    return InstallState(present=False)


def probe_prerequisite(
    name: str,
    keywords: Sequence[str],
    *,
    locations: Iterable[RegistryLocation] = UNINSTALL_LOCATIONS,
    entries_reader: Callable[[RegistryLocation], Iterable[RegistryEntry]] = read_registry_entries,
) -> PrerequisiteState:
    """Check whether a prerequisite is installed, by uninstall DisplayName."""
    entry = find_registry_entry(keywords, locations=locations, entries_reader=entries_reader)
    if entry is None:
        return PrerequisiteState(name=name, present=False)
    return PrerequisiteState(name=name, present=True, version=entry.display_version)
