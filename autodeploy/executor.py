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

"""Fetch-and-install executor for autodeploy.

Takes the candidate the cascade resolved and turns it into an installed
application:

1. **Download** with a two-tier transport: a background (BITS) transfer
   first, then a direct synchronous HTTP GET if that fails for any reason.
   If both fail the run is over (DownloadError). The file must exist on
   disk afterwards (FatalIOError otherwise).
2. **Install** by invoking the platform installer and waiting for it:

       msiexec.exe /i <package> /qb                         full installer
       msiexec.exe /update <patch> /qn /l*v <installer log> update patch

   A launch failure (executable missing) is fatal (InstallerError). There is
   no retry of the installer itself.
3. **Classify** the exit code:

       0     success
       3010  success_reboot_required
       1641  success_reboot_initiated
       1603, 1619, 1636 and anything else: failure

4. **Clean up** the application's working directory at run end. Errors
   while deleting are logged and otherwise ignored.

Example:
    ```python
    from autodeploy.executor import InstallExecutor

    executor = InstallExecutor(ctx, run_log)
    try:
        package = executor.download(candidate)
        code = executor.install(package, candidate.is_update)
        classification = executor.report(code)
    finally:
        executor.cleanup()
    ```
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
import shutil
import subprocess
from typing import Any

import requests

from autodeploy.config import RunContext
from autodeploy.exceptions import DownloadError, FatalIOError, InstallerError, NetworkError
from autodeploy.io import background_transfer, download_file, filename_from_url
from autodeploy.logging import RunLog
from autodeploy.results import ArtifactCandidate, Classification

SUCCESS_CODES: dict[int, Classification] = {
    0: "success",
    3010: "success_reboot_required",
    1641: "success_reboot_initiated",
}

MSI_FAILURES: dict[int, str] = {
    1603: "Fatal error during installation",
    1619: "Installation package could not be opened",
    1636: "Patch package could not be opened",
}


def classify_exit_code(code: int) -> Classification:
    """Map an installer exit code to its classification."""
    return SUCCESS_CODES.get(code, "failure")


def installer_arguments(package: Path, is_update: bool, log_path: Path) -> list[str]:
    """Installer arguments for a fresh install or a patch."""
    if is_update:
        return ["/update", str(package), "/qn", "/l*v", str(log_path)]
    return ["/i", str(package), "/qb"]


class InstallExecutor:
    """Downloads and installs one resolved artifact."""

    def __init__(
        self,
        ctx: RunContext,
        run_log: RunLog,
        *,
        session: requests.Session | None = None,
        transfer: Callable[..., Path] = background_transfer,
        runner: Callable[..., Any] = subprocess.run,
    ) -> None:
        self.ctx = ctx
        self._run_log = run_log
        self._session = session
        self._transfer = transfer
        self._runner = runner

    def download(self, candidate: ArtifactCandidate) -> Path:
        """Download the candidate into the working directory.

        Returns:
            Path of the downloaded package.

        Raises:
            FatalIOError: If the working directory cannot be created, the
                direct download cannot be written, or the file is missing
                after transfer.
            DownloadError: If both transports fail.
        """
        work_dir = self.ctx.work_dir
        try:
            work_dir.mkdir(parents=True, exist_ok=True)
        except OSError as err:
            raise FatalIOError(f"Cannot create working directory {work_dir}: {err}") from err

        url = candidate.download_url
        destination = work_dir / (candidate.file_name or filename_from_url(url))
        self._run_log.event(f"Downloading version {candidate.version_label} from {url}")

        try:
            self._transfer(url, destination, priority=self.ctx.transfer_priority)
            self._run_log.event(f"Background transfer complete: {destination}")
        except NetworkError as err:
            self._run_log.event(
                f"Background transfer failed: {err}. Falling back to direct download"
            )
            try:
                destination, sha256 = download_file(
                    url,
                    work_dir,
                    file_name=destination.name,
                    timeout=self.ctx.timeout,
                    session=self._session,
                )
            except NetworkError as direct_err:
                self._run_log.event(f"Direct download failed for {url}: {direct_err}")
                raise DownloadError(f"Failed to download {url}: {direct_err}") from direct_err
            except OSError as io_err:
                raise FatalIOError(f"Cannot write {destination}: {io_err}") from io_err
            self._run_log.event(f"Direct download complete: {destination} (sha256 {sha256})")

        if not destination.is_file():
            raise FatalIOError(f"Downloaded file is missing: {destination}")
        return destination

    def install(self, package: Path, is_update: bool) -> int:
        """Run the installer synchronously and return its exit code.

        Raises:
            InstallerError: If the installer process cannot be started.
        """
        args = installer_arguments(package, is_update, self.ctx.installer_log_path)
        command = [self.ctx.installer, *args]
        self._run_log.event(f"Running: {' '.join(command)}")
        try:
            completed = self._runner(command, check=False)
        except OSError as err:
            raise InstallerError(f"Cannot start installer {self.ctx.installer}: {err}") from err
        return int(completed.returncode)

    def report(self, code: int) -> Classification:
        """Classify an exit code and log the result."""
        classification = classify_exit_code(code)
        if classification == "success":
            self._run_log.event(f"Installation successful with exit code: {code}")
        elif classification == "success_reboot_required":
            self._run_log.event(
                f"Installation successful with exit code: {code}. A reboot is required"
            )
        elif classification == "success_reboot_initiated":
            self._run_log.event(
                f"Installation successful with exit code: {code}. A reboot was initiated"
            )
        elif code in MSI_FAILURES:
            self._run_log.event(
                f"Installation failed with exit code: {code} ({MSI_FAILURES[code]})"
            )
        else:
            self._run_log.event(f"Installation failed with unrecognized exit code: {code}")
        return classification

    def cleanup(self) -> None:
        """Remove the working directory. Never raises."""
        work_dir = self.ctx.work_dir
        if not work_dir.exists():
            return
        try:
            shutil.rmtree(work_dir)
        except OSError as err:
            self._run_log.event(f"Could not remove working directory {work_dir}: {err}")
            return
        self._run_log.event(f"Removed working directory {work_dir}")
