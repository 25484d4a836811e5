"""
Tests for autodeploy.executor module.

Tests fetch-and-install including:
- Exit-code classification
- Installer arguments for full installers and patches
- Background transfer with direct-download fallback
- Fatal download and launch failures
- Working directory cleanup
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
import requests_mock

from autodeploy.exceptions import DownloadError, FatalIOError, InstallerError, NetworkError
from autodeploy.executor import InstallExecutor, classify_exit_code, installer_arguments
from autodeploy.results import ArtifactCandidate, RunOutcome

MSI_URL = "https://dl.example.com/app/AppSetup.msi"
MSP_URL = "https://dl.example.com/2500120813/AcroRdrDCx64Upd2500120813_MUI.msp"


@pytest.fixture
def msi_candidate() -> ArtifactCandidate:
    return ArtifactCandidate("141.0.3537.57", MSI_URL, "full_installer", "structured_api")


@pytest.fixture
def msp_candidate() -> ArtifactCandidate:
    return ArtifactCandidate("25.001.20813", MSP_URL, "update_patch", "scraped_html")


@pytest.mark.parametrize(
    "code,expected",
    [
        (0, "success"),
        (3010, "success_reboot_required"),
        (1641, "success_reboot_initiated"),
    ],
)
def test_success_family_codes(code, expected):
    """Test that 0, 3010 and 1641 never report Failure."""
    assert classify_exit_code(code) == expected
    outcome = RunOutcome(True, code, classify_exit_code(code))
    assert outcome.succeeded
    assert outcome.exit_code == 0


@pytest.mark.parametrize("code", [1, 1602, 1603, 1619, 1636, 1638, -1, 2])
def test_other_codes_are_failure(code):
    """Test that every other exit code, named MSI failures included, fails."""
    assert classify_exit_code(code) == "failure"
    outcome = RunOutcome(True, code, classify_exit_code(code))
    assert not outcome.succeeded
    assert outcome.exit_code == code


def test_failure_without_installer_code_exits_one():
    """Test that runs that never reached the installer exit with 1."""
    assert RunOutcome(False, None, "failure").exit_code == 1


class TestInstallerArguments:
    """Tests for installer command lines."""

    def test_full_install(self, tmp_test_dir):
        """Test /i with basic UI."""
        package = tmp_test_dir / "app.msi"
        assert installer_arguments(package, False, tmp_test_dir / "msi.log") == [
            "/i",
            str(package),
            "/qb",
        ]

    def test_patch(self, tmp_test_dir):
        """Test /update, silent, with a verbose log."""
        package = tmp_test_dir / "upd.msp"
        log = tmp_test_dir / "msi.log"
        assert installer_arguments(package, True, log) == [
            "/update",
            str(package),
            "/qn",
            "/l*v",
            str(log),
        ]


class TestDownload:
    """Tests for the two-tier download."""

    def test_background_transfer_preferred(
        self, run_context, run_log, msi_candidate, fake_transfer
    ):
        """Test that BITS is used when it works."""
        transfer = fake_transfer(content=b"MSI")
        executor = InstallExecutor(run_context, run_log, transfer=transfer)

        with requests_mock.Mocker() as m:
            path = executor.download(msi_candidate)
            assert m.call_count == 0

        assert path == run_context.work_dir / "AppSetup.msi"
        assert path.read_bytes() == b"MSI"
        assert transfer.calls[0][2] == run_context.transfer_priority

    def test_falls_back_to_direct_download(
        self, run_context, run_log, log_text, msi_candidate, fake_transfer
    ):
        """Test the direct GET when BITS is unavailable."""
        transfer = fake_transfer(error=NetworkError("PowerShell not found"))
        executor = InstallExecutor(run_context, run_log, transfer=transfer)

        with requests_mock.Mocker() as m:
            m.get(MSI_URL, content=b"direct")
            path = executor.download(msi_candidate)

        assert path.read_bytes() == b"direct"
        assert "Background transfer failed: PowerShell not found" in log_text()
        assert "Falling back to direct download" in log_text()

    def test_candidate_file_name_used(self, run_context, run_log, fake_transfer):
        """Test that a static candidate's file_name names the download."""
        candidate = ArtifactCandidate(
            "Latest",
            "https://go.microsoft.com/fwlink/?LinkID=2093437",
            "full_installer",
            "static_url",
            file_name="MicrosoftEdgeEnterpriseX64.msi",
        )
        executor = InstallExecutor(run_context, run_log, transfer=fake_transfer())

        path = executor.download(candidate)

        assert path.name == "MicrosoftEdgeEnterpriseX64.msi"

    def test_both_tiers_failing_is_download_error(
        self, run_context, run_log, msi_candidate, fake_transfer
    ):
        """Test that DownloadError is raised when both transports fail."""
        executor = InstallExecutor(
            run_context, run_log, transfer=fake_transfer(error=NetworkError("BITS failed"))
        )

        with requests_mock.Mocker() as m:
            m.get(MSI_URL, status_code=500)
            with pytest.raises(DownloadError, match="Failed to download"):
                executor.download(msi_candidate)

    def test_direct_write_failure_is_fatal(
        self, run_context, run_log, msi_candidate, fake_transfer
    ):
        """Test that a disk error in the direct tier is FatalIO, not a raw OSError."""
        executor = InstallExecutor(
            run_context, run_log, transfer=fake_transfer(error=NetworkError("BITS failed"))
        )

        with patch(
            "autodeploy.executor.download_file",
            side_effect=OSError(28, "No space left on device"),
        ):
            with pytest.raises(FatalIOError, match="No space left on device"):
                executor.download(msi_candidate)

    def test_missing_file_after_transfer_is_fatal(
        self, run_context, run_log, msi_candidate
    ):
        """Test that a 'successful' transfer without a file is FatalIO."""
        executor = InstallExecutor(
            run_context, run_log, transfer=lambda url, dest, **kwargs: dest
        )

        with pytest.raises(FatalIOError, match="missing"):
            executor.download(msi_candidate)

    def test_uncreatable_work_dir_is_fatal(self, run_context, run_log, msi_candidate):
        """Test that a working directory that cannot be created is FatalIO."""
        run_context.root.mkdir(parents=True, exist_ok=True)
        run_context.work_dir.write_text("a file, not a directory")
        executor = InstallExecutor(run_context, run_log)

        with pytest.raises(FatalIOError, match="Cannot create working directory"):
            executor.download(msi_candidate)


class TestInstall:
    """Tests for installer invocation and reporting."""

    def test_full_install_command(self, run_context, run_log, fake_installer, tmp_test_dir):
        """Test the msiexec command line for a full installer."""
        installer = fake_installer(0)
        executor = InstallExecutor(run_context, run_log, runner=installer)
        package = tmp_test_dir / "app.msi"

        assert executor.install(package, is_update=False) == 0
        assert installer.calls == [["msiexec.exe", "/i", str(package), "/qb"]]

    def test_patch_command_writes_installer_log(
        self, run_context, run_log, fake_installer, tmp_test_dir
    ):
        """Test that patches log verbosely to the installer log path."""
        installer = fake_installer(3010)
        executor = InstallExecutor(run_context, run_log, runner=installer)
        package = tmp_test_dir / "upd.msp"

        assert executor.install(package, is_update=True) == 3010
        assert installer.calls[0][1:] == [
            "/update",
            str(package),
            "/qn",
            "/l*v",
            str(run_context.installer_log_path),
        ]

    def test_launch_failure_is_installer_error(self, run_context, run_log, tmp_test_dir):
        """Test that a missing installer executable is fatal."""

        def runner(command, **kwargs):
            raise FileNotFoundError(command[0])

        executor = InstallExecutor(run_context, run_log, runner=runner)
        with pytest.raises(InstallerError, match="Cannot start installer"):
            executor.install(tmp_test_dir / "app.msi", is_update=False)

    @pytest.mark.parametrize(
        "code,line",
        [
            (0, "Installation successful with exit code: 0"),
            (3010, "Installation successful with exit code: 3010. A reboot is required"),
            (1641, "Installation successful with exit code: 1641. A reboot was initiated"),
            (1603, "Installation failed with exit code: 1603 (Fatal error during installation)"),
            (1619, "Installation failed with exit code: 1619 (Installation package could not be opened)"),
            (1636, "Installation failed with exit code: 1636 (Patch package could not be opened)"),
            (1234, "Installation failed with unrecognized exit code: 1234"),
        ],
    )
    def test_report_logs_classification(self, run_context, run_log, log_text, code, line):
        """Test the log line for each class of exit code."""
        InstallExecutor(run_context, run_log).report(code)
        assert line in log_text()


class TestCleanup:
    """Tests for working directory removal."""

    def test_removes_work_dir(self, run_context, run_log):
        """Test that the working directory is deleted."""
        run_context.work_dir.mkdir(parents=True)
        (run_context.work_dir / "app.msi").write_bytes(b"x")

        InstallExecutor(run_context, run_log).cleanup()

        assert not run_context.work_dir.exists()

    def test_missing_work_dir_is_fine(self, run_context, run_log):
        """Test cleanup when nothing was downloaded."""
        InstallExecutor(run_context, run_log).cleanup()

    def test_delete_failure_is_swallowed(self, run_context, run_log, log_text):
        """Test that deletion errors are logged, never raised."""
        run_context.work_dir.mkdir(parents=True)
        with patch("autodeploy.executor.shutil.rmtree", side_effect=PermissionError("in use")):
            InstallExecutor(run_context, run_log).cleanup()

        assert "Could not remove working directory" in log_text()
