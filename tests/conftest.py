"""
Pytest configuration and shared fixtures for autodeploy tests.

This module provides reusable fixtures and test utilities used across
the test suite.
"""

from __future__ import annotations

from datetime import date, datetime
from pathlib import Path
import subprocess
from typing import Any

import pytest
import yaml

from autodeploy.config import RunContext, build_run_context
from autodeploy.logging import RunLog, SilentLogger, set_global_logger

EDGE_API = "https://edgeupdates.microsoft.com/api/products"
EDGE_MSI = "https://msedge.sf.dl.delivery.mp.microsoft.com/filestreamingservice/files/abc/MicrosoftEdgeEnterpriseX64.msi"
EDGE_STATIC = "https://go.microsoft.com/fwlink/?LinkID=2093437"


class FixedClock:
    """Clock returning a fixed timestamp, for deterministic log lines."""

    def __init__(self, moment: datetime) -> None:
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment


class FakeInstaller:
    """Stands in for subprocess.run when invoking msiexec."""

    def __init__(self, returncode: int = 0) -> None:
        self.returncode = returncode
        self.calls: list[list[str]] = []

    def __call__(self, command: list[str], **kwargs: Any) -> subprocess.CompletedProcess:
        self.calls.append(list(command))
        return subprocess.CompletedProcess(command, self.returncode)


class FakeTransfer:
    """Stands in for the BITS transfer: writes the file or fails."""

    def __init__(self, content: bytes = b"MSI", error: Exception | None = None) -> None:
        self.content = content
        self.error = error
        self.calls: list[tuple[str, Path, str]] = []

    def __call__(self, url: str, destination: Path, *, priority: str = "Foreground", **kwargs: Any) -> Path:
        self.calls.append((url, Path(destination), priority))
        if self.error is not None:
            raise self.error
        Path(destination).write_bytes(self.content)
        return Path(destination)


@pytest.fixture(autouse=True)
def silent_logger():
    """Keep the global console logger quiet between tests."""
    set_global_logger(SilentLogger())
    yield
    set_global_logger(SilentLogger())


@pytest.fixture
def tmp_test_dir(tmp_path: Path) -> Path:
    """
    Provide a temporary directory for test artifacts.

    Automatically cleaned up after test completion.
    """
    return tmp_path


@pytest.fixture
def create_yaml_file(tmp_test_dir: Path):
    """
    Factory fixture for creating temporary YAML files.

    Usage:
        yaml_path = create_yaml_file("recipes/Vendor/app.yaml", {"key": "value"})
    """

    def _create(filename: str, data: dict[str, Any]) -> Path:
        path = tmp_test_dir / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            yaml.dump(data, f)
        return path

    return _create


@pytest.fixture
def sample_recipe_data() -> dict[str, Any]:
    """
    Provide a complete Edge-style recipe: structured API, static fallback.
    """
    return {
        "apiVersion": "autodeploy/v1",
        "apps": [
            {
                "name": "Microsoft Edge",
                "id": "edge",
                "log_name": "Edge",
                "install_probe": {"path": "C:/nonexistent/msedge.exe"},
                "sources": [
                    {"strategy": "structured_api", "api_url": EDGE_API},
                    {
                        "strategy": "static_url",
                        "url": EDGE_STATIC,
                        "file_name": "MicrosoftEdgeEnterpriseX64.msi",
                    },
                ],
            }
        ],
    }


@pytest.fixture
def sample_org_defaults() -> dict[str, Any]:
    """Provide sample organization defaults."""
    return {
        "apiVersion": "autodeploy/v1",
        "defaults": {
            "root": "C:/ProgramData/AutoDeploy",
            "installer": "msiexec.exe",
            "target": {"platform": "Windows", "architecture": "x64"},
            "http": {"timeout": 60},
            "transfer": {"priority": "Foreground"},
        },
    }


@pytest.fixture
def edge_catalog() -> list[dict[str, Any]]:
    """A trimmed copy of the Edge products catalog."""
    return [
        {
            "Product": "Beta",
            "Releases": [
                {
                    "Platform": "Windows",
                    "Architecture": "x64",
                    "ProductVersion": "142.0.3595.20",
                    "Artifacts": [
                        {"ArtifactName": "msi", "Location": "https://example.com/beta.msi"}
                    ],
                }
            ],
        },
        {
            "Product": "Stable",
            "Releases": [
                {
                    "Platform": "Android",
                    "Architecture": "arm64",
                    "ProductVersion": "141.0.3537.71",
                    "Artifacts": [],
                },
                {
                    "Platform": "Windows",
                    "Architecture": "x86",
                    "ProductVersion": "141.0.3537.57",
                    "Artifacts": [
                        {"ArtifactName": "msi", "Location": "https://example.com/x86.msi"}
                    ],
                },
                {
                    "Platform": "Windows",
                    "Architecture": "x64",
                    "ProductVersion": "141.0.3537.57",
                    "Artifacts": [
                        {"ArtifactName": "msi", "Location": EDGE_MSI},
                        {"ArtifactName": "cab", "Location": "https://example.com/policy.cab"},
                    ],
                },
            ],
        },
    ]


@pytest.fixture
def run_context(tmp_test_dir: Path, sample_recipe_data: dict[str, Any]) -> RunContext:
    """RunContext rooted in the temporary directory."""
    return build_run_context(
        sample_recipe_data, today=date(2025, 10, 14), root=tmp_test_dir / "AutoDeploy"
    )


@pytest.fixture
def run_log(run_context: RunContext) -> RunLog:
    """An open run log at the context's log path, with a fixed clock."""
    return RunLog.open(
        run_context.log_path,
        console=SilentLogger(),
        clock=FixedClock(datetime(2025, 10, 14, 3, 0, 0)),
    )


@pytest.fixture
def log_text(run_log: RunLog):
    """Read back everything written to the run log so far."""

    def _read() -> str:
        return run_log.path.read_text(encoding="utf-8")

    return _read


@pytest.fixture
def fake_installer():
    """Factory for installer stand-ins: fake_installer(returncode)."""
    return FakeInstaller


@pytest.fixture
def fake_transfer():
    """Factory for BITS stand-ins: fake_transfer(content=..., error=...)."""
    return FakeTransfer


@pytest.fixture
def edge_msi_url() -> str:
    """Location of the x64 Stable MSI in edge_catalog."""
    return EDGE_MSI
