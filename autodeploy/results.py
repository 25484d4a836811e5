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

"""Data model for a deployment run.

Every entity here is created and consumed within a single run; nothing is
persisted across invocations apart from the append-only run log and the
installed application itself. Ownership is linear:
Prober -> Cascade Controller -> Executor -> Logger.

All dataclasses are frozen (immutable) so a candidate or state snapshot
cannot drift while it is handed from one component to the next.

Example:
    Building a candidate and checking an outcome:
        ```python
        from autodeploy.results import ArtifactCandidate, RunOutcome

        candidate = ArtifactCandidate(
            version_label="141.0.3537.57",
            download_url="https://example.com/MicrosoftEdgeEnterpriseX64.msi",
            kind="full_installer",
            source_strategy="structured_api",
        )
        outcome = RunOutcome(
            downloaded=True, installed_exit_code=3010,
            classification="success_reboot_required",
        )
        assert outcome.succeeded
        ```
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Literal, TypeVar

ArtifactKind = Literal["full_installer", "update_patch"]
SourceStrategy = Literal["structured_api", "scraped_html", "static_url"]
AttemptOutcome = Literal["success", "not_found", "transient_failure", "parse_failure"]
Classification = Literal[
    "success",
    "success_reboot_required",
    "success_reboot_initiated",
    "failure",
]

SUCCESS_CLASSIFICATIONS: frozenset[str] = frozenset(
    {"success", "success_reboot_required", "success_reboot_initiated"}
)

T = TypeVar("T")
E = TypeVar("E")


@dataclass(frozen=True)
class Result(Generic[T, E]):
    """Discriminated union carrying either a value or an error."""

    value: T | None = None
    error: E | None = None

    @classmethod
    def ok(cls, value: T) -> Result[T, E]:
        return cls(value=value)

    @classmethod
    def err(cls, error: E) -> Result[T, E]:
        return cls(error=error)

    def is_ok(self) -> bool:
        return self.error is None

    def is_err(self) -> bool:
        return self.error is not None

    def unwrap(self) -> T:
        if self.error is not None:
            raise RuntimeError(f"Tried to unwrap error result: {self.error}")
        assert self.value is not None
        return self.value


@dataclass(frozen=True)
class ArtifactCandidate:
    """One resolved, potentially installable artifact.

    Attributes:
        version_label: Version as the source reported it ("Latest" for
            static URLs, which carry no real version information).
        download_url: URL the executor downloads from.
        kind: "full_installer" (installed with /i) or "update_patch"
            (applied with /update).
        source_strategy: Which adapter variant produced the candidate.
        file_name: Local file name to save as. When None, the name is
            derived from the URL path.
    """

    version_label: str
    download_url: str
    kind: ArtifactKind
    source_strategy: SourceStrategy
    file_name: str | None = None

    @property
    def is_update(self) -> bool:
        return self.kind == "update_patch"


@dataclass(frozen=True)
class ResolutionAttempt:
    """The outcome of trying one candidate during cascade resolution.

    Attributes:
        version_label: Version being tried. Known even when the candidate
            itself could not be built (e.g. the detail page did not parse).
        outcome: success, not_found, transient_failure or parse_failure.
        candidate: The candidate, when one could be built.
        detail: Raw error text or URL for the log.
    """

    version_label: str
    outcome: AttemptOutcome
    candidate: ArtifactCandidate | None = None
    detail: str = ""


@dataclass(frozen=True)
class InstallState:
    """Install state of the target application, queried once per run."""

    present: bool
    installed_version: str | None = None


@dataclass(frozen=True)
class PrerequisiteState:
    """Presence of one prerequisite component (e.g. a runtime redistributable)."""

    name: str
    present: bool
    version: str | None = None


@dataclass(frozen=True)
class RunOutcome:
    """Final result of a deployment run.

    Attributes:
        downloaded: True once the artifact was on disk.
        installed_exit_code: Raw installer exit code, or None if the
            installer never ran.
        classification: Exit-code classification; "failure" for every
            run that did not reach a successful installer exit.
        candidate: The artifact that was installed (or attempted).
    """

    downloaded: bool
    installed_exit_code: int | None
    classification: Classification
    candidate: ArtifactCandidate | None = None

    @property
    def succeeded(self) -> bool:
        return self.classification in SUCCESS_CLASSIFICATIONS

    @property
    def exit_code(self) -> int:
        """Process exit code for the scheduler: 0 on success, non-zero otherwise."""
        if self.succeeded:
            return 0
        if self.installed_exit_code:
            return self.installed_exit_code
        return 1


@dataclass(frozen=True)
class ValidationResult:
    """Result from validating a recipe without network access.

    Attributes:
        status: "valid" or "invalid".
        errors: Error messages (empty if valid).
        warnings: Warning messages.
        app_count: Number of apps in the recipe.
        recipe_path: Path to the validated recipe.
    """

    status: str
    errors: list[str]
    warnings: list[str]
    app_count: int
    recipe_path: str
