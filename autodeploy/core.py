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

"""Core orchestration for autodeploy.

This module wires the run components together. One run deploys one
application and is strictly sequential:

1. Open the run log (<root>/Logs/<App>-<yyyy-MM-dd>.log)
2. Probe installation state
3. Check prerequisites
4. Resolve an artifact through the cascade (primary source, then fallbacks)
5. Download the artifact (background transfer, then direct GET)
6. Run the installer and classify its exit code
7. Remove the working directory

Error Policy:

- ConfigError (bad recipe, unknown strategy) propagates to the caller before
    anything is downloaded.
- FatalIOError while opening the run log propagates; there is nowhere to
    record the failure.
- Every other DeployError raised after the run log exists ends the run with
    a Failure outcome and a log line. Network, 404 and parse errors never
    reach this layer; the cascade absorbs them.

Collaborators (HTTP session, file version reader, registry reader,
background transfer, process runner) are injected through Collaborators so
the whole run can be exercised without Windows.

Example:
    Deploy a bundled recipe:
        ```python
        from pathlib import Path
        from autodeploy.core import deploy_recipe

        outcome = deploy_recipe(Path("recipes/Google/chrome.yaml"))
        print(outcome.classification, outcome.exit_code)
        ```
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date
from pathlib import Path
import subprocess
from typing import Any

import requests

from autodeploy.cascade import CascadeResult, ResolutionCascade
from autodeploy.config import RunContext, build_run_context, load_effective_config
from autodeploy.exceptions import ConfigError, DeployError
from autodeploy.executor import InstallExecutor
from autodeploy.io import background_transfer, check_url, make_session
from autodeploy.logging import RunLog, get_global_logger
from autodeploy.probe import (
    RegistryEntry,
    RegistryLocation,
    probe_install_state,
    probe_prerequisite,
    read_file_version,
    read_registry_entries,
)
from autodeploy.results import InstallState, PrerequisiteState, RunOutcome
from autodeploy.sources import ArtifactSource, create_source
from autodeploy.validation import app_section_errors

TOTAL_STEPS = 5


@dataclass
class Collaborators:
    """External capabilities a run depends on.

    Attributes:
        session: HTTP session. A retrying TLS 1.2 session is created when None.
        installed_version: Reads version metadata from an executable.
        registry_entries: Reads uninstall entries from one registry location.
        background_transfer: Managed background download (BITS).
        run_process: Runs the installer and returns a CompletedProcess.
        reachability: Checks that a candidate URL answers.
    """

    session: requests.Session | None = None
    installed_version: Callable[[Path], str | None] = read_file_version
    registry_entries: Callable[[RegistryLocation], Iterable[RegistryEntry]] = (
        read_registry_entries
    )
    background_transfer: Callable[..., Path] = background_transfer
    run_process: Callable[..., Any] = subprocess.run
    reachability: Callable[..., None] = check_url


def _first_app(config: dict[str, Any]) -> dict[str, Any]:
    apps = config.get("apps") or []
    if not apps or not isinstance(apps[0], dict):
        raise ConfigError("No apps defined in recipe")
    return apps[0]


def build_sources(
    app: dict[str, Any],
    ctx: RunContext,
    *,
    session: requests.Session | None = None,
    run_log: RunLog | None = None,
) -> tuple[ArtifactSource, list[ArtifactSource]]:
    """Instantiate an app's sources in priority order.

    The first entry of ``sources`` is the primary; the rest are fallbacks,
    tried in the order listed.

    Raises:
        ConfigError: If no sources are defined or any entry is invalid.
    """
    entries = app.get("sources") or []
    if not isinstance(entries, list) or not entries:
        raise ConfigError(f"No sources defined for app: {ctx.app_name}")
    built = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise ConfigError(f"Source entries must be mappings, got: {entry!r}")
        built.append(create_source(entry, ctx, session=session, run_log=run_log))
    return built[0], built[1:]


def check_prerequisites(
    app: dict[str, Any],
    run_log: RunLog,
    *,
    entries_reader: Callable[[RegistryLocation], Iterable[RegistryEntry]] = read_registry_entries,
) -> list[PrerequisiteState]:
    """Probe every declared prerequisite and log what was found.

    Raises:
        DeployError: If a prerequisite marked ``required: true`` is missing.
    """
    states = []
    for prereq in app.get("prerequisites") or []:
        name = prereq.get("name", "prerequisite")
        state = probe_prerequisite(
            name, prereq.get("keywords") or [], entries_reader=entries_reader
        )
        states.append(state)
        if state.present:
            run_log.event(f"Prerequisite {name} found, version {state.version or 'unknown'}")
        elif prereq.get("required", False):
            raise DeployError(f"Required prerequisite {name} is not installed")
        else:
            run_log.event(f"Prerequisite {name} not found")
    return states


def _log_install_state(run_log: RunLog, ctx: RunContext, state: InstallState) -> None:
    if not state.present:
        run_log.event(f"{ctx.app_name} is not installed")
    elif state.installed_version:
        run_log.event(f"{ctx.app_name} is installed, version {state.installed_version}")
    else:
        run_log.event(f"{ctx.app_name} is installed, version unknown")


def _make_cascade(
    primary: ArtifactSource,
    fallbacks: list[ArtifactSource],
    ctx: RunContext,
    run_log: RunLog,
    collab: Collaborators,
    session: requests.Session,
) -> ResolutionCascade:
    return ResolutionCascade(
        primary,
        fallbacks,
        run_log=run_log,
        session=session,
        timeout=ctx.timeout,
        reachability=collab.reachability,
    )


def run_app(
    config: dict[str, Any],
    ctx: RunContext,
    collaborators: Collaborators | None = None,
) -> RunOutcome:
    """Deploy the first app of a merged configuration.

    Args:
        config: Merged configuration from load_effective_config().
        ctx: Per-run configuration from build_run_context().
        collaborators: External capabilities. Real implementations when None.

    Returns:
        RunOutcome. ``exit_code`` is 0 for the success family and non-zero
        otherwise.

    Raises:
        ConfigError: If the recipe's install probe, prerequisites or sources
            are invalid.
        FatalIOError: If the run log cannot be created.

    Note:
        The installer is always invoked once an artifact is resolved, even
        when the installed version already matches the resolved one. Version
        labels are not comparable across sources ("Latest"), so no skip
        decision is made.
    """
    logger = get_global_logger()
    collab = collaborators or Collaborators()
    session = collab.session or make_session()
    app = _first_app(config)
    errors = app_section_errors(app, prefix=ctx.app_name)
    if errors:
        raise ConfigError("Invalid recipe: " + "; ".join(errors))

    run_log = RunLog.open(ctx.log_path, console=logger)
    # ConfigError from here propagates; nothing has been logged yet.
    primary, fallbacks = build_sources(app, ctx, session=session, run_log=run_log)
    run_log.event(f"Starting deployment of {ctx.app_name}")

    executor = InstallExecutor(
        ctx,
        run_log,
        session=session,
        transfer=collab.background_transfer,
        runner=collab.run_process,
    )
    downloaded = False
    candidate = None
    try:
        logger.step(1, TOTAL_STEPS, "Checking installation state...")
        state = probe_install_state(
            app.get("install_probe") or {},
            version_reader=collab.installed_version,
            entries_reader=collab.registry_entries,
        )
        _log_install_state(run_log, ctx, state)

        logger.step(2, TOTAL_STEPS, "Checking prerequisites...")
        check_prerequisites(app, run_log, entries_reader=collab.registry_entries)

        logger.step(3, TOTAL_STEPS, "Resolving artifact...")
        cascade = _make_cascade(primary, fallbacks, ctx, run_log, collab, session)
        result = cascade.resolve()
        if not result.resolved:
            outcome = RunOutcome(
                downloaded=False, installed_exit_code=None, classification="failure"
            )
        else:
            candidate = result.candidate
            if state.present and state.installed_version == candidate.version_label:
                run_log.event(
                    f"Installed version {state.installed_version} matches the resolved "
                    "version; running the installer anyway"
                )
            if candidate.is_update and not state.present:
                run_log.event(
                    f"Patch target not installed: {ctx.app_name} was not found, so "
                    "applying the update patch is expected to fail"
                )

            logger.step(4, TOTAL_STEPS, "Downloading artifact...")
            package = executor.download(candidate)
            downloaded = True

            logger.step(5, TOTAL_STEPS, "Running installer...")
            code = executor.install(package, candidate.is_update)
            outcome = RunOutcome(
                downloaded=True,
                installed_exit_code=code,
                classification=executor.report(code),
                candidate=candidate,
            )
    except DeployError as err:
        run_log.event(f"Deployment failed: {err}")
        outcome = RunOutcome(
            downloaded=downloaded,
            installed_exit_code=None,
            classification="failure",
            candidate=candidate,
        )
    finally:
        executor.cleanup()

    run_log.event(
        f"Deployment finished: {outcome.classification} (exit code {outcome.exit_code})"
    )
    return outcome


def deploy_recipe(
    recipe_path: Path,
    *,
    root: Path | None = None,
    today: date | None = None,
    collaborators: Collaborators | None = None,
) -> RunOutcome:
    """Load a recipe and deploy its first app.

    This is the entry point behind ``autodeploy run`` and the per-application
    commands.

    Raises:
        ConfigError: On recipe or source configuration errors.
        FatalIOError: If the run log cannot be created.
    """
    config = load_effective_config(recipe_path)
    ctx = build_run_context(config, today=today, root=root)
    get_global_logger().verbose("CONFIG", f"Run log: {ctx.log_path}")
    return run_app(config, ctx, collaborators)


def resolve_recipe(
    recipe_path: Path,
    *,
    root: Path | None = None,
    today: date | None = None,
    collaborators: Collaborators | None = None,
) -> CascadeResult:
    """Resolve a recipe's artifact without downloading or installing.

    Cascade events are still written to the run log.

    Raises:
        ConfigError: On recipe or source configuration errors.
        FatalIOError: If the run log cannot be created.
    """
    config = load_effective_config(recipe_path)
    ctx = build_run_context(config, today=today, root=root)
    collab = collaborators or Collaborators()
    session = collab.session or make_session()
    run_log = RunLog.open(ctx.log_path, console=get_global_logger())
    run_log.event(f"Resolving {ctx.app_name} (dry run)")
    primary, fallbacks = build_sources(
        _first_app(config), ctx, session=session, run_log=run_log
    )
    return _make_cascade(primary, fallbacks, ctx, run_log, collab, session).resolve()
