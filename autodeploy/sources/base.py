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

"""Artifact source protocol and registry for autodeploy.

An artifact source turns one vendor's remote catalog into an ordered
sequence of installable candidates. The resolution cascade is written once
against this protocol; vendors differ only in which source class their
recipe names and how it is configured.

Three variants ship with autodeploy:

- structured_api: Query a JSON catalog endpoint and filter by platform,
    architecture, channel and package extension. One candidate at most.
- scraped_html: Scrape a release index page for version links, then each
    version's detail page for its patch link. One candidate per version,
    newest first, fetched lazily.
- static_url: A hardcoded URL with the sentinel version "Latest".

Contract:
    resolve_candidates() returns a finite iterator of
    Result[ArtifactCandidate, ResolutionAttempt]. Each call makes fresh
    remote requests. Per-version failures are yielded as Result.err values;
    catalog-level failures (index unreachable, nothing matched) are logged
    and end the iterator early. Sources do not raise out of
    resolve_candidates().

Example:
    Implementing and registering a custom source:
        ```python
        from autodeploy.sources.base import register_source

        class FtpListingSource:
            strategy = "ftp_listing"

            def __init__(self, source, ctx, *, session=None, run_log=None):
                ...

            def resolve_candidates(self):
                ...

            @classmethod
            def validate_config(cls, source):
                return []

        register_source("ftp_listing", FtpListingSource)
        ```
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any, Protocol

import requests

from autodeploy.config import RunContext
from autodeploy.exceptions import ConfigError
from autodeploy.logging import RunLog, get_global_logger
from autodeploy.results import ArtifactCandidate, ResolutionAttempt, Result

CandidateResult = Result[ArtifactCandidate, ResolutionAttempt]

ARTIFACT_KINDS = ("full_installer", "update_patch")


class ArtifactSource(Protocol):
    """Protocol for artifact sources.

    Attributes:
        strategy: Registry name of the variant (e.g., "structured_api").
        probe_reachability: Whether the cascade should confirm each
            candidate URL answers before accepting it. Sources without
            real version information set this to False.
    """

    strategy: str
    probe_reachability: bool

    def resolve_candidates(self) -> Iterator[CandidateResult]:
        """Yield candidates in preference order (first = newest)."""
        ...

    @classmethod
    def validate_config(cls, source: dict[str, Any]) -> list[str]:
        """Check source configuration without network calls.

        Returns:
            Human-readable error messages; empty when valid.
        """
        ...


_SOURCE_REGISTRY: dict[str, type[ArtifactSource]] = {}


def register_source(name: str, source_class: type[ArtifactSource]) -> None:
    """Register a source class under the name recipes use in sources[].strategy.

    Registering the same name twice overwrites the previous entry.
    """
    _SOURCE_REGISTRY[name] = source_class


def get_source_class(name: str) -> type[ArtifactSource]:
    """Look up a registered source class by name.

    Raises:
        ConfigError: If the name is not registered. The message lists the
            available names.
    """
    if name not in _SOURCE_REGISTRY:
        available = ", ".join(sorted(_SOURCE_REGISTRY)) or "(none)"
        raise ConfigError(f"Unknown source strategy: {name!r}. Available: {available}")
    return _SOURCE_REGISTRY[name]


def create_source(
    source: dict[str, Any],
    ctx: RunContext,
    *,
    session: requests.Session | None = None,
    run_log: RunLog | None = None,
) -> ArtifactSource:
    """Instantiate the source a recipe entry describes.

    Raises:
        ConfigError: If the strategy is missing or unknown, or the entry
            fails the class's validate_config().
    """
    name = source.get("strategy")
    if not name:
        raise ConfigError("Source entry is missing required field: strategy")
    source_class = get_source_class(name)
    errors = source_class.validate_config(source)
    if errors:
        raise ConfigError(f"Invalid {name} source: " + "; ".join(errors))
    return source_class(source, ctx, session=session, run_log=run_log)


def note(run_log: RunLog | None, message: str) -> None:
    """Record a source event in the run log, or on the console without one."""
    if run_log is not None:
        run_log.event(message)
    else:
        get_global_logger().verbose("SOURCE", message)


def check_kind(source: dict[str, Any], errors: list[str]) -> None:
    kind = source.get("kind")
    if kind is not None and kind not in ARTIFACT_KINDS:
        errors.append(f"source.kind must be one of {', '.join(ARTIFACT_KINDS)}")


def check_string(source: dict[str, Any], field: str, errors: list[str], required: bool = True) -> None:
    if field not in source:
        if required:
            errors.append(f"Missing required field: source.{field}")
        return
    value = source[field]
    if not isinstance(value, str):
        errors.append(f"source.{field} must be a string")
    elif not value.strip():
        errors.append(f"source.{field} cannot be empty")
