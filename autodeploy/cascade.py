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

"""Resolution cascade for autodeploy.

Decides which artifact to install right now by walking artifact sources in
priority order. The walk is an explicit state machine:

    idle -> trying_primary -> trying_secondary_list -> trying_fallback -> resolved
                                                                        | exhausted

- **trying_primary**: the primary source's first candidate. If it can be
  built and its URL answers (non-404), the cascade is resolved.
- **trying_secondary_list**: further candidates of the primary source, in
  the order it yields them (for scraped release notes: successive older
  versions). A 404, a transient network failure or a parse failure on one
  version logs a line and advances to the next; it never aborts the run.
- **trying_fallback**: once the primary is empty or exhausted, each fallback
  source in turn. A static URL fallback is accepted without a reachability
  check and has no alternatives of its own.
- **exhausted**: nothing usable anywhere; the run ends with Failure.

Ordering is "newest wins": candidates are tried exactly in the order sources
yield them and the first success stops the walk. Versions are never compared
numerically.

Sources report per-candidate failures as Result.err values, so fallback
order is driven by data here rather than by exception handlers.

Example:
    ```python
    from autodeploy.cascade import ResolutionCascade

    cascade = ResolutionCascade(primary, [fallback], run_log=run_log)
    result = cascade.resolve()
    if result.resolved:
        print(result.candidate.download_url)
    ```
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Literal

import requests

from autodeploy.exceptions import DeployError, NetworkError, NotFoundError
from autodeploy.io import check_url
from autodeploy.logging import RunLog, get_global_logger
from autodeploy.results import ArtifactCandidate, ResolutionAttempt
from autodeploy.sources.base import ArtifactSource, CandidateResult

CascadeState = Literal[
    "idle",
    "trying_primary",
    "trying_secondary_list",
    "trying_fallback",
    "resolved",
    "exhausted",
]

_FAILURE_TEXT = {
    "not_found": "not found (404)",
    "transient_failure": "could not be reached",
    "parse_failure": "could not be parsed",
}


@dataclass(frozen=True)
class CascadeResult:
    """Outcome of one cascade run.

    Attributes:
        state: Terminal state, "resolved" or "exhausted".
        candidate: The winning candidate when resolved.
        attempts: Every candidate tried, in order.
        transitions: Every state entered, in order, starting with "idle".
    """

    state: CascadeState
    candidate: ArtifactCandidate | None
    attempts: tuple[ResolutionAttempt, ...]
    transitions: tuple[CascadeState, ...]

    @property
    def resolved(self) -> bool:
        return self.state == "resolved"


class ResolutionCascade:
    """Walks a primary source, then its fallbacks, until a candidate works."""

    def __init__(
        self,
        primary: ArtifactSource,
        fallbacks: Sequence[ArtifactSource] = (),
        *,
        run_log: RunLog,
        session: requests.Session | None = None,
        timeout: int = 30,
        reachability: Callable[..., None] = check_url,
    ) -> None:
        self.primary = primary
        self.fallbacks = list(fallbacks)
        self._run_log = run_log
        self._session = session
        self._timeout = timeout
        self._reachability = reachability
        self._state: CascadeState = "idle"
        self._transitions: list[CascadeState] = []
        self._attempts: list[ResolutionAttempt] = []

    @property
    def state(self) -> CascadeState:
        return self._state

    def resolve(self) -> CascadeResult:
        """Run the cascade to a terminal state. Each call starts over."""
        self._transitions = []
        self._attempts = []
        self._enter("idle")

        self._enter("trying_primary")
        self._run_log.event(f"Resolving artifact from {self.primary.strategy} source")
        winner = self._walk(self.primary, is_primary=True)

        for fallback in self.fallbacks:
            if winner is not None:
                break
            self._enter("trying_fallback")
            self._run_log.event(f"Falling back to {fallback.strategy} source")
            winner = self._walk(fallback, is_primary=False)

        if winner is None:
            self._enter("exhausted")
            self._run_log.event("No usable artifact found; all sources exhausted")
        else:
            self._enter("resolved")
            self._run_log.event(
                f"Resolved version {winner.version_label} from "
                f"{winner.source_strategy}: {winner.download_url}"
            )
        return CascadeResult(
            state=self._state,
            candidate=winner,
            attempts=tuple(self._attempts),
            transitions=tuple(self._transitions),
        )

    def _enter(self, state: CascadeState) -> None:
        get_global_logger().debug("CASCADE", f"{self._state} -> {state}")
        self._state = state
        self._transitions.append(state)

    def _walk(self, source: ArtifactSource, *, is_primary: bool) -> ArtifactCandidate | None:
        """Try each candidate of one source in order; return the first success."""
        tried = 0
        try:
            for result in source.resolve_candidates():
                if tried:
                    if is_primary and self._state != "trying_secondary_list":
                        self._enter("trying_secondary_list")
                    self._run_log.event(f"Trying previous version: {self._label(result)}")
                tried += 1

                attempt = self._attempt(source, result)
                self._attempts.append(attempt)
                if attempt.outcome == "success":
                    return attempt.candidate
                self._run_log.event(
                    f"Version {attempt.version_label} "
                    f"{_FAILURE_TEXT[attempt.outcome]}: {attempt.detail}"
                )
        except DeployError as err:
            self._run_log.event(f"{source.strategy} source failed: {err}")
        if not tried:
            self._run_log.event(f"{source.strategy} source returned no candidates")
        return None

    def _attempt(self, source: ArtifactSource, result: CandidateResult) -> ResolutionAttempt:
        if result.is_err():
            return result.error
        candidate = result.unwrap()
        self._run_log.event(f"Candidate {candidate.version_label}: {candidate.download_url}")
        if not getattr(source, "probe_reachability", True):
            return ResolutionAttempt(candidate.version_label, "success", candidate)
        try:
            self._reachability(
                candidate.download_url, session=self._session, timeout=self._timeout
            )
        except NotFoundError as err:
            return ResolutionAttempt(candidate.version_label, "not_found", candidate, str(err))
        except NetworkError as err:
            return ResolutionAttempt(
                candidate.version_label, "transient_failure", candidate, str(err)
            )
        return ResolutionAttempt(candidate.version_label, "success", candidate)

    @staticmethod
    def _label(result: CandidateResult) -> str:
        if result.is_err():
            return result.error.version_label
        return result.unwrap().version_label
