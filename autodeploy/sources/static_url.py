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

"""Static URL source for autodeploy.

The last line of the cascade: a fixed, hardcoded URL with no version
information. It always yields exactly one candidate labelled "Latest" and is
accepted without a reachability check, since there is nothing to fall back
to behind it.

Recipe Configuration:

    sources:
      - strategy: static_url
        url: "https://go.microsoft.com/fwlink/?LinkID=2093437"
        file_name: "MicrosoftEdgeEnterpriseX64.msi"   # Optional
        kind: full_installer                          # Optional
        version_label: "Latest"                       # Optional

``file_name`` matters for redirecting links whose path has no usable name:
the background transfer needs the destination name before it starts.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import requests

from autodeploy.config import RunContext
from autodeploy.logging import RunLog
from autodeploy.results import ArtifactCandidate, Result

from .base import CandidateResult, check_kind, check_string, register_source

LATEST = "Latest"


class StaticUrlSource:
    """Artifact source for a single fixed URL."""

    strategy = "static_url"
    probe_reachability = False

    def __init__(
        self,
        source: dict[str, Any],
        ctx: RunContext,
        *,
        session: requests.Session | None = None,
        run_log: RunLog | None = None,
    ) -> None:
        self.candidate = ArtifactCandidate(
            version_label=source.get("version_label", LATEST),
            download_url=source["url"],
            kind=source.get("kind", "full_installer"),
            source_strategy="static_url",
            file_name=source.get("file_name"),
        )

    def resolve_candidates(self) -> Iterator[CandidateResult]:
        yield Result.ok(self.candidate)

    @classmethod
    def validate_config(cls, source: dict[str, Any]) -> list[str]:
        errors: list[str] = []
        check_string(source, "url", errors)
        check_string(source, "file_name", errors, required=False)
        check_string(source, "version_label", errors, required=False)
        check_kind(source, errors)
        return errors


register_source("static_url", StaticUrlSource)
