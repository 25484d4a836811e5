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

"""Structured JSON catalog source for autodeploy.

Queries a vendor catalog endpoint that returns a nested
product -> releases -> artifacts structure (the Microsoft Edge update API
is the reference shape) and flattens it to installable artifacts.

Filtering:
    An artifact is kept when all of these hold:

    - its product's channel field equals the target channel ("Stable")
    - its release's platform equals the target OS family ("Windows")
    - its release's architecture equals the target architecture ("x64")
    - its location ends with the expected package extension (".msi")

    Comparisons are case-insensitive. The first surviving artifact, in
    catalog order, is the only candidate; the catalog's order is taken as
    authoritative and nothing is re-ranked.

Failure Behavior:
    A failed request, an unparsable body, or zero matches all yield an empty
    sequence after a run log line. The cascade then moves to its fallback.

Recipe Configuration:

    sources:
      - strategy: structured_api
        api_url: "https://edgeupdates.microsoft.com/api/products"
        channel: "Stable"                  # Optional (default: Stable)
        extension: ".msi"                  # Optional (default: .msi)
        kind: full_installer               # Optional (default: full_installer)

Field Mapping (optional, JSONPath via jsonpath-ng; defaults fit the Edge API):

    - **products_path** (default "$[*]"): products in the document
    - **channel_field** (default "Product"): channel name on a product
    - **releases_path** (default "Releases[*]"): releases within a product
    - **platform_field** (default "Platform")
    - **architecture_field** (default "Architecture")
    - **version_field** (default "ProductVersion")
    - **artifacts_path** (default "Artifacts[*]"): artifacts within a release
    - **location_field** (default "Location"): download URL on an artifact

Target platform and architecture come from the run context unless the source
entry sets ``platform`` / ``architecture``.
"""

from __future__ import annotations

from collections.abc import Iterator
import json
from typing import Any

from jsonpath_ng import parse as jsonpath_parse
import requests

from autodeploy.config import RunContext
from autodeploy.exceptions import NetworkError
from autodeploy.io import fetch_text
from autodeploy.logging import RunLog
from autodeploy.results import ArtifactCandidate, Result

from .base import CandidateResult, check_kind, check_string, note, register_source

_PATH_DEFAULTS = {
    "products_path": "$[*]",
    "releases_path": "Releases[*]",
    "artifacts_path": "Artifacts[*]",
}
_FIELD_DEFAULTS = {
    "channel_field": "Product",
    "platform_field": "Platform",
    "architecture_field": "Architecture",
    "version_field": "ProductVersion",
    "location_field": "Location",
}


def _same(a: Any, b: str) -> bool:
    return isinstance(a, str) and a.strip().lower() == b.strip().lower()


class StructuredApiSource:
    """Artifact source backed by a JSON catalog endpoint."""

    strategy = "structured_api"
    probe_reachability = True

    def __init__(
        self,
        source: dict[str, Any],
        ctx: RunContext,
        *,
        session: requests.Session | None = None,
        run_log: RunLog | None = None,
    ) -> None:
        self.api_url: str = source["api_url"]
        self.channel: str = source.get("channel", "Stable")
        self.extension: str = source.get("extension", ".msi")
        self.platform: str = source.get("platform", ctx.platform)
        self.architecture: str = source.get("architecture", ctx.architecture)
        self.kind = source.get("kind", "full_installer")
        self.timeout = ctx.timeout
        self._paths = {k: source.get(k, v) for k, v in _PATH_DEFAULTS.items()}
        self._fields = {k: source.get(k, v) for k, v in _FIELD_DEFAULTS.items()}
        self._session = session
        self._run_log = run_log

    def resolve_candidates(self) -> Iterator[CandidateResult]:
        """Yield the first catalog artifact matching the target, if any."""
        try:
            data = json.loads(
                fetch_text(self.api_url, session=self._session, timeout=self.timeout)
            )
        except NetworkError as err:
            note(self._run_log, f"Catalog request failed for {self.api_url}: {err}")
            return
        except ValueError as err:
            note(self._run_log, f"Catalog response from {self.api_url} is not valid JSON: {err}")
            return

        matches = self.flatten(data)
        if not matches:
            note(
                self._run_log,
                f"No {self.channel}/{self.platform}/{self.architecture} "
                f"{self.extension} artifact in catalog {self.api_url}",
            )
            return
        yield Result.ok(matches[0])

    def flatten(self, data: Any) -> list[ArtifactCandidate]:
        """Flatten the catalog into matching candidates, in catalog order."""
        f = self._fields
        products = jsonpath_parse(self._paths["products_path"])
        releases = jsonpath_parse(self._paths["releases_path"])
        artifacts = jsonpath_parse(self._paths["artifacts_path"])

        found: list[ArtifactCandidate] = []
        for product in products.find(data):
            if not isinstance(product.value, dict):
                continue
            if not _same(product.value.get(f["channel_field"]), self.channel):
                continue
            for release in releases.find(product.value):
                rel = release.value
                if not isinstance(rel, dict):
                    continue
                if not _same(rel.get(f["platform_field"]), self.platform):
                    continue
                if not _same(rel.get(f["architecture_field"]), self.architecture):
                    continue
                for artifact in artifacts.find(rel):
                    if not isinstance(artifact.value, dict):
                        continue
                    location = artifact.value.get(f["location_field"])
                    if not isinstance(location, str):
                        continue
                    if not location.lower().endswith(self.extension.lower()):
                        continue
                    found.append(
                        ArtifactCandidate(
                            version_label=str(rel.get(f["version_field"], "unknown")),
                            download_url=location,
                            kind=self.kind,
                            source_strategy="structured_api",
                        )
                    )
        return found

    @classmethod
    def validate_config(cls, source: dict[str, Any]) -> list[str]:
        errors: list[str] = []
        check_string(source, "api_url", errors)
        for field in ("channel", "extension", "platform", "architecture", *_FIELD_DEFAULTS):
            check_string(source, field, errors, required=False)
        for field in _PATH_DEFAULTS:
            check_string(source, field, errors, required=False)
            if isinstance(source.get(field), str) and source[field].strip():
                try:
                    jsonpath_parse(source[field])
                except Exception as err:
                    errors.append(f"Invalid source.{field} JSONPath: {err}")
        check_kind(source, errors)
        return errors


register_source("structured_api", StructuredApiSource)
