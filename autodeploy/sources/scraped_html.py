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

"""Scraped HTML release-notes source for autodeploy.

For vendors that publish versions only as web pages (Adobe Acrobat Reader
release notes are the reference case). Resolution is two-level:

1. Fetch the index page and extract (detail page URL, version label) pairs
   in document order. Document order is assumed to be newest first; that is
   a property of the vendor page and is not checked.
2. For each pair, on demand, fetch the detail page and extract the patch
   file link. A version token is derived from the patch file name and
   interpolated into a fixed URL template on the stable distribution host.

The detail page's own link is deliberately not downloaded: it can point at
a transient CDN path. The template targets the stable host instead.

Version Token Rule:
    Strip the leading non-digit characters of the patch file name, then take
    the first run of four or more digits:

        AcroRdrDCx64Upd2500120813_MUI.msp -> "64Upd2500120813_MUI.msp" -> "2500120813"

    The rule is a heuristic: nothing verifies the token names a package on
    the distribution host. If the host's naming changes, the synthesized
    URL 404s and the cascade moves on to the previous version.

Recipe Configuration:

    sources:
      - strategy: scraped_html
        index_url: "https://vendor.example/release-notes/index.html"
        index_pattern: 'href="(?P<url>[^"]+\\.html)">(?P<version>\\d+\\.\\d+\\.\\d+)'
        patch_pattern: 'href="([^"]+\\.msp)"'
        url_template: "https://dl.vendor.example/{version}/AppUpd{version}.msp"
        kind: update_patch               # Optional (default: update_patch)
        max_versions: 10                 # Optional: cap on versions walked

Either pattern may be replaced with a CSS selector (BeautifulSoup4):

    - **index_selector**: elements whose href is the detail page and whose
      text is the version label (``index_version_pattern`` can extract the
      label from that text)
    - **patch_selector**: element whose href is the patch link
"""

from __future__ import annotations

from collections.abc import Iterator
import re
from string import Formatter
from typing import Any
from urllib.parse import urljoin

from bs4 import BeautifulSoup
import requests

from autodeploy.config import RunContext
from autodeploy.exceptions import NetworkError, NotFoundError, ParseError
from autodeploy.io import fetch_text, filename_from_url
from autodeploy.logging import RunLog
from autodeploy.results import ArtifactCandidate, ResolutionAttempt, Result

from .base import CandidateResult, check_kind, check_string, note, register_source

_LEADING_NON_DIGITS = re.compile(r"^\D+")
_VERSION_TOKEN = re.compile(r"\d{4,}")


def version_token(patch_link: str) -> str:
    """Derive the canonical version token from a patch link or file name.

    Raises:
        ParseError: If the file name holds no run of four or more digits.
    """
    name = filename_from_url(patch_link)
    match = _VERSION_TOKEN.search(_LEADING_NON_DIGITS.sub("", name))
    if not match:
        raise ParseError(f"No version token in patch file name {name!r}")
    return match.group(0)


class ScrapedHtmlSource:
    """Artifact source that walks a vendor's release-notes pages."""

    strategy = "scraped_html"
    probe_reachability = True

    def __init__(
        self,
        source: dict[str, Any],
        ctx: RunContext,
        *,
        session: requests.Session | None = None,
        run_log: RunLog | None = None,
    ) -> None:
        self.index_url: str = source["index_url"]
        self.index_pattern: str | None = source.get("index_pattern")
        self.index_selector: str | None = source.get("index_selector")
        self.index_version_pattern: str | None = source.get("index_version_pattern")
        self.patch_pattern: str | None = source.get("patch_pattern")
        self.patch_selector: str | None = source.get("patch_selector")
        self.url_template: str = source["url_template"]
        self.kind = source.get("kind", "update_patch")
        self.max_versions: int | None = source.get("max_versions")
        self.timeout = ctx.timeout
        self._session = session
        self._run_log = run_log

    def resolve_candidates(self) -> Iterator[CandidateResult]:
        """Yield one result per listed version, newest first.

        The index page is fetched when iteration starts; each detail page is
        fetched only when the cascade asks for the next candidate.
        """
        try:
            html = fetch_text(self.index_url, session=self._session, timeout=self.timeout)
        except NetworkError as err:
            note(self._run_log, f"Release index request failed for {self.index_url}: {err}")
            return

        links = self.extract_version_links(html)
        if not links:
            note(self._run_log, f"No version links found on {self.index_url}")
            return
        if self.max_versions:
            links = links[: self.max_versions]

        for detail_url, label in links:
            yield self.resolve_version(detail_url, label)

    def extract_version_links(self, html: str) -> list[tuple[str, str]]:
        """Extract (absolute detail URL, version label) pairs in document order."""
        pairs: list[tuple[str, str]] = []
        if self.index_selector:
            soup = BeautifulSoup(html, "html.parser")
            label_re = re.compile(self.index_version_pattern) if self.index_version_pattern else None
            for element in soup.select(self.index_selector):
                href = element.get("href")
                text = element.get_text(" ", strip=True)
                if not href or not text:
                    continue
                if label_re:
                    m = label_re.search(text)
                    if not m:
                        continue
                    text = m.group(1) if label_re.groups else m.group(0)
                pairs.append((urljoin(self.index_url, href), text))
        else:
            for m in re.finditer(self.index_pattern or "", html):
                href, text = m.group("url"), m.group("version")
                if not href or not text:
                    continue
                pairs.append((urljoin(self.index_url, href), text.strip()))
        return pairs

    def extract_patch_link(self, html: str) -> str:
        """Extract the single patch link from a version detail page.

        Raises:
            ParseError: If the page does not contain a patch link.
        """
        if self.patch_selector:
            element = BeautifulSoup(html, "html.parser").select_one(self.patch_selector)
            href = element.get("href") if element else None
            if not href:
                raise ParseError(f"CSS selector {self.patch_selector!r} matched no patch link")
            return str(href)

        match = re.search(self.patch_pattern or "", html)
        if not match:
            raise ParseError(f"Patch link pattern {self.patch_pattern!r} did not match")
        link = match.group(1) if match.re.groups else match.group(0)
        if not link:
            raise ParseError(f"Patch link pattern {self.patch_pattern!r} matched an empty link")
        return link

    def resolve_version(self, detail_url: str, label: str) -> CandidateResult:
        """Turn one listed version into a candidate, or a failed attempt."""
        try:
            html = fetch_text(detail_url, session=self._session, timeout=self.timeout)
        except NotFoundError as err:
            return Result.err(ResolutionAttempt(label, "not_found", detail=str(err)))
        except NetworkError as err:
            return Result.err(ResolutionAttempt(label, "transient_failure", detail=str(err)))

        try:
            token = version_token(self.extract_patch_link(html))
        except ParseError as err:
            return Result.err(
                ResolutionAttempt(label, "parse_failure", detail=f"{detail_url}: {err}")
            )

        url = self.url_template.replace("{version}", token)
        return Result.ok(
            ArtifactCandidate(
                version_label=label,
                download_url=url,
                kind=self.kind,
                source_strategy="scraped_html",
            )
        )

    @classmethod
    def validate_config(cls, source: dict[str, Any]) -> list[str]:
        errors: list[str] = []
        check_string(source, "index_url", errors)
        check_string(source, "url_template", errors)
        template = source.get("url_template")
        if isinstance(template, str):
            if "{version}" not in template:
                errors.append("source.url_template must contain '{version}'")
            try:
                fields = {f for _, f, _, _ in Formatter().parse(template) if f is not None}
            except ValueError as err:
                errors.append(f"source.url_template has unbalanced braces: {err}")
            else:
                if fields - {"version"}:
                    unknown = ", ".join(sorted(fields - {"version"}))
                    errors.append(
                        f"source.url_template supports only '{{version}}', found: {unknown}"
                    )

        if not source.get("index_pattern") and not source.get("index_selector"):
            errors.append("Missing required field: source.index_pattern or source.index_selector")
        if not source.get("patch_pattern") and not source.get("patch_selector"):
            errors.append("Missing required field: source.patch_pattern or source.patch_selector")

        for field in ("index_pattern", "index_version_pattern", "patch_pattern"):
            check_string(source, field, errors, required=False)
            value = source.get(field)
            if isinstance(value, str) and value.strip():
                try:
                    compiled = re.compile(value)
                except re.error as err:
                    errors.append(f"Invalid source.{field} regex: {err}")
                    continue
                if field == "index_pattern" and not {"url", "version"} <= set(compiled.groupindex):
                    errors.append("source.index_pattern needs named groups 'url' and 'version'")

        for field in ("index_selector", "patch_selector"):
            check_string(source, field, errors, required=False)
            value = source.get(field)
            if isinstance(value, str) and value.strip():
                try:
                    BeautifulSoup("<html></html>", "html.parser").select_one(value)
                except Exception as err:
                    errors.append(f"Invalid source.{field} CSS selector: {err}")

        max_versions = source.get("max_versions")
        if max_versions is not None and (not isinstance(max_versions, int) or max_versions < 1):
            errors.append("source.max_versions must be a positive integer")
        check_kind(source, errors)
        return errors


register_source("scraped_html", ScrapedHtmlSource)
