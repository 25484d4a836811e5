"""
Tests for autodeploy.sources package.

Tests artifact sources including:
- Source registry
- Structured API catalog flattening and filtering
- Scraped HTML index/detail extraction and version tokens
- Static URL candidates
- Offline configuration validation
"""

from __future__ import annotations

import pytest
import requests
import requests_mock

from autodeploy.exceptions import ConfigError, ParseError
from autodeploy.sources import create_source, get_source_class, register_source
from autodeploy.sources.scraped_html import ScrapedHtmlSource, version_token
from autodeploy.sources.static_url import LATEST, StaticUrlSource
from autodeploy.sources.structured_api import StructuredApiSource

EDGE_API = "https://edgeupdates.microsoft.com/api/products"

INDEX_URL = "https://vendor.example/notes/index.html"
TEMPLATE = "https://dl.vendor.example/{version}/AppUpd{version}_MUI.msp"
INDEX_HTML = """
<ul>
  <li><a href="continuous/v3.html">DC Oct 2025 (25.001.20813)</a></li>
  <li><a href="continuous/v2.html">DC Sep 2025 (25.001.20756)</a></li>
  <li><a href="continuous/v1.html">DC Aug 2025 (25.001.20693)</a></li>
</ul>
"""
INDEX_PATTERN = r'href="(?P<url>continuous/[^"]+\.html)">[^(<]*\((?P<version>[\d.]+)\)'
PATCH_PATTERN = r'href="([^"]+\.msp)"'


def _detail(file_name: str) -> str:
    return f'<p>Patch: <a href="https://cdn.vendor.example/tmp/{file_name}">download</a></p>'


def _scraped_config(**overrides):
    config = {
        "strategy": "scraped_html",
        "index_url": INDEX_URL,
        "index_pattern": INDEX_PATTERN,
        "patch_pattern": PATCH_PATTERN,
        "url_template": TEMPLATE,
    }
    config.update(overrides)
    return config


class TestSourceRegistry:
    """Tests for source registration and lookup."""

    def test_builtin_sources_registered(self):
        """Test that all three variants are available."""
        assert get_source_class("structured_api") is StructuredApiSource
        assert get_source_class("scraped_html") is ScrapedHtmlSource
        assert get_source_class("static_url") is StaticUrlSource

    def test_unknown_source_raises(self):
        """Test that an unknown strategy raises ConfigError."""
        with pytest.raises(ConfigError, match="Unknown source strategy"):
            get_source_class("ftp_listing")

    def test_register_custom_source(self, run_context):
        """Test registering and creating a custom source."""

        class CustomSource:
            strategy = "custom_test"
            probe_reachability = False

            def __init__(self, source, ctx, *, session=None, run_log=None):
                self.url = source["url"]

            def resolve_candidates(self):
                return iter(())

            @classmethod
            def validate_config(cls, source):
                return [] if "url" in source else ["Missing required field: source.url"]

        register_source("custom_test", CustomSource)
        source = create_source({"strategy": "custom_test", "url": "x"}, run_context)
        assert isinstance(source, CustomSource)

    def test_create_source_validates(self, run_context):
        """Test that invalid entries are rejected at construction."""
        with pytest.raises(ConfigError, match="Invalid static_url source"):
            create_source({"strategy": "static_url"}, run_context)

    def test_create_source_requires_strategy(self, run_context):
        """Test that entries without a strategy are rejected."""
        with pytest.raises(ConfigError, match="strategy"):
            create_source({"url": "https://example.com/a.msi"}, run_context)


class TestStructuredApiSource:
    """Tests for the JSON catalog source."""

    def test_selects_first_matching_artifact(self, run_context, run_log, edge_catalog):
        """Test filtering by channel, platform, architecture and extension."""
        source = StructuredApiSource(
            {"strategy": "structured_api", "api_url": EDGE_API}, run_context, run_log=run_log
        )
        with requests_mock.Mocker() as m:
            m.get(EDGE_API, json=edge_catalog)
            results = list(source.resolve_candidates())

        assert len(results) == 1
        candidate = results[0].unwrap()
        assert candidate.version_label == "141.0.3537.57"
        assert candidate.download_url.endswith("MicrosoftEdgeEnterpriseX64.msi")
        assert candidate.kind == "full_installer"
        assert candidate.source_strategy == "structured_api"

    def test_comparison_ignores_case(self, run_context, edge_catalog):
        """Test that filters are case-insensitive."""
        source = StructuredApiSource(
            {"api_url": EDGE_API, "channel": "stable", "architecture": "X64"}, run_context
        )
        assert source.flatten(edge_catalog)[0].version_label == "141.0.3537.57"

    def test_architecture_override(self, run_context, edge_catalog):
        """Test that the source entry can override the target architecture."""
        source = StructuredApiSource(
            {"api_url": EDGE_API, "architecture": "x86"}, run_context
        )
        assert source.flatten(edge_catalog)[0].download_url == "https://example.com/x86.msi"

    def test_no_match_yields_nothing(self, run_context, run_log, log_text, edge_catalog):
        """Test that zero matches is an empty sequence, not an error."""
        source = StructuredApiSource(
            {"api_url": EDGE_API, "channel": "Canary"}, run_context, run_log=run_log
        )
        with requests_mock.Mocker() as m:
            m.get(EDGE_API, json=edge_catalog)
            assert list(source.resolve_candidates()) == []

        assert "No Canary/Windows/x64 .msi artifact" in log_text()

    def test_network_failure_yields_nothing(self, run_context, run_log, log_text):
        """Test that a failed request is an empty sequence."""
        source = StructuredApiSource({"api_url": EDGE_API}, run_context, run_log=run_log)
        with requests_mock.Mocker() as m:
            m.get(EDGE_API, exc=requests.exceptions.ConnectionError("dns"))
            assert list(source.resolve_candidates()) == []

        assert "Catalog request failed" in log_text()

    def test_invalid_json_yields_nothing(self, run_context, run_log, log_text):
        """Test that an unparsable body is an empty sequence."""
        source = StructuredApiSource({"api_url": EDGE_API}, run_context, run_log=run_log)
        with requests_mock.Mocker() as m:
            m.get(EDGE_API, text="<html>maintenance</html>")
            assert list(source.resolve_candidates()) == []

        assert "not valid JSON" in log_text()

    def test_custom_field_mapping(self, run_context):
        """Test JSONPath and field overrides for other catalog shapes."""
        data = {
            "products": [
                {
                    "channel": "Stable",
                    "builds": [
                        {
                            "os": "Windows",
                            "arch": "x64",
                            "version": "9.1",
                            "files": [{"href": "https://example.com/app-9.1.msi"}],
                        }
                    ],
                }
            ]
        }
        source = StructuredApiSource(
            {
                "api_url": "https://example.com/api",
                "products_path": "$.products[*]",
                "channel_field": "channel",
                "releases_path": "builds[*]",
                "platform_field": "os",
                "architecture_field": "arch",
                "version_field": "version",
                "artifacts_path": "files[*]",
                "location_field": "href",
            },
            run_context,
        )
        candidates = source.flatten(data)
        assert [c.version_label for c in candidates] == ["9.1"]

    def test_validate_config(self):
        """Test offline validation of catalog entries."""
        assert StructuredApiSource.validate_config({"api_url": EDGE_API}) == []
        errors = StructuredApiSource.validate_config(
            {"products_path": "$[", "kind": "bundle"}
        )
        assert any("api_url" in e for e in errors)
        assert any("products_path" in e for e in errors)
        assert any("source.kind" in e for e in errors)


@pytest.mark.parametrize(
    "link,expected",
    [
        ("AcroRdrDCx64Upd2500120813_MUI.msp", "2500120813"),
        ("https://cdn.example/x/AcroRdrDCUpd2300820555.msp", "2300820555"),
        ("https://cdn.example/x/Upd_2024_0501.msp", "2024"),
    ],
)
def test_version_token(link, expected):
    """Test the strip-prefix, first-run-of-four-digits rule."""
    assert version_token(link) == expected


def test_version_token_without_digits_raises():
    """Test that a file name without a token is a parse failure."""
    with pytest.raises(ParseError):
        version_token("https://cdn.example/x/AcroRdrDCUpd_MUI.msp")


class TestScrapedHtmlSource:
    """Tests for the release-notes scraping source."""

    def test_extract_version_links_in_document_order(self, run_context):
        """Test index extraction with absolute URLs."""
        source = ScrapedHtmlSource(_scraped_config(), run_context)
        links = source.extract_version_links(INDEX_HTML)

        assert links == [
            ("https://vendor.example/notes/continuous/v3.html", "25.001.20813"),
            ("https://vendor.example/notes/continuous/v2.html", "25.001.20756"),
            ("https://vendor.example/notes/continuous/v1.html", "25.001.20693"),
        ]

    def test_extract_version_links_with_selector(self, run_context):
        """Test index extraction with a CSS selector and label pattern."""
        source = ScrapedHtmlSource(
            _scraped_config(
                index_pattern=None,
                index_selector="li a",
                index_version_pattern=r"\((\d+\.\d+\.\d+)\)",
            ),
            run_context,
        )
        links = source.extract_version_links(INDEX_HTML)
        assert [label for _, label in links] == ["25.001.20813", "25.001.20756", "25.001.20693"]

    def test_candidate_url_comes_from_template(self, run_context):
        """Test that the stable host template is used, not the page link."""
        source = ScrapedHtmlSource(_scraped_config(), run_context)
        detail = "https://vendor.example/notes/continuous/v3.html"
        with requests_mock.Mocker() as m:
            m.get(detail, text=_detail("AcroRdrDCx64Upd2500120813_MUI.msp"))
            result = source.resolve_version(detail, "25.001.20813")

        candidate = result.unwrap()
        assert candidate.download_url == (
            "https://dl.vendor.example/2500120813/AppUpd2500120813_MUI.msp"
        )
        assert candidate.kind == "update_patch"
        assert candidate.is_update
        assert candidate.version_label == "25.001.20813"

    def test_missing_patch_link_is_parse_failure(self, run_context):
        """Test that a detail page without a patch link is a parse failure."""
        source = ScrapedHtmlSource(_scraped_config(), run_context)
        detail = "https://vendor.example/notes/continuous/v3.html"
        with requests_mock.Mocker() as m:
            m.get(detail, text="<p>Release notes only</p>")
            result = source.resolve_version(detail, "25.001.20813")

        assert result.is_err()
        assert result.error.outcome == "parse_failure"
        assert result.error.version_label == "25.001.20813"

    def test_detail_page_404_is_not_found(self, run_context):
        """Test that a missing detail page is reported as not_found."""
        source = ScrapedHtmlSource(_scraped_config(), run_context)
        detail = "https://vendor.example/notes/continuous/v3.html"
        with requests_mock.Mocker() as m:
            m.get(detail, status_code=404)
            result = source.resolve_version(detail, "25.001.20813")

        assert result.error.outcome == "not_found"

    def test_detail_page_timeout_is_transient(self, run_context):
        """Test that a network failure is reported as transient_failure."""
        source = ScrapedHtmlSource(_scraped_config(), run_context)
        detail = "https://vendor.example/notes/continuous/v3.html"
        with requests_mock.Mocker() as m:
            m.get(detail, exc=requests.exceptions.ReadTimeout)
            result = source.resolve_version(detail, "25.001.20813")

        assert result.error.outcome == "transient_failure"

    def test_detail_pages_fetched_lazily(self, run_context):
        """Test that only the detail pages the caller consumes are fetched."""
        source = ScrapedHtmlSource(_scraped_config(), run_context)
        with requests_mock.Mocker() as m:
            m.get(INDEX_URL, text=INDEX_HTML)
            m.get(
                "https://vendor.example/notes/continuous/v3.html",
                text=_detail("AcroRdrDCx64Upd2500120813_MUI.msp"),
            )
            first = next(iter(source.resolve_candidates()))

            assert first.is_ok()
            assert m.call_count == 2

    def test_max_versions_caps_the_walk(self, run_context):
        """Test that max_versions limits the candidates yielded."""
        source = ScrapedHtmlSource(_scraped_config(max_versions=1), run_context)
        with requests_mock.Mocker() as m:
            m.get(requests_mock.ANY, status_code=404)
            m.get(INDEX_URL, text=INDEX_HTML)
            results = list(source.resolve_candidates())

        assert len(results) == 1

    def test_unreachable_index_yields_nothing(self, run_context, run_log, log_text):
        """Test that an unreachable index page is an empty sequence."""
        source = ScrapedHtmlSource(_scraped_config(), run_context, run_log=run_log)
        with requests_mock.Mocker() as m:
            m.get(INDEX_URL, status_code=503)
            assert list(source.resolve_candidates()) == []

        assert "Release index request failed" in log_text()

    def test_index_without_links_yields_nothing(self, run_context, run_log, log_text):
        """Test that a redesigned index page is an empty sequence."""
        source = ScrapedHtmlSource(_scraped_config(), run_context, run_log=run_log)
        with requests_mock.Mocker() as m:
            m.get(INDEX_URL, text="<html>new layout</html>")
            assert list(source.resolve_candidates()) == []

        assert "No version links found" in log_text()

    def test_validate_config(self):
        """Test offline validation of scraping entries."""
        assert ScrapedHtmlSource.validate_config(_scraped_config()) == []

        errors = ScrapedHtmlSource.validate_config(
            {
                "index_url": INDEX_URL,
                "index_pattern": r"href=\"(.+)\"",
                "url_template": "https://dl.vendor.example/latest.msp",
                "max_versions": 0,
            }
        )
        assert any("'{version}'" in e for e in errors)
        assert any("patch_pattern or source.patch_selector" in e for e in errors)
        assert any("named groups" in e for e in errors)
        assert any("max_versions" in e for e in errors)

    def test_validate_config_rejects_other_placeholders(self, run_context):
        """Test that only {version} may be substituted into the template."""
        config = _scraped_config(url_template="https://dl.example/{version}/x64/{arch}.msp")

        errors = ScrapedHtmlSource.validate_config(config)

        assert any("found: arch" in e for e in errors)
        with pytest.raises(ConfigError, match="arch"):
            create_source(config, run_context)

    def test_validate_config_unbalanced_braces(self):
        """Test that a malformed template is reported, not raised."""
        errors = ScrapedHtmlSource.validate_config(
            _scraped_config(url_template="https://dl.example/{version}/{oops.msp")
        )
        assert any("unbalanced braces" in e for e in errors)

    def test_template_braces_never_raise_during_resolution(self, run_context):
        """Test that stray braces in a template stay literal instead of aborting."""
        source = ScrapedHtmlSource(
            _scraped_config(url_template="https://dl.example/{version}/{arch}.msp"), run_context
        )
        detail = "https://vendor.example/notes/continuous/v3.html"
        with requests_mock.Mocker() as m:
            m.get(detail, text=_detail("AcroRdrDCx64Upd2500120813_MUI.msp"))
            result = source.resolve_version(detail, "25.001.20813")

        assert result.unwrap().download_url == "https://dl.example/2500120813/{arch}.msp"

    def test_empty_optional_patch_group_is_parse_failure(self, run_context):
        """Test that an optional capture group matching nothing is a parse failure."""
        source = ScrapedHtmlSource(
            _scraped_config(patch_pattern=r'Patch:(?: <a href="([^"]+\.msp)")?'), run_context
        )
        detail = "https://vendor.example/notes/continuous/v3.html"
        with requests_mock.Mocker() as m:
            m.get(detail, text="<p>Patch: coming soon</p>")
            result = source.resolve_version(detail, "25.001.20813")

        assert result.is_err()
        assert result.error.outcome == "parse_failure"

    def test_index_match_without_url_group_is_skipped(self, run_context):
        """Test that index matches missing an optional group are ignored."""
        pattern = r'(?:href="(?P<url>[^"]+\.html)")?>[^(<]*\((?P<version>[\d.]+)\)'
        source = ScrapedHtmlSource(_scraped_config(index_pattern=pattern), run_context)
        html = '<span>(25.001.20900)</span>\n<a href="continuous/v1.html">DC (25.001.20756)</a>'

        links = source.extract_version_links(html)

        assert links == [("https://vendor.example/notes/continuous/v1.html", "25.001.20756")]

    def test_validate_config_bad_regex(self):
        """Test that invalid regexes are reported."""
        errors = ScrapedHtmlSource.validate_config(_scraped_config(patch_pattern="(unclosed"))
        assert any("Invalid source.patch_pattern regex" in e for e in errors)


class TestStaticUrlSource:
    """Tests for the fixed URL source."""

    def test_yields_exactly_one_latest_candidate(self, run_context):
        """Test the sentinel version label and single candidate."""
        source = StaticUrlSource(
            {"url": "https://go.microsoft.com/fwlink/?LinkID=2093437",
             "file_name": "MicrosoftEdgeEnterpriseX64.msi"},
            run_context,
        )
        results = list(source.resolve_candidates())

        assert len(results) == 1
        candidate = results[0].unwrap()
        assert candidate.version_label == LATEST
        assert candidate.file_name == "MicrosoftEdgeEnterpriseX64.msi"
        assert candidate.source_strategy == "static_url"
        assert not source.probe_reachability

    def test_patch_fallback(self, run_context):
        """Test a static patch with an explicit version label."""
        source = StaticUrlSource(
            {"url": "https://dl.example.com/Upd.msp", "kind": "update_patch",
             "version_label": "25.001.20813"},
            run_context,
        )
        candidate = next(iter(source.resolve_candidates())).unwrap()
        assert candidate.is_update
        assert candidate.version_label == "25.001.20813"

    def test_validate_config(self):
        """Test offline validation of static entries."""
        assert StaticUrlSource.validate_config({"url": "https://example.com/a.msi"}) == []
        assert StaticUrlSource.validate_config({"url": ""}) == ["source.url cannot be empty"]
