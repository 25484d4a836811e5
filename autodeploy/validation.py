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

"""Recipe validation module.

Checks recipe syntax and configuration without network calls, downloads or
installer runs. Useful for quick feedback while writing a recipe and in CI.

Validation Checks:

- YAML syntax is valid
- Required top-level fields present (apiVersion, apps)
- apiVersion is supported
- Each app has required fields (name, id, sources)
- install_probe and prerequisites are well formed
- Every source strategy exists and its configuration is valid

A recipe whose last source is not a static_url produces a warning: without
a static fallback the cascade can end exhausted.

Example:
    Validate a recipe and handle results:
        ```python
        from pathlib import Path
        from autodeploy.validation import validate_recipe

        result = validate_recipe(Path("recipes/Adobe/reader.yaml"))
        if result.status == "valid":
            print(f"Recipe is valid with {result.app_count} app(s)")
        else:
            for error in result.errors:
                print(f"Error: {error}")
        ```
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from autodeploy.exceptions import ConfigError
from autodeploy.logging import get_global_logger
from autodeploy.results import ValidationResult
from autodeploy.sources import get_source_class

__all__ = ["app_section_errors", "validate_recipe"]

SUPPORTED_API_VERSION = "autodeploy/v1"


def _invalid(recipe_path: Path, errors: list[str], warnings: list[str]) -> ValidationResult:
    return ValidationResult(
        status="invalid",
        errors=errors,
        warnings=warnings,
        app_count=0,
        recipe_path=str(recipe_path),
    )


def _validate_probe(
    app: dict[str, Any], prefix: str, errors: list[str], warnings: list[str]
) -> None:
    probe = app.get("install_probe")
    if probe is None:
        warnings.append(f"{prefix}: No install_probe; the app is always reported absent")
        return
    if not isinstance(probe, dict):
        errors.append(f"{prefix}.install_probe: Must be a dictionary")
        return
    if "path" in probe and not isinstance(probe["path"], str):
        errors.append(f"{prefix}.install_probe.path: Must be a string")
    keywords = probe.get("keywords")
    if keywords is not None and (
        not isinstance(keywords, list) or not all(isinstance(k, str) for k in keywords)
    ):
        errors.append(f"{prefix}.install_probe.keywords: Must be a list of strings")
    if not probe.get("path") and not keywords:
        errors.append(f"{prefix}.install_probe: Needs a path or keywords")


def _validate_prerequisites(app: dict[str, Any], prefix: str, errors: list[str]) -> None:
    prereqs = app.get("prerequisites")
    if prereqs is None:
        return
    if not isinstance(prereqs, list):
        errors.append(f"{prefix}.prerequisites: Must be a list")
        return
    for idx, prereq in enumerate(prereqs):
        where = f"{prefix}.prerequisites[{idx}]"
        if not isinstance(prereq, dict):
            errors.append(f"{where}: Must be a dictionary")
            continue
        if not isinstance(prereq.get("name"), str) or not prereq.get("name"):
            errors.append(f"{where}.name: Required")
        keywords = prereq.get("keywords")
        if (
            not isinstance(keywords, list)
            or not keywords
            or not all(isinstance(k, str) for k in keywords)
        ):
            errors.append(f"{where}.keywords: Must be a non-empty list of strings")
        if "required" in prereq and not isinstance(prereq["required"], bool):
            errors.append(f"{where}.required: Must be true or false")


def _validate_sources(
    app: dict[str, Any], prefix: str, errors: list[str], warnings: list[str]
) -> None:
    logger = get_global_logger()
    if "sources" not in app:
        errors.append(f"{prefix}.sources: Required")
        return
    sources = app["sources"]
    if not isinstance(sources, list) or not sources:
        errors.append(f"{prefix}.sources: Must be a non-empty list")
        return

    for idx, source in enumerate(sources):
        where = f"{prefix}.sources[{idx}]"
        if not isinstance(source, dict):
            errors.append(f"{where}: Must be a dictionary")
            continue
        strategy_name = source.get("strategy")
        if not strategy_name:
            errors.append(f"{where}.strategy: Required")
            continue
        if not isinstance(strategy_name, str):
            errors.append(f"{where}.strategy: Must be a string")
            continue

        role = "primary" if idx == 0 else "fallback"
        logger.verbose("VALIDATION", f"{where} ({role}) uses strategy: {strategy_name}")

        try:
            source_class = get_source_class(strategy_name)
        except ConfigError as err:
            errors.append(f"{where}.strategy: {err}")
            continue
        for error in source_class.validate_config(source):
            errors.append(f"{where}: {error}")

    last = sources[-1]
    if isinstance(last, dict) and last.get("strategy") != "static_url":
        warnings.append(
            f"{prefix}.sources: Last source is not static_url; "
            "resolution can end with no artifact"
        )


def app_section_errors(app: dict[str, Any], prefix: str = "app") -> list[str]:
    """Errors in an app's install_probe and prerequisites sections.

    Used on the run path, where a malformed section must stop the run
    before anything is probed.
    """
    errors: list[str] = []
    _validate_probe(app, prefix, errors, [])
    _validate_prerequisites(app, prefix, errors)
    return errors


def _read_recipe(recipe_path: Path, errors: list[str]) -> dict[str, Any] | None:
    if not recipe_path.is_file():
        errors.append(f"Recipe file not found: {recipe_path}")
        return None
    try:
        document = yaml.safe_load(recipe_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as err:
        errors.append(f"Invalid YAML syntax: {err}")
        return None
    except OSError as err:
        errors.append(f"Cannot read recipe: {err}")
        return None
    if not isinstance(document, dict):
        errors.append("recipe: Must be a mapping at the top level")
        return None
    return document


def _validate_app(app: Any, prefix: str, errors: list[str], warnings: list[str]) -> None:
    if not isinstance(app, dict):
        errors.append(f"{prefix}: Must be a dictionary")
        return

    for field in ("name", "id"):
        value = app.get(field)
        if field not in app:
            errors.append(f"{prefix}.{field}: Required")
        elif not isinstance(value, str) or not value.strip():
            errors.append(f"{prefix}.{field}: Must be a non-empty string")
    if "log_name" in app and not isinstance(app["log_name"], str):
        errors.append(f"{prefix}.log_name: Must be a string")

    _validate_probe(app, prefix, errors, warnings)
    _validate_prerequisites(app, prefix, errors)
    _validate_sources(app, prefix, errors, warnings)


def validate_recipe(recipe_path: Path) -> ValidationResult:
    """Validate a recipe file offline.

    Only the recipe itself is checked; org and vendor defaults are not
    merged, and no URL is contacted.

    Args:
        recipe_path: Path to the recipe YAML file to validate.

    Returns:
        ValidationResult with status "valid" or "invalid". Warnings never
            make a recipe invalid.
    """
    logger = get_global_logger()
    recipe_path = Path(recipe_path)
    errors: list[str] = []
    warnings: list[str] = []

    logger.verbose("VALIDATION", f"Validating recipe: {recipe_path}")

    recipe = _read_recipe(recipe_path, errors)
    if recipe is None:
        return _invalid(recipe_path, errors, warnings)

    api_version = recipe.get("apiVersion")
    if api_version is None:
        errors.append("apiVersion: Required")
    elif api_version != SUPPORTED_API_VERSION:
        warnings.append(
            f"apiVersion: '{api_version}' is not {SUPPORTED_API_VERSION} and may not load"
        )

    apps = recipe.get("apps")
    if not isinstance(apps, list) or not apps:
        errors.append("apps: Must be a non-empty list" if "apps" in recipe else "apps: Required")
        return _invalid(recipe_path, errors, warnings)
    if len(apps) > 1:
        warnings.append("apps: Only the first app in a recipe is deployed")

    for idx, app in enumerate(apps):
        _validate_app(app, f"apps[{idx}]", errors, warnings)

    if errors:
        logger.verbose("VALIDATION", f"Recipe has {len(errors)} error(s)")
    else:
        logger.verbose("VALIDATION", "Recipe is valid")

    return ValidationResult(
        status="invalid" if errors else "valid",
        errors=errors,
        warnings=warnings,
        app_count=len(apps),
        recipe_path=str(recipe_path),
    )
