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

"""Configuration loading and merging for autodeploy.

Recipes are merged over two layers of defaults so that fleet-wide settings
(filesystem root, installer executable, target platform) live in one place:

1. **Organization defaults** (defaults/org.yaml)
   - Located by walking upward from the recipe file
   - Root directory, installer, target platform/architecture, HTTP timeout

2. **Vendor defaults** (defaults/vendors/<Vendor>.yaml)
   - Optional; vendor is the recipe's parent folder name
     (recipes/Adobe/reader.yaml -> Adobe)

3. **Recipe** (recipes/<Vendor>/<app>.yaml)
   - The application itself: name, id, install probe, prerequisites,
     ordered sources

Merge Behavior:
    - **Dicts**: Recursively merged (keys from overlay override base)
    - **Lists**: Completely replaced (NOT appended)
    - **Scalars**: Overwritten

Example:
    >>> from pathlib import Path
    >>> from autodeploy.config import load_effective_config
    >>> cfg = load_effective_config(Path("recipes/Microsoft/edge.yaml"))
    >>> cfg["apps"][0]["sources"][0]["strategy"]
    'structured_api'
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from autodeploy.exceptions import ConfigError
from autodeploy.logging import get_global_logger

ORG_DEFAULTS = "org.yaml"
VENDOR_DIR = "vendors"


def _read_layer(path: Path, label: str) -> dict[str, Any]:
    """Parse one configuration layer; every layer must be a YAML mapping."""
    if not path.is_file():
        raise ConfigError(f"{label} not found: {path}")
    try:
        text = path.read_text(encoding="utf-8")
        document = yaml.safe_load(text)
    except (OSError, yaml.YAMLError) as err:
        raise ConfigError(f"Cannot parse {label} {path}: {err}") from err
    if document is None:
        raise ConfigError(f"{label} is empty: {path}")
    if not isinstance(document, dict):
        raise ConfigError(f"{label} must be a mapping at the top level: {path}")
    return document


def merge_layers(lower: dict[str, Any], upper: dict[str, Any]) -> dict[str, Any]:
    """Return lower overlaid with upper. Neither input is modified."""
    merged = dict(lower)
    for key, value in upper.items():
        below = merged.get(key)
        if isinstance(below, dict) and isinstance(value, dict):
            merged[key] = merge_layers(below, value)
        else:
            merged[key] = value
    return merged


def find_defaults_dir(recipe_dir: Path) -> Path | None:
    """Nearest ``defaults/`` directory holding org.yaml, searching upward."""
    for directory in (recipe_dir, *recipe_dir.parents):
        defaults_dir = directory / "defaults"
        if (defaults_dir / ORG_DEFAULTS).is_file():
            return defaults_dir
    return None


def load_effective_config(
    recipe_path: Path,
    *,
    vendor: str | None = None,
) -> dict[str, Any]:
    """Load a recipe and lay it over the org and vendor defaults.

    Args:
        recipe_path: Path to the recipe YAML file.
        vendor: Vendor defaults to apply; the recipe's folder name otherwise.

    Returns:
        The merged configuration. A recipe outside any defaults tree is
        returned unchanged.

    Raises:
        ConfigError: When any layer is missing, empty, unparsable or not a
            mapping.
    """
    logger = get_global_logger()
    recipe_path = Path(recipe_path).resolve()

    logger.verbose("CONFIG", f"Loading recipe: {recipe_path}")
    recipe = _read_layer(recipe_path, "recipe file")

    layers: list[dict[str, Any]] = []
    defaults_dir = find_defaults_dir(recipe_path.parent)
    if defaults_dir is not None:
        logger.verbose("CONFIG", f"Using defaults from {defaults_dir}")
        layers.append(_read_layer(defaults_dir / ORG_DEFAULTS, "org defaults"))

        vendor_file = defaults_dir / VENDOR_DIR / f"{vendor or recipe_path.parent.name}.yaml"
        if vendor_file.is_file():
            logger.verbose("CONFIG", f"Applying vendor defaults: {vendor_file.stem}")
            layers.append(_read_layer(vendor_file, "vendor defaults"))
    layers.append(recipe)

    effective: dict[str, Any] = {}
    for layer in layers:
        effective = merge_layers(effective, layer)

    logger.debug(
        "CONFIG",
        "Effective configuration:\n"
        + yaml.safe_dump(effective, default_flow_style=False, sort_keys=False),
    )
    return effective
