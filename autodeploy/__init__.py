"""
autodeploy - unattended Windows application deployment

Keeps a single application on a managed Windows machine current. A run
checks whether the application is installed, resolves the artifact to
install from vendor sources, downloads it and drives a silent installation,
recording a timestamped run log and an exit code for the scheduler.

autodeploy provides:
  - Declarative YAML recipes layered over organization and vendor defaults
  - Artifact sources for JSON catalogs, scraped release notes and fixed URLs
  - A resolution cascade that falls back from newest to older versions to a
    static URL, without aborting on one bad page
  - Background (BITS) downloads with a direct HTTP fallback
  - msiexec installs and patches with exit-code classification

Quick Start
-----------
Validate a recipe:

    $ autodeploy validate recipes/Adobe/reader.yaml

Deploy an application:

    $ autodeploy run recipes/Adobe/reader.yaml

Deploy a bundled application from a scheduled task:

    $ autodeploy-edge

Package Structure
-----------------
cli : module
    Command-line interface with argparse.
core : module
    Run orchestration.
config : package
    YAML configuration loading and the per-run context.
sources : package
    Artifact sources (structured_api, scraped_html, static_url).
cascade : module
    Resolution state machine.
probe : module
    Installation and prerequisite state.
executor : module
    Download, install and exit-code classification.
io : package
    HTTP and background transfers.

Public API
----------
    from autodeploy.core import deploy_recipe, resolve_recipe
    from autodeploy.validation import validate_recipe
    from autodeploy.config import load_effective_config

Project Information
-------------------
Author: Roger Cibrian
License: Apache-2.0
"""

__version__ = "0.1.0"
__author__ = "Roger Cibrian"
__license__ = "Apache-2.0"
__description__ = "Unattended Windows application deployment"

from autodeploy.config import load_effective_config
from autodeploy.core import deploy_recipe, resolve_recipe
from autodeploy.results import RunOutcome
from autodeploy.validation import validate_recipe

__all__ = [
    "__version__",
    "__author__",
    "__license__",
    "__description__",
    "deploy_recipe",
    "resolve_recipe",
    "validate_recipe",
    "load_effective_config",
    "RunOutcome",
]
