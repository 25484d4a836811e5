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

"""Command-line interface for autodeploy.

Commands:

    run: Deploy the application a recipe describes
    resolve: Resolve the artifact a run would install (no download)
    validate: Validate recipe syntax and configuration

Each bundled application also has a zero-argument command intended for a
scheduled task running with administrative rights:

    autodeploy-edge, autodeploy-reader, autodeploy-chrome

Example:
    Deploy from a recipe:
        ```bash
        $ autodeploy run recipes/Adobe/reader.yaml
        ```

    Check which artifact would be installed:
        ```bash
        $ autodeploy resolve recipes/Microsoft/edge.yaml --verbose
        ```

    Write logs and working files under a different root:
        ```bash
        $ autodeploy run recipes/Google/chrome.yaml --root D:\\AutoDeploy
        ```

Exit Codes:

- 0: Success (installer returned 0, 3010 or 1641)
- installer exit code: Installation failed with that code
- 1: Any other failure (configuration, download, exhausted sources)

Note:
    The run log under <root>/Logs is the durable record of a run. Console
    output is a convenience; --verbose echoes every run log event and
    --debug adds state transitions and the merged configuration.
"""

from __future__ import annotations

import argparse
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
import sys
import traceback

from autodeploy.core import deploy_recipe, resolve_recipe
from autodeploy.exceptions import DeployError
from autodeploy.logging import get_logger, set_global_logger
from autodeploy.validation import validate_recipe

RECIPES_DIR = Path(__file__).parent / "recipes"


def _package_version() -> str:
    try:
        return version("autodeploy")
    except PackageNotFoundError:
        return "unknown"


def _report_error(err: Exception, args: argparse.Namespace) -> None:
    print(f"Error: {err}")
    if getattr(args, "verbose", False) or getattr(args, "debug", False):
        traceback.print_exc()


def cmd_validate(args: argparse.Namespace) -> int:
    """Handler for 'autodeploy validate'.

    Returns:
        Exit code (0 for a valid recipe, 1 otherwise).
    """
    set_global_logger(get_logger(verbose=args.verbose, debug=False))

    recipe_path = Path(args.recipe).resolve()
    print(f"Validating recipe: {recipe_path}")
    print()

    result = validate_recipe(recipe_path)

    print("=" * 70)
    print("VALIDATION RESULTS")
    print("=" * 70)
    print(f"Recipe:      {result.recipe_path}")
    print(f"Status:      {result.status.upper()}")
    print(f"App Count:   {result.app_count}")
    print()

    if result.warnings:
        print(f"Warnings ({len(result.warnings)}):")
        for warning in result.warnings:
            print(f"  [WARNING] {warning}")
        print()

    if result.errors:
        print(f"Errors ({len(result.errors)}):")
        for error in result.errors:
            print(f"  [X] {error}")
        print()

    print("=" * 70)

    if result.status == "valid":
        print()
        print("[SUCCESS] Recipe is valid!")
        return 0
    print()
    print(f"[FAILED] Recipe validation failed with {len(result.errors)} error(s).")
    return 1


def cmd_resolve(args: argparse.Namespace) -> int:
    """Handler for 'autodeploy resolve'.

    Runs the resolution cascade only. Nothing is downloaded or installed.

    Returns:
        Exit code (0 when an artifact was resolved, 1 otherwise).
    """
    set_global_logger(get_logger(verbose=args.verbose, debug=args.debug))

    recipe_path = Path(args.recipe).resolve()
    if not recipe_path.exists():
        print(f"Error: Recipe file not found: {recipe_path}")
        return 1

    root = Path(args.root) if args.root else None
    try:
        result = resolve_recipe(recipe_path, root=root)
    except DeployError as err:
        _report_error(err, args)
        return 1

    print("=" * 70)
    print("RESOLUTION RESULTS")
    print("=" * 70)
    print(f"State:           {result.state}")
    print(f"Candidates:      {len(result.attempts)}")
    if result.candidate is not None:
        print(f"Version:         {result.candidate.version_label}")
        print(f"Kind:            {result.candidate.kind}")
        print(f"Strategy:        {result.candidate.source_strategy}")
        print(f"URL:             {result.candidate.download_url}")
    print("=" * 70)

    if result.resolved:
        print()
        print("[SUCCESS] Artifact resolved.")
        return 0
    print()
    print("[FAILED] No usable artifact found.")
    return 1


def cmd_run(args: argparse.Namespace) -> int:
    """Handler for 'autodeploy run'.

    Returns:
        The run's exit code (see module docstring).
    """
    set_global_logger(get_logger(verbose=args.verbose, debug=args.debug))

    recipe_path = Path(args.recipe).resolve()
    if not recipe_path.exists():
        print(f"Error: Recipe file not found: {recipe_path}")
        return 1

    return _deploy(recipe_path, args)


def _deploy(recipe_path: Path, args: argparse.Namespace) -> int:
    root = Path(args.root) if getattr(args, "root", None) else None
    try:
        outcome = deploy_recipe(recipe_path, root=root)
    except DeployError as err:
        _report_error(err, args)
        return 1

    print("=" * 70)
    print("DEPLOYMENT RESULTS")
    print("=" * 70)
    if outcome.candidate is not None:
        print(f"Version:         {outcome.candidate.version_label}")
        print(f"Strategy:        {outcome.candidate.source_strategy}")
    print(f"Downloaded:      {outcome.downloaded}")
    print(f"Installer Code:  {outcome.installed_exit_code}")
    print(f"Classification:  {outcome.classification}")
    print("=" * 70)

    if outcome.succeeded:
        print()
        print("[SUCCESS] Deployment completed.")
    else:
        print()
        print("[FAILED] Deployment failed. See the run log for details.")
    return outcome.exit_code


def _deploy_bundled(relative: str) -> None:
    """Deploy a bundled recipe with default settings and exit."""
    set_global_logger(get_logger())
    args = argparse.Namespace(verbose=False, debug=False, root=None)
    sys.exit(_deploy(RECIPES_DIR / relative, args))


def deploy_edge() -> None:
    """Entry point for 'autodeploy-edge'."""
    _deploy_bundled("Microsoft/edge.yaml")


def deploy_reader() -> None:
    """Entry point for 'autodeploy-reader'."""
    _deploy_bundled("Adobe/reader.yaml")


def deploy_chrome() -> None:
    """Entry point for 'autodeploy-chrome'."""
    _deploy_bundled("Google/chrome.yaml")


def _add_output_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Echo run log events to the console",
    )
    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Show detailed debugging output (implies --verbose)",
    )
    parser.add_argument(
        "--root",
        default=None,
        help="Root directory for logs and working files (default: from config)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="autodeploy",
        description="autodeploy - unattended Windows application deployment",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"autodeploy {_package_version()}",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        help="Available commands",
        required=True,
    )

    # 'run' command
    parser_run = subparsers.add_parser(
        "run",
        help="Resolve, download and install the application",
        description="Deploy the application a recipe describes and exit with the run's classification.",
    )
    parser_run.add_argument("recipe", help="Path to the recipe YAML file")
    _add_output_flags(parser_run)
    parser_run.set_defaults(func=cmd_run)

    # 'resolve' command
    parser_resolve = subparsers.add_parser(
        "resolve",
        help="Resolve the artifact to install (no download)",
        description="Walk the recipe's sources and report which artifact a run would install.",
    )
    parser_resolve.add_argument("recipe", help="Path to the recipe YAML file")
    _add_output_flags(parser_resolve)
    parser_resolve.set_defaults(func=cmd_resolve)

    # 'validate' command
    parser_validate = subparsers.add_parser(
        "validate",
        help="Validate recipe syntax and configuration (no network)",
        description="Check recipe YAML for syntax errors and configuration issues without making network calls.",
    )
    parser_validate.add_argument("recipe", help="Path to the recipe YAML file")
    parser_validate.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show validation progress and details",
    )
    parser_validate.set_defaults(func=cmd_validate)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the autodeploy CLI.

    Registered as the 'autodeploy' console script in pyproject.toml.
    """
    args = build_parser().parse_args(argv)
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
