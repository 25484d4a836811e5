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

"""Exception hierarchy for autodeploy.

Each class maps onto one kind of failure a deployment run can hit, so the
orchestration layer can decide what is fatal and what only moves the
resolution cascade along:

- ConfigError: Recipe/defaults problems (YAML parse, missing fields,
    unknown source strategy)
- NetworkError: Transient network failures (DNS, timeout, connection reset,
    non-404 HTTP errors)
- NotFoundError: HTTP 404 for a candidate artifact; advances the cascade
- ParseError: An expected pattern was not found in a fetched page or
    catalog; treated like an empty result
- DownloadError: Both transfer tiers failed; fatal for the run
- InstallerError: The installer executable could not be launched; fatal
- FatalIOError: Working/log directory could not be created, or the
    downloaded file is missing after transfer; fatal

All exceptions inherit from DeployError, allowing callers to catch every
autodeploy error with a single except clause.

Example:
    Catching specific error types:
        ```python
        from autodeploy.core import deploy_recipe
        from autodeploy.exceptions import ConfigError, DeployError

        try:
            outcome = deploy_recipe(Path("recipes/Microsoft/edge.yaml"))
        except ConfigError as e:
            print(f"Recipe problem: {e}")
        except DeployError as e:
            print(f"Deployment error: {e}")
        ```
"""

from __future__ import annotations

__all__ = [
    "DeployError",
    "ConfigError",
    "NetworkError",
    "NotFoundError",
    "ParseError",
    "DownloadError",
    "InstallerError",
    "FatalIOError",
]


class DeployError(Exception):
    """Base exception for all autodeploy errors."""

    pass


class ConfigError(DeployError):
    """Raised for configuration-related errors.

    This exception is raised when there are problems with:

    - YAML parsing (syntax errors, invalid structure)
    - Missing or invalid recipe fields (no apps, no sources)
    - Unknown source strategy names
    - Missing recipe files
    """

    pass


class NetworkError(DeployError):
    """Raised for transient network failures.

    DNS failures, timeouts, connection resets and HTTP errors other than
    404 all end up here. They are retried by the two-tier transport
    fallback and, failing that, by the resolution cascade.
    """

    pass


class NotFoundError(NetworkError):
    """Raised when a URL answers HTTP 404.

    For candidate artifacts this means the version/architecture/patch
    combination does not exist on the distribution host.
    """

    def __init__(self, url: str, message: str | None = None) -> None:
        self.url = url
        super().__init__(message or f"404 Not Found: {url}")


class ParseError(DeployError):
    """Raised when an expected pattern is missing from fetched content.

    The remote page or catalog format is assumed to have changed. The
    cascade logs it and moves on, exactly as for an empty result.
    """

    pass


class DownloadError(DeployError):
    """Raised when neither the background transfer nor the direct HTTP
    download produced the artifact.
    """

    pass


class InstallerError(DeployError):
    """Raised when the installer process cannot be started at all.

    A non-zero exit code is NOT an InstallerError; it is classified into a
    Failure outcome instead.
    """

    pass


class FatalIOError(DeployError):
    """Raised for local filesystem failures that abort the run.

    Example:
        - the working directory cannot be created
        - the log directory cannot be created
        - the downloaded file is missing after a successful transfer
    """

    pass
