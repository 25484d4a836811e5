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

"""Configuration management for autodeploy.

Public API:

- load_effective_config: Load and merge configuration for a recipe
- build_run_context: Derive the per-run configuration struct
- RunContext: Explicit per-run configuration passed to every component

Example:
    from pathlib import Path
    from autodeploy.config import build_run_context, load_effective_config

    config = load_effective_config(Path("recipes/Microsoft/edge.yaml"))
    ctx = build_run_context(config)
    print(ctx.log_path)
"""

from .context import RunContext, build_run_context, sanitize_name
from .loader import load_effective_config

__all__ = ["RunContext", "build_run_context", "load_effective_config", "sanitize_name"]
