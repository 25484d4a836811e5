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

"""Artifact sources for autodeploy.

Importing this package registers the three built-in variants:

    structured_api : StructuredApiSource
        JSON catalog filtered by channel, platform, architecture, extension.
    scraped_html : ScrapedHtmlSource
        Release-notes index plus per-version detail pages, newest first.
    static_url : StaticUrlSource
        One hardcoded URL, version "Latest". Used as the final fallback.

Example:
    from autodeploy.sources import create_source

    source = create_source(
        {"strategy": "static_url", "url": "https://example.com/app.msi"}, ctx
    )
    for result in source.resolve_candidates():
        print(result.unwrap().download_url)
"""

# Import source modules to trigger self-registration
from . import (
    scraped_html,  # noqa: F401
    static_url,  # noqa: F401
    structured_api,  # noqa: F401
)
from .base import ArtifactSource, create_source, get_source_class, register_source

__all__ = ["ArtifactSource", "create_source", "get_source_class", "register_source"]
