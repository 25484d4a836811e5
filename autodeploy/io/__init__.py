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

"""Input/Output operations for autodeploy.

Modules:

download : module
    HTTP(S) session, page fetch, reachability probe and direct download.
transfer : module
    Background (BITS) transfer through PowerShell.

Example:
    from pathlib import Path
    from autodeploy.io import download_file

    file_path, sha256 = download_file(
        url="https://example.com/installer.msi",
        destination_folder=Path("./work"),
    )
"""

from .download import (
    check_url,
    download_file,
    fetch_text,
    filename_from_url,
    make_session,
)
from .transfer import background_transfer

__all__ = [
    "background_transfer",
    "check_url",
    "download_file",
    "fetch_text",
    "filename_from_url",
    "make_session",
]
