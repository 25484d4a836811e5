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

"""HTTP(S) access for autodeploy.

Every network call of a run goes through a requests.Session built here, so
retry policy, TLS floor and User-Agent are set in one place.

Key Features:

- **Retry Logic with Exponential Backoff** - Retries 429/500/502/503/504 for
  GET and HEAD via urllib3.util.Retry.
- **TLS 1.2 Minimum** - All HTTPS connections refuse protocol versions below
  TLS 1.2.
- **Error Mapping** - HTTP 404 becomes NotFoundError; every other transport
  or HTTP failure becomes NetworkError. Callers never see raw requests
  exceptions.
- **Atomic Writes** - Downloads go to <filename>.part and are renamed on
  success, so a partial file never looks complete.
- **Streaming SHA-256** - The digest is computed while writing.

Constants:

- DEFAULT_CHUNK (int): Stream chunk size (1 MiB).

Example:
    >>> from pathlib import Path
    >>> from autodeploy.io import download_file, fetch_text
    >>> html = fetch_text("https://vendor.example/releases.html")
    >>> path, sha256 = download_file(
    ...     "https://vendor.example/app.msi", Path("./work")
    ... )
"""

from __future__ import annotations

import hashlib
from pathlib import Path
import ssl
import time
from typing import Any
from urllib.parse import urlparse

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry
from urllib3.util.ssl_ import create_urllib3_context

from autodeploy.exceptions import NetworkError, NotFoundError

# Stream size per chunk (1 MiB).
DEFAULT_CHUNK = 1024 * 1024

USER_AGENT = "autodeploy/0.1"


class TLS12HTTPAdapter(HTTPAdapter):
    """HTTPAdapter whose connections require TLS 1.2 or newer."""

    def init_poolmanager(self, *args: Any, **kwargs: Any) -> None:
        context = create_urllib3_context(ssl_minimum_version=ssl.TLSVersion.TLSv1_2)
        context.load_default_certs()
        kwargs["ssl_context"] = context
        super().init_poolmanager(*args, **kwargs)


def _filename_from_cd(content_disposition: str) -> str | None:
    """
    Extract a filename from a Content-Disposition header if present.

    Example header:
      'attachment; filename="setup.msi"'
    """
    if not content_disposition:
        return None
    for part in (s.strip() for s in content_disposition.split(";")):
        if part.lower().startswith("filename="):
            value = part.split("=", 1)[1].strip().strip('"')
            return value or None
    return None


def filename_from_url(url: str) -> str:
    """Derive a filename from the URL path. Falls back to a generic name."""
    name = Path(urlparse(url).path).name
    return name or "download.bin"


def make_session() -> requests.Session:
    """
    Create a requests.Session with retry/backoff defaults and a TLS 1.2 floor.

    - Retries on common transient status codes (GET/HEAD only).
    - Applies exponential backoff.
    - Sets a User-Agent so vendors can identify the traffic.
    """
    s = requests.Session()
    retries = Retry(
        total=5,
        backoff_factor=0.5,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=("GET", "HEAD"),
        raise_on_status=False,
    )
    s.headers.update({"User-Agent": USER_AGENT})
    s.mount("http://", HTTPAdapter(max_retries=retries))
    s.mount("https://", TLS12HTTPAdapter(max_retries=retries))
    return s


def _raise_for_status(resp: requests.Response, url: str) -> None:
    if resp.status_code == 404:
        raise NotFoundError(url)
    try:
        resp.raise_for_status()
    except requests.HTTPError as err:
        raise NetworkError(f"HTTP {resp.status_code} {resp.reason} for {url}") from err


def fetch_text(
    url: str,
    *,
    session: requests.Session | None = None,
    timeout: int = 30,
) -> str:
    """GET a page and return its body as text.

    Raises:
        NotFoundError: On HTTP 404.
        NetworkError: On any other HTTP or transport failure.
    """
    from autodeploy.logging import get_global_logger

    logger = get_global_logger()
    logger.verbose("HTTP", f"GET {url}")
    sess = session or make_session()
    try:
        resp = sess.get(url, timeout=timeout)
    except requests.RequestException as err:
        raise NetworkError(f"Failed to fetch {url}: {err}") from err
    _raise_for_status(resp, url)
    logger.debug("HTTP", f"Response: {resp.status_code} ({len(resp.text)} bytes)")
    return resp.text


def check_url(
    url: str,
    *,
    session: requests.Session | None = None,
    timeout: int = 30,
) -> None:
    """Confirm an artifact URL is reachable without downloading it.

    Sends HEAD (following redirects). Servers that reject HEAD with 405/501
    get a streamed GET whose body is never read.

    Raises:
        NotFoundError: On HTTP 404.
        NetworkError: On any other HTTP or transport failure.
    """
    from autodeploy.logging import get_global_logger

    logger = get_global_logger()
    sess = session or make_session()
    try:
        logger.debug("HTTP", f"HEAD {url}")
        resp = sess.head(url, allow_redirects=True, timeout=timeout)
        if resp.status_code in (405, 501):
            logger.debug("HTTP", f"HEAD rejected ({resp.status_code}), retrying with GET")
            resp = sess.get(url, stream=True, allow_redirects=True, timeout=timeout)
            resp.close()
    except requests.RequestException as err:
        raise NetworkError(f"Failed to reach {url}: {err}") from err
    _raise_for_status(resp, url)


def download_file(
    url: str,
    destination_folder: Path,
    *,
    file_name: str | None = None,
    expected_sha256: str | None = None,
    timeout: int = 60,
    session: requests.Session | None = None,
) -> tuple[Path, str]:
    """Download a URL into destination_folder with a synchronous streamed GET.

    Follows redirects and retries transient failures. Writes to
    <filename>.part then renames to <filename> on success.

    Args:
        url: Source URL.
        destination_folder: Folder to save into (created if missing).
        file_name: Name to save as. Default: Content-Disposition, then URL.
        expected_sha256: Optional known SHA-256 (hex); a mismatch deletes
            the file and raises NetworkError.
        timeout: Per-request timeout (seconds).
        session: Session to reuse. A new one is created when omitted.

    Returns:
        A tuple (file_path, sha256_hex).

    Raises:
        NotFoundError: On HTTP 404.
        NetworkError: On other HTTP/transport failures or checksum mismatch.
    """
    from autodeploy.logging import get_global_logger

    logger = get_global_logger()
    destination_folder = Path(destination_folder)
    destination_folder.mkdir(parents=True, exist_ok=True)

    logger.verbose("HTTP", f"GET {url}")
    sess = session or make_session()
    try:
        resp = sess.get(url, stream=True, allow_redirects=True, timeout=timeout)
    except requests.RequestException as err:
        raise NetworkError(f"download failed for {url}: {err}") from err

    try:
        _raise_for_status(resp, url)

        # Explicit name beats Content-Disposition, which beats the URL.
        cd_name = _filename_from_cd(resp.headers.get("Content-Disposition", ""))
        filename = file_name or cd_name or filename_from_url(resp.url or url)
        target = destination_folder / filename
        tmp = target.with_suffix(target.suffix + ".part")
        logger.verbose("FILE", f"Downloading to: {tmp}")

        sha = hashlib.sha256()
        started_at = time.time()
        try:
            with tmp.open("wb") as f:
                for chunk in resp.iter_content(chunk_size=DEFAULT_CHUNK):
                    if not chunk:
                        continue
                    f.write(chunk)
                    sha.update(chunk)
        except requests.RequestException as err:
            tmp.unlink(missing_ok=True)
            raise NetworkError(f"download interrupted for {url}: {err}") from err
    finally:
        resp.close()

    tmp.replace(target)
    digest = sha.hexdigest()

    if expected_sha256 and digest.lower() != expected_sha256.lower():
        target.unlink(missing_ok=True)
        raise NetworkError(
            f"sha256 mismatch for {filename}: got {digest}, expected {expected_sha256}"
        )

    elapsed = time.time() - started_at
    logger.verbose("FILE", f"Download complete: {target} ({digest}) in {elapsed:.1f}s")
    return target, digest
