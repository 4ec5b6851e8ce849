"""HTTP access shared by every source adapter."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Any

from requests import RequestException, Session
from tqdm import tqdm

from .errors import NotFoundError, TransportError

logger = logging.getLogger(__name__)

PROJECT_URL = "https://github.com/depfetch/depfetch"
DEFAULT_CONNECT_TIMEOUT = 30.0
DEFAULT_READ_TIMEOUT = 30.0
DEFAULT_DOWNLOAD_TIMEOUT = 300.0
CHUNK_SIZE = 8192
PARTIAL_SUFFIX = ".part"
HTTP_NOT_FOUND = 404
HTTP_BAD_REQUEST = 400
RATE_LIMIT_WARNING = 10


def default_user_agent() -> str:
    from .depfetch import version  # noqa: PLC0415

    return f"depfetch/{version()} (+{PROJECT_URL})"


class HttpClient:
    """A `requests` session with the client identifier, timeouts and error mapping every source needs."""

    def __init__(
        self,
        user_agent: str | None = None,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        download_timeout: float = DEFAULT_DOWNLOAD_TIMEOUT,
    ) -> None:
        """Initialize the client.

        Args:
            user_agent: client identifier sent with every request
            connect_timeout: seconds to wait for a connection
            read_timeout: seconds to wait for a JSON response
            download_timeout: seconds to wait between bytes of an artifact download

        """
        self.session = Session()
        self.session.headers["User-Agent"] = user_agent or default_user_agent()
        self.session.headers["Accept"] = "application/json"
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.download_timeout = download_timeout

    def get_json(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        dependency: str | None = None,
    ) -> Any:  # noqa: ANN401
        """GET a URL and decode its JSON body.

        Raises:
            NotFoundError: on HTTP 404
            TransportError: on any other failure

        """
        logger.debug("GET %s %s", url, params or "")
        try:
            response = self.session.get(
                url, params=params, headers=headers, timeout=(self.connect_timeout, self.read_timeout)
            )
        except RequestException as e:
            msg = f"Request to {url} failed: {e}"
            raise TransportError(msg, dependency) from e

        remaining = response.headers.get("X-RateLimit-Remaining")
        if remaining is not None and remaining.isdigit() and int(remaining) < RATE_LIMIT_WARNING:
            logger.warning("API rate limit low for %s: %s requests remaining", url, remaining)

        if response.status_code == HTTP_NOT_FOUND:
            msg = f"Not found: {url}"
            raise NotFoundError(msg, dependency)
        if response.status_code >= HTTP_BAD_REQUEST:
            msg = f"HTTP {response.status_code} from {url}"
            raise TransportError(msg, dependency)
        try:
            return response.json()
        except ValueError as e:
            msg = f"Invalid JSON from {url}: {e}"
            raise TransportError(msg, dependency) from e

    def download(self, url: str, target: Path | str, dependency: str | None = None) -> Path:
        """Stream a file to `target`.

        The body is written to a ``.part`` file beside the target and renamed into place once
        complete, so the target path never holds a partial artifact.

        Returns:
            the target path

        Raises:
            NotFoundError: on HTTP 404
            TransportError: on any other failure; the partial file is removed

        """
        target = Path(target)
        target.parent.mkdir(parents=True, exist_ok=True)
        partial = target.with_name(target.name + PARTIAL_SUFFIX)
        logger.info("Downloading %s from %s", target.name, url)
        try:
            response = self.session.get(url, stream=True, timeout=(self.connect_timeout, self.download_timeout))
            try:
                if response.status_code == HTTP_NOT_FOUND:
                    msg = f"Not found: {url}"
                    raise NotFoundError(msg, dependency)
                if response.status_code >= HTTP_BAD_REQUEST:
                    msg = f"HTTP {response.status_code} downloading {url}"
                    raise TransportError(msg, dependency)
                total = int(response.headers.get("Content-Length", 0)) or None
                with (
                    partial.open("wb") as f,
                    tqdm(
                        desc=target.name,
                        total=total,
                        unit="B",
                        unit_scale=True,
                        leave=False,
                        disable=not sys.stderr.isatty(),
                    ) as progress,
                ):
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        if chunk:
                            f.write(chunk)
                            progress.update(len(chunk))
            finally:
                response.close()
            os.replace(partial, target)
        except (NotFoundError, TransportError):
            partial.unlink(missing_ok=True)
            raise
        except (RequestException, OSError) as e:
            partial.unlink(missing_ok=True)
            msg = f"Download of {url} failed: {e}"
            raise TransportError(msg, dependency) from e
        return target

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> HttpClient:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()
