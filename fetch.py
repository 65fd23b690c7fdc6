"""
Remote Fetcher - stream a file from the access portal into scratch storage.

Each download gets its own uuid-named destination so concurrent fetches
never collide. There is no retry: one failed attempt is returned to the
caller as a failed FetchResult.
"""

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Optional, Callable

import httpx

from errors import FetchError

logger = logging.getLogger(__name__)


DEFAULT_TIMEOUT = 60.0
DEFAULT_FETCH_CHUNK_SIZE = 1024 * 1024  # 1MB

ProgressCallback = Callable[[int, Optional[int]], None]


@dataclass(frozen=True)
class FetchResult:
    """Outcome of one remote fetch."""

    url: str
    path: Optional[Path]
    bytes_written: int = 0
    total: Optional[int] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None


class RemoteFetcher:
    """Streams {base_url}/{identifier}/{logical_path} to a scratch directory."""

    def __init__(
        self,
        base_url: str,
        scratch_dir: Path,
        client: Optional[httpx.Client] = None,
        timeout: float = DEFAULT_TIMEOUT,
        chunk_size: int = DEFAULT_FETCH_CHUNK_SIZE,
        keep_partial: bool = True,
    ):
        """
        Args:
            base_url: Portal endpoint, e.g. https://portal.example.org/stream
            scratch_dir: Where downloads are written (created if missing)
            client: Shared httpx.Client (one is created and owned if None)
            timeout: Per-request timeout in seconds for an owned client
            chunk_size: Stream chunk size
            keep_partial: Keep the partial file of a failed download for inspection
        """
        self.base_url = base_url
        self.scratch_dir = Path(scratch_dir)
        self.chunk_size = chunk_size
        self.keep_partial = keep_partial

        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=timeout, follow_redirects=True)

        self.scratch_dir.mkdir(parents=True, exist_ok=True)

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> "RemoteFetcher":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def build_url(self, identifier: str, logical_path: str) -> str:
        """
        Join endpoint, identifier and logical path with single slashes.

        No percent-encoding is applied; identifiers must already be path-safe.
        """
        return "/".join(
            [
                self.base_url.rstrip("/"),
                identifier.strip("/"),
                logical_path.lstrip("/"),
            ]
        )

    def destination_for(self, logical_path: str) -> Path:
        """Collision-free scratch path that keeps the file's basename for readability."""
        basename = PurePosixPath(logical_path).name or "download"
        return self.scratch_dir / f"{uuid.uuid4().hex}.{basename}"

    def fetch(
        self,
        identifier: str,
        logical_path: str,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> FetchResult:
        """
        Download one file.

        Success is only reported after the local write has finished and,
        when the server declared a Content-Length, the byte count matches it.
        """
        url = self.build_url(identifier, logical_path)
        dest = self.destination_for(logical_path)
        progress = {"bytes": 0, "total": None}

        logger.debug("GET %s -> %s", url, dest)

        try:
            self._stream_to_file(url, dest, progress, progress_callback)
        except FetchError as e:
            logger.debug("fetch failed for %s: %s", url, e)
            kept: Optional[Path] = dest if dest.exists() else None
            if kept is not None and not self.keep_partial:
                kept.unlink(missing_ok=True)
                kept = None
            return FetchResult(
                url=url,
                path=kept,
                bytes_written=progress["bytes"],
                total=progress["total"],
                error=str(e),
            )

        return FetchResult(
            url=url,
            path=dest,
            bytes_written=progress["bytes"],
            total=progress["total"],
        )

    def _stream_to_file(
        self,
        url: str,
        dest: Path,
        progress: dict,
        progress_callback: Optional[ProgressCallback],
    ) -> None:
        try:
            # Leaving this block closes the response, so a write failure
            # also abandons the read stream.
            with self.client.stream(
                "GET", url, headers={"Accept-Encoding": "identity"}
            ) as response:
                response.raise_for_status()

                total = self._declared_length(response)
                progress["total"] = total

                with open(dest, "wb") as f:
                    for chunk in response.iter_bytes(chunk_size=self.chunk_size):
                        if not chunk:
                            continue
                        f.write(chunk)
                        progress["bytes"] += len(chunk)

                        if progress_callback:
                            progress_callback(progress["bytes"], total)

        except httpx.HTTPStatusError as e:
            raise FetchError(
                f"HTTP {e.response.status_code} for {url}"
            ) from e
        except httpx.HTTPError as e:
            raise FetchError(f"Network error for {url}: {e}") from e
        except httpx.InvalidURL as e:
            raise FetchError(f"Invalid URL {url!r}: {e}") from e
        except httpx.StreamError as e:
            raise FetchError(f"Stream error for {url}: {e}") from e
        except OSError as e:
            raise FetchError(f"Write error for {dest}: {e}") from e

        total = progress["total"]
        if total is not None and progress["bytes"] != total:
            raise FetchError(
                f"Size mismatch for {url}: expected {total}, got {progress['bytes']}"
            )

    @staticmethod
    def _declared_length(response: httpx.Response) -> Optional[int]:
        # Content-Length describes the encoded body, not what iter_bytes yields
        if response.headers.get("Content-Encoding", "identity") != "identity":
            return None
        value = response.headers.get("Content-Length")
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            return None
