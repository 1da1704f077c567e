"""Stream a media file to disk with progress reporting.

WHY: Share videos can be tens of megabytes; they should be streamed to
disk rather than held in memory, and the user should see progress.

HOW: httpx streaming GET with redirect following and the Douyin Referer.
Progress is reported through an optional callback at every new 10%
step when the server sends Content-Length.

RULES:
- Parent directories are created as needed
- Non-200 final responses raise DownloadError
- Bytes go to <name>.part, renamed over the output only on success
- A failed download leaves any existing output file untouched
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

import httpx

from douyin_transcriber.config import DOUYIN_REFERER, MOBILE_USER_AGENT
from douyin_transcriber.errors import DownloadError

logger = logging.getLogger(__name__)

DOWNLOAD_HEADERS = {
    "User-Agent": MOBILE_USER_AGENT,
    "Referer": DOUYIN_REFERER,
}
_DOWNLOAD_TIMEOUT_S = 60.0
_CHUNK_SIZE = 64 * 1024


async def download_file(
    url: str,
    output_path: str | Path,
    on_progress: Callable[[int], None] | None = None,
    client: httpx.AsyncClient | None = None,
) -> Path:
    """Download url to output_path and return the written path.

    Args:
        url: Media URL (redirects are followed).
        output_path: Destination file.
        on_progress: Called with 0, 10, ..., 100 as the download advances.
        client: Optional pre-configured client; not closed here.

    Returns:
        The output path.
    """
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(
            follow_redirects=True,
            timeout=httpx.Timeout(_DOWNLOAD_TIMEOUT_S),
        )

    part_path = path.with_name(path.name + ".part")
    opened = False

    logger.info("Downloading %s -> %s", url, path)
    try:
        async with client.stream("GET", url, headers=DOWNLOAD_HEADERS) as resp:
            if resp.status_code != 200:
                raise DownloadError(resp.status_code, url)

            total = int(resp.headers.get("content-length") or 0)
            received = 0
            last_step = -1
            with open(part_path, "wb") as f:
                opened = True
                async for chunk in resp.aiter_bytes(_CHUNK_SIZE):
                    f.write(chunk)
                    received += len(chunk)
                    if total > 0 and on_progress:
                        step = (received * 100 // total) // 10 * 10
                        if step != last_step:
                            on_progress(step)
                            last_step = step
    except BaseException:
        if opened:
            part_path.unlink(missing_ok=True)
        raise
    finally:
        if owns_client:
            await client.aclose()

    part_path.replace(path)
    logger.info("Downloaded %d bytes to %s", received, path)
    return path
