"""Resolve Douyin share text to a downloadable media URL and title.

WHY: Users paste whatever the Douyin app copies to the clipboard: a line
of text with a short link somewhere in it. Transcription needs a direct
media URL and a file-safe title.

HOW: Pull the first URL out of the text, follow its redirect to learn the
video id, fetch the iesdouyin share page, and read the embedded
window._ROUTER_DATA JSON for the play address. The watermarked "playwm"
address is rewritten to the plain "play" one.

RULES:
- Requests use a mobile Safari User-Agent (the share page is mobile-only)
- Every parsing failure raises ShareParseError with the reason
- Titles fall back to "douyin_<video id>" and are sanitized for file names
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import asdict, dataclass
from typing import Any
from urllib.parse import urlparse

import httpx

from douyin_transcriber.config import MOBILE_USER_AGENT, SHARE_PAGE_URL
from douyin_transcriber.errors import ShareParseError

logger = logging.getLogger(__name__)

_URL_RE = re.compile(
    r"http[s]?://(?:[a-zA-Z]|[0-9]|[$-_@.&+]|[!*\(\),]|(?:%[0-9a-fA-F][0-9a-fA-F]))+"
)
_ROUTER_DATA_RE = re.compile(r"window\._ROUTER_DATA\s*=\s*(.*?)</script>", re.DOTALL)
_UNSAFE_TITLE_CHARS = re.compile(r'[\\/:*?"<>|]')

_PAGE_KEYS = ("video_(id)/page", "note_(id)/page")


@dataclass(frozen=True)
class ShareInfo:
    """Everything learned while resolving one share."""

    video_id: str
    title: str
    download_url: str
    raw_url: str
    share_url: str
    redirected_url: str
    page_url: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


def extract_first_url(text: str) -> str | None:
    match = _URL_RE.search(text or "")
    return match.group(0) if match else None


def sanitize_title(title: Any) -> str:
    return _UNSAFE_TITLE_CHARS.sub("_", str(title or ""))


def parse_video_id(final_url: str) -> str:
    """Take the video id from the path of the post-redirect URL.

    RULES:
    - The id is the last path segment
    - A trailing "video" or "note" segment is skipped
    """
    parsed = urlparse(final_url)
    if not parsed.scheme or not parsed.netloc:
        raise ShareParseError("Cannot parse redirected URL: {}".format(final_url))

    parts = [p for p in parsed.path.split("/") if p]
    if not parts:
        raise ShareParseError("Redirected URL has no path: {}".format(final_url))

    last = parts[-1]
    if last in ("video", "note") and len(parts) >= 2:
        last = parts[-2]
    return last


def extract_router_data(html: str) -> dict[str, Any]:
    match = _ROUTER_DATA_RE.search(html)
    if not match or not match.group(1):
        raise ShareParseError("window._ROUTER_DATA not found in share page HTML")

    raw = re.sub(r";\s*$", "", match.group(1).strip())
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise ShareParseError("Invalid window._ROUTER_DATA JSON: {}".format(exc)) from exc
    if not isinstance(data, dict):
        raise ShareParseError("window._ROUTER_DATA is not a JSON object")
    return data


def pick_video_info(router_data: dict[str, Any]) -> dict[str, Any]:
    """Find videoInfoRes in loaderData, preferring the video and note pages."""
    loader_data = router_data.get("loaderData")
    if not isinstance(loader_data, dict):
        raise ShareParseError("window._ROUTER_DATA has no loaderData")

    for key in _PAGE_KEYS:
        page = loader_data.get(key)
        if isinstance(page, dict) and page.get("videoInfoRes"):
            return page["videoInfoRes"]

    for page in loader_data.values():
        if isinstance(page, dict) and page.get("videoInfoRes"):
            return page["videoInfoRes"]

    raise ShareParseError("videoInfoRes not found in window._ROUTER_DATA.loaderData")


def _first_item(video_info: dict[str, Any]) -> dict[str, Any]:
    items = video_info.get("item_list") if isinstance(video_info, dict) else None
    if not isinstance(items, list) or not items or not isinstance(items[0], dict):
        raise ShareParseError("videoInfoRes.item_list is empty")
    return items[0]


def _play_url(item: dict[str, Any]) -> str:
    video = item.get("video") or {}
    play_addr = video.get("play_addr") or {}
    urls = play_addr.get("url_list")
    if not isinstance(urls, list) or not urls or not urls[0]:
        raise ShareParseError("item.video.play_addr.url_list[0] is missing")
    return str(urls[0])


def share_info_from_html(
    html: str,
    video_id: str,
    share_url: str,
    redirected_url: str,
    page_url: str,
) -> ShareInfo:
    """Build a ShareInfo from an already-fetched share page."""
    item = _first_item(pick_video_info(extract_router_data(html)))
    raw_url = _play_url(item)

    desc = str(item.get("desc") or "").strip()
    title = sanitize_title(desc if desc else "douyin_{}".format(video_id))

    return ShareInfo(
        video_id=video_id,
        title=title,
        download_url=raw_url.replace("playwm", "play"),
        raw_url=raw_url,
        share_url=share_url,
        redirected_url=redirected_url,
        page_url=page_url,
    )


async def resolve_share(
    share_text: str,
    client: httpx.AsyncClient | None = None,
) -> ShareInfo:
    """Resolve share text to a ShareInfo.

    WHY: The short link only redirects; the media address lives in the
    JSON embedded in the share page.

    HOW: Two GETs with redirect following: the short link (for the final
    URL and video id) and the share page (for the router data).

    RULES:
    - Raises ShareParseError if the text has no URL or the page cannot be parsed
    - Raises ShareParseError on a non-2xx response
    - An injected client is used as-is and not closed
    """
    share_url = extract_first_url(share_text)
    if not share_url:
        raise ShareParseError("No share link found in the given text")

    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(
            headers={"User-Agent": MOBILE_USER_AGENT},
            follow_redirects=True,
            timeout=httpx.Timeout(30.0),
        )

    try:
        resp = await client.get(share_url, headers={"User-Agent": MOBILE_USER_AGENT})
        if resp.is_error:
            raise ShareParseError(
                "Share link request failed: {} {}".format(resp.status_code, resp.reason_phrase)
            )
        redirected_url = str(resp.url)
        video_id = parse_video_id(redirected_url)
        logger.debug("Share %s redirected to %s (video %s)", share_url, redirected_url, video_id)

        page_url = SHARE_PAGE_URL.format(video_id=video_id)
        page = await client.get(page_url, headers={"User-Agent": MOBILE_USER_AGENT})
        if page.is_error:
            raise ShareParseError(
                "Share page request failed: {} {}".format(page.status_code, page.reason_phrase)
            )
    finally:
        if owns_client:
            await client.aclose()

    info = share_info_from_html(page.text, video_id, share_url, redirected_url, page_url)
    logger.info("Resolved share %s to video %s (%s)", share_url, info.video_id, info.title)
    return info
