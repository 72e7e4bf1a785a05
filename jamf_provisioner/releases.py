"""
Latest macOS release lookup.

Reads Apple's developer releases RSS feed and returns the version of the
newest non-beta macOS release, e.g. "macOS 14.4 (23E214)" -> "14.4".
"""

import logging
from typing import Optional, Union

import defusedxml.ElementTree as ET
import requests
from requests.exceptions import RequestException

from jamf_provisioner.config.settings import DEFAULT_RELEASES_FEED

logger = logging.getLogger(__name__)


def parse_latest_version(feed: Union[str, bytes]) -> Optional[str]:
    """
    Extract the newest non-beta macOS version from an RSS document.

    Items are in publication order, newest first. A matching title looks
    like "macOS Sonoma 14.4 (23E214)"; the version is its third word.

    Returns:
        Version string, or None when no item matches
    """
    try:
        root = ET.fromstring(feed.strip())
    except ET.ParseError as e:
        logger.warning(f"Releases feed is not valid XML: {e}")
        return None

    for item in root.iter("item"):
        title = (item.findtext("title") or "").strip()
        if not title.startswith("macOS") or "beta" in title.lower():
            continue
        words = title.split()
        if len(words) >= 3:
            return words[2]
    return None


def fetch_latest_version(
    feed_url: str = DEFAULT_RELEASES_FEED,
    timeout: int = 10,
) -> Optional[str]:
    """
    Download the releases feed and return the latest macOS version.

    Never raises; a failed lookup returns None so the caller can ask the
    operator instead.
    """
    try:
        response = requests.get(feed_url, timeout=timeout)
        response.raise_for_status()
    except RequestException as e:
        logger.warning(f"Could not fetch releases feed {feed_url}: {e}")
        return None

    version = parse_latest_version(response.content)
    if version is None:
        logger.warning(f"No macOS release found in {feed_url}")
    else:
        logger.info(f"Latest macOS release: {version}")
    return version
