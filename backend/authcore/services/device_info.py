"""Human-readable device description from a User-Agent string."""

from __future__ import annotations

import logging
import re
from typing import Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

UNKNOWN_OS = "Unknown OS"
UNKNOWN_BROWSER = "Unknown Browser"

# First match wins; order matters (e.g. specific Windows versions before "Windows").
_OS_MARKERS: Sequence[Tuple[str, str]] = (
    ("Windows NT 10.0", "Windows 10"),
    ("Windows NT 6.3", "Windows 8.1"),
    ("Windows NT 6.2", "Windows 8"),
    ("Windows NT 6.1", "Windows 7"),
    ("Windows", "Windows"),
)

_MACOS_VERSIONS: Sequence[Tuple[str, str]] = (
    ("Mac OS X 10_15", "macOS Catalina"),
    ("Mac OS X 11", "macOS Big Sur"),
    ("Mac OS X 12", "macOS Monterey"),
    ("Mac OS X 13", "macOS Ventura"),
    ("Mac OS X 14", "macOS Sonoma"),
    ("Mac OS X 15", "macOS Sequoia"),
)

_ANDROID_VERSION = re.compile(r"Android ([^;)]+)")
_IOS_VERSION = re.compile(r"OS (\d+)_")


def extract_os(user_agent: str) -> str:
    for marker, name in _OS_MARKERS:
        if marker in user_agent:
            return name

    if "iPhone" in user_agent or "iPad" in user_agent:
        match = _IOS_VERSION.search(user_agent)
        return f"iOS {match.group(1)}" if match else "iOS"

    if "Mac OS X" in user_agent:
        for marker, name in _MACOS_VERSIONS:
            if marker in user_agent:
                return name
        return "macOS"

    if "Android" in user_agent:
        match = _ANDROID_VERSION.search(user_agent)
        return f"Android {match.group(1).strip()}" if match else "Android"

    if "Ubuntu" in user_agent:
        return "Ubuntu"
    if "CrOS" in user_agent:
        return "Chrome OS"
    if "Linux" in user_agent:
        return "Linux"
    return UNKNOWN_OS


def extract_browser(user_agent: str) -> str:
    mobile = "Mobile" in user_agent
    # Edge and Opera both embed "Chrome/"; Chrome embeds "Safari/".
    if "Edg/" in user_agent:
        return "Edge"
    if "OPR/" in user_agent or "Opera/" in user_agent:
        return "Opera"
    if "Chrome/" in user_agent:
        return "Chrome Mobile" if mobile else "Chrome"
    if "Firefox/" in user_agent:
        return "Firefox Mobile" if mobile else "Firefox"
    if "Safari/" in user_agent:
        return "Safari Mobile" if mobile else "Safari"
    if "MSIE" in user_agent or "Trident/" in user_agent:
        return "Internet Explorer"
    return UNKNOWN_BROWSER


def extract_device_type(user_agent: str) -> str:
    if "iPad" in user_agent or "Tablet" in user_agent:
        return "Tablet"
    if "Mobile" in user_agent or "Android" in user_agent or "iPhone" in user_agent:
        return "Mobile"
    return "Desktop"


def describe_device(user_agent: Optional[str]) -> Optional[str]:
    """
    Summarise a User-Agent as "<os> - <browser> - <device type>".

    Returns None for a missing or blank User-Agent.
    """
    if not user_agent or not user_agent.strip():
        return None
    description = f"{extract_os(user_agent)} - {extract_browser(user_agent)} - {extract_device_type(user_agent)}"
    logger.debug("Device info extracted: %s", description)
    return description[:255]
