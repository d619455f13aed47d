"""Human-readable formatting for durations, times and app names."""

from __future__ import annotations

from datetime import datetime, timezone, tzinfo

# Display names for packages whose label is often missing or stale
COMMON_PACKAGES = {
    "com.whatsapp": "WhatsApp",
    "com.instagram.android": "Instagram",
    "com.google.android.youtube": "YouTube",
    "com.snapchat.android": "Snapchat",
    "com.facebook.katana": "Facebook",
    "com.twitter.android": "X / Twitter",
    "com.linkedin.android": "LinkedIn",
    "com.google.android.gm": "Gmail",
    "com.google.android.apps.maps": "Maps",
    "com.spotify.music": "Spotify",
    "com.netflix.mediaclient": "Netflix",
    "com.google.android.chrome": "Chrome",
    "com.android.chrome": "Chrome",
    "com.google.android.googlequicksearchbox": "Google",
    "com.google.android.calendar": "Calendar",
    "com.microsoft.teams": "Teams",
    "com.zhiliaoapp.musically": "TikTok",
    "com.discord": "Discord",
    "org.telegram.messenger": "Telegram",
    "com.aryan.sanary": "Sanary",
}


def format_duration(ms: int) -> str:
    """Format a duration in milliseconds, e.g. ``1h 5m``, ``8m 20s``, ``45s``."""
    seconds = max(0, ms) // 1000
    minutes, seconds = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)

    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m {seconds}s" if seconds else f"{minutes}m"
    return f"{seconds}s"


def format_time_ago(timestamp: int, now: int, tz: tzinfo = timezone.utc) -> str:
    """Format how long ago ``timestamp`` was, both in epoch milliseconds."""
    minutes = (now - timestamp) // 60_000

    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    return datetime.fromtimestamp(timestamp / 1000, tz=tz).strftime("%Y-%m-%d")


def format_clock(timestamp: int, tz: tzinfo = timezone.utc) -> str:
    """Format an epoch-ms timestamp as ``HH:MM``."""
    return datetime.fromtimestamp(timestamp / 1000, tz=tz).strftime("%H:%M")


def format_app_name(package_name: str, app_name: str = "") -> str:
    """Pick a display name for an app.

    The producer's label wins when it looks like a real name; otherwise the
    known-package table, then the last meaningful package segment.
    """
    if (
        app_name
        and app_name.strip()
        and "." not in app_name
        and app_name != package_name
    ):
        return app_name

    if package_name in COMMON_PACKAGES:
        return COMMON_PACKAGES[package_name]

    parts = package_name.split(".")
    name = parts[-1]
    if name in ("android", "mobile") and len(parts) > 1:
        name = parts[-2]

    return name[:1].upper() + name[1:]


def sanitize_device_id(raw: str) -> str:
    """Normalise a typed device id to the producer's naming.

    The producer derives ids from the device model with spaces replaced by
    underscores and slashes by hyphens.
    """
    return raw.strip().replace(" ", "_").replace("/", "-")
