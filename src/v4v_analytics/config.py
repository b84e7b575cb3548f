"""Configuration for v4v-analytics.

Settings are resolved from environment variables first, then from
~/.v4v/config.json. The resulting V4VConfig is passed explicitly to every
component; nothing below the CLI reads the environment on its own.
"""

from __future__ import annotations

import calendar
import json
import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from urllib.parse import urlparse

from v4v_analytics.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".v4v"
NWC_PREFIX = "nostr+walletconnect://"

DEFAULT_NWC_TIMEOUT = 120.0
DEFAULT_BATCH_SIZE = 10
DEFAULT_BATCH_DELAY = 0.3
DEFAULT_MAX_BATCHES = 20
DEFAULT_MAX_RETRIES = 2
DEFAULT_TITLES_CACHE_TTL = 24 * 60 * 60.0


def _is_real_value(val: str | None) -> bool:
    """Check if a value is a real setting (not an unexpanded placeholder)."""
    if not val:
        return False
    return not val.startswith("${")


def _load_config_file(path: Path) -> dict:
    """Load the JSON config file if it exists."""
    try:
        if path.exists():
            data = json.loads(path.read_text())
            return data if isinstance(data, dict) else {}
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Ignoring unreadable config file %s: %s", path, e)
    return {}


def _resolve(env: Mapping[str, str], env_var: str, file_config: dict, config_key: str) -> str | None:
    """Resolve a setting: env var first (skip placeholders), then config file."""
    val = env.get(env_var, "")
    if _is_real_value(val):
        return val
    return file_config.get(config_key) or None


def _int_setting(env: Mapping[str, str], name: str, default: int) -> int:
    try:
        value = int(env.get(name, ""))
    except ValueError:
        return default
    return value if value > 0 else default


def _float_setting(env: Mapping[str, str], name: str, default: float) -> float:
    try:
        value = float(env.get(name, ""))
    except ValueError:
        return default
    return value if value >= 0 else default


def _strip_scheme(site_url: str) -> str:
    return re.sub(r"^https?://", "", site_url).rstrip("/")


@dataclass
class V4VConfig:
    """Runtime settings.

    Args:
        site_url: Site identifier found in payment memos, e.g. "example.com".
        nwc_connection_string: nostr+walletconnect:// URI for the wallet.
        nwc_timeout: Seconds to wait for a wallet reply.
        rss_url: Feed used for essay titles (defaults to https://<site>/feed.xml).
        batch_size: Transactions per wallet page.
        batch_delay: Seconds to pause between pages.
        max_batches: Hard cap on pages per fetch.
        max_retries: Attempts per page on transient wallet errors.
        titles_cache_ttl: Seconds before cached titles are refreshed.
        cache_dir: Directory holding the snapshot files.
    """

    site_url: str | None = None
    nwc_connection_string: str | None = None
    nwc_timeout: float = DEFAULT_NWC_TIMEOUT
    rss_url: str | None = None
    batch_size: int = DEFAULT_BATCH_SIZE
    batch_delay: float = DEFAULT_BATCH_DELAY
    max_batches: int = DEFAULT_MAX_BATCHES
    max_retries: int = DEFAULT_MAX_RETRIES
    titles_cache_ttl: float = DEFAULT_TITLES_CACHE_TTL
    cache_dir: Path = DEFAULT_CONFIG_DIR

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        config_path: Path | None = None,
    ) -> V4VConfig:
        env = os.environ if environ is None else environ
        file_config = _load_config_file(config_path or DEFAULT_CONFIG_DIR / "config.json")

        site_url = _resolve(env, "V4V_SITE_URL", file_config, "siteUrl")
        cache_dir = env.get("V4V_CACHE_DIR") or file_config.get("cacheDir")

        return cls(
            site_url=_strip_scheme(site_url) if site_url else None,
            nwc_connection_string=_resolve(
                env, "NWC_CONNECTION_STRING", file_config, "nwcConnectionString"
            ),
            nwc_timeout=_float_setting(env, "NWC_TIMEOUT", DEFAULT_NWC_TIMEOUT) or DEFAULT_NWC_TIMEOUT,
            rss_url=_resolve(env, "V4V_RSS_URL", file_config, "rssUrl"),
            batch_size=_int_setting(env, "V4V_BATCH_SIZE", DEFAULT_BATCH_SIZE),
            batch_delay=_float_setting(env, "V4V_BATCH_DELAY", DEFAULT_BATCH_DELAY),
            max_batches=_int_setting(env, "V4V_MAX_BATCHES", DEFAULT_MAX_BATCHES),
            max_retries=_int_setting(env, "V4V_MAX_RETRIES", DEFAULT_MAX_RETRIES),
            titles_cache_ttl=_float_setting(env, "V4V_TITLES_CACHE_TTL", DEFAULT_TITLES_CACHE_TTL)
            or DEFAULT_TITLES_CACHE_TTL,
            cache_dir=Path(cache_dir).expanduser() if cache_dir else DEFAULT_CONFIG_DIR,
        )

    @property
    def cache_path(self) -> Path:
        return self.cache_dir / "transactions.json"

    @property
    def titles_cache_path(self) -> Path:
        return self.cache_dir / "titles.json"

    @property
    def feed_url(self) -> str | None:
        if self.rss_url:
            return self.rss_url
        if self.site_url:
            return f"https://{_strip_scheme(self.site_url)}/feed.xml"
        return None

    def validate(self, require_wallet: bool = True) -> None:
        """Fail fast on missing or malformed settings.

        Raises:
            ConfigurationError: If the site URL or (when required) the NWC
                connection string is missing or invalid.
        """
        if not self.site_url:
            raise ConfigurationError(
                "V4V_SITE_URL environment variable is required", setting="V4V_SITE_URL"
            )
        host = urlparse(f"https://{self.site_url}").hostname
        if not host or " " in self.site_url:
            raise ConfigurationError(
                f"Invalid V4V_SITE_URL: {self.site_url}", setting="V4V_SITE_URL"
            )

        if require_wallet:
            if not self.nwc_connection_string:
                raise ConfigurationError(
                    "NWC_CONNECTION_STRING not found. Set it in your environment or .env file.",
                    setting="NWC_CONNECTION_STRING",
                )
            if not self.nwc_connection_string.startswith(NWC_PREFIX):
                raise ConfigurationError(
                    f"NWC_CONNECTION_STRING must start with {NWC_PREFIX}",
                    setting="NWC_CONNECTION_STRING",
                )

        logger.debug(
            "Configuration validated (site=%s, rss=%s, nwc_timeout=%ss)",
            self.site_url,
            bool(self.rss_url),
            self.nwc_timeout,
        )


_DURATION_RE = re.compile(r"^(?P<value>\d+)(?P<unit>mo|d|w|m|y)$", re.IGNORECASE)


def _months_ago(now: datetime, months: int) -> datetime:
    month_index = now.year * 12 + (now.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)


def parse_duration(duration: str | None, now: datetime | None = None) -> datetime | None:
    """Turn "7d", "2w", "1m"/"3mo" or "1y" into a UTC datetime that far in the past.

    Returns:
        The start datetime, or None if the string is not a valid duration.
    """
    if not duration:
        return None
    match = _DURATION_RE.match(duration.strip())
    if not match:
        return None

    value = int(match.group("value"))
    unit = match.group("unit").lower()
    now = now or datetime.now(timezone.utc)

    if unit == "d":
        return now - timedelta(days=value)
    if unit == "w":
        return now - timedelta(weeks=value)
    if unit in ("m", "mo"):
        return _months_ago(now, value)
    return _months_ago(now, value * 12)
