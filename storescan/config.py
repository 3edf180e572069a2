"""Run configuration: dataclass defaults, optional YAML file, STORESCAN_* env overrides."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import load_dotenv

LOGGER = logging.getLogger(__name__)

ENV_PREFIX = "STORESCAN_"
SCAN_MODES = ("item", "merchandising")

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def _default_switch_headers() -> Dict[str, str]:
    return {
        "accept": "*/*",
        "accept-language": "en-US,en;q=0.9",
        "content-type": "text/plain;charset=UTF-8",
        "sec-fetch-dest": "empty",
        "sec-fetch-mode": "cors",
        "sec-fetch-site": "same-origin",
    }


@dataclass
class SiteConfig:
    """Endpoints and selectors of the retail property being scanned."""

    base_url: str = "https://www.wholefoodsmarket.com"
    baseline_path: str = "/catering"
    switch_path: str = "/store-affinity"
    store_path_template: str = "/stores/{store_id}"
    item_path_template: str = "/name/dp/{item_id}?pd_rd_i={item_id}&fpw=alm&almBrandId=aNHVc2Akvg"
    token_header: str = "anti-csrftoken-a2z"
    store_selector_button: str = 'button[aria-label="See store details"]'
    confirm_store_button: str = "span.w-makethismystore"
    carousel_next_button: str = (
        "a.a-carousel-goto-nextpage, .a-carousel-button.a-carousel-goto-nextpage, "
        "[class*='carousel-goto-nextpage']"
    )
    user_agent: str = USER_AGENT
    switch_headers: Dict[str, str] = field(default_factory=_default_switch_headers)

    def url(self, path: str) -> str:
        return self.base_url.rstrip("/") + "/" + path.lstrip("/")

    @property
    def baseline_url(self) -> str:
        return self.url(self.baseline_path)

    @property
    def switch_url(self) -> str:
        return self.url(self.switch_path)

    def store_url(self, store_id: int | str) -> str:
        return self.url(self.store_path_template.format(store_id=store_id))

    def item_url(self, item_id: str) -> str:
        return self.url(self.item_path_template.format(item_id=item_id))


@dataclass
class ScanSettings:
    """Tunables of a scan run. Millisecond values mirror the browser API units."""

    mode: str = "item"
    max_agents: int = 3
    headless: bool = False
    page_timeout_ms: int = 30000
    delay_between_items_ms: int = 2000
    delay_between_stores_ms: int = 5000
    switch_settle_ms: int = 2000
    agent_settle_ms: int = 2000
    provoke_reveal_ms: int = 2000
    navigation_retries: int = 2
    retry_wait_s: float = 2.0
    carousel_pages: int = 6
    carousel_click_ms: int = 1000
    carousel_settle_ms: int = 5000
    token_max_age_s: float = 24 * 60 * 60
    use_fallback_token: bool = False
    fallback_token: Optional[str] = None
    state_file: str = "storescan_state.json"
    viewport_width: int = 1280
    viewport_height: int = 720

    def validate(self) -> None:
        if self.mode not in SCAN_MODES:
            raise ValueError(f"mode must be one of {SCAN_MODES}, got {self.mode!r}")
        if self.max_agents < 1:
            raise ValueError("max_agents must be >= 1")
        if self.page_timeout_ms <= 0:
            raise ValueError("page_timeout_ms must be positive")
        if self.use_fallback_token and not self.fallback_token:
            LOGGER.warning("use_fallback_token is enabled but no fallback_token is configured")


@dataclass
class ScanConfig:
    settings: ScanSettings = field(default_factory=ScanSettings)
    site: SiteConfig = field(default_factory=SiteConfig)


def _env_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _coerce(current: Any, raw: str) -> Any:
    if isinstance(current, bool):
        return _env_bool(raw)
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    return raw


def _apply_section(target: Any, data: Optional[Mapping[str, Any]], section: str) -> None:
    if not data:
        return
    if not isinstance(data, Mapping):
        raise ValueError(f"config section '{section}' must be a mapping")
    known = {f.name for f in fields(target)}
    for key, value in data.items():
        if key not in known:
            raise ValueError(f"unknown {section} option: {key}")
        setattr(target, key, value)


def _apply_env(settings: ScanSettings, env: Mapping[str, str]) -> None:
    for f in fields(settings):
        raw = env.get(ENV_PREFIX + f.name.upper())
        if raw is None:
            continue
        setattr(settings, f.name, _coerce(getattr(settings, f.name), raw))
        LOGGER.debug("settings.%s overridden from environment", f.name)


def load_config(path: str | Path | None = None, env: Optional[Mapping[str, str]] = None) -> ScanConfig:
    """Build the run configuration.

    Parameters
    ----------
    path : str or Path, optional
        YAML file with optional ``settings`` and ``site`` sections
    env : mapping, optional
        Environment to read ``STORESCAN_*`` overrides from. When omitted,
        ``.env`` is loaded and ``os.environ`` is used.

    Returns
    -------
    ScanConfig
        Validated configuration
    """
    if env is None:
        load_dotenv()
        env = os.environ

    config = ScanConfig()
    if path is not None:
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise ValueError("config file must contain a mapping")
        _apply_section(config.settings, data.get("settings"), "settings")
        _apply_section(config.site, data.get("site"), "site")

    _apply_env(config.settings, env)
    config.settings.validate()
    return config
