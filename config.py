"""
Configuration des sites de streaming supportés
Sources: AGE动漫, 樱花动漫 (Yhmc)
"""

import os
from typing import Dict
from dataclasses import dataclass, field

from vodscraper.utils import DEFAULT_USER_AGENT


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, default))
    except ValueError:
        return default


# Timeouts (secondes)
TIMEOUTS = {
    "connection": _env_float("SCRAPER_CONNECT_TIMEOUT", 10),
    "read": _env_float("SCRAPER_TIMEOUT", 15),
}


@dataclass
class SiteConfig:
    name: str
    base_url: str
    enabled: bool = True
    cloudflare_protected: bool = False
    timeout: float = TIMEOUTS["read"]
    connect_timeout: float = TIMEOUTS["connection"]
    # Longueur du préfixe ajouté au champ `file` des lignes (schéma propre au site, peut changer)
    decode_prefix_length: int = 3
    headers: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        defaults = {
            "User-Agent": DEFAULT_USER_AGENT,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
            "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.5",
        }
        defaults.update(self.headers)
        self.headers = defaults


# Configuration des sites supportés, indexée par nom de source
SITES_CONFIG: Dict[str, SiteConfig] = {
    "Age": SiteConfig(
        name="AGE动漫",
        base_url="https://www.agedm.io",
        timeout=min(TIMEOUTS["read"], 10),
    ),

    "Yhmc": SiteConfig(
        name="樱花动漫",
        base_url="https://www.yhmc.cc",
        decode_prefix_length=3,
    ),
}

# Service HTTP
API_CONFIG = {
    "host": os.environ.get("HOST", "0.0.0.0"),
    "port": int(os.environ.get("PORT", 8000)),
    "debug": os.environ.get("DEBUG", "false").lower() == "true",
}

# Logging
LOG_CONFIG = {
    "level": os.environ.get("LOG_LEVEL", "INFO").upper(),
    "json": os.environ.get("LOG_JSON", "false").lower() == "true",
}
