"""
coinhaven.config — YAML Configuration Loader
=============================================

Reads ``config.yaml`` for identity settings (guild, admin role, prefix)
and the economy tuning values.  Secrets (bot token, database URL) stay in
``.env`` and are read by the entry point.

Usage::

    from coinhaven.config import load_config

    cfg = load_config()                  # reads ./config.yaml by default
    print(cfg.community_name)            # "Coinhaven Dev"
    print(cfg.economy.clan_create_price) # 500000
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Economy tuning
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class EconomyConfig:
    """Gameplay numbers.  Every field has a default so the ``economy``
    section of ``config.yaml`` may be partial or missing."""

    clan_create_price: int = 500_000
    gift_minimum: int = 100
    gift_blocked_user_ids: tuple[int, ...] = ()
    fish_uses: int = 3
    fish_cooldown_minutes: int = 60
    daily_reward: int = 10_000
    interaction_ttl_minutes: int = 15
    connect4_default_move_time: int = 300  # seconds per move


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class CoinhavenConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str

    # Discord
    bot_prefix: str
    guild_id: int  # Primary guild snowflake (for dev command sync)

    # Admin
    admin_role_id: int  # Discord role required for /spawn

    # Presentation
    currency_symbol: str = "$"

    # Channels where /fish and /shop may be used.  Empty → anywhere.
    economy_channel_ids: tuple[int, ...] = ()

    economy: EconomyConfig = field(default_factory=EconomyConfig)


def _load_economy(raw: dict | None) -> EconomyConfig:
    raw = raw or {}
    defaults = EconomyConfig()
    return EconomyConfig(
        clan_create_price=int(raw.get("clan_create_price", defaults.clan_create_price)),
        gift_minimum=int(raw.get("gift_minimum", defaults.gift_minimum)),
        gift_blocked_user_ids=tuple(
            int(uid) for uid in raw.get("gift_blocked_user_ids") or ()
        ),
        fish_uses=int(raw.get("fish_uses", defaults.fish_uses)),
        fish_cooldown_minutes=int(
            raw.get("fish_cooldown_minutes", defaults.fish_cooldown_minutes)
        ),
        daily_reward=int(raw.get("daily_reward", defaults.daily_reward)),
        interaction_ttl_minutes=int(
            raw.get("interaction_ttl_minutes", defaults.interaction_ttl_minutes)
        ),
        connect4_default_move_time=int(
            raw.get("connect4_default_move_time", defaults.connect4_default_move_time)
        ),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> CoinhavenConfig:
    """Read *path* and return a :class:`CoinhavenConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return CoinhavenConfig(
        community_name=raw["community_name"],
        bot_prefix=raw.get("bot_prefix", "!"),
        guild_id=int(raw["guild_id"]),
        admin_role_id=int(raw["admin_role_id"]),
        currency_symbol=str(raw.get("currency_symbol", "$")),
        economy_channel_ids=tuple(
            int(cid) for cid in raw.get("economy_channel_ids") or ()
        ),
        economy=_load_economy(raw.get("economy")),
    )
