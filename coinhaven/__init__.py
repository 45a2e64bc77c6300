"""
Coinhaven — Economy, Clans & Connect-4 for Discord
====================================================
A guild economy bot: wallets and work commands, clan creation and
membership, and wagered Connect-4 matches played through buttons and
select menus.

Package layout::

    coinhaven/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Colours, currency formatting, amount parsing
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # All ORM models
    ├── engine/
    │   ├── connect4.py    # Pure Connect-4 board logic
    │   ├── fishing.py     # Fishing odds table + reward generation
    │   ├── payloads.py    # Interaction payload schemas (pydantic)
    │   └── events.py      # ComponentEvent envelope
    ├── services/
    │   ├── replies.py             # Reply / embed / component specs
    │   ├── wallet_service.py      # Economy ledger
    │   ├── interaction_service.py # Pending-interaction tokens
    │   ├── economy_service.py     # gift, spawn, fish, daily, shop
    │   ├── clan_service.py        # Clan wizard, leave, info
    │   ├── connect4_service.py    # Challenges, moves, display
    │   └── dispatch.py            # Token type → handler routing
    └── bot/
        ├── core.py        # Bot subclass, cog loader
        ├── render.py      # Reply → discord.py objects
        └── cogs/
            ├── economy.py     # /gift, /spawn, /fish, /daily, /balance, /shop
            ├── clans.py       # /clan create|leave|info
            ├── connect4.py    # /connect4
            └── components.py  # Button / select / modal dispatch
"""

__version__ = "0.1.0"
