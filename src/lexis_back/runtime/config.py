"""
Resolver configuration.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class ResolverConfig:
    """
    Configuration for the view resolution runtime.

    Groups database, logging and paging options into a single object.
    """

    # Database settings
    db_path: Path = field(default_factory=lambda: Path(".lexis/data.db"))

    # Logging settings
    log_dir: Path = field(default_factory=lambda: Path(".lexis/logs"))
    log_level: str = "INFO"

    # Upper bound on root records per resolution (None for unbounded)
    max_page_size: int | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ResolverConfig:
        """
        Build a config from ``LEXIS_*`` environment variables.

        Unset variables keep their defaults.
        """
        env = os.environ if environ is None else environ
        config = cls()
        if env.get("LEXIS_DB_PATH"):
            config.db_path = Path(env["LEXIS_DB_PATH"])
        if env.get("LEXIS_LOG_DIR"):
            config.log_dir = Path(env["LEXIS_LOG_DIR"])
        if env.get("LEXIS_LOG_LEVEL"):
            config.log_level = env["LEXIS_LOG_LEVEL"].upper()
        if env.get("LEXIS_MAX_PAGE_SIZE"):
            try:
                config.max_page_size = int(env["LEXIS_MAX_PAGE_SIZE"])
            except ValueError:
                raise ValueError(
                    f"LEXIS_MAX_PAGE_SIZE must be an integer, got {env['LEXIS_MAX_PAGE_SIZE']!r}"
                ) from None
        return config
