"""Create the towns table in the configured PostgreSQL database."""

from __future__ import annotations

from townhall.backend.config import load_settings
from townhall.backend.logging_config import configure_logging
from townhall.backend.store import PostgresTownStore


def main() -> None:
    settings = load_settings()
    if not settings.database_url:
        raise RuntimeError("TOWNHALL_DATABASE_URL is required for migration")

    configure_logging(settings.log_level)
    PostgresTownStore(database_url=settings.database_url).apply_schema()


if __name__ == "__main__":
    main()
