"""Run the town HTTP service under uvicorn."""

from __future__ import annotations

import uvicorn

from townhall.backend.config import load_settings
from townhall.backend.logging_config import configure_logging


def main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level)
    uvicorn.run("townhall.backend.api:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
