"""Configuration helpers for backend runtime."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta

from .town import CAPACITY_STEP, DEFAULT_CAPACITY, DEFAULT_INVITATION_TTL, CapacityCheck, TownRules


@dataclass(frozen=True)
class BackendSettings:
    database_url: str | None
    data_dir: str | None
    host: str
    port: int
    log_level: str
    default_capacity: int
    capacity_step: int
    max_capacity: int | None
    capacity_check: CapacityCheck
    invitation_ttl_seconds: int

    def rules(self) -> TownRules:
        return TownRules(
            default_capacity=self.default_capacity,
            capacity_step=self.capacity_step,
            max_capacity=self.max_capacity,
            capacity_check=self.capacity_check,
            invitation_ttl=timedelta(seconds=self.invitation_ttl_seconds),
        )


def load_settings() -> BackendSettings:
    max_capacity_raw = os.getenv("TOWNHALL_MAX_CAPACITY")
    return BackendSettings(
        database_url=os.getenv("TOWNHALL_DATABASE_URL"),
        data_dir=os.getenv("TOWNHALL_DATA_DIR"),
        host=os.getenv("TOWNHALL_HOST", "127.0.0.1"),
        port=int(os.getenv("TOWNHALL_PORT", "8000")),
        log_level=os.getenv("TOWNHALL_LOG_LEVEL", "INFO").upper(),
        default_capacity=int(os.getenv("TOWNHALL_DEFAULT_CAPACITY", str(DEFAULT_CAPACITY))),
        capacity_step=int(os.getenv("TOWNHALL_CAPACITY_STEP", str(CAPACITY_STEP))),
        max_capacity=int(max_capacity_raw) if max_capacity_raw else None,
        capacity_check=CapacityCheck(os.getenv("TOWNHALL_CAPACITY_CHECK", CapacityCheck.FILL.value).lower()),
        invitation_ttl_seconds=int(
            os.getenv("TOWNHALL_INVITATION_TTL_SECONDS", str(int(DEFAULT_INVITATION_TTL.total_seconds())))
        ),
    )
