"""Persistence interfaces and implementations for town documents."""

from __future__ import annotations

import copy
import json
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Protocol
from urllib.parse import quote, unquote

from .logging_config import get_logger

logger = get_logger(__name__)

SCHEMA_PATH = Path(__file__).with_name("db_schema.sql")


class TownStore(Protocol):
    def save_document(self, name: str, document: dict[str, Any]) -> None:
        """Insert or replace the stored document for town ``name``."""

    def load_documents(self) -> Iterator[tuple[str, Any]]:
        """Yield ``(name, document)`` for every stored town."""

    def delete_document(self, name: str) -> bool:
        """Remove the stored document; return False when nothing was stored."""


@dataclass
class InMemoryTownStore:
    def __post_init__(self) -> None:
        self._documents: dict[str, dict[str, Any]] = {}

    def save_document(self, name: str, document: dict[str, Any]) -> None:
        self._documents[name.lower()] = copy.deepcopy(document)

    def load_documents(self) -> Iterator[tuple[str, Any]]:
        for key, document in list(self._documents.items()):
            yield key, copy.deepcopy(document)

    def delete_document(self, name: str) -> bool:
        return self._documents.pop(name.lower(), None) is not None


@dataclass
class JsonDirectoryTownStore:
    """One ``<name>.json`` file per town inside ``directory``."""

    directory: Path

    def __post_init__(self) -> None:
        self.directory = Path(self.directory)

    def _path_for(self, name: str) -> Path:
        return self.directory / f"{quote(name.lower(), safe='')}.json"

    def save_document(self, name: str, document: dict[str, Any]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path_for(name)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(document, indent=2, sort_keys=True), encoding="utf-8")
        os.replace(tmp_path, path)

    def load_documents(self) -> Iterator[tuple[str, Any]]:
        if not self.directory.is_dir():
            return
        for path in sorted(self.directory.glob("*.json")):
            try:
                document = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as exc:
                logger.error("Unreadable town file", path=str(path), error=str(exc))
                document = None
            yield unquote(path.stem), document

    def delete_document(self, name: str) -> bool:
        path = self._path_for(name)
        if not path.exists():
            return False
        path.unlink()
        return True


@dataclass
class PostgresTownStore:
    database_url: str

    def _connect(self) -> Any:
        import psycopg

        return psycopg.connect(self.database_url)

    def apply_schema(self, schema_path: Path = SCHEMA_PATH) -> str:
        schema_sql = schema_path.read_text(encoding="utf-8")
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(schema_sql)
            conn.commit()
        logger.info("Schema applied", schema=schema_path.name)
        return schema_sql

    def save_document(self, name: str, document: dict[str, Any]) -> None:
        now = datetime.now(timezone.utc)
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO towns (name, document, created_at, updated_at)
                    VALUES (%s, %s::jsonb, %s, %s)
                    ON CONFLICT (name) DO UPDATE
                    SET document = EXCLUDED.document, updated_at = EXCLUDED.updated_at
                    """,
                    (name.lower(), json.dumps(document), now, now),
                )
            conn.commit()

    def load_documents(self) -> Iterator[tuple[str, Any]]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT name, document FROM towns ORDER BY name", ())
                rows = cur.fetchall()

        for name, document in rows:
            if isinstance(document, str):
                try:
                    document = json.loads(document)
                except json.JSONDecodeError as exc:
                    logger.error("Unreadable town row", town=name, error=str(exc))
                    document = None
            yield name, document

    def delete_document(self, name: str) -> bool:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM towns WHERE name = %s", (name.lower(),))
                deleted = cur.rowcount > 0
            conn.commit()
        return deleted


def create_store(database_url: str | None, data_dir: str | None = None) -> TownStore:
    if database_url:
        return PostgresTownStore(database_url=database_url)
    if data_dir:
        return JsonDirectoryTownStore(directory=Path(data_dir))
    return InMemoryTownStore()
