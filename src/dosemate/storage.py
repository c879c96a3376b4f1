"""Persistencia SQLite cifrada para configuracion e historial de dosis."""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from dosemate.calculator import DEFAULT_CARB_RATIO
from dosemate.crypto import ValueCipher, load_or_create_key
from dosemate.dose_table import table_from_json, table_to_json
from dosemate.model import DoseRange, HistoryEntry
from dosemate.parsing import parse_number_input
from dosemate.repository import HistoryRepository

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS app_config (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS dose_history (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    created_at TEXT NOT NULL,
    payload TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_dose_history_created_at
ON dose_history(created_at);
"""


@dataclass(frozen=True)
class AppConfig:
    """Configuracion persistida de la app."""

    carb_ratio: float = DEFAULT_CARB_RATIO
    use_custom_table: bool = False
    custom_table: list[DoseRange] = field(default_factory=list)
    export_dir: str = ""
    language: str = "fr"


class SQLiteStore(HistoryRepository):
    """Repositorio SQLite para la app; valores cifrados en reposo."""

    def __init__(self, db_path: Path, key_path: Path | None = None) -> None:
        """Create store and ensure schema exists.

        Args:
            db_path: SQLite file.
            key_path: Encryption key file (default: ``<db_path>.key``).
        """
        super().__init__()
        self._db_path = db_path
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        key_file = key_path or db_path.with_name(db_path.name + ".key")
        self._cipher = ValueCipher(load_or_create_key(key_file))
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.executescript(SCHEMA_SQL)
            conn.commit()

    def load_config(self) -> AppConfig:
        """Devuelve configuracion guardada o defaults."""
        with self._connect() as conn:
            rows = conn.execute("SELECT key, value FROM app_config").fetchall()
        values = {row["key"]: self._cipher.decrypt(row["value"]) for row in rows}
        defaults = AppConfig()
        return AppConfig(
            carb_ratio=_parse_ratio(values.get("carb_ratio"), defaults.carb_ratio),
            use_custom_table=values.get("use_custom_table") == "1",
            custom_table=_parse_table(values.get("custom_table")),
            export_dir=values.get("export_dir", defaults.export_dir),
            language=values.get("language", defaults.language),
        )

    def save_config(self, config: AppConfig) -> None:
        """Guarda la configuracion en tabla key/value."""
        payload = {
            "carb_ratio": repr(float(config.carb_ratio)),
            "use_custom_table": "1" if config.use_custom_table else "0",
            "custom_table": table_to_json(config.custom_table),
            "export_dir": config.export_dir,
            "language": config.language,
        }
        with self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO app_config(key, value) VALUES(?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value
                """,
                [(key, self._cipher.encrypt(value)) for key, value in payload.items()],
            )
            conn.commit()

    def append(self, entry: HistoryEntry) -> str:
        payload = self._cipher.encrypt(json.dumps(entry.to_dict(), ensure_ascii=True))
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO dose_history(id, created_at, payload) VALUES (?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    created_at=excluded.created_at,
                    payload=excluded.payload
                """,
                (entry.id, entry.date_iso, payload),
            )
            conn.commit()
        logger.debug("Saved dose %s", entry.id)
        self._notify()
        return entry.id

    def delete(self, entry_id: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM dose_history WHERE id = ?", (entry_id,))
            conn.commit()
        self._notify()

    def clear(self) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM dose_history")
            conn.commit()
        self._notify()

    def list_entries(self) -> list[HistoryEntry]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT id, payload FROM dose_history
                ORDER BY created_at DESC, seq DESC
                """
            ).fetchall()
        out: list[HistoryEntry] = []
        for row in rows:
            entry = self._entry_from_payload(row["payload"])
            if entry is None:
                logger.warning("Skipping unreadable history row %s", row["id"])
                continue
            out.append(entry)
        return out

    def _entry_from_payload(self, payload: str) -> HistoryEntry | None:
        try:
            data: Any = json.loads(self._cipher.decrypt(payload))
            return HistoryEntry.from_dict(data)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError):
            return None


def _parse_ratio(raw: str | None, default: float) -> float:
    value = parse_number_input(raw)
    if value is None or value <= 0:
        return default
    return value


def _parse_table(raw: str | None) -> list[DoseRange]:
    if not raw:
        return []
    try:
        return table_from_json(raw)
    except ValueError as exc:
        logger.warning("Ignoring stored custom table: %s", exc)
        return []
