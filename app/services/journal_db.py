from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import UUID

import duckdb  # type: ignore[import]


DATA_DIR = Path("data")
JOURNAL_DB = DATA_DIR / "journal.duckdb"

TRADE_COLUMNS = [
    "id",
    "symbol",
    "direction",
    "entry_time",
    "exit_time",
    "entry_price",
    "exit_price",
    "total_lots",
    "sl_initial",
    "tp_initial",
    "net_pnl",
    "r_multiple_actual",
    "session",
    "is_open",
    "playbook_id",
    "notes",
    "created_at",
    "updated_at",
]

PLAYBOOK_COLUMNS = [
    "id",
    "name",
    "description",
    "checklist",
    "rules",
    "created_at",
    "updated_at",
]


def configure(db_path: Path | str) -> None:
    """Point the journal at a different database file."""
    global JOURNAL_DB
    JOURNAL_DB = Path(db_path)


def ensure_schema() -> None:
    db_path = JOURNAL_DB
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = duckdb.connect(str(db_path))
    try:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS trades (
                id UUID PRIMARY KEY,
                symbol TEXT,
                direction TEXT,
                entry_time TIMESTAMP,
                exit_time TIMESTAMP,
                entry_price DOUBLE,
                exit_price DOUBLE,
                total_lots DOUBLE,
                sl_initial DOUBLE,
                tp_initial DOUBLE,
                net_pnl DOUBLE,
                r_multiple_actual DOUBLE,
                session TEXT,
                is_open BOOLEAN,
                playbook_id UUID,
                notes TEXT,
                created_at TIMESTAMP,
                updated_at TIMESTAMP
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS playbooks (
                id UUID PRIMARY KEY,
                name TEXT UNIQUE,
                description TEXT,
                checklist JSON,
                rules JSON,
                created_at TIMESTAMP,
                updated_at TIMESTAMP
            )
            """
        )
    finally:
        conn.close()


def _row_to_dict(columns: List[str], row: Any) -> Dict[str, Any]:
    return {col: val for col, val in zip(columns, row)}


def insert_trade(record: Dict[str, Any]) -> Dict[str, Any]:
    ensure_schema()
    conn = duckdb.connect(str(JOURNAL_DB))
    try:
        params = [record.get(col) for col in TRADE_COLUMNS]
        conn.execute(
            f"""
            INSERT INTO trades ({', '.join(TRADE_COLUMNS)})
            VALUES ({', '.join(['?'] * len(TRADE_COLUMNS))})
            """,
            params,
        )
        row = conn.execute(
            f"SELECT {', '.join(TRADE_COLUMNS)} FROM trades WHERE id = ?",
            [record["id"]],
        ).fetchone()
        if row is None:
            raise RuntimeError("Failed to load trade after insert")
        return _row_to_dict(TRADE_COLUMNS, row)
    finally:
        conn.close()


def get_trade(trade_id: UUID) -> Optional[Dict[str, Any]]:
    ensure_schema()
    conn = duckdb.connect(str(JOURNAL_DB))
    try:
        row = conn.execute(
            f"SELECT {', '.join(TRADE_COLUMNS)} FROM trades WHERE id = ?",
            [trade_id],
        ).fetchone()
        if row is None:
            return None
        return _row_to_dict(TRADE_COLUMNS, row)
    finally:
        conn.close()


def update_trade(trade_id: UUID, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    if not updates:
        return get_trade(trade_id)

    ensure_schema()
    conn = duckdb.connect(str(JOURNAL_DB))
    try:
        existing = conn.execute("SELECT id FROM trades WHERE id = ?", [trade_id]).fetchone()
        if existing is None:
            return None
        set_clauses: List[str] = []
        params: List[Any] = []
        for key, value in updates.items():
            set_clauses.append(f"{key} = ?")
            params.append(value)
        params.append(trade_id)
        conn.execute(
            f"""
            UPDATE trades
            SET {', '.join(set_clauses)}
            WHERE id = ?
            """,
            params,
        )
    finally:
        conn.close()
    return get_trade(trade_id)


def delete_trade(trade_id: UUID) -> bool:
    ensure_schema()
    conn = duckdb.connect(str(JOURNAL_DB))
    try:
        existing = conn.execute("SELECT id FROM trades WHERE id = ?", [trade_id]).fetchone()
        if existing is None:
            return False
        conn.execute("DELETE FROM trades WHERE id = ?", [trade_id])
        return True
    finally:
        conn.close()


def list_trades(
    *,
    symbol: Optional[str] = None,
    direction: Optional[str] = None,
    session: Optional[str] = None,
    is_open: Optional[bool] = None,
    playbook_id: Optional[UUID] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    limit: Optional[int] = 50,
    offset: int = 0,
) -> List[Dict[str, Any]]:
    ensure_schema()
    conn = duckdb.connect(str(JOURNAL_DB))
    try:
        clauses: List[str] = []
        params: List[Any] = []

        if symbol:
            clauses.append("symbol = ?")
            params.append(symbol)
        if direction:
            clauses.append("direction = ?")
            params.append(direction)
        if session:
            clauses.append("session = ?")
            params.append(session)
        if is_open is not None:
            clauses.append("is_open = ?")
            params.append(is_open)
        if playbook_id is not None:
            clauses.append("playbook_id = ?")
            params.append(playbook_id)
        if start_date:
            clauses.append("entry_time >= ?")
            params.append(start_date)
        if end_date:
            clauses.append("entry_time <= ?")
            params.append(end_date)

        where_sql = ""
        if clauses:
            where_sql = "WHERE " + " AND ".join(clauses)

        # limit=None returns every matching row (used by aggregations)
        paging_sql = ""
        if limit is not None:
            paging_sql = "LIMIT ? OFFSET ?"
            params.extend([limit, offset])

        rows = conn.execute(
            f"""
            SELECT {', '.join(TRADE_COLUMNS)}
            FROM trades
            {where_sql}
            ORDER BY entry_time DESC, created_at DESC
            {paging_sql}
            """,
            params,
        ).fetchall()
        return [_row_to_dict(TRADE_COLUMNS, row) for row in rows]
    finally:
        conn.close()


def insert_playbook(record: Dict[str, Any]) -> Dict[str, Any]:
    ensure_schema()
    conn = duckdb.connect(str(JOURNAL_DB))
    try:
        conn.execute(
            f"""
            INSERT INTO playbooks ({', '.join(PLAYBOOK_COLUMNS)})
            VALUES ({', '.join(['?'] * len(PLAYBOOK_COLUMNS))})
            """,
            [record.get(col) for col in PLAYBOOK_COLUMNS],
        )
    finally:
        conn.close()
    return get_playbook(record["id"])  # type: ignore[return-value]


def get_playbook(playbook_id: UUID) -> Optional[Dict[str, Any]]:
    ensure_schema()
    conn = duckdb.connect(str(JOURNAL_DB))
    try:
        row = conn.execute(
            f"SELECT {', '.join(PLAYBOOK_COLUMNS)} FROM playbooks WHERE id = ?",
            [playbook_id],
        ).fetchone()
        if row is None:
            return None
        return _row_to_dict(PLAYBOOK_COLUMNS, row)
    finally:
        conn.close()


def get_playbook_by_name(name: str) -> Optional[Dict[str, Any]]:
    ensure_schema()
    conn = duckdb.connect(str(JOURNAL_DB))
    try:
        row = conn.execute(
            f"SELECT {', '.join(PLAYBOOK_COLUMNS)} FROM playbooks WHERE lower(name) = lower(?)",
            [name],
        ).fetchone()
        if row is None:
            return None
        return _row_to_dict(PLAYBOOK_COLUMNS, row)
    finally:
        conn.close()


def update_playbook(playbook_id: UUID, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    if not updates:
        return get_playbook(playbook_id)

    ensure_schema()
    conn = duckdb.connect(str(JOURNAL_DB))
    try:
        set_clauses: List[str] = []
        params: List[Any] = []
        for key, value in updates.items():
            set_clauses.append(f"{key} = ?")
            params.append(value)
        params.append(playbook_id)
        conn.execute(
            f"""
            UPDATE playbooks
            SET {', '.join(set_clauses)}
            WHERE id = ?
            """,
            params,
        )
    finally:
        conn.close()
    return get_playbook(playbook_id)


def delete_playbook(playbook_id: UUID) -> bool:
    ensure_schema()
    conn = duckdb.connect(str(JOURNAL_DB))
    try:
        existing = conn.execute("SELECT id FROM playbooks WHERE id = ?", [playbook_id]).fetchone()
        if existing is None:
            return False
        # Trades keep their history; only the reference is dropped
        conn.execute("UPDATE trades SET playbook_id = NULL WHERE playbook_id = ?", [playbook_id])
        conn.execute("DELETE FROM playbooks WHERE id = ?", [playbook_id])
        return True
    finally:
        conn.close()


def list_playbooks() -> List[Dict[str, Any]]:
    ensure_schema()
    conn = duckdb.connect(str(JOURNAL_DB))
    try:
        rows = conn.execute(
            f"SELECT {', '.join(PLAYBOOK_COLUMNS)} FROM playbooks ORDER BY name"
        ).fetchall()
        return [_row_to_dict(PLAYBOOK_COLUMNS, row) for row in rows]
    finally:
        conn.close()
