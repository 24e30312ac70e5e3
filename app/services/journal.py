from __future__ import annotations

import json
import math
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID, uuid4

from app.schemas.journal import (
    SESSIONS,
    PlaybookCreate,
    PlaybookRead,
    PlaybookUpdate,
    SessionBreakdown,
    Streak,
    SummaryFilters,
    TradeCreate,
    TradeListFilters,
    TradeRead,
    TradeSummary,
    TradeUpdate,
)
from app.services import journal_db


class JournalNotFoundError(KeyError):
    pass


_DIRECTION_ALIASES = {
    "buy": "buy",
    "long": "buy",
    "sell": "sell",
    "short": "sell",
}


def _normalize_symbol(symbol: str) -> str:
    sym = symbol.strip().upper()
    if not sym:
        raise ValueError("symbol is required")
    return sym


def _normalize_direction(direction: str) -> str:
    d = direction.strip().lower()
    if d not in _DIRECTION_ALIASES:
        raise ValueError("direction must be 'buy' or 'sell'")
    return _DIRECTION_ALIASES[d]


def _normalize_timestamp(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _serialize_items(items: Optional[List[str]]) -> str:
    if not items:
        return json.dumps([])
    cleaned = [str(item).strip() for item in items if str(item).strip()]
    return json.dumps(cleaned)


def _deserialize_items(raw: Any) -> List[str]:
    if raw is None:
        return []
    if isinstance(raw, list):
        return [str(item) for item in raw]
    try:
        data = json.loads(raw)
    except (TypeError, ValueError, json.JSONDecodeError):
        return []
    if isinstance(data, list):
        return [str(item) for item in data]
    return []


def _build_playbook(row: Dict[str, Any]) -> PlaybookRead:
    payload = dict(row)
    payload["checklist"] = _deserialize_items(payload.get("checklist"))
    payload["rules"] = _deserialize_items(payload.get("rules"))
    return PlaybookRead(**payload)


def _require_playbook(playbook_id: Optional[UUID]) -> None:
    if playbook_id is None:
        return
    if journal_db.get_playbook(playbook_id) is None:
        raise JournalNotFoundError(str(playbook_id))


def _derive_is_open(exit_time: Any, exit_price: Any) -> bool:
    return exit_time is None and exit_price is None


def create_trade(dto: TradeCreate) -> TradeRead:
    journal_db.ensure_schema()
    trade_id = uuid4()
    now = datetime.utcnow()

    symbol = _normalize_symbol(dto.symbol)
    direction = _normalize_direction(dto.direction)
    _require_playbook(dto.playbook_id)

    is_open = dto.is_open
    if is_open is None:
        is_open = _derive_is_open(dto.exit_time, dto.exit_price)

    record = {
        "id": trade_id,
        "symbol": symbol,
        "direction": direction,
        "entry_time": _normalize_timestamp(dto.entry_time),
        "exit_time": _normalize_timestamp(dto.exit_time),
        "entry_price": dto.entry_price,
        "exit_price": dto.exit_price,
        "total_lots": dto.total_lots,
        "sl_initial": dto.sl_initial,
        "tp_initial": dto.tp_initial,
        "net_pnl": dto.net_pnl,
        "r_multiple_actual": dto.r_multiple_actual,
        "session": dto.session,
        "is_open": is_open,
        "playbook_id": dto.playbook_id,
        "notes": dto.notes,
        "created_at": now,
        "updated_at": now,
    }

    row = journal_db.insert_trade(record)
    return TradeRead(**row)


def get_trade(trade_id: UUID) -> TradeRead:
    row = journal_db.get_trade(trade_id)
    if row is None:
        raise JournalNotFoundError(str(trade_id))
    return TradeRead(**row)


def update_trade(trade_id: UUID, dto: TradeUpdate) -> TradeRead:
    existing = journal_db.get_trade(trade_id)
    if existing is None:
        raise JournalNotFoundError(str(trade_id))

    payload = dto.model_dump(exclude_unset=True)
    updates: Dict[str, Any] = {}

    if "symbol" in payload:
        updates["symbol"] = _normalize_symbol(payload["symbol"] or "")
    if "direction" in payload:
        updates["direction"] = _normalize_direction(payload["direction"] or "")
    if "playbook_id" in payload:
        _require_playbook(payload["playbook_id"])
        updates["playbook_id"] = payload["playbook_id"]

    for field in (
        "entry_price",
        "exit_price",
        "total_lots",
        "sl_initial",
        "tp_initial",
        "net_pnl",
        "r_multiple_actual",
        "session",
        "notes",
    ):
        if field in payload:
            updates[field] = payload[field]

    for field in ("entry_time", "exit_time"):
        if field in payload:
            updates[field] = _normalize_timestamp(payload[field])

    if updates.get("entry_time", existing.get("entry_time")) is None:
        raise ValueError("entry_time is required")

    if "is_open" in payload and payload["is_open"] is not None:
        updates["is_open"] = payload["is_open"]
    else:
        updates["is_open"] = _derive_is_open(
            updates.get("exit_time", existing.get("exit_time")),
            updates.get("exit_price", existing.get("exit_price")),
        )

    updates["updated_at"] = datetime.utcnow()

    row = journal_db.update_trade(trade_id, updates)
    if row is None:
        raise JournalNotFoundError(str(trade_id))
    return TradeRead(**row)


def delete_trade(trade_id: UUID) -> None:
    deleted = journal_db.delete_trade(trade_id)
    if not deleted:
        raise JournalNotFoundError(str(trade_id))


def list_trades(filters: TradeListFilters) -> List[TradeRead]:
    symbol = filters.symbol.strip().upper() if filters.symbol else None

    rows = journal_db.list_trades(
        symbol=symbol,
        direction=filters.direction,
        session=filters.session,
        is_open=filters.is_open,
        playbook_id=filters.playbook_id,
        start_date=_normalize_timestamp(filters.start_date),
        end_date=_normalize_timestamp(filters.end_date),
        limit=filters.limit,
        offset=filters.offset,
    )
    return [TradeRead(**row) for row in rows]


def _win_rate(wins: int, decided: int) -> Optional[float]:
    if decided == 0:
        return None
    return wins / decided * 100.0


def _mean(values: List[float]) -> Optional[float]:
    if not values:
        return None
    return sum(values) / len(values)


def _profit_factor(gross_profit: float, gross_loss: float) -> float:
    if gross_loss > 0:
        return gross_profit / gross_loss
    return math.inf if gross_profit > 0 else 0.0


def _current_streak(pnls: List[float]) -> Streak:
    """Length of the run of wins (or non-wins) starting at the newest trade."""
    streak = Streak()
    for pnl in pnls:
        kind = "win" if pnl > 0 else "loss"
        if streak.count == 0:
            streak = Streak(type=kind, count=1)
        elif kind == streak.type:
            streak.count += 1
        else:
            break
    return streak


def build_summary(trades: Iterable[TradeRead]) -> TradeSummary:
    """Aggregate trades, newest first, into headline counts and performance metrics.

    Every performance figure (win rate, P&L, profit factor, expectancy, R,
    streak and the per-session buckets) is taken over closed trades that
    carry a P&L. Open trades and closed trades without a P&L only show up in
    the trade counts. Trades without a session get no bucket.
    """
    summary = TradeSummary()
    decided: List[TradeRead] = []

    for trade in trades:
        summary.total_trades += 1
        if trade.is_open:
            summary.open_trades += 1
            continue
        summary.closed_trades += 1
        if trade.net_pnl is not None:
            decided.append(trade)

    if not decided:
        return summary

    pnls = [trade.net_pnl for trade in decided]
    summary.wins = sum(1 for pnl in pnls if pnl > 0)
    summary.losses = sum(1 for pnl in pnls if pnl < 0)
    summary.breakeven = len(pnls) - summary.wins - summary.losses
    summary.win_rate = _win_rate(summary.wins, len(pnls))
    summary.net_pnl = sum(pnls)
    summary.profit_factor = _profit_factor(
        sum(pnl for pnl in pnls if pnl > 0),
        abs(sum(pnl for pnl in pnls if pnl < 0)),
    )
    summary.expectancy = summary.net_pnl / len(pnls)
    summary.average_r = _mean(
        [trade.r_multiple_actual for trade in decided if trade.r_multiple_actual is not None]
    )
    summary.best_trade = max(pnls)
    summary.worst_trade = min(pnls)
    summary.current_streak = _current_streak(pnls)

    sessions: Dict[str, List[TradeRead]] = {}
    for trade in decided:
        if trade.session:
            sessions.setdefault(trade.session, []).append(trade)

    for key in SESSIONS:
        if key not in sessions:
            continue
        bucket_pnls = [trade.net_pnl for trade in sessions[key]]
        wins = sum(1 for pnl in bucket_pnls if pnl > 0)
        losses = sum(1 for pnl in bucket_pnls if pnl < 0)
        summary.by_session[key] = SessionBreakdown(
            trades=len(bucket_pnls),
            wins=wins,
            losses=losses,
            breakeven=len(bucket_pnls) - wins - losses,
            net_pnl=sum(bucket_pnls),
            win_rate=_win_rate(wins, len(bucket_pnls)),
            avg_r=_mean(
                [t.r_multiple_actual for t in sessions[key] if t.r_multiple_actual is not None]
            ),
        )
    return summary


def summarize_trades(filters: SummaryFilters) -> TradeSummary:
    symbol = filters.symbol.strip().upper() if filters.symbol else None
    rows = journal_db.list_trades(
        symbol=symbol,
        playbook_id=filters.playbook_id,
        start_date=_normalize_timestamp(filters.start_date),
        end_date=_normalize_timestamp(filters.end_date),
        limit=None,
    )
    return build_summary(TradeRead(**row) for row in rows)


def create_playbook(dto: PlaybookCreate) -> PlaybookRead:
    name = dto.name.strip()
    if not name:
        raise ValueError("name is required")
    if journal_db.get_playbook_by_name(name) is not None:
        raise ValueError(f"playbook '{name}' already exists")
    now = datetime.utcnow()
    record = {
        "id": uuid4(),
        "name": name,
        "description": dto.description,
        "checklist": _serialize_items(dto.checklist),
        "rules": _serialize_items(dto.rules),
        "created_at": now,
        "updated_at": now,
    }
    row = journal_db.insert_playbook(record)
    if row is None:
        raise RuntimeError("Failed to create playbook")
    return _build_playbook(row)


def get_playbook(playbook_id: UUID) -> PlaybookRead:
    row = journal_db.get_playbook(playbook_id)
    if row is None:
        raise JournalNotFoundError(str(playbook_id))
    return _build_playbook(row)


def update_playbook(playbook_id: UUID, dto: PlaybookUpdate) -> PlaybookRead:
    existing = journal_db.get_playbook(playbook_id)
    if existing is None:
        raise JournalNotFoundError(str(playbook_id))

    updates: Dict[str, Any] = {}
    payload = dto.model_dump(exclude_unset=True)
    if "name" in payload:
        name = (payload["name"] or "").strip()
        if not name:
            raise ValueError("name is required")
        clash = journal_db.get_playbook_by_name(name)
        if clash is not None and clash["id"] != existing["id"]:
            raise ValueError(f"playbook '{name}' already exists")
        updates["name"] = name
    if "description" in payload:
        updates["description"] = payload["description"]
    if "checklist" in payload:
        updates["checklist"] = _serialize_items(payload["checklist"])
    if "rules" in payload:
        updates["rules"] = _serialize_items(payload["rules"])

    if updates:
        updates["updated_at"] = datetime.utcnow()

    row = journal_db.update_playbook(playbook_id, updates)
    if row is None:
        raise JournalNotFoundError(str(playbook_id))
    return _build_playbook(row)


def delete_playbook(playbook_id: UUID) -> None:
    deleted = journal_db.delete_playbook(playbook_id)
    if not deleted:
        raise JournalNotFoundError(str(playbook_id))


def list_playbooks() -> List[PlaybookRead]:
    rows = journal_db.list_playbooks()
    return [_build_playbook(row) for row in rows]
