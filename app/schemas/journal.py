from __future__ import annotations

import math
from datetime import datetime
from typing import Dict, List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, field_serializer

Direction = Literal["buy", "sell"]
Session = Literal["tokyo", "london", "new_york_am", "new_york_pm", "off_hours"]

SESSIONS: tuple[str, ...] = ("tokyo", "london", "new_york_am", "new_york_pm", "off_hours")


class TradeCreate(BaseModel):
    symbol: str = Field(..., min_length=1, max_length=20)
    direction: str = Field(..., min_length=1)
    entry_time: datetime
    exit_time: Optional[datetime] = None
    entry_price: float = 0.0
    exit_price: Optional[float] = None
    total_lots: float = Field(0.01, gt=0)
    sl_initial: Optional[float] = None
    tp_initial: Optional[float] = None
    net_pnl: Optional[float] = None
    r_multiple_actual: Optional[float] = None
    session: Optional[Session] = None
    is_open: Optional[bool] = None
    playbook_id: Optional[UUID] = None
    notes: Optional[str] = None


class TradeUpdate(BaseModel):
    symbol: Optional[str] = Field(None, min_length=1, max_length=20)
    direction: Optional[str] = Field(None, min_length=1)
    entry_time: Optional[datetime] = None
    exit_time: Optional[datetime] = None
    entry_price: Optional[float] = None
    exit_price: Optional[float] = None
    total_lots: Optional[float] = Field(None, gt=0)
    sl_initial: Optional[float] = None
    tp_initial: Optional[float] = None
    net_pnl: Optional[float] = None
    r_multiple_actual: Optional[float] = None
    session: Optional[Session] = None
    is_open: Optional[bool] = None
    playbook_id: Optional[UUID] = None
    notes: Optional[str] = None


class TradeRead(BaseModel):
    id: UUID
    symbol: str
    direction: Direction
    entry_time: datetime
    exit_time: Optional[datetime] = None
    entry_price: float
    exit_price: Optional[float] = None
    total_lots: float
    sl_initial: Optional[float] = None
    tp_initial: Optional[float] = None
    net_pnl: Optional[float] = None
    r_multiple_actual: Optional[float] = None
    session: Optional[Session] = None
    is_open: bool
    playbook_id: Optional[UUID] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class TradeListFilters(BaseModel):
    symbol: Optional[str] = None
    direction: Optional[Direction] = None
    session: Optional[Session] = None
    is_open: Optional[bool] = None
    playbook_id: Optional[UUID] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    limit: int = Field(50, ge=1, le=500)
    offset: int = Field(0, ge=0)


class SummaryFilters(BaseModel):
    symbol: Optional[str] = None
    playbook_id: Optional[UUID] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class SessionBreakdown(BaseModel):
    trades: int = 0
    wins: int = 0
    losses: int = 0
    breakeven: int = 0
    net_pnl: float = 0.0
    win_rate: Optional[float] = None
    avg_r: Optional[float] = None


class Streak(BaseModel):
    type: Literal["win", "loss"] = "win"
    count: int = 0


class TradeSummary(BaseModel):
    total_trades: int = 0
    open_trades: int = 0
    closed_trades: int = 0
    wins: int = 0
    losses: int = 0
    breakeven: int = 0
    win_rate: Optional[float] = None
    net_pnl: float = 0.0
    profit_factor: float = 0.0
    expectancy: Optional[float] = None
    average_r: Optional[float] = None
    best_trade: Optional[float] = None
    worst_trade: Optional[float] = None
    current_streak: Streak = Field(default_factory=Streak)
    by_session: Dict[str, SessionBreakdown] = Field(default_factory=dict)

    @field_serializer("profit_factor", when_used="json")
    def _serialize_profit_factor(self, value: float) -> Union[float, str]:
        # JSON has no infinity literal
        if math.isinf(value):
            return "Infinity"
        return value


class PlaybookCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    checklist: List[str] = Field(default_factory=list)
    rules: List[str] = Field(default_factory=list)


class PlaybookUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    checklist: Optional[List[str]] = None
    rules: Optional[List[str]] = None


class PlaybookRead(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    checklist: List[str] = Field(default_factory=list)
    rules: List[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


__all__ = [
    "Direction",
    "Session",
    "SESSIONS",
    "TradeCreate",
    "TradeUpdate",
    "TradeRead",
    "TradeListFilters",
    "SummaryFilters",
    "SessionBreakdown",
    "Streak",
    "TradeSummary",
    "PlaybookCreate",
    "PlaybookUpdate",
    "PlaybookRead",
]
