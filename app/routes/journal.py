from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from app.schemas.journal import (
    PlaybookCreate,
    PlaybookRead,
    PlaybookUpdate,
    SummaryFilters,
    TradeCreate,
    TradeListFilters,
    TradeRead,
    TradeSummary,
    TradeUpdate,
)
from app.services import journal as journal_service
from app.services.journal import JournalNotFoundError


router = APIRouter(prefix="/journal", tags=["journal"])


@router.get("/trades", response_model=List[TradeRead])
async def list_trades(filters: TradeListFilters = Depends()) -> List[TradeRead]:
    return journal_service.list_trades(filters)


@router.post(
    "/trades",
    response_model=TradeRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_trade(payload: TradeCreate) -> TradeRead:
    try:
        return journal_service.create_trade(payload)
    except JournalNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Playbook not found")
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.get("/trades/summary", response_model=TradeSummary)
async def trade_summary(filters: SummaryFilters = Depends()) -> TradeSummary:
    return journal_service.summarize_trades(filters)


@router.get("/trades/{trade_id}", response_model=TradeRead)
async def get_trade(trade_id: UUID) -> TradeRead:
    try:
        return journal_service.get_trade(trade_id)
    except JournalNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Trade not found")


@router.patch("/trades/{trade_id}", response_model=TradeRead)
async def update_trade(trade_id: UUID, payload: TradeUpdate) -> TradeRead:
    try:
        return journal_service.update_trade(trade_id, payload)
    except JournalNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Trade or playbook not found")
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.delete(
    "/trades/{trade_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_model=None,
)
async def delete_trade(trade_id: UUID) -> None:
    try:
        journal_service.delete_trade(trade_id)
    except JournalNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Trade not found")


@router.get("/playbooks", response_model=List[PlaybookRead])
async def list_playbooks() -> List[PlaybookRead]:
    return journal_service.list_playbooks()


@router.post("/playbooks", response_model=PlaybookRead, status_code=status.HTTP_201_CREATED)
async def create_playbook(payload: PlaybookCreate) -> PlaybookRead:
    try:
        return journal_service.create_playbook(payload)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.get("/playbooks/{playbook_id}", response_model=PlaybookRead)
async def get_playbook(playbook_id: UUID) -> PlaybookRead:
    try:
        return journal_service.get_playbook(playbook_id)
    except JournalNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Playbook not found")


@router.patch("/playbooks/{playbook_id}", response_model=PlaybookRead)
async def update_playbook(playbook_id: UUID, payload: PlaybookUpdate) -> PlaybookRead:
    try:
        return journal_service.update_playbook(playbook_id, payload)
    except JournalNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Playbook not found")
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.delete(
    "/playbooks/{playbook_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_model=None,
)
async def delete_playbook(playbook_id: UUID) -> None:
    try:
        journal_service.delete_playbook(playbook_id)
    except JournalNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Playbook not found")


__all__ = ["router"]
