from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, HTTPException, Request, status

from app.logging_config import get_logger
from app.schemas.trade_import import (
    ColumnMappingEntry,
    ImportedTradePreview,
    ImportFieldOption,
    ImportNoticeRead,
    ImportPreviewRead,
    ImportProgressRead,
    ImportResultRead,
    ImportSessionRead,
    ImportUpload,
    MappingUpdate,
)
from app.services.import_sessions import ImportSessionStore
from app.services.journal import JournalNotFoundError
from app.services.trade_import import (
    TARGET_FIELDS,
    CsvParseError,
    ImportResult,
    ImportSession,
    ImportStateError,
)

logger = get_logger("routes.imports")

router = APIRouter(prefix="/journal", tags=["imports"])


def _store(request: Request) -> ImportSessionStore:
    store = getattr(request.app.state, "imports", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Import sessions unavailable")
    return store


async def _session(request: Request, session_id: UUID) -> ImportSession:
    try:
        return await _store(request).get(session_id)
    except JournalNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Import session not found")


def _result_read(result: ImportResult) -> ImportResultRead:
    return ImportResultRead(
        imported=result.imported,
        failed=result.failed,
        total=result.total,
        message=result.message,
    )


def _session_read(session: ImportSession) -> ImportSessionRead:
    progress = None
    if session.progress is not None:
        progress = ImportProgressRead(
            processed=session.progress.processed,
            total=session.progress.total,
            imported=session.progress.imported,
            failed=session.progress.failed,
            percent=session.progress.percent,
        )
    notice = None
    if session.last_notice is not None:
        notice = ImportNoticeRead(
            title=session.last_notice.title,
            description=session.last_notice.description,
            error=session.last_notice.error,
        )
    return ImportSessionRead(
        id=session.id,
        step=session.step.value,
        filename=session.filename,
        headers=list(session.headers),
        mapping=[
            ColumnMappingEntry(source_column=m.source_column, target_field=m.target_field)
            for m in session.mapping
        ],
        row_count=len(session.rows),
        progress=progress,
        last_result=_result_read(session.last_result) if session.last_result else None,
        last_notice=notice,
    )


def _check_upload_size(store: ImportSessionStore, payload: ImportUpload) -> None:
    size = len(payload.content.encode("utf-8"))
    if size > store.max_upload_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"File is {size} bytes; limit is {store.max_upload_bytes}",
        )


@router.get("/imports/fields", response_model=List[ImportFieldOption])
async def list_import_fields() -> List[ImportFieldOption]:
    return [ImportFieldOption(value=value, label=label) for value, label in TARGET_FIELDS.items()]


@router.post(
    "/imports",
    response_model=ImportSessionRead,
    status_code=status.HTTP_201_CREATED,
)
async def start_import(payload: ImportUpload, request: Request) -> ImportSessionRead:
    store = _store(request)
    _check_upload_size(store, payload)
    session = await store.create()
    try:
        session.load_file(payload.content, payload.filename)
    except CsvParseError as exc:
        await store.discard(session.id)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return _session_read(session)


@router.get("/imports/{session_id}", response_model=ImportSessionRead)
async def get_import(session_id: UUID, request: Request) -> ImportSessionRead:
    return _session_read(await _session(request, session_id))


@router.post("/imports/{session_id}/file", response_model=ImportSessionRead)
async def reload_import_file(
    session_id: UUID, payload: ImportUpload, request: Request
) -> ImportSessionRead:
    session = await _session(request, session_id)
    _check_upload_size(_store(request), payload)
    try:
        session.load_file(payload.content, payload.filename)
    except ImportStateError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except CsvParseError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return _session_read(session)


@router.patch("/imports/{session_id}/mapping", response_model=ImportSessionRead)
async def update_import_mapping(
    session_id: UUID, payload: MappingUpdate, request: Request
) -> ImportSessionRead:
    session = await _session(request, session_id)
    changes = {entry.source_column: entry.target_field for entry in payload.mappings}
    try:
        session.apply_mappings(changes)
    except ImportStateError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return _session_read(session)


@router.post("/imports/{session_id}/continue", response_model=ImportPreviewRead)
async def continue_import(session_id: UUID, request: Request) -> ImportPreviewRead:
    session = await _session(request, session_id)
    try:
        session.continue_to_preview()
    except ImportStateError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return ImportPreviewRead(
        session=_session_read(session),
        trades=[ImportedTradePreview(**record) for record in session.preview()],
        total_rows=len(session.rows),
    )


@router.post("/imports/{session_id}/back", response_model=ImportSessionRead)
async def step_back_import(session_id: UUID, request: Request) -> ImportSessionRead:
    session = await _session(request, session_id)
    try:
        session.back()
    except ImportStateError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return _session_read(session)


@router.post("/imports/{session_id}/run", response_model=ImportResultRead)
async def run_import(session_id: UUID, request: Request) -> ImportResultRead:
    session = await _session(request, session_id)
    try:
        result = await session.run()
    except ImportStateError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    logger.info("Import %s finished: %s", session.id, result.message)
    return _result_read(result)


@router.delete(
    "/imports/{session_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_model=None,
)
async def discard_import(session_id: UUID, request: Request) -> None:
    try:
        await _store(request).discard(session_id)
    except JournalNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Import session not found")


__all__ = ["router"]
