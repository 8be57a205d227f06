"""Spreadsheet sync API router (admin only)."""

from fastapi import APIRouter, Depends

from licensary.common.exceptions import SyncDisabledError
from licensary.common.security import CallerIdentity, require_admin
from licensary.sheets.schemas import ExportResponse, PullResponse, SyncStatusResponse

router = APIRouter()


def _get_engine():
    from licensary.deps import get_sync_engine
    engine = get_sync_engine()
    if engine is None:
        raise SyncDisabledError()
    return engine


async def _record(actor_id: int, action: str, details: dict) -> None:
    from licensary.deps import get_audit_service, get_db

    async with get_db().get_session() as session:
        await get_audit_service().record_operation(
            session, actor_id, action, target="sheet", details=details,
        )


@router.post("/sync/pull", response_model=PullResponse)
async def trigger_pull(identity: CallerIdentity = Depends(require_admin)):
    engine = _get_engine()
    result = await engine.pull()
    await _record(identity.user_id, "sync.pull", {
        "inserted": result.inserted, "skipped": len(result.skipped), "aborted": result.aborted,
    })
    return PullResponse.model_validate(result)


@router.post("/sync/export", response_model=ExportResponse)
async def trigger_export(identity: CallerIdentity = Depends(require_admin)):
    engine = _get_engine()
    result = await engine.export_all()
    await _record(identity.user_id, "sync.export", {
        "updated": result.updated, "appended": result.appended,
    })
    return ExportResponse.model_validate(result)


@router.get("/sync/status", response_model=SyncStatusResponse)
async def sync_status(_: CallerIdentity = Depends(require_admin)):
    from licensary.common.config import get_settings
    from licensary.deps import get_push_queue, get_sync_engine

    engine = get_sync_engine()
    if engine is None:
        return SyncStatusResponse(enabled=False)

    settings = get_settings()
    queue = get_push_queue()
    return SyncStatusResponse(
        enabled=True,
        sheet_name=settings.sheets_sheet_name,
        pull_running=engine.pull_running,
        pull_interval=settings.sheets_pull_interval,
        pending_pushes=queue.pending if queue else 0,
        pushed=queue.pushed if queue else 0,
        failed_pushes=queue.failed if queue else 0,
        dropped_pushes=queue.dropped if queue else 0,
        skipped_pushes=queue.skipped if queue else 0,
        last_pull=PullResponse.model_validate(engine.last_pull) if engine.last_pull else None,
    )
