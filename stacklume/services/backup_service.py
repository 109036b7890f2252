from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from fastapi import Body, Depends, HTTPException, Request
from fastapi.responses import Response

from models.requests import CreateBackupRequest, RestoreBackupRequest, validate_model
from services import import_service, restore_service, snapshot_service
from services.state import AppState, get_state
from sql_store import BackupRecord


log = logging.getLogger(__name__)


def _require_db(state: AppState) -> Any:
    db = getattr(state, "db", None)
    if db is None:
        raise HTTPException(status_code=503, detail="Database not initialized")
    return db


def _backup_info(rec: BackupRecord, message: str) -> Dict[str, Any]:
    return {
        "id": rec.id,
        "filename": rec.filename,
        "size": int(rec.size or 0),
        "backup_type": rec.backup_type,
        "created_at": float(rec.created_at),
        "message": message,
    }


async def list_backups(state: AppState = Depends(get_state)) -> List[Dict[str, Any]]:
    db = _require_db(state)
    try:
        rows = await snapshot_service.list_snapshots(db, state.settings.account_id)
    except Exception as e:
        log.exception("list backups failed")
        raise HTTPException(status_code=500, detail="Failed to fetch backups") from e
    return [snapshot_service.snapshot_summary(r) for r in rows]


async def create_backup(
    body: Optional[Dict[str, Any]] = Body(default=None),
    state: AppState = Depends(get_state),
) -> Dict[str, Any]:
    db = _require_db(state)
    settings = state.settings
    req, errors = validate_model(CreateBackupRequest, body or {})
    if req is None:
        raise HTTPException(
            status_code=400,
            detail={"error": "Validation failed", "details": errors},
        )

    if req.import_data is not None:
        try:
            rec = await snapshot_service.store_uploaded_snapshot(
                db,
                settings.account_id,
                req.import_data,
                retention_limit=settings.backup_max_per_account,
            )
        except snapshot_service.SnapshotValidationError as e:
            raise HTTPException(
                status_code=400,
                detail={"error": str(e), "details": e.errors},
            ) from e
        except Exception as e:
            log.exception("backup upload failed")
            raise HTTPException(status_code=500, detail="Failed to create backup") from e
        return _backup_info(rec, "Backup imported successfully")

    options = snapshot_service.SnapshotOptions(
        links=req.include_links,
        categories=req.include_categories,
        tags=req.include_tags,
        widgets=req.include_widgets,
        projects=req.include_projects,
        settings=req.include_settings,
    )
    try:
        rec = await snapshot_service.create_snapshot(
            db,
            settings.account_id,
            options,
            backup_type=req.backup_type,
            retention_limit=settings.backup_max_per_account,
        )
    except Exception as e:
        log.exception("backup create failed")
        raise HTTPException(status_code=500, detail="Failed to create backup") from e
    return _backup_info(rec, "Backup created successfully")


async def download_backup(
    backup_id: str,
    state: AppState = Depends(get_state),
) -> Response:
    db = _require_db(state)
    try:
        rec = await snapshot_service.get_snapshot(db, state.settings.account_id, backup_id)
    except Exception as e:
        log.exception("backup download failed id=%s", backup_id)
        raise HTTPException(status_code=500, detail="Failed to fetch backup") from e
    if rec is None:
        raise HTTPException(status_code=404, detail=restore_service.NOT_FOUND)
    return Response(
        content=snapshot_service.export_snapshot_json(rec),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{rec.filename}"'},
    )


async def delete_backup(
    backup_id: str,
    state: AppState = Depends(get_state),
) -> Dict[str, Any]:
    db = _require_db(state)
    try:
        deleted = await snapshot_service.delete_snapshot(
            db, state.settings.account_id, backup_id
        )
    except Exception as e:
        log.exception("backup delete failed id=%s", backup_id)
        raise HTTPException(status_code=500, detail="Failed to delete backup") from e
    if not deleted:
        raise HTTPException(status_code=404, detail=restore_service.NOT_FOUND)
    return {"ok": True, "message": "Backup deleted successfully"}


async def restore_backup(
    backup_id: str,
    body: Optional[Dict[str, Any]] = Body(default=None),
    state: AppState = Depends(get_state),
) -> Dict[str, Any]:
    db = _require_db(state)
    req, _ = validate_model(RestoreBackupRequest, body or {})
    if req is None or req.action != "restore":
        raise HTTPException(
            status_code=400,
            detail="Invalid action. Use 'restore' to restore a backup.",
        )

    try:
        result = await restore_service.restore_snapshot(
            db, state.settings.account_id, backup_id, req.merge_mode
        )
    except Exception as e:
        log.exception("backup restore failed id=%s", backup_id)
        raise HTTPException(status_code=500, detail="Failed to restore backup") from e

    if not result.success and result.errors[:1] == [restore_service.NOT_FOUND]:
        raise HTTPException(status_code=404, detail=restore_service.NOT_FOUND)

    out = result.to_dict()
    out["message"] = (
        "Backup restored successfully"
        if not result.errors
        else "Backup restored with some errors"
    )
    return out


async def import_links(
    request: Request,
    state: AppState = Depends(get_state),
) -> Dict[str, Any]:
    db = _require_db(state)
    settings = state.settings
    raw = await request.body()
    try:
        body = json.loads(raw.decode("utf-8"))
    except ValueError as e:
        raise HTTPException(
            status_code=400,
            detail={
                "error": "Invalid JSON in request body",
                "details": ["Request body must be valid JSON"],
            },
        ) from e
    try:
        result = await import_service.import_document(
            db,
            settings.account_id,
            body,
            skipped_details_max=settings.import_skipped_details_max,
        )
    except import_service.ImportValidationError as e:
        raise HTTPException(
            status_code=400,
            detail={"error": "Validation failed", "details": e.errors},
        ) from e
    except Exception as e:
        log.exception("link import failed")
        raise HTTPException(status_code=500, detail="Failed to import links") from e
    return result.to_dict()
