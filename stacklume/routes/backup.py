from __future__ import annotations

from fastapi import APIRouter

from services import backup_service


router = APIRouter(tags=["backups"])

router.add_api_route("/v1/backups", backup_service.list_backups, methods=["GET"])
router.add_api_route("/v1/backups", backup_service.create_backup, methods=["POST"])
router.add_api_route(
    "/v1/backups/{backup_id}",
    backup_service.download_backup,
    methods=["GET"],
)
router.add_api_route(
    "/v1/backups/{backup_id}",
    backup_service.delete_backup,
    methods=["DELETE"],
)
router.add_api_route(
    "/v1/backups/{backup_id}",
    backup_service.restore_backup,
    methods=["POST"],
)
