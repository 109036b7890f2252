from __future__ import annotations

from fastapi import APIRouter

from services import backup_service


router = APIRouter(tags=["import"])

router.add_api_route(
    "/v1/links/import",
    backup_service.import_links,
    methods=["POST"],
)
