"""
Maintenance endpoints
"""
from fastapi import APIRouter, Depends

from hr_access.constants import RESOURCE_SETTINGS
from hr_access.core.deps import get_store, require_permission
from hr_access.schemas.rbac import BackfillRequest, BackfillResponse
from hr_access.services.backfill_service import run_backfill
from hr_access.services.permission_service import Actor
from hr_access.store import DocumentStore

router = APIRouter()


@router.post("/backfill", response_model=BackfillResponse)
def backfill_endpoint(
    request: BackfillRequest,
    store: DocumentStore = Depends(get_store),
    actor: Actor = Depends(require_permission(RESOURCE_SETTINGS, "update")),
):
    """
    Re-derive every denormalized field from its source of truth.

    Safe to run at any time; a run over consistent data performs no writes.
    """
    summary = run_backfill(store, page_size=request.page_size, dry_run=request.dry_run)
    return summary.to_dict()
