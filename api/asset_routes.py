# ============================================================================
# ASSET ROUTES
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Core - FastAPI routes for the asset lifecycle
# PURPOSE: Upload, ownership, archive, delete/restore/destroy, queries, playback
# CREATED: 12 OCT 2026
# ============================================================================
"""
Asset Routes

Thin HTTP layer over AssetLifecycleService and OwnershipService.
Business rules live in the services; errors propagate as ServiceError and
are mapped to HTTP by api.errors.

Endpoints (mounted under /api/v1):
    POST   /assets/{provider}/uploads      create upload target + pending asset
    GET    /assets                         list active (?state= narrows)
    GET    /assets/deleted                 list soft-deleted
    GET    /assets/unowned                 list active without owner
    GET    /assets/{asset_id}              get (?include_deleted=true)
    POST   /assets/{asset_id}/owners       associate
    DELETE /assets/{asset_id}/owners       deassociate
    PUT    /assets/{asset_id}/owners       replace owner set
    POST   /assets/{asset_id}/archive      ready → archived
    POST   /assets/{asset_id}/unarchive    archived → ready
    DELETE /assets/{asset_id}              soft delete
    POST   /assets/{asset_id}/restore      undo soft delete
    DELETE /assets/{asset_id}/permanent    destroy (remote + record + document)
    POST   /assets/{asset_id}/playback-token
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Response

from core.contracts import AssetState, ProviderKind
from services.lifecycle_service import AssetPage, AssetView, MAX_PAGE_SIZE
from .schemas import (
    AssetListResponse,
    AssetResponse,
    ErrorResponse,
    OwnerBody,
    OwnersUpdate,
    OwnersUpdateResponse,
    PlaybackTokenCreate,
    PlaybackTokenResponse,
    UploadCreate,
    UploadResponse,
    UploadTargetResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Assets"])


# ============================================================================
# DEPENDENCY INJECTION
# ============================================================================
# These will be set by the main app at startup

_lifecycle_service = None
_ownership_service = None


def set_asset_services(lifecycle_service, ownership_service):
    """Set service instances for dependency injection."""
    global _lifecycle_service, _ownership_service
    _lifecycle_service = lifecycle_service
    _ownership_service = ownership_service


def get_lifecycle_service():
    if _lifecycle_service is None:
        raise HTTPException(500, "Lifecycle service not initialized")
    return _lifecycle_service


def get_ownership_service():
    if _ownership_service is None:
        raise HTTPException(500, "Ownership service not initialized")
    return _ownership_service


def _view_response(view: AssetView) -> AssetResponse:
    return AssetResponse.from_model(view.record, view.metadata)


def _page_response(page: AssetPage) -> AssetListResponse:
    return AssetListResponse(
        assets=[_view_response(v) for v in page.items],
        total=page.total,
        limit=page.limit,
        offset=page.offset,
    )


_ERRORS = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


# ============================================================================
# CREATE
# ============================================================================

@router.post(
    "/assets/{provider}/uploads",
    response_model=UploadResponse,
    status_code=201,
    responses=_ERRORS,
)
async def create_upload(provider: ProviderKind, request: UploadCreate):
    """
    Create a pending asset and return a direct-upload target.

    The caller uploads bytes straight to the provider; the asset becomes
    ready when the provider's webhook arrives.
    """
    service = get_lifecycle_service()
    record, target = await service.create_upload(provider, request.to_request())
    logger.info(f"Created {provider.value} upload for asset {record.asset_id}")
    return UploadResponse(
        asset=AssetResponse.from_model(record),
        upload=UploadTargetResponse.from_model(target),
    )


# ============================================================================
# QUERIES
# ============================================================================

@router.get("/assets", response_model=AssetListResponse)
async def list_assets(
    limit: int = Query(50, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    state: Optional[AssetState] = Query(None),
):
    """List active assets, newest first, optionally in one state."""
    page = await get_lifecycle_service().list(limit, offset, state=state)
    return _page_response(page)


@router.get("/assets/deleted", response_model=AssetListResponse)
async def list_deleted_assets(
    limit: int = Query(50, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
):
    page = await get_lifecycle_service().list_deleted(limit, offset)
    return _page_response(page)


@router.get("/assets/unowned", response_model=AssetListResponse)
async def list_unowned_assets(
    limit: int = Query(50, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
):
    page = await get_lifecycle_service().list_unowned(limit, offset)
    return _page_response(page)


@router.get("/assets/{asset_id}", response_model=AssetResponse, responses=_ERRORS)
async def get_asset(asset_id: str, include_deleted: bool = Query(False)):
    """Get one asset with its metadata. Soft-deleted assets need include_deleted."""
    view = await get_lifecycle_service().get(asset_id, include_deleted=include_deleted)
    return _view_response(view)


# ============================================================================
# OWNERSHIP
# ============================================================================

@router.post("/assets/{asset_id}/owners", response_model=AssetResponse, responses=_ERRORS)
async def associate_owner(asset_id: str, body: OwnerBody):
    record = await get_ownership_service().associate(asset_id, body.to_ref())
    return AssetResponse.from_model(record)


@router.delete("/assets/{asset_id}/owners", response_model=AssetResponse, responses=_ERRORS)
async def deassociate_owner(asset_id: str, body: OwnerBody):
    record = await get_ownership_service().deassociate(asset_id, body.to_ref())
    return AssetResponse.from_model(record)


@router.put("/assets/{asset_id}/owners", response_model=OwnersUpdateResponse, responses=_ERRORS)
async def update_owners(asset_id: str, body: OwnersUpdate):
    """Replace the owner set. Removals are applied before additions."""
    record, diff = await get_ownership_service().update_owners(asset_id, body.owners)
    return OwnersUpdateResponse(
        asset=AssetResponse.from_model(record),
        added=list(diff.to_add),
        removed=list(diff.to_remove),
    )


# ============================================================================
# STATE TRANSITIONS
# ============================================================================

@router.post("/assets/{asset_id}/archive", response_model=AssetResponse, responses=_ERRORS)
async def archive_asset(asset_id: str):
    record = await get_lifecycle_service().archive(asset_id)
    return AssetResponse.from_model(record)


@router.post("/assets/{asset_id}/unarchive", response_model=AssetResponse, responses=_ERRORS)
async def unarchive_asset(asset_id: str):
    record = await get_lifecycle_service().unarchive(asset_id)
    return AssetResponse.from_model(record)


@router.delete("/assets/{asset_id}", response_model=AssetResponse, responses=_ERRORS)
async def delete_asset(asset_id: str):
    """Soft delete. The owner, if any, is released and notified."""
    record = await get_lifecycle_service().delete(asset_id)
    return AssetResponse.from_model(record)


@router.post("/assets/{asset_id}/restore", response_model=AssetResponse, responses=_ERRORS)
async def restore_asset(asset_id: str):
    record = await get_lifecycle_service().restore(asset_id)
    return AssetResponse.from_model(record)


@router.delete("/assets/{asset_id}/permanent", status_code=204, responses=_ERRORS)
async def destroy_asset(asset_id: str):
    """Remove remote bytes, the record and the metadata document."""
    await get_lifecycle_service().delete_permanent(asset_id)
    return Response(status_code=204)


# ============================================================================
# PLAYBACK
# ============================================================================

@router.post(
    "/assets/{asset_id}/playback-token",
    response_model=PlaybackTokenResponse,
    responses={**_ERRORS, 501: {"model": ErrorResponse}},
)
async def create_playback_token(asset_id: str, body: PlaybackTokenCreate):
    token, expires_at = await get_lifecycle_service().sign_playback_credential(
        asset_id, body.expires_in, body.claims or None
    )
    return PlaybackTokenResponse(token=token, expires_at=expires_at)
