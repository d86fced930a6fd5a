from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

from sharpcrm.context import get_correlation_id
from sharpcrm.core.auth import get_current_identity
from sharpcrm.crm.schemas import CreatePermission, RecordPermissions, SearchResult
from sharpcrm.crm.service import AccessServices
from sharpcrm.platform.security.context import Identity
from sharpcrm.platform.security.errors import StoreError, UnknownResourceError
from sharpcrm.platform.security.policies import ResourceAction
from sharpcrm.platform.security.service import ResourceAccessService


logger = logging.getLogger("sharpcrm.request")

router = APIRouter(prefix="/api/crm", tags=["crm.access"])


@dataclass
class ErrorEnvelope:
    code: str
    message: str
    details: Any
    correlation_id: str | None


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    payload = ErrorEnvelope(code=code, message=message, details=details, correlation_id=correlation_id)
    return JSONResponse(status_code=status_code, content=payload.__dict__)


def get_access_services(request: Request) -> AccessServices:
    services = getattr(request.app.state, "access_services", None)
    if services is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Access services are not configured")
    return services


def _failure(request: Request, exc: UnknownResourceError | StoreError, code: str) -> JSONResponse:
    if isinstance(exc, UnknownResourceError):
        return error_response(
            request,
            status_code=status.HTTP_404_NOT_FOUND,
            code="crm_unknown_resource",
            message=str(exc),
            details={"resource": exc.resource},
        )

    logger.error("crm.store_failed", extra={"operation": exc.operation, "resource": exc.table, "error": str(exc)})
    return error_response(
        request,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        code=code,
        message="Record store is unavailable",
        details={"operation": exc.operation},
    )


def _not_found(request: Request, resource: str, record_id: str) -> JSONResponse:
    return error_response(
        request,
        status_code=status.HTTP_404_NOT_FOUND,
        code=f"crm_{resource}_not_found",
        message=f"{resource.capitalize()} not found",
        details={"id": record_id},
    )


@router.get("/{resource}", response_model=list[dict[str, Any]])
async def list_records(
    request: Request,
    resource: str,
    include_deleted: bool = Query(default=False),
    services: AccessServices = Depends(get_access_services),
    identity: Identity = Depends(get_current_identity),
) -> list[dict[str, Any]] | JSONResponse:
    try:
        return await services.get(resource).list_for_user(identity, include_deleted=include_deleted)
    except (UnknownResourceError, StoreError) as exc:
        return _failure(request, exc, "crm_list_failed")


@router.get("/{resource}/search", response_model=SearchResult)
async def search_records(
    request: Request,
    resource: str,
    q: str = Query(default=""),
    services: AccessServices = Depends(get_access_services),
    identity: Identity = Depends(get_current_identity),
) -> SearchResult | JSONResponse:
    try:
        items = await services.get(resource).search_for_user(identity, q)
        return SearchResult(resource=resource, term=q, count=len(items), items=items)
    except (UnknownResourceError, StoreError) as exc:
        return _failure(request, exc, "crm_search_failed")


@router.get("/{resource}/stats", response_model=dict[str, Any])
async def record_stats(
    request: Request,
    resource: str,
    services: AccessServices = Depends(get_access_services),
    identity: Identity = Depends(get_current_identity),
) -> dict[str, Any] | JSONResponse:
    try:
        return await services.get(resource).stats_for_user(identity)
    except (UnknownResourceError, StoreError) as exc:
        return _failure(request, exc, "crm_stats_failed")


@router.get("/{resource}/permissions", response_model=CreatePermission)
async def create_permission(
    request: Request,
    resource: str,
    services: AccessServices = Depends(get_access_services),
    identity: Identity = Depends(get_current_identity),
) -> CreatePermission | JSONResponse:
    try:
        service = services.get(resource)
    except UnknownResourceError as exc:
        return _failure(request, exc, "crm_permissions_failed")
    return CreatePermission(resource=resource, can_create=service.can_create(identity))


@router.get("/{resource}/by-owner/{owner_id}", response_model=list[dict[str, Any]])
async def list_records_by_owner(
    request: Request,
    resource: str,
    owner_id: str,
    services: AccessServices = Depends(get_access_services),
    identity: Identity = Depends(get_current_identity),
) -> list[dict[str, Any]] | JSONResponse:
    try:
        return await services.get(resource).get_by_owner_for_user(owner_id, identity)
    except (UnknownResourceError, StoreError) as exc:
        return _failure(request, exc, "crm_by_owner_failed")


@router.get("/{resource}/by/{attribute}/{value}", response_model=list[dict[str, Any]])
async def list_records_by_attribute(
    request: Request,
    resource: str,
    attribute: str,
    value: str,
    services: AccessServices = Depends(get_access_services),
    identity: Identity = Depends(get_current_identity),
) -> list[dict[str, Any]] | JSONResponse:
    try:
        return await services.get(resource).list_by_attribute_for_user(attribute, value, identity)
    except (UnknownResourceError, StoreError) as exc:
        return _failure(request, exc, "crm_by_attribute_failed")


@router.get("/{resource}/records/{record_id}", response_model=dict[str, Any])
@router.get("/{resource}/{record_id}", response_model=dict[str, Any])
async def get_record(
    request: Request,
    resource: str,
    record_id: str,
    services: AccessServices = Depends(get_access_services),
    identity: Identity = Depends(get_current_identity),
) -> dict[str, Any] | JSONResponse:
    try:
        record = await services.get(resource).get_by_id_for_user(record_id, identity)
    except (UnknownResourceError, StoreError) as exc:
        return _failure(request, exc, "crm_get_failed")
    if record is None:
        return _not_found(request, resource, record_id)
    return record


@router.get("/{resource}/records/{record_id}/permissions", response_model=RecordPermissions)
@router.get("/{resource}/{record_id}/permissions", response_model=RecordPermissions)
async def record_permissions(
    request: Request,
    resource: str,
    record_id: str,
    services: AccessServices = Depends(get_access_services),
    identity: Identity = Depends(get_current_identity),
) -> RecordPermissions | JSONResponse:
    try:
        service: ResourceAccessService = services.get(resource)
        visible = await service.get_by_id_for_user(record_id, identity)
        if visible is None:
            return _not_found(request, resource, record_id)
        can_edit = await service.get_for_write(record_id, identity, ResourceAction.EDIT) is not None
        can_soft_delete = await service.get_for_write(record_id, identity, ResourceAction.DELETE) is not None
        can_hard_delete = await service.can_hard_delete(record_id, identity)
    except (UnknownResourceError, StoreError) as exc:
        return _failure(request, exc, "crm_permissions_failed")
    return RecordPermissions(
        resource=resource,
        record_id=record_id,
        can_view=True,
        can_edit=can_edit,
        can_soft_delete=can_soft_delete,
        can_hard_delete=can_hard_delete,
    )
