"""Resource Dependencies API

POST   /api/resources/{resource_id}/versions/{version_id}/dependencies - Add dependency
GET    /api/resources/{resource_id}/versions/{version_id}/dependencies - List dependencies
GET    /api/resources/{resource_id}/versions/{version_id}/dependencies/graph - Dependency graph (JSON or DOT)
PATCH  /api/resources/{resource_id}/versions/{version_id}/dependencies/{dependency_id} - Update dependency
DELETE /api/resources/{resource_id}/versions/{version_id}/dependencies/{dependency_id} - Remove dependency
GET    /api/resources/{resource_id}/versions/{version_id}/install-plan - Ordered install plan
GET    /api/resources/{resource_id}/dependents - Resources depending on this one

The caller is identified by the X-User-Id header; reads work anonymously.
"""

import sqlite3
from typing import Any, Dict, Iterator, Optional

from fastapi import APIRouter, Depends, Header, Query, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field

from resourcedeps.core.context import RequestContext
from resourcedeps.core.dependencies import DependencyService, ResolutionState, make_draft
from resourcedeps.store import get_db
from resourcedeps.webui.api.error_envelope import GRAPH_FAILURE_MESSAGE, ErrorEnvelope

router = APIRouter()


# ============================================
# Dependencies
# ============================================


def get_connection(request: Request) -> Iterator[sqlite3.Connection]:
    """One connection per request, closed afterwards"""
    conn = get_db(getattr(request.app.state, "db_path", None))
    try:
        yield conn
    finally:
        conn.close()


def get_service(request: Request, conn: sqlite3.Connection = Depends(get_connection)) -> DependencyService:
    return DependencyService(conn, getattr(request.app.state, "settings", None))


def get_request_context(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_request_id: Optional[str] = Header(None, alias="X-Request-Id"),
) -> RequestContext:
    if x_request_id:
        return RequestContext(user_id=x_user_id or None, request_id=x_request_id)
    return RequestContext(user_id=x_user_id or None)


# ============================================
# Request Models
# ============================================


class CreateDependencyRequest(BaseModel):
    """Either dependency_resource_id (internal) or external_name + external_url (external)"""

    dependency_type: str = "REQUIRED"
    dependency_resource_id: Optional[str] = None
    min_version_id: Optional[str] = None
    external_name: Optional[str] = Field(None, max_length=200)
    external_url: Optional[str] = None
    external_min_version: Optional[str] = Field(None, max_length=50)


class UpdateDependencyRequest(BaseModel):
    """Omitted fields are left unchanged; explicit nulls clear minimum versions"""

    dependency_type: Optional[str] = None
    min_version_id: Optional[str] = None
    external_min_version: Optional[str] = Field(None, max_length=50)


# ============================================
# Routes
# ============================================


@router.post(
    "/resources/{resource_id}/versions/{version_id}/dependencies",
    status_code=status.HTTP_201_CREATED,
)
async def add_dependency(
    resource_id: str,
    version_id: str,
    body: CreateDependencyRequest,
    service: DependencyService = Depends(get_service),
    ctx: RequestContext = Depends(get_request_context),
) -> Dict[str, Any]:
    draft = make_draft(
        body.dependency_type,
        resource_id=body.dependency_resource_id,
        min_version_id=body.min_version_id,
        external_name=body.external_name,
        external_url=body.external_url,
        external_min_version=body.external_min_version,
    )
    edge = service.add_dependency(ctx, resource_id, version_id, draft)
    return {"message": "Dependency added successfully", "dependency": edge.to_dict()}


@router.get("/resources/{resource_id}/versions/{version_id}/dependencies")
async def list_dependencies(
    resource_id: str,
    version_id: str,
    service: DependencyService = Depends(get_service),
    ctx: RequestContext = Depends(get_request_context),
) -> Dict[str, Any]:
    edges = service.get_dependencies(ctx, resource_id, version_id)
    return {"dependencies": [e.to_dict() for e in edges], "total": len(edges)}


@router.get("/resources/{resource_id}/versions/{version_id}/dependencies/graph")
async def get_dependency_graph(
    resource_id: str,
    version_id: str,
    include_optional: bool = Query(False),
    format: str = Query("json", pattern="^(json|dot)$"),
    service: DependencyService = Depends(get_service),
    ctx: RequestContext = Depends(get_request_context),
):
    """Transitive dependency graph; format=dot returns GraphViz text"""
    graph = service.get_graph(ctx, resource_id, version_id, include_optional=include_optional)
    if format == "dot":
        return PlainTextResponse(graph.to_dot())
    return graph.to_dict()


@router.patch("/resources/{resource_id}/versions/{version_id}/dependencies/{dependency_id}")
async def update_dependency(
    resource_id: str,
    version_id: str,
    dependency_id: str,
    body: UpdateDependencyRequest,
    service: DependencyService = Depends(get_service),
    ctx: RequestContext = Depends(get_request_context),
) -> Dict[str, Any]:
    changes = {field: getattr(body, field) for field in body.model_fields_set}
    if changes.get("dependency_type") is None:
        changes.pop("dependency_type", None)
    edge = service.update_dependency(ctx, resource_id, version_id, dependency_id, **changes)
    return {"message": "Dependency updated successfully", "dependency": edge.to_dict()}


@router.delete("/resources/{resource_id}/versions/{version_id}/dependencies/{dependency_id}")
async def remove_dependency(
    resource_id: str,
    version_id: str,
    dependency_id: str,
    service: DependencyService = Depends(get_service),
    ctx: RequestContext = Depends(get_request_context),
) -> Dict[str, Any]:
    removed = service.remove_dependency(ctx, resource_id, version_id, dependency_id)
    return {"message": "Dependency removed successfully", "removed": removed}


@router.get("/resources/{resource_id}/versions/{version_id}/install-plan")
async def get_install_plan(
    resource_id: str,
    version_id: str,
    include_optional: bool = Query(False),
    service: DependencyService = Depends(get_service),
    ctx: RequestContext = Depends(get_request_context),
):
    """Ordered install plan

    RESOLVED returns the outcome. CONFLICT is a 409 envelope with the
    conflicting edges; ERROR (stored cycle, runaway graph) is a generic 500.
    Both carry the terminal state and request id in their details.
    """
    outcome = service.run_resolution(ctx, resource_id, version_id, include_optional=include_optional)
    if outcome.state == ResolutionState.RESOLVED:
        return outcome.to_dict()

    trace = {"state": outcome.state.value, "request_id": outcome.request_id}
    if outcome.state == ResolutionState.CONFLICT:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=ErrorEnvelope.format_error(
                error_code=outcome.error_code,
                message=outcome.error_message,
                details={**outcome.error_details, **trace},
            ),
        )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorEnvelope.format_error(
            error_code="INTERNAL_ERROR",
            message=GRAPH_FAILURE_MESSAGE,
            details=trace,
        ),
    )


@router.get("/resources/{resource_id}/dependents")
async def list_dependents(
    resource_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
    service: DependencyService = Depends(get_service),
    ctx: RequestContext = Depends(get_request_context),
) -> Dict[str, Any]:
    """Dependents grouped by resource; limit is capped at the configured maximum"""
    return service.get_dependents(ctx, resource_id, page=page, limit=limit).to_dict()
