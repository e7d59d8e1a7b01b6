"""REST endpoints under ``/api/v1``.

Plan and validate take an inline document so a caller can preview a change
without touching files on the server; neither mutates remote or recorded
state.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, Request

from tierforge.api.schemas import (
    DeclarationRequest,
    DriftModel,
    ErrorResponse,
    HealthResponse,
    OutputsResponse,
    PlannedChangeModel,
    PlanResponse,
    ResourceRecordModel,
    StateResponse,
    ValidateResponse,
)
from tierforge.declarations.loader import parse_document
from tierforge.engine.orchestrator import CompiledConfiguration, Orchestrator

_log = structlog.get_logger(component="api.routes")

router = APIRouter()

SENSITIVE_MASK = "(sensitive)"


def _orchestrator(request: Request) -> Orchestrator:
    return request.app.state.orchestrator  # type: ignore[no-any-return]


def _compile(request: Request, body: DeclarationRequest) -> CompiledConfiguration:
    declarations = parse_document(body.document, source="<request>")
    return _orchestrator(request).compile(declarations, body.variables)


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    from tierforge import __version__

    orchestrator = _orchestrator(request)
    return HealthResponse(
        version=__version__,
        provider=request.app.state.provider_name,
        resources=len(orchestrator.state),
        serial=orchestrator.state.serial,
    )


@router.get("/state", response_model=StateResponse)
async def state(request: Request) -> StateResponse:
    store = _orchestrator(request).state
    store.load()
    records = store.records()
    return StateResponse(
        serial=store.serial,
        resources=[
            ResourceRecordModel(address=address, **records[address].to_dict()) for address in sorted(records)
        ],
    )


@router.get(
    "/outputs",
    response_model=OutputsResponse,
    responses={404: {"model": ErrorResponse, "description": "No declarations loaded"}},
)
async def outputs(request: Request) -> OutputsResponse:
    compiled: CompiledConfiguration | None = request.app.state.compiled
    if compiled is None:
        raise HTTPException(status_code=404, detail="server was started without declarations")
    _orchestrator(request).state.load()
    values: dict[str, Any] = _orchestrator(request).outputs(compiled)
    for name, output in compiled.declarations.outputs.items():
        if output.sensitive and values.get(name) is not None:
            values[name] = SENSITIVE_MASK
    return OutputsResponse(outputs=values)


@router.post(
    "/validate",
    response_model=ValidateResponse,
    responses={422: {"model": ErrorResponse, "description": "Invalid declarations"}},
)
async def validate(request: Request, body: DeclarationRequest) -> ValidateResponse:
    compiled = _compile(request, body)
    return ValidateResponse(
        resources=len(compiled.declarations.resources),
        realized=compiled.realized.node_count,
        pruned=compiled.pruned,
        waves=compiled.realized.waves(),
    )


@router.post(
    "/plan",
    response_model=PlanResponse,
    responses={
        422: {"model": ErrorResponse, "description": "Invalid declarations"},
        502: {"model": ErrorResponse, "description": "Provider call failed"},
    },
)
async def plan(request: Request, body: DeclarationRequest) -> PlanResponse:
    compiled = _compile(request, body)
    _orchestrator(request).state.load()
    result = await _orchestrator(request).plan(compiled)
    _log.info("api_plan", **result.summary())
    return PlanResponse(
        summary=result.summary(),
        changes=[
            PlannedChangeModel(
                address=change.address,
                action=change.action.value,
                changed_fields=change.changed_fields,
                reason=change.reason,
            )
            for change in result.changes.values()
        ],
        drift=[DriftModel(address=d.address, fields=list(d.fields)) for d in result.drift],
        warnings=result.warnings,
        pruned=result.pruned,
    )
