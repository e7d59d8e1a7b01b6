"""Pydantic request/response models for the REST API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Error envelope returned by every failing endpoint."""

    error: str
    detail: str


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
    provider: str
    resources: int
    serial: int


class ResourceRecordModel(BaseModel):
    address: str
    kind: str
    name: str
    id: str
    inputs: dict[str, Any] = Field(default_factory=dict)
    outputs: dict[str, Any] = Field(default_factory=dict)
    dependencies: list[str] = Field(default_factory=list)
    tainted: bool = False
    updated_at: str = ""


class StateResponse(BaseModel):
    serial: int
    resources: list[ResourceRecordModel]


class OutputsResponse(BaseModel):
    outputs: dict[str, Any]


class DeclarationRequest(BaseModel):
    """An inline declaration document plus variable values."""

    document: dict[str, Any] = Field(
        ...,
        description="Declaration document with variables/resources/outputs sections",
    )
    variables: dict[str, Any] = Field(default_factory=dict)


class ValidateResponse(BaseModel):
    valid: bool = True
    resources: int
    realized: int
    pruned: list[str]
    waves: list[list[str]]


class PlannedChangeModel(BaseModel):
    address: str
    action: str
    changed_fields: list[str] = Field(default_factory=list)
    reason: str = ""


class DriftModel(BaseModel):
    address: str
    fields: list[str]


class PlanResponse(BaseModel):
    summary: dict[str, int]
    changes: list[PlannedChangeModel]
    drift: list[DriftModel] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    pruned: list[str] = Field(default_factory=list)
