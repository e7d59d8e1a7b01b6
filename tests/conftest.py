"""Shared fixtures for tierforge tests.

Tests use a small resource catalog (network -> database -> secret, plus
compute and gateway kinds) so scenarios stay readable; the built-in
three-tier catalog is exercised by the integration tests.
"""

from __future__ import annotations

from typing import Any

import pytest

from tierforge.declarations.loader import parse_document
from tierforge.engine.orchestrator import Orchestrator
from tierforge.models.config import RetryConfig, SchedulerConfig, TierforgeConfig
from tierforge.models.declarations import DeclarationSet
from tierforge.providers.simulated import SimulatedProvider
from tierforge.schema.types import FieldSpec, FieldType, ResourceSchema, SchemaRegistry
from tierforge.state.store import StateStore

S = FieldType.STRING
N = FieldType.NUMBER

# ---------------------------------------------------------------------------
# Test catalog
# ---------------------------------------------------------------------------

TEST_SCHEMAS = (
    ResourceSchema(
        kind="network",
        inputs={
            "cidr": FieldSpec(type=S, required=True, force_new=True),
            "tags": FieldSpec(type=FieldType.MAP, nullable=True, element=S),
        },
        outputs={"cidr": S},
    ),
    ResourceSchema(
        kind="database",
        inputs={
            "network_id": FieldSpec(type=S, required=True, force_new=True),
            "size": FieldSpec(type=N, nullable=True),
        },
        outputs={"endpoint": S},
    ),
    ResourceSchema(
        kind="secret",
        inputs={
            "database_id": FieldSpec(type=S, required=True),
            "value": FieldSpec(type=S, nullable=True),
        },
        outputs={"version": S},
    ),
    ResourceSchema(
        kind="compute",
        inputs={
            "network_id": FieldSpec(type=S, required=True, force_new=True),
            "instances": FieldSpec(type=N, nullable=True),
            "upstream": FieldSpec(type=S, nullable=True),
        },
        outputs={"private_ip": S},
    ),
    ResourceSchema(
        kind="gateway",
        inputs={
            "network_id": FieldSpec(type=S, required=True),
            "backend_ip": FieldSpec(type=S, nullable=True),
            "frontend_ip": FieldSpec(type=S, nullable=True),
            "primary_ip": FieldSpec(type=S),
        },
        outputs={"public_ip": S},
    ),
)


def make_registry() -> SchemaRegistry:
    return SchemaRegistry(TEST_SCHEMAS)


def make_declarations(
    resources: dict[str, Any],
    variables: dict[str, Any] | None = None,
    outputs: dict[str, Any] | None = None,
) -> DeclarationSet:
    """Build a DeclarationSet from document sections."""
    document: dict[str, Any] = {"resources": resources}
    if variables:
        document["variables"] = variables
    if outputs:
        document["outputs"] = outputs
    return parse_document(document, source="<test>")


def fast_config(max_concurrency: int = 10, max_attempts: int = 3) -> TierforgeConfig:
    """Config with near-zero retry delays."""
    return TierforgeConfig(
        scheduler=SchedulerConfig(max_concurrency=max_concurrency),
        retry=RetryConfig(max_attempts=max_attempts, base_delay_seconds=0.0, max_delay_seconds=0.01),
    )


def make_orchestrator(
    provider: SimulatedProvider | None = None,
    state: StateStore | None = None,
    registry: SchemaRegistry | None = None,
    config: TierforgeConfig | None = None,
) -> Orchestrator:
    registry = registry or make_registry()
    return Orchestrator(
        provider=provider or SimulatedProvider(registry=registry),
        state=state if state is not None else StateStore(),
        registry=registry,
        config=config or fast_config(),
    )


# Network -> Database -> Secret
NDS_RESOURCES: dict[str, Any] = {
    "network": {"main": {"cidr": "10.0.0.0/16"}},
    "database": {"main": {"network_id": "${network.main.id}", "size": 10}},
    "secret": {"db": {"database_id": "${database.main.id}", "value": "${database.main.endpoint}"}},
}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def registry() -> SchemaRegistry:
    return make_registry()


@pytest.fixture()
def provider(registry: SchemaRegistry) -> SimulatedProvider:
    return SimulatedProvider(registry=registry)


@pytest.fixture()
def state() -> StateStore:
    return StateStore()


@pytest.fixture()
def orchestrator(provider: SimulatedProvider, state: StateStore, registry: SchemaRegistry) -> Orchestrator:
    return make_orchestrator(provider=provider, state=state, registry=registry)
