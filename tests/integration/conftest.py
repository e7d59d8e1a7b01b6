"""Shared fixtures for tierforge integration tests.

Wires the built-in three-tier catalog, the bundled declarations, a simulated
cloud and a file-backed state store together so tests exercise full
compile -> plan -> apply -> destroy cycles.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from tierforge.declarations.loader import load_declarations
from tierforge.engine.orchestrator import Orchestrator
from tierforge.models.declarations import DeclarationSet
from tierforge.providers.simulated import SimulatedProvider
from tierforge.schema.catalog import default_registry
from tierforge.schema.types import SchemaRegistry
from tierforge.state.locking import FileStateLock
from tierforge.state.store import StateStore

from ..conftest import fast_config

THREE_TIER = Path(__file__).resolve().parents[2] / "declarations" / "three_tier.yaml"

# Resources gated behind enable_bastion, which defaults to false.
BASTION = ["bastion_host.main", "public_ip.bastion", "subnet.bastion"]

# Resources gated behind enable_frontend, which defaults to true.
FRONTEND = ["internal_load_balancer.frontend", "vm_scale_set.frontend"]


@pytest.fixture()
def catalog() -> SchemaRegistry:
    return default_registry()


@pytest.fixture()
def three_tier() -> DeclarationSet:
    return load_declarations(THREE_TIER)


@pytest.fixture()
def cloud(catalog: SchemaRegistry) -> SimulatedProvider:
    return SimulatedProvider(registry=catalog)


@pytest.fixture()
def state_path(tmp_path: Path) -> Path:
    return tmp_path / "tierforge.state.json"


@pytest.fixture()
def file_state(state_path: Path) -> StateStore:
    return StateStore(state_path, lock=FileStateLock(state_path, operation="apply"))


@pytest.fixture()
def tier(cloud: SimulatedProvider, file_state: StateStore, catalog: SchemaRegistry) -> Orchestrator:
    """Orchestrator over the three-tier catalog, limited to 4 concurrent operations."""
    return Orchestrator(provider=cloud, state=file_state, registry=catalog, config=fast_config(max_concurrency=4))
