"""Unit tests for the simulated provider."""

from __future__ import annotations

from pathlib import Path

import pytest

from tierforge.errors import ResourceNotFoundError, TransientProviderError
from tierforge.providers.simulated import SimulatedProvider
from tierforge.schema.catalog import default_registry

from ..conftest import make_registry


class TestSimulatedProvider:
    async def test_create_synthesizes_outputs(self) -> None:
        provider = SimulatedProvider(registry=make_registry())
        remote = await provider.create("compute", "api", {"network_id": "/net/1"})
        assert remote.id == "/simulated/compute/api/1"
        assert remote.outputs["id"] == remote.id
        assert remote.outputs["private_ip"].startswith("10.")
        assert remote.inputs == {"network_id": "/net/1"}

    async def test_output_named_like_input_echoes_it(self) -> None:
        provider = SimulatedProvider(registry=make_registry())
        remote = await provider.create("network", "main", {"cidr": "10.1.0.0/16"})
        assert remote.outputs["cidr"] == "10.1.0.0/16"

    async def test_catalog_outputs(self) -> None:
        provider = SimulatedProvider(registry=default_registry())
        password = await provider.create("random_password", "db", {"length": 24})
        server = await provider.create("postgresql_server", "main", {"name": "pg"})
        vault = await provider.create("key_vault", "main", {"name": "kv"})
        assert len(password.outputs["result"]) >= 24
        assert server.outputs["fqdn"] == "main.postgresql-server.simulated.internal"
        assert vault.outputs["vault_uri"].startswith("https://")
        assert server.outputs["name"] == "pg"

    async def test_read_update_delete(self) -> None:
        provider = SimulatedProvider(registry=make_registry())
        created = await provider.create("network", "main", {"cidr": "10.1.0.0/16"})
        updated = await provider.update("network", created.id, {"cidr": "10.2.0.0/16"}, ["cidr"])
        assert updated.outputs["cidr"] == "10.2.0.0/16"
        read = await provider.read("network", created.id)
        assert read is not None and read.inputs == {"cidr": "10.2.0.0/16"}
        await provider.delete("network", created.id)
        assert await provider.read("network", created.id) is None
        with pytest.raises(ResourceNotFoundError):
            await provider.delete("network", created.id)
        with pytest.raises(ResourceNotFoundError):
            await provider.update("network", created.id, {}, [])

    async def test_fault_injection_clears_after_count(self) -> None:
        provider = SimulatedProvider(registry=make_registry())
        provider.fail("network.main", TransientProviderError("503"), times=1)
        with pytest.raises(TransientProviderError):
            await provider.create("network", "main", {"cidr": "x"})
        await provider.create("network", "main", {"cidr": "x"})
        assert provider.call_order("create") == ["network.main", "network.main"]

    async def test_fault_limited_to_operations(self) -> None:
        provider = SimulatedProvider(registry=make_registry())
        remote = await provider.create("network", "main", {"cidr": "x"})
        provider.fail("network.main", TransientProviderError("503"), operations=("read",))
        with pytest.raises(TransientProviderError):
            await provider.read("network", remote.id)
        provider.clear_faults("network.main")
        assert await provider.read("network", remote.id) is not None

    async def test_out_of_band_changes(self) -> None:
        provider = SimulatedProvider(registry=make_registry())
        await provider.create("network", "main", {"cidr": "x"})
        provider.drift("network.main", "cidr", "y")
        assert provider.find("network.main").inputs["cidr"] == "y"  # type: ignore[union-attr]
        provider.remove_out_of_band("network.main")
        assert provider.find("network.main") is None
        with pytest.raises(ResourceNotFoundError):
            provider.drift("network.main", "cidr", "z")

    async def test_persisted_cloud(self, tmp_path: Path) -> None:
        path = tmp_path / "cloud.json"
        provider = SimulatedProvider(registry=make_registry(), persist_path=path)
        created = await provider.create("network", "main", {"cidr": "x"})
        reopened = SimulatedProvider(registry=make_registry(), persist_path=path)
        assert [r.id for r in reopened.objects()] == [created.id]
        second = await reopened.create("network", "other", {"cidr": "y"})
        assert second.id.endswith("/2")
