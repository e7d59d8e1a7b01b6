"""Tests for the tierforge REST API.

Endpoint behaviour is checked against a simulated provider; the fuzz
section uses hypothesis to throw malformed declaration documents at the
validate and plan endpoints and checks that:
 1. No 500s from malformed input (declaration errors map to 422)
 2. Response body is always valid JSON
 3. Error responses always have ``error`` + ``detail``
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

from fastapi.testclient import TestClient
from hypothesis import given, settings
from hypothesis import strategies as st

from tierforge.api.app import create_app
from tierforge.engine.orchestrator import CompiledConfiguration, Orchestrator
from tierforge.errors import AuthorizationError
from tierforge.providers.simulated import SimulatedProvider
from tierforge.state.store import StateStore

from ..conftest import NDS_RESOURCES, fast_config, make_declarations, make_orchestrator, make_registry

_OUTPUTS = {
    "cidr": "${network.main.cidr}",
    "endpoint": {"value": "${database.main.endpoint}", "sensitive": True},
}

# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _make_client(
    orchestrator: Orchestrator | None = None,
    compiled: CompiledConfiguration | None = None,
) -> TestClient:
    app = create_app(orchestrator=orchestrator or make_orchestrator(), compiled=compiled)
    return TestClient(app, raise_server_exceptions=False)


def _applied() -> tuple[Orchestrator, CompiledConfiguration]:
    orchestrator = make_orchestrator()
    compiled = orchestrator.compile(make_declarations(NDS_RESOURCES, outputs=_OUTPUTS))
    report = asyncio.run(orchestrator.apply(compiled))
    assert report.succeeded
    return orchestrator, compiled


def _assert_valid_json_response(resp: Any, allowed_status_codes: set[int] | None = None) -> dict[str, Any]:
    """Assert universal invariants on every API response."""
    assert resp.headers.get("content-type", "").startswith("application/json")
    body = resp.json()
    assert isinstance(body, dict)
    if allowed_status_codes is not None:
        assert resp.status_code in allowed_status_codes, f"Unexpected status {resp.status_code}, body={body}"
    if resp.status_code >= 400:
        assert "error" in body, f"Error response missing 'error': {body}"
        assert "detail" in body, f"Error response missing 'detail': {body}"
    return body


# ===========================================================================
# A. Read-only endpoints
# ===========================================================================


class TestHealth:
    def test_empty_state(self) -> None:
        body = _assert_valid_json_response(_make_client().get("/api/v1/health"), {200})
        assert body["status"] == "ok"
        assert body["provider"] == "simulated"
        assert body["resources"] == 0
        assert body["serial"] == 0

    def test_counts_recorded_resources(self) -> None:
        orchestrator, _ = _applied()
        body = _make_client(orchestrator).get("/api/v1/health").json()
        assert body["resources"] == 3
        assert body["serial"] > 0

    def test_config_is_kept_on_the_app(self) -> None:
        config = fast_config()
        app = create_app(orchestrator=make_orchestrator(config=config), config=config)
        assert app.state.config is config
        assert create_app(orchestrator=make_orchestrator()).state.config is None


class TestState:
    def test_lists_records_sorted(self) -> None:
        orchestrator, _ = _applied()
        body = _assert_valid_json_response(_make_client(orchestrator).get("/api/v1/state"), {200})
        assert [r["address"] for r in body["resources"]] == ["database.main", "network.main", "secret.db"]
        secret = body["resources"][2]
        assert secret["dependencies"] == ["database.main"]
        assert secret["tainted"] is False


class TestOutputs:
    def test_not_found_without_declarations(self) -> None:
        resp = _make_client().get("/api/v1/outputs")
        body = _assert_valid_json_response(resp, {404})
        assert body["error"] == "NOT_FOUND"

    def test_sensitive_values_are_masked(self) -> None:
        orchestrator, compiled = _applied()
        body = _make_client(orchestrator, compiled).get("/api/v1/outputs").json()
        assert body["outputs"] == {"cidr": "10.0.0.0/16", "endpoint": "(sensitive)"}

    def test_unprovisioned_outputs_are_null(self) -> None:
        orchestrator = make_orchestrator()
        compiled = orchestrator.compile(make_declarations(NDS_RESOURCES, outputs=_OUTPUTS))
        body = _make_client(orchestrator, compiled).get("/api/v1/outputs").json()
        assert body["outputs"] == {"cidr": None, "endpoint": None}


# ===========================================================================
# B. Validate and plan
# ===========================================================================


class TestValidate:
    def test_valid_document(self) -> None:
        resp = _make_client().post("/api/v1/validate", json={"document": {"resources": NDS_RESOURCES}})
        body = _assert_valid_json_response(resp, {200})
        assert body["valid"] is True
        assert body["resources"] == 3
        assert body["waves"] == [["network.main"], ["database.main"], ["secret.db"]]

    def test_flag_prunes(self) -> None:
        document = {
            "variables": {"with_secret": {"type": "bool", "default": True}},
            "resources": {
                **NDS_RESOURCES,
                "secret": {"db": {**NDS_RESOURCES["secret"]["db"], "enabled": "${var.with_secret}"}},
            },
        }
        resp = _make_client().post("/api/v1/validate", json={"document": document, "variables": {"with_secret": False}})
        body = _assert_valid_json_response(resp, {200})
        assert body["realized"] == 2
        assert body["pruned"] == ["secret.db"]

    def test_cycle_is_rejected(self) -> None:
        document = {
            "resources": {
                "network": {"main": {"cidr": "${database.main.endpoint}"}},
                "database": {"main": {"network_id": "${network.main.id}"}},
            }
        }
        resp = _make_client().post("/api/v1/validate", json={"document": document})
        body = _assert_valid_json_response(resp, {422})
        assert body["error"] == "INVALID_CONFIGURATION"
        assert "cycle" in body["detail"]

    def test_dangling_reference(self) -> None:
        document = {"resources": {"database": {"main": {"network_id": "${network.absent.id}"}}}}
        resp = _make_client().post("/api/v1/validate", json={"document": document})
        _assert_valid_json_response(resp, {422})

    def test_missing_document_field(self) -> None:
        resp = _make_client().post("/api/v1/validate", json={})
        body = _assert_valid_json_response(resp, {400})
        assert body["error"] == "INVALID_REQUEST"


class TestPlan:
    def test_plan_on_empty_state(self) -> None:
        provider = SimulatedProvider(registry=make_registry())
        client = _make_client(make_orchestrator(provider=provider))
        body = _assert_valid_json_response(
            client.post("/api/v1/plan", json={"document": {"resources": NDS_RESOURCES}}), {200}
        )
        assert body["summary"]["create"] == 3
        assert {c["action"] for c in body["changes"]} == {"create"}
        assert provider.calls == []

    def test_plan_reports_drift(self) -> None:
        orchestrator, _ = _applied()
        assert isinstance(orchestrator.provider, SimulatedProvider)
        orchestrator.provider.drift("database.main", "size", 99)
        body = _make_client(orchestrator).post("/api/v1/plan", json={"document": {"resources": NDS_RESOURCES}}).json()
        assert body["drift"] == [{"address": "database.main", "fields": ["size"]}]
        assert body["summary"]["update-in-place"] == 1

    def test_provider_authorization_failure(self) -> None:
        orchestrator, _ = _applied()
        assert isinstance(orchestrator.provider, SimulatedProvider)
        orchestrator.provider.fail("network.main", AuthorizationError("token expired"), operations=("read",))
        resp = _make_client(orchestrator).post("/api/v1/plan", json={"document": {"resources": NDS_RESOURCES}})
        body = _assert_valid_json_response(resp, {502})
        assert body["error"] == "PROVIDER_UNAUTHORIZED"

    def test_plan_sees_state_written_after_startup(self, tmp_path: Path) -> None:
        registry = make_registry()
        provider = SimulatedProvider(registry=registry)
        path = tmp_path / "tierforge.state.json"
        server = make_orchestrator(provider=provider, state=StateStore(path), registry=registry)
        client = _make_client(server)
        writer = make_orchestrator(provider=provider, state=StateStore(path), registry=registry)
        assert asyncio.run(writer.apply(writer.compile(make_declarations(NDS_RESOURCES)))).succeeded
        body = _assert_valid_json_response(
            client.post("/api/v1/plan", json={"document": {"resources": NDS_RESOURCES}}), {200}
        )
        assert {c["action"] for c in body["changes"]} == {"no-op"}
        assert body["drift"] == []


# ===========================================================================
# C. Fuzzing
# ===========================================================================

_text = st.text(alphabet=st.characters(codec="utf-8", exclude_categories=("Cs",)), max_size=60)


class TestDocumentFuzz:
    @given(cidr=_text)
    @settings(max_examples=50, deadline=None)
    def test_random_field_strings_never_500(self, cidr: str) -> None:
        document = {"resources": {"network": {"main": {"cidr": cidr}}}}
        resp = _make_client().post("/api/v1/validate", json={"document": document})
        _assert_valid_json_response(resp, {200, 422})

    @given(name=_text)
    @settings(max_examples=50, deadline=None)
    def test_random_resource_names_never_500(self, name: str) -> None:
        resp = _make_client().post(
            "/api/v1/validate", json={"document": {"resources": {"network": {name: {"cidr": "10.0.0.0/16"}}}}}
        )
        _assert_valid_json_response(resp, {200, 422})

    @given(
        document=st.dictionaries(
            st.sampled_from(["variables", "resources", "outputs", "extra"]),
            st.one_of(st.none(), st.integers(), _text, st.lists(_text, max_size=3)),
            max_size=3,
        )
    )
    @settings(max_examples=50, deadline=None)
    def test_malformed_sections_never_500(self, document: dict[str, Any]) -> None:
        resp = _make_client().post("/api/v1/plan", json={"document": document})
        _assert_valid_json_response(resp, {200, 422})

    def test_non_object_document(self) -> None:
        resp = _make_client().post("/api/v1/plan", json={"document": ["not", "a", "mapping"]})
        _assert_valid_json_response(resp, {400})
