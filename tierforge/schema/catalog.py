"""Built-in resource kinds for the three-tier application topology.

Each schema lists the input fields a declaration may set and the output
attributes other resources may reference.  Fields marked ``force_new`` cannot
be changed on a live object; the reconciler plans destroy-and-recreate for
them.
"""

from __future__ import annotations

from tierforge.schema.types import FieldSpec, FieldType, ResourceSchema, SchemaRegistry

S = FieldType.STRING
N = FieldType.NUMBER
B = FieldType.BOOL
L = FieldType.LIST
M = FieldType.MAP


def _req(field_type: FieldType, force_new: bool = False, **kwargs: object) -> FieldSpec:
    return FieldSpec(type=field_type, required=True, force_new=force_new, **kwargs)  # type: ignore[arg-type]


def _opt(field_type: FieldType, force_new: bool = False, nullable: bool = True, **kwargs: object) -> FieldSpec:
    return FieldSpec(type=field_type, nullable=nullable, force_new=force_new, **kwargs)  # type: ignore[arg-type]


_LOCATED = {
    "name": _req(S, force_new=True),
    "location": _req(S, force_new=True),
    "resource_group_name": _req(S, force_new=True),
    "tags": _opt(M, element=S),
}

_SCALE_SET_IDENTITY = {
    "type": _req(S),
}

_GATEWAY_BACKEND_POOL = {
    "name": _req(S),
    "ip_addresses": _opt(L, element=S),
    "fqdns": _opt(L, element=S),
}

_GATEWAY_PROBE = {
    "name": _req(S),
    "protocol": _req(S),
    "path": _req(S),
    "host": _opt(S),
    "interval": _opt(N),
}

_GATEWAY_ROUTING_RULE = {
    "name": _req(S),
    "path_prefix": _req(S),
    "backend_pool": _req(S),
    "priority": _req(N),
}


CATALOG: tuple[ResourceSchema, ...] = (
    ResourceSchema(
        kind="client_config",
        description="Authorization context of the caller (tenant and principal).",
        inputs={},
        outputs={"tenant_id": S, "object_id": S, "subscription_id": S},
    ),
    ResourceSchema(
        kind="resource_group",
        inputs={"name": _req(S, force_new=True), "location": _req(S, force_new=True), "tags": _opt(M, element=S)},
        outputs={"name": S, "location": S},
    ),
    ResourceSchema(
        kind="virtual_network",
        inputs={**_LOCATED, "address_space": _req(L, element=S), "dns_servers": _opt(L, element=S)},
        outputs={"name": S, "address_space": L, "guid": S},
    ),
    ResourceSchema(
        kind="subnet",
        inputs={
            "name": _req(S, force_new=True),
            "resource_group_name": _req(S, force_new=True),
            "virtual_network_name": _req(S, force_new=True),
            "address_prefixes": _req(L, element=S),
            "service_endpoints": _opt(L, element=S),
            "delegation": _opt(S, force_new=True),
            "network_security_group_id": _opt(S),
        },
        outputs={"name": S, "address_prefixes": L},
    ),
    ResourceSchema(
        kind="network_security_group",
        inputs={
            **_LOCATED,
            "allowed_inbound_ports": _opt(L, element=N),
            "allowed_source_prefixes": _opt(L, element=S),
        },
        outputs={"name": S},
    ),
    ResourceSchema(
        kind="private_dns_zone",
        inputs={"name": _req(S, force_new=True), "resource_group_name": _req(S, force_new=True)},
        outputs={"name": S},
    ),
    ResourceSchema(
        kind="private_dns_zone_link",
        inputs={
            "name": _req(S, force_new=True),
            "resource_group_name": _req(S, force_new=True),
            "private_dns_zone_name": _req(S, force_new=True),
            "virtual_network_id": _req(S, force_new=True),
            "registration_enabled": _opt(B),
        },
        outputs={},
    ),
    ResourceSchema(
        kind="random_password",
        inputs={
            "length": _req(N, force_new=True),
            "special": _opt(B, force_new=True),
        },
        outputs={"result": S},
    ),
    ResourceSchema(
        kind="postgresql_server",
        inputs={
            **_LOCATED,
            "version": _req(S, force_new=True),
            "sku_name": _req(S),
            "storage_mb": _req(N),
            "administrator_login": _req(S, force_new=True),
            "administrator_password": _req(S),
            "delegated_subnet_id": _req(S, force_new=True),
            "private_dns_zone_id": _req(S, force_new=True),
            "backup_retention_days": _opt(N),
            "high_availability": _opt(B),
        },
        outputs={"fqdn": S, "name": S, "administrator_login": S},
    ),
    ResourceSchema(
        kind="postgresql_database",
        inputs={
            "name": _req(S, force_new=True),
            "server_id": _req(S, force_new=True),
            "charset": _opt(S, force_new=True),
            "collation": _opt(S, force_new=True),
        },
        outputs={"name": S},
    ),
    ResourceSchema(
        kind="key_vault",
        inputs={
            **_LOCATED,
            "tenant_id": _req(S, force_new=True),
            "sku_name": _req(S),
            "soft_delete_retention_days": _opt(N, force_new=True),
            "purge_protection_enabled": _opt(B),
            "admin_object_id": _opt(S),
        },
        outputs={"vault_uri": S, "name": S},
    ),
    ResourceSchema(
        kind="key_vault_secret",
        inputs={
            "name": _req(S, force_new=True),
            "key_vault_id": _req(S, force_new=True),
            "value": _req(S),
            "content_type": _opt(S),
        },
        outputs={"version": S, "versionless_id": S},
    ),
    ResourceSchema(
        kind="key_vault_access_policy",
        inputs={
            "key_vault_id": _req(S, force_new=True),
            "tenant_id": _req(S, force_new=True),
            "object_id": _req(S, force_new=True),
            "secret_permissions": _req(L, element=S),
        },
        outputs={},
    ),
    ResourceSchema(
        kind="internal_load_balancer",
        inputs={
            **_LOCATED,
            "subnet_id": _req(S, force_new=True),
            "frontend_port": _req(N),
            "backend_port": _req(N),
            "probe_path": _opt(S),
        },
        outputs={"private_ip": S, "backend_pool_id": S, "name": S},
    ),
    ResourceSchema(
        kind="vm_scale_set",
        inputs={
            **_LOCATED,
            "sku": _req(S),
            "instances": _req(N),
            "admin_username": _req(S, force_new=True),
            "subnet_id": _req(S, force_new=True),
            "image": _req(S),
            "load_balancer_backend_pool_ids": _opt(L, element=S),
            "identity": _opt(FieldType.BLOCK, block=_SCALE_SET_IDENTITY),
            "environment": _opt(M, element=S),
            "custom_data": _opt(S),
        },
        outputs={"name": S, "principal_id": S, "unique_id": S},
    ),
    ResourceSchema(
        kind="public_ip",
        inputs={
            **_LOCATED,
            "allocation_method": _req(S, force_new=True),
            "sku": _req(S, force_new=True),
            "domain_name_label": _opt(S),
        },
        outputs={"ip_address": S, "fqdn": S, "name": S},
    ),
    ResourceSchema(
        kind="bastion_host",
        inputs={
            **_LOCATED,
            "subnet_id": _req(S, force_new=True),
            "public_ip_address_id": _req(S, force_new=True),
        },
        outputs={"dns_name": S},
    ),
    ResourceSchema(
        kind="application_gateway",
        inputs={
            **_LOCATED,
            "sku": _req(S),
            "capacity": _req(N),
            "subnet_id": _req(S, force_new=True),
            "public_ip_address_id": _req(S, force_new=True),
            "waf_enabled": _opt(B),
            "waf_mode": _opt(S),
            "backend_pools": _req(L, block=_GATEWAY_BACKEND_POOL),
            "health_probes": _opt(L, block=_GATEWAY_PROBE),
            "routing_rules": _req(L, block=_GATEWAY_ROUTING_RULE),
        },
        outputs={"name": S, "frontend_ip": S},
    ),
)


def default_registry() -> SchemaRegistry:
    """Return a registry populated with the built-in catalog."""
    return SchemaRegistry(CATALOG)
