"""Reference resolution: implicit data edges from expression trees."""

from __future__ import annotations

from collections.abc import Iterator

import structlog

from tierforge.errors import DanglingReferenceError, DeclarationError
from tierforge.graph.dependency_graph import DependencyGraph
from tierforge.graph.models import EdgeType, GraphEdge, GraphNode
from tierforge.models.declarations import DeclarationSet, ResourceDecl
from tierforge.models.expressions import Call, Expr, ListExpr, MapExpr, ResourceRef, VarRef, children

_log = structlog.get_logger(component="graph.resolver")

# Calls that fall back to another argument when a reference is absent.
_GUARDS = frozenset({"try", "coalesce"})


def iter_references(expr: Expr, path: str) -> Iterator[tuple[str, ResourceRef | VarRef]]:
    """Yield ``(field_path, reference)`` for every reference inside *expr*.

    Conditional branches, ``try``/``coalesce`` arguments and index keys are
    all visited: a reference counts whether or not its branch is taken.
    """
    for field_path, ref, _ in iter_guarded_references(expr, path):
        yield field_path, ref


def iter_guarded_references(
    expr: Expr, path: str, guarded: bool = False
) -> Iterator[tuple[str, ResourceRef | VarRef, bool]]:
    """Like iter_references, also telling whether the reference has a fallback.

    A reference is guarded when it sits in any but the last argument of a
    ``try``/``coalesce`` call; the last argument has nothing to fall back to.
    """
    if isinstance(expr, Call) and expr.function in _GUARDS:
        last = len(expr.args) - 1
        for i, arg in enumerate(expr.args):
            yield from iter_guarded_references(arg, path, guarded or i < last)
        return
    if isinstance(expr, ResourceRef | VarRef):
        yield path, expr, guarded
        return
    if isinstance(expr, ListExpr):
        for i, item in enumerate(expr.items):
            yield from iter_guarded_references(item, f"{path}[{i}]", guarded)
        return
    if isinstance(expr, MapExpr):
        for key, value in expr.items:
            yield from iter_guarded_references(value, f"{path}.{key}", guarded)
        return
    for child in children(expr):
        yield from iter_guarded_references(child, path, guarded)


class ReferenceResolver:
    """Builds the node set and the implicit (data) edge set."""

    def __init__(self, declarations: DeclarationSet) -> None:
        self._declarations = declarations

    def resolve(self) -> DependencyGraph:
        graph = DependencyGraph()
        for resource in self._declarations.resources.values():
            graph.add_node(GraphNode(kind=resource.kind, name=resource.name))
        for resource in self._declarations.resources.values():
            for edge in self.edges_for(resource):
                graph.add_edge(edge)
            self._check_enabled(resource)
        _log.debug("references_resolved", nodes=graph.node_count, edges=graph.edge_count)
        return graph

    def edges_for(self, resource: ResourceDecl) -> list[GraphEdge]:
        """Data edges (producer -> *resource*), one per producer and field path.

        An edge is guarded only when every reference it stands for is.
        """
        consumer = GraphNode(kind=resource.kind, name=resource.name)
        found: dict[tuple[str, str], bool] = {}
        for name, expr in resource.fields.items():
            for path, ref, guarded in iter_guarded_references(expr, name):
                if isinstance(ref, VarRef):
                    self._check_variable(resource, path, ref)
                    continue
                if ref.address not in self._declarations.resources:
                    raise DanglingReferenceError(resource.address, path, ref.address)
                key = (ref.address, path)
                found[key] = found.get(key, True) and guarded
        return [
            GraphEdge(
                source=GraphNode.from_address(address),
                target=consumer,
                edge_type=EdgeType.DATA,
                source_field=path,
                guarded=guarded,
            )
            for (address, path), guarded in found.items()
        ]

    def _check_variable(self, resource: ResourceDecl, path: str, ref: VarRef) -> None:
        if ref.name not in self._declarations.variables:
            raise DanglingReferenceError(resource.address, path, f"var.{ref.name}")

    def _check_enabled(self, resource: ResourceDecl) -> None:
        """``enabled`` flags are decided before planning, so only variables may appear."""
        if resource.enabled is None:
            return
        for path, ref in iter_references(resource.enabled, "enabled"):
            if isinstance(ref, ResourceRef):
                raise DeclarationError(
                    f"{resource.address}: enabled may only reference variables, found {ref.address}"
                )
            self._check_variable(resource, path, ref)
