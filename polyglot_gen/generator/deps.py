"""Dependency analysis: emission order and imports for one schema file."""

import heapq
from dataclasses import dataclass

from .errors import InternalError, UnsupportedSchemaError
from .types import Cardinality, ProtoField, ProtoFile, ProtoMessage, TypeIndex, walk_types


@dataclass(frozen=True)
class ImportRef:
    """A type declared in another file and referenced from this one."""

    source: str
    full_name: str
    rust_path: str


@dataclass(frozen=True)
class EmissionPlan:
    """Declaration order for a file's types plus the imports it needs."""

    order: tuple[str, ...]
    imports: tuple[ImportRef, ...]


def referenced_types(proto_field: ProtoField) -> list[str]:
    names = []
    for value in (proto_field.key, proto_field.value):
        if value is not None and value.is_named and value.type_name:
            names.append(value.type_name)
    return names


def is_inline(proto_field: ProtoField) -> bool:
    """Whether the field stores the referenced type directly in its parent.

    Repeated and map fields live on the heap and oneof variants are boxed,
    so only singular references can make a type contain itself.
    """
    return proto_field.cardinality == Cardinality.SINGULAR


def dependency_graph(
    proto_file: ProtoFile, index: TypeIndex
) -> tuple[dict[str, set[str]], list[ImportRef]]:
    """Build the inline dependency graph of a file and collect its imports."""
    graph: dict[str, set[str]] = {decl.full_name: set() for decl in walk_types(proto_file)}
    imports: dict[str, ImportRef] = {}

    for decl in walk_types(proto_file):
        if not isinstance(decl, ProtoMessage):
            continue
        for proto_field in decl.fields:
            for name in referenced_types(proto_field):
                if name not in index:
                    raise InternalError(
                        f"{decl.full_name}.{proto_field.name} references unresolved type {name}"
                    )
                info = index[name]
                if info.file.path != proto_file.path:
                    imports[name] = ImportRef(
                        source=info.file.path,
                        full_name=name,
                        rust_path=f"{info.file.module_path}::{info.rust_name}",
                    )
                elif is_inline(proto_field):
                    graph[decl.full_name].add(name)

    return graph, sorted(imports.values(), key=lambda i: (i.source, i.full_name))


def _cyclic_components(graph: dict[str, set[str]], nodes: set[str]) -> list[list[str]]:
    """Tarjan's strongly connected components restricted to nodes.

    Only components that actually form a cycle are returned.
    """
    counter = 0
    low: dict[str, int] = {}
    num: dict[str, int] = {}
    stack: list[str] = []
    on_stack: set[str] = set()
    components: list[list[str]] = []

    def visit(node: str) -> None:
        nonlocal counter
        num[node] = low[node] = counter
        counter += 1
        stack.append(node)
        on_stack.add(node)

        for dep in sorted(graph[node] & nodes):
            if dep not in num:
                visit(dep)
                low[node] = min(low[node], low[dep])
            elif dep in on_stack:
                low[node] = min(low[node], num[dep])

        if low[node] == num[node]:
            component = []
            while True:
                member = stack.pop()
                on_stack.discard(member)
                component.append(member)
                if member == node:
                    break
            if len(component) > 1 or node in graph[node]:
                components.append(component)

    for node in sorted(nodes):
        if node not in num:
            visit(node)

    return components


def emission_order(graph: dict[str, set[str]], position: dict[str, int]) -> list[str]:
    """Topologically sort so dependencies come first; ties keep declaration order.

    Returns the nodes that could be ordered; anything missing sits on or
    behind a cycle.
    """
    pending = {name: len(deps) for name, deps in graph.items()}
    dependents: dict[str, list[str]] = {name: [] for name in graph}
    for name, deps in graph.items():
        for dep in deps:
            dependents[dep].append(name)

    ready = [(position[name], name) for name, count in pending.items() if count == 0]
    heapq.heapify(ready)

    order = []
    while ready:
        _, name = heapq.heappop(ready)
        order.append(name)
        for dependent in dependents[name]:
            pending[dependent] -= 1
            if pending[dependent] == 0:
                heapq.heappush(ready, (position[dependent], dependent))

    return order


def analyze(proto_file: ProtoFile, index: TypeIndex) -> EmissionPlan:
    """Compute the emission plan of a file.

    Raises UnsupportedSchemaError naming the members of every inline cycle.
    """
    position = {decl.full_name: i for i, decl in enumerate(walk_types(proto_file))}
    graph, imports = dependency_graph(proto_file, index)
    order = emission_order(graph, position)

    if len(order) != len(graph):
        remaining = set(graph) - set(order)
        cycles = _cyclic_components(graph, remaining)
        members = sorted({m for cycle in cycles for m in cycle}, key=position.__getitem__)
        described = "; ".join(
            " -> ".join(sorted(cycle, key=position.__getitem__)) for cycle in cycles
        )
        raise UnsupportedSchemaError(
            proto_file.path,
            f"types contain each other inline ({described}); "
            "make one of the references repeated, a map or a oneof member",
            members,
        )

    return EmissionPlan(order=tuple(order), imports=tuple(imports))
