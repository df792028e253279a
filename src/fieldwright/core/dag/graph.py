# src/fieldwright/core/dag/graph.py
"""DependencyGraph: query, cycle detection and ordering over schema fields.

Construction lives in builder.py. Edges point from a dependency to its
dependent (``B -> A`` when field A reads field B), so a topological order
of the graph is a valid resolution order.
"""

from __future__ import annotations

from collections.abc import Iterable

import networkx as nx
from networkx import DiGraph

from fieldwright.core.dag.models import FieldNode


class DependencyGraph:
    """Dependency graph of one schema's managed fields.

    Wraps a NetworkX DiGraph. Built once per schema and frozen; every query
    is read-only and safe for concurrent callers.
    """

    def __init__(self, schema: str) -> None:
        self.schema = schema
        self._graph: DiGraph[str] = nx.DiGraph()
        self._order_cache: list[str] | None = None
        self._acyclic: bool | None = None

    @property
    def node_count(self) -> int:
        return self._graph.number_of_nodes()

    @property
    def edge_count(self) -> int:
        return self._graph.number_of_edges()

    @property
    def fields(self) -> list[str]:
        """Field names in declaration order."""
        return sorted(self._graph.nodes, key=self._index)

    def add_field(self, name: str, *, index: int, parent_dependencies: Iterable[str] = ()) -> None:
        info = FieldNode(name=name, index=index, parent_dependencies=frozenset(parent_dependencies))
        self._graph.add_node(name, info=info)

    def add_dependency(self, field: str, depends_on: str) -> None:
        """Record that ``field`` reads ``depends_on``'s resolved value."""
        self._graph.add_edge(depends_on, field)

    def freeze(self) -> None:
        nx.freeze(self._graph)

    def node(self, name: str) -> FieldNode:
        info: FieldNode = self._graph.nodes[name]["info"]
        return info

    def _index(self, name: str) -> int:
        return self.node(name).index

    def has_dependency(self, field: str, depends_on: str) -> bool:
        return self._graph.has_edge(depends_on, field)

    def dependencies(self, field: str) -> list[str]:
        """Fields that ``field`` reads, in declaration order."""
        return sorted(self._graph.predecessors(field), key=self._index)

    def dependents(self, field: str) -> list[str]:
        """Fields that read ``field``, in declaration order."""
        return sorted(self._graph.successors(field), key=self._index)

    def parent_dependencies(self, field: str) -> frozenset[str]:
        """Fields of the enclosing parent instance that ``field`` reads."""
        return self.node(field).parent_dependencies

    def is_acyclic(self) -> bool:
        if self._acyclic is None:
            self._acyclic = nx.is_directed_acyclic_graph(self._graph)
        return self._acyclic

    def find_cycle(self) -> list[str] | None:
        """One dependency cycle as field names (first repeated last), or None."""
        try:
            edges = nx.find_cycle(self._graph)
        except nx.NetworkXNoCycle:
            return None
        cycle = [edge[0] for edge in edges]
        cycle.append(cycle[0])
        return cycle

    def cyclic_components(self) -> list[list[str]]:
        """Strongly connected groups of two or more mutually dependent fields."""
        groups = [sorted(group, key=self._index) for group in nx.strongly_connected_components(self._graph) if len(group) > 1]
        return sorted(groups, key=lambda group: self._index(group[0]))

    def topological_order(self) -> list[str]:
        """Topological order, declaration order as tie-break.

        Raises:
            nx.NetworkXUnfeasible: If the graph has a cycle
        """
        return list(nx.lexicographical_topological_sort(self._graph, key=self._index))

    def processing_order(self) -> list[str]:
        """Deterministic visitation order for either strategy.

        Acyclic graphs get the topological order. Cyclic graphs are condensed
        into strongly connected components; components are ordered
        topologically and members within one component by declaration.
        Cached: the graph is immutable after build.
        """
        if self._order_cache is not None:
            return list(self._order_cache)
        if self.is_acyclic():
            order = self.topological_order()
        else:
            condensed = nx.condensation(self._graph)

            def component_key(component: int) -> int:
                return min(self._index(member) for member in condensed.nodes[component]["members"])

            order = []
            for component in nx.lexicographical_topological_sort(condensed, key=component_key):
                order.extend(sorted(condensed.nodes[component]["members"], key=self._index))
        self._order_cache = order
        return list(order)

    def generations(self) -> list[list[str]]:
        """Topological generations: fields in one generation share no edge.

        Raises:
            nx.NetworkXUnfeasible: If the graph has a cycle
        """
        return [sorted(generation, key=self._index) for generation in nx.topological_generations(self._graph)]
