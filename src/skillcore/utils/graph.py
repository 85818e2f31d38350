"""Dependency graph helpers shared by workflows, sync ordering and imports."""

from collections.abc import Iterable, Mapping


def find_cycle(edges: Mapping[str, Iterable[str]]) -> list[str] | None:
    """Find one cycle in a directed graph.

    Edges pointing at nodes that are not keys of ``edges`` are ignored.

    Args:
        edges: Mapping of node -> nodes it depends on

    Returns:
        The cycle as a node list (first node repeated at the end), or None

    Examples:
        >>> find_cycle({"a": ["b"], "b": ["a"]})
        ['a', 'b', 'a']
        >>> find_cycle({"a": ["b"], "b": []}) is None
        True
    """
    visiting: list[str] = []
    state: dict[str, int] = {}  # 1 = on stack, 2 = done

    def visit(node: str) -> list[str] | None:
        state[node] = 1
        visiting.append(node)
        for dep in edges.get(node, ()):
            if dep not in edges:
                continue
            if state.get(dep) == 1:
                start = visiting.index(dep)
                return visiting[start:] + [dep]
            if dep not in state:
                cycle = visit(dep)
                if cycle:
                    return cycle
        visiting.pop()
        state[node] = 2
        return None

    for node in edges:
        if node not in state:
            cycle = visit(node)
            if cycle:
                return cycle
    return None


def topological_order(edges: Mapping[str, Iterable[str]]) -> list[str]:
    """Order nodes so that every node follows the nodes it depends on.

    Ties keep the insertion order of ``edges``. Edges to unknown nodes are
    ignored.

    Raises:
        ValueError: If the graph contains a cycle
    """
    cycle = find_cycle(edges)
    if cycle:
        raise ValueError(f"Dependency cycle detected: {' -> '.join(cycle)}")

    ordered: list[str] = []
    placed: set[str] = set()

    def place(node: str) -> None:
        if node in placed:
            return
        for dep in edges.get(node, ()):
            if dep in edges:
                place(dep)
        placed.add(node)
        ordered.append(node)

    for node in edges:
        place(node)
    return ordered
