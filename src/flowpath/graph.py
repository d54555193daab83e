from __future__ import annotations

from collections import deque
from dataclasses import dataclass

import numpy as np

from .spatial import GeoPath, GeoPathComponent, InterpolationType, Pipe, SpatialNode, iter_dfs


@dataclass(frozen=True, eq=False)
class Arrow:
    from_node: SpatialNode
    to_node: SpatialNode
    pipe: Pipe


class SpatialGraph:
    """
    Node index plus directed arrows derived from pipes.

    Bidirectional pipes contribute an arrow each way. Neighbour queries scan
    the arrow list; graphs are small and queries stay off the render path.
    """

    def __init__(self, root: SpatialNode, arrows: list[Arrow]) -> None:
        self.root = root
        self._nodes = tuple(iter_dfs(root))
        self._by_id = {node.id: node for node in self._nodes}
        self._arrows = tuple(arrows)
        self._pipes_by_ends: dict[tuple[int, int], Pipe] = {}
        for node in self._nodes:
            for pipe in node.pipes:
                self._pipes_by_ends[_unordered(pipe.from_node.id, pipe.to_node.id)] = pipe

    @classmethod
    def from_tree(cls, root: SpatialNode) -> SpatialGraph:
        arrows: list[Arrow] = []
        for node in iter_dfs(root):
            for pipe in node.pipes:
                arrows.append(Arrow(pipe.from_node, pipe.to_node, pipe))
                if pipe.bidirectional:
                    arrows.append(Arrow(pipe.to_node, pipe.from_node, pipe))
        return cls(root, arrows)

    @property
    def arrows(self) -> tuple[Arrow, ...]:
        return self._arrows

    def in_dfs_order(self) -> tuple[SpatialNode, ...]:
        return self._nodes

    def node(self, node_id: int) -> SpatialNode | None:
        return self._by_id.get(node_id)

    def pipes(self) -> list[Pipe]:
        return [pipe for node in self._nodes for pipe in node.pipes]

    def pipe_between(self, a_id: int, b_id: int) -> Pipe | None:
        """Physical pipe joining two nodes, in either declared direction."""
        return self._pipes_by_ends.get(_unordered(a_id, b_id))

    def get_neighbors(self, node: SpatialNode) -> list[SpatialNode]:
        result = []
        for arrow in self._arrows:
            if arrow.from_node is node:
                result.append(arrow.to_node)
            if arrow.to_node is node:
                result.append(arrow.from_node)
        return result

    def get_next(self, node: SpatialNode) -> list[SpatialNode]:
        return [arrow.to_node for arrow in self._arrows if arrow.from_node is node]

    def find_path(
        self, start: SpatialNode, goal: SpatialNode
    ) -> tuple[SpatialNode, ...] | None:
        """
        Fewest-hops path following arrows, or None if `goal` is unreachable.
        Among equally short paths the one discovered first in arrow order wins.
        """
        if start is goal:
            return (start,)
        backtracks: dict[int, SpatialNode] = {}
        marked = {start.id}
        queue = deque([start])
        while queue:
            node = queue.popleft()
            for neighbor in self.get_next(node):
                if neighbor.id in marked:
                    continue
                marked.add(neighbor.id)
                backtracks[neighbor.id] = node
                if neighbor.id == goal.id:
                    rpath = [neighbor]
                    while rpath[-1].id in backtracks:
                        rpath.append(backtracks[rpath[-1].id])
                    return tuple(reversed(rpath))
                queue.append(neighbor)
        return None

    def find_path_ids(self, from_id: int, to_id: int) -> tuple[int, ...] | None:
        start, goal = self.node(from_id), self.node(to_id)
        if start is None or goal is None:
            return None
        path = self.find_path(start, goal)
        return None if path is None else tuple(node.id for node in path)

    def find_geo_path(self, from_id: int, to_id: int) -> GeoPath | None:
        """The node path as a linear geo path through each node's origin."""
        start, goal = self.node(from_id), self.node(to_id)
        if start is None or goal is None:
            return None
        path = self.find_path(start, goal)
        if path is None:
            return None
        origin = np.zeros((1, 3), dtype=np.float64)
        return GeoPath(
            InterpolationType.LINEAR,
            tuple(GeoPathComponent(node, origin) for node in path),
        )


def _unordered(x: int, y: int) -> tuple[int, int]:
    return (x, y) if x <= y else (y, x)
