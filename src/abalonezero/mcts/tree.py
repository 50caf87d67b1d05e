"""
Arena-backed search tree.

Nodes live in a flat list and refer to each other by integer handle, so a
node shared through a transposition has no owner and no back-references.
With transpositions enabled a dict maps each position's Zobrist key (board
plus side to move) to its handle; a shared node keeps the state of the
first path that reached it.
"""

from __future__ import annotations

from collections import deque
import threading
from typing import Optional
import numpy as np

from ..game import GameState, Move, apply_move
from .node import SearchNode


class SearchTree:
    """
    Search tree over game states.

    Args:
        root_state: Position at the root
        transpositions: Share nodes between move orders reaching the same position
    """

    def __init__(self, root_state: GameState, transpositions: bool = False):
        self.transpositions = transpositions
        self._nodes: list[SearchNode] = []
        self._table: dict[int, int] = {}
        self._alloc_lock = threading.Lock()
        self.root = self._add_node(root_state)

    def __len__(self) -> int:
        return len(self._nodes)

    def node(self, handle: int) -> SearchNode:
        return self._nodes[handle]

    @property
    def root_node(self) -> SearchNode:
        return self._nodes[self.root]

    def _add_node(self, state: GameState) -> int:
        with self._alloc_lock:
            if self.transpositions:
                handle = self._table.get(state.key)
                if handle is not None:
                    return handle
            handle = len(self._nodes)
            self._nodes.append(SearchNode(state=state))
            if self.transpositions:
                self._table[state.key] = handle
            return handle

    def child(self, handle: int, index: int) -> int:
        """
        Handle of the child reached by move `index`, created on first use.

        The caller must hold the parent's lock.
        """
        parent = self._nodes[handle]
        child = int(parent.children[index])
        if child < 0:
            state = apply_move(parent.state, parent.moves[index])
            child = self._add_node(state)
            parent.children[index] = child
        return child

    def reroot(self, move: Move) -> None:
        """
        Make the position after `move` the new root, keeping its subtree.

        Everything not reachable from the new root is dropped and the
        arena is compacted.

        Raises:
            IllegalMoveError: if `move` is not legal at the root
        """
        root = self.root_node
        index = root.index_of(move) if root.is_expanded else None
        if index is not None:
            new_root = self.child(self.root, index)
        else:
            # apply_move rejects anything illegal at the root
            state = apply_move(root.state, move)
            new_root = None
            if self.transpositions:
                new_root = self._table.get(state.key)
            if new_root is None:
                self._nodes = [SearchNode(state=state)]
                self._table = {state.key: 0} if self.transpositions else {}
                self.root = 0
                return

        self._compact(new_root)

    def _compact(self, new_root: int) -> None:
        remap = {new_root: 0}
        order = [new_root]
        queue = deque([new_root])
        while queue:
            handle = queue.popleft()
            for child in self._nodes[handle].children:
                child = int(child)
                if child >= 0 and child not in remap:
                    remap[child] = len(order)
                    order.append(child)
                    queue.append(child)

        nodes = [self._nodes[h] for h in order]
        for node in nodes:
            if len(node.children):
                node.children = np.array(
                    [remap[int(c)] if c >= 0 else -1 for c in node.children],
                    dtype=np.int64,
                )

        self._nodes = nodes
        self._table = {n.state.key: i for i, n in enumerate(nodes)} if self.transpositions else {}
        self.root = 0

    def child_visits(self) -> dict[Move, int]:
        """Visit count of every root move."""
        root = self.root_node
        return {m: int(n) for m, n in zip(root.moves, root.N)}

    def principal_variation(self, max_depth: int = 10) -> list[Move]:
        """Most-visited line from the root."""
        line: list[Move] = []
        handle: Optional[int] = self.root
        seen = set()
        while handle is not None and handle not in seen and len(line) < max_depth:
            seen.add(handle)
            node = self._nodes[handle]
            if not node.is_expanded or node.total_visits == 0:
                break
            best = int(node.N.argmax())
            line.append(node.moves[best])
            child = int(node.children[best])
            handle = child if child >= 0 else None
        return line
