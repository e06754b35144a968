"""
Phylogenetic tree representation and Newick parsing.

A :class:`Tree` is an immutable arena of :class:`TreeNode` records. Parent and
child relations are integer indices into the arena, so a tree can be shared
read-only between any number of concurrent likelihood computations.
"""

import math
import re
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence

from ..exceptions import (
    InvalidBranchLengthError,
    MalformedTreeError,
    MissingTaxonError,
    NoParentError,
    NotInternalError,
)


_NUMBER_RE = re.compile(r'[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?')
_LABEL_STOP = set(',:();[] \t\n\r')


@dataclass(frozen=True)
class TreeNode:
    """
    Phylogenetic tree node.

    Attributes
    ----------
    id : int
        Index of the node in the tree arena
    parent : Optional[int]
        Id of the parent node (None for the root)
    children : tuple[int, ...]
        Ordered ids of the child nodes (empty for leaves)
    branch_length : Optional[float]
        Length of the branch to the parent (None for the root)
    name : Optional[str]
        Taxon label (required for leaves)
    """

    id: int
    parent: Optional[int] = None
    children: tuple[int, ...] = ()
    branch_length: Optional[float] = None
    name: Optional[str] = None

    @property
    def is_leaf(self) -> bool:
        """Check if node is a leaf."""
        return len(self.children) == 0


class Tree:
    """
    Rooted bifurcating phylogenetic tree.

    The structure is validated once at construction: a single root, consistent
    parent/child links, no cycles, exactly two children per internal node,
    named and unique leaves, and non-negative finite branch lengths.

    Parameters
    ----------
    nodes : Sequence[TreeNode]
        Node records; ``nodes[i].id`` must equal ``i``

    Raises
    ------
    MalformedTreeError
        If the nodes do not form a single rooted bifurcating tree
    InvalidBranchLengthError
        If a branch length is negative or not finite

    Examples
    --------
    >>> tree = Tree.from_newick("((t1:0.1,t2:0.1):0.1,t3:0.1);")
    >>> tree.n_leaves
    3
    >>> [tree.node(i).name for i in tree.postorder() if tree.is_leaf(i)]
    ['t1', 't2', 't3']
    """

    def __init__(self, nodes: Sequence[TreeNode]):
        self._nodes = tuple(nodes)
        self._root = self._validate()
        self._leaf_ids = tuple(i for i in self.postorder() if self._nodes[i].is_leaf)
        self._leaf_index = {self._nodes[i].name: i for i in self._leaf_ids}

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def _validate(self) -> int:
        """Check structural invariants and return the root id."""
        nodes = self._nodes
        n = len(nodes)
        if n == 0:
            raise MalformedTreeError("Tree has no nodes")

        for i, node in enumerate(nodes):
            if node.id != i:
                raise MalformedTreeError(
                    f"Node at position {i} has id {node.id}; ids must match arena positions"
                )

        roots = [node.id for node in nodes if node.parent is None]
        if len(roots) != 1:
            raise MalformedTreeError(
                f"Tree must have exactly one root, found {len(roots)}: {roots}"
            )
        root = roots[0]

        for node in nodes:
            if node.parent is not None:
                if not 0 <= node.parent < n:
                    raise MalformedTreeError(
                        f"Node {node.id} has parent {node.parent} outside the tree"
                    )
                if node.id not in nodes[node.parent].children:
                    raise MalformedTreeError(
                        f"Node {node.id} names parent {node.parent}, "
                        f"which does not list it as a child"
                    )
            if node.children:
                if len(node.children) != 2:
                    raise MalformedTreeError(
                        f"Internal node {node.id} has {len(node.children)} children; "
                        f"expected exactly 2"
                    )
                for child in node.children:
                    if not 0 <= child < n:
                        raise MalformedTreeError(
                            f"Node {node.id} has child {child} outside the tree"
                        )
                    if nodes[child].parent != node.id:
                        raise MalformedTreeError(
                            f"Node {node.id} lists child {child}, whose parent is "
                            f"{nodes[child].parent}"
                        )

        # Every node must be reached from the root exactly once
        seen = set()
        stack = [root]
        while stack:
            node_id = stack.pop()
            if node_id in seen:
                raise MalformedTreeError(f"Cycle detected at node {node_id}")
            seen.add(node_id)
            stack.extend(nodes[node_id].children)
        if len(seen) != n:
            unreachable = sorted(set(range(n)) - seen)
            raise MalformedTreeError(
                f"Nodes {unreachable} are not reachable from root {root}"
            )

        for node in nodes:
            if node.parent is None:
                if node.branch_length is not None:
                    raise MalformedTreeError(
                        f"Root node {node.id} must not carry a branch length"
                    )
                continue
            length = node.branch_length
            if length is None:
                raise InvalidBranchLengthError(f"Node {node.id} has no branch length")
            if not math.isfinite(length) or length < 0:
                raise InvalidBranchLengthError(
                    f"Node {node.id} has branch length {length}; "
                    f"branch lengths must be finite and >= 0"
                )

        names = set()
        for node in nodes:
            if not node.is_leaf:
                continue
            if not node.name:
                raise MalformedTreeError(f"Leaf node {node.id} has no taxon label")
            if node.name in names:
                raise MalformedTreeError(
                    f"Taxon label '{node.name}' appears on more than one leaf"
                )
            names.add(node.name)

        return root

    @classmethod
    def from_parents(
        cls,
        parents: Sequence[Optional[int]],
        branch_lengths: Sequence[Optional[float]],
        names: Optional[Sequence[Optional[str]]] = None,
    ) -> "Tree":
        """
        Build a tree from a parent-index table.

        Children are ordered by increasing node id.

        Parameters
        ----------
        parents : Sequence[Optional[int]]
            ``parents[i]`` is the parent id of node i (None for the root)
        branch_lengths : Sequence[Optional[float]]
            ``branch_lengths[i]`` is the length of the branch above node i
        names : Sequence[Optional[str]], optional
            Taxon labels, required for leaves

        Returns
        -------
        Tree
            Validated tree

        Examples
        --------
        >>> tree = Tree.from_parents(
        ...     [3, 3, 4, 4, None],
        ...     [0.1, 0.1, 0.1, 0.1, None],
        ...     ["t1", "t2", "t3", None, None],
        ... )
        >>> tree.root()
        4
        """
        n = len(parents)
        if len(branch_lengths) != n:
            raise MalformedTreeError(
                f"Got {n} parents but {len(branch_lengths)} branch lengths"
            )
        if names is None:
            names = [None] * n
        elif len(names) != n:
            raise MalformedTreeError(f"Got {n} parents but {len(names)} names")

        children: list[list[int]] = [[] for _ in range(n)]
        for i, parent in enumerate(parents):
            if parent is not None:
                if not 0 <= parent < n:
                    raise MalformedTreeError(
                        f"Node {i} has parent {parent} outside the tree"
                    )
                children[parent].append(i)

        nodes = [
            TreeNode(
                id=i,
                parent=parents[i],
                children=tuple(children[i]),
                branch_length=None if branch_lengths[i] is None else float(branch_lengths[i]),
                name=names[i],
            )
            for i in range(n)
        ]
        return cls(nodes)

    @classmethod
    def from_newick(cls, newick_string: str) -> "Tree":
        """
        Parse Newick format tree string.

        Bracketed comments, ``//`` comments and a PAML-style ``n_taxa n_trees``
        header line are ignored, as are internal node labels and a branch
        length on the root. Missing branch lengths read as 0.0. The parser
        keeps an explicit stack, so nesting depth is not limited by Python's
        recursion limit.

        Parameters
        ----------
        newick_string : str
            Newick format tree

        Returns
        -------
        Tree
            Parsed tree

        Raises
        ------
        MalformedTreeError
            If the string is not valid Newick, holds more than one tree, or the
            tree is not bifurcating
        """
        newick = re.sub(r'\[.*?\]', '', newick_string, flags=re.DOTALL)
        newick = re.sub(r'//.*', '', newick)

        lines = [
            line for line in newick.split('\n')
            if line.strip() and not re.match(r'^\s*\d+\s+\d+\s*$', line)
        ]
        newick = ''.join(lines).strip()

        if ';' not in newick:
            raise MalformedTreeError("Invalid Newick format: missing semicolon")
        newick, _, rest = newick.partition(';')
        if rest.strip():
            raise MalformedTreeError(
                "Invalid Newick format: more than one tree found; pass a single tree"
            )
        if not newick.strip():
            raise MalformedTreeError("Invalid Newick format: no tree found")

        # Builder records in creation (preorder) order: [parent, children, name, length]
        records: list[list] = []
        open_nodes: list[int] = []
        last: Optional[int] = None
        expect_node = True
        closed_root = False
        pos = 0
        n_chars = len(newick)

        def new_node() -> int:
            parent = open_nodes[-1] if open_nodes else None
            if parent is None and records:
                raise MalformedTreeError(
                    f"Unexpected node at position {pos}: tree already has a root"
                )
            records.append([parent, [], None, None])
            node_id = len(records) - 1
            if parent is not None:
                records[parent][1].append(node_id)
            return node_id

        while pos < n_chars:
            char = newick[pos]

            if char in ' \t\n\r':
                pos += 1
                continue

            if closed_root and char not in ':':
                if char in _LABEL_STOP:
                    raise MalformedTreeError(
                        f"Unexpected '{char}' at position {pos} after the root closed"
                    )

            if char == '(':
                if not expect_node:
                    raise MalformedTreeError(f"Unexpected '(' at position {pos}")
                open_nodes.append(new_node())
                expect_node = True
                pos += 1

            elif char in ',)':
                if expect_node:
                    # Empty label, e.g. "(,b)"
                    last = new_node()
                if not open_nodes:
                    raise MalformedTreeError(f"Unbalanced '{char}' at position {pos}")
                if char == ')':
                    last = open_nodes.pop()
                    expect_node = False
                    closed_root = not open_nodes
                else:
                    expect_node = True
                pos += 1

            elif char == ':':
                if expect_node:
                    last = new_node()
                    expect_node = False
                pos += 1
                while pos < n_chars and newick[pos] in ' \t\n\r':
                    pos += 1
                match = _NUMBER_RE.match(newick, pos)
                if match is None:
                    raise MalformedTreeError(f"Invalid branch length at position {pos}")
                records[last][3] = float(match.group())
                pos = match.end()

            else:
                if char == "'":
                    end = pos + 1
                    label_chars = []
                    while True:
                        if end >= n_chars:
                            raise MalformedTreeError("Unterminated quoted label")
                        if newick[end] == "'":
                            if end + 1 < n_chars and newick[end + 1] == "'":
                                label_chars.append("'")
                                end += 2
                                continue
                            break
                        label_chars.append(newick[end])
                        end += 1
                    label = ''.join(label_chars)
                    pos = end + 1
                else:
                    start = pos
                    while pos < n_chars and newick[pos] not in _LABEL_STOP:
                        pos += 1
                    label = newick[start:pos]

                if expect_node:
                    last = new_node()
                    expect_node = False
                    records[last][2] = label
                elif last is not None and records[last][1]:
                    pass  # internal node label
                else:
                    raise MalformedTreeError(f"Unexpected label '{label}' at position {pos}")

        if open_nodes:
            raise MalformedTreeError("Invalid Newick format: unbalanced parentheses")
        if not records:
            raise MalformedTreeError("Invalid Newick format: no tree found")

        nodes = []
        for node_id, (parent, children, name, length) in enumerate(records):
            if parent is None:
                length = None
            elif length is None:
                length = 0.0
            nodes.append(TreeNode(
                id=node_id,
                parent=parent,
                children=tuple(children),
                branch_length=length,
                name=name if not children else None,
            ))

        return cls(nodes)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def root(self) -> int:
        """Return the id of the unique parentless node."""
        return self._root

    @property
    def root_node(self) -> TreeNode:
        """Root node record."""
        return self._nodes[self._root]

    @property
    def nodes(self) -> tuple[TreeNode, ...]:
        """All node records, indexed by id."""
        return self._nodes

    @property
    def n_nodes(self) -> int:
        return len(self._nodes)

    @property
    def n_leaves(self) -> int:
        return len(self._leaf_ids)

    @property
    def n_edges(self) -> int:
        return len(self._nodes) - 1

    @property
    def leaf_names(self) -> list[str]:
        """Leaf taxon labels, left to right."""
        return [self._nodes[i].name for i in self._leaf_ids]

    def node(self, node_id: int) -> TreeNode:
        """Return the record for ``node_id``."""
        return self._nodes[node_id]

    def is_leaf(self, node_id: int) -> bool:
        return self._nodes[node_id].is_leaf

    def children(self, node_id: int) -> tuple[int, int]:
        """
        Ordered pair of child ids.

        Raises
        ------
        NotInternalError
            If ``node_id`` is a leaf
        """
        node = self._nodes[node_id]
        if node.is_leaf:
            raise NotInternalError(f"Node {node_id} is a leaf and has no children")
        return node.children

    def parent(self, node_id: int) -> int:
        """
        Id of the parent node.

        Raises
        ------
        NoParentError
            If ``node_id`` is the root
        """
        parent = self._nodes[node_id].parent
        if parent is None:
            raise NoParentError(f"Node {node_id} is the root and has no parent")
        return parent

    def branch_length(self, node_id: int) -> float:
        """
        Length of the branch from ``node_id`` to its parent.

        Raises
        ------
        NoParentError
            If ``node_id`` is the root
        """
        node = self._nodes[node_id]
        if node.parent is None:
            raise NoParentError(f"Node {node_id} is the root and has no branch")
        return node.branch_length

    def leaves(self) -> list[int]:
        """Leaf ids, left to right."""
        return list(self._leaf_ids)

    def leaf_id(self, name: str) -> int:
        """
        Id of the leaf labelled ``name``.

        Raises
        ------
        MissingTaxonError
            If no leaf carries that label
        """
        try:
            return self._leaf_index[name]
        except KeyError:
            raise MissingTaxonError(f"Taxon '{name}' is not a leaf of the tree") from None

    def postorder(self, start: Optional[int] = None) -> Iterator[int]:
        """
        Iterate node ids so that every node follows both of its children.

        Each call returns a fresh iterator. The walk keeps its own stack, so
        trees of any depth are safe.

        Parameters
        ----------
        start : int, optional
            Restrict the walk to the subtree rooted here (default: root)

        Yields
        ------
        int
            Node ids in postorder
        """
        nodes = self._nodes
        stack = [(self._root if start is None else start, False)]
        while stack:
            node_id, expanded = stack.pop()
            children = nodes[node_id].children
            if expanded or not children:
                yield node_id
            else:
                stack.append((node_id, True))
                for child in reversed(children):
                    stack.append((child, False))

    def preorder(self, start: Optional[int] = None) -> Iterator[int]:
        """Iterate node ids so that every node precedes its children."""
        nodes = self._nodes
        stack = [self._root if start is None else start]
        while stack:
            node_id = stack.pop()
            yield node_id
            stack.extend(reversed(nodes[node_id].children))

    def edges(self) -> list[tuple[int, int]]:
        """All branches as (parent, child) id pairs, in preorder."""
        return [
            (self._nodes[i].parent, i)
            for i in self.preorder()
            if self._nodes[i].parent is not None
        ]

    def total_length(self) -> float:
        """Sum of all branch lengths."""
        return math.fsum(
            node.branch_length for node in self._nodes if node.parent is not None
        )

    def height(self) -> int:
        """Number of edges on the longest root-to-leaf path."""
        depth = {self._root: 0}
        for node_id in self.preorder():
            for child in self._nodes[node_id].children:
                depth[child] = depth[node_id] + 1
        return max(depth.values())

    def to_newick(self) -> str:
        """
        Format the tree as a Newick string.

        Returns
        -------
        str
            Newick representation terminated by ``;``
        """
        text: dict[int, str] = {}
        for node_id in self.postorder():
            node = self._nodes[node_id]
            if node.is_leaf:
                label = _quote_label(node.name)
            else:
                label = '(' + ','.join(text.pop(c) for c in node.children) + ')'
            if node.parent is not None:
                label += f':{node.branch_length!r}'
            text[node_id] = label
        return text[self._root] + ';'

    def __repr__(self) -> str:
        return f"Tree(n_leaves={self.n_leaves}, n_nodes={self.n_nodes})"


def _quote_label(name: str) -> str:
    if any(c in _LABEL_STOP or c == "'" for c in name):
        return "'" + name.replace("'", "''") + "'"
    return name
