"""
Felsenstein's pruning algorithm.

The engine walks the tree in postorder with an explicit stack and computes the
conditional likelihood vector of every internal node from its children:

    L_node[i] = prod over children c of  sum_j P_c[i, j] * L_c[j]

where P_c is the transition matrix of the branch above child c. Vectors may
carry a leading site axis, shape (n_sites, n_states), in which case every
row is an independent site.
"""

import math
from dataclasses import dataclass
from typing import Mapping, Optional, Union

import numpy as np

from ..exceptions import InvalidBranchLengthError, MissingTaxonError, PruningInternalError
from ..io.trees import Tree


@dataclass
class PruningResult:
    """
    Outcome of one postorder pass.

    Attributes
    ----------
    root_vector : np.ndarray
        Conditional likelihood vector(s) at the root, shape (n_states,) or
        (n_sites, n_states). Rescaled when scaling was requested.
    log_scale : float or np.ndarray
        Natural log of the factor removed by rescaling, one value per site;
        the true root vector is ``root_vector * exp(log_scale)``
    """

    root_vector: np.ndarray
    log_scale: Union[float, np.ndarray] = 0.0


class PruningEngine:
    """
    Compute conditional likelihood vectors on a fixed tree and model.

    Branch lengths are checked and one transition matrix per branch is
    computed at construction; nothing is mutated afterwards, so a single
    engine can serve many sites from many threads.

    Parameters
    ----------
    tree : Tree
        Rooted bifurcating tree
    model : SubstitutionModel
        Any object with ``n_states`` and ``transition_matrix(v)``

    Raises
    ------
    InvalidBranchLengthError
        If any branch length is negative or not finite

    Examples
    --------
    >>> from pruneml.models import JC69
    >>> from pruneml.core.encoding import AlignmentEncoder
    >>> tree = Tree.from_newick("((t1:0.1,t2:0.1):0.1,t3:0.1);")
    >>> encoder = AlignmentEncoder()
    >>> tips = {name: encoder.encode_char("A") for name in tree.leaf_names}
    >>> engine = PruningEngine(tree, JC69())
    >>> round(float(engine.node_likelihood(tree.root(), tips)[0]), 6)
    0.674985
    """

    def __init__(self, tree: Tree, model):
        self.tree = tree
        self.model = model
        self.n_states = model.n_states

        matrices = {}
        for node in tree.nodes:
            if node.parent is None:
                continue
            v = node.branch_length
            if v is None or not math.isfinite(v) or v < 0:
                raise InvalidBranchLengthError(
                    f"Node {node.id} has branch length {v}; "
                    f"branch lengths must be finite and >= 0"
                )
            P = np.array(model.transition_matrix(v), dtype=float)
            if P.shape != (self.n_states, self.n_states):
                raise ValueError(
                    f"Model returned a transition matrix of shape {P.shape} for node "
                    f"{node.id}, expected ({self.n_states}, {self.n_states})"
                )
            P.setflags(write=False)
            matrices[node.id] = P
        self._matrices = matrices

    def transition_matrix(self, node_id: int) -> np.ndarray:
        """Transition matrix of the branch above ``node_id`` (read-only)."""
        self.tree.parent(node_id)  # NoParentError for the root
        return self._matrices[node_id]

    def node_likelihood(
        self, node_id: int, tip_vectors: Mapping[str, np.ndarray]
    ) -> np.ndarray:
        """
        Conditional likelihood vector of ``node_id``.

        Only the subtree below ``node_id`` is visited. Child vectors are
        released as soon as their parent has been computed.

        Parameters
        ----------
        node_id : int
            Node whose vector is wanted
        tip_vectors : Mapping[str, np.ndarray]
            Taxon name -> encoded vector(s) for the current site(s)

        Returns
        -------
        np.ndarray
            Vector of shape (n_states,), or (n_sites, n_states) for blocks

        Raises
        ------
        MissingTaxonError
            If a leaf of the subtree has no entry in ``tip_vectors``
        """
        return self._run(node_id, tip_vectors, keep_all=False, scaling=False)[0][node_id]

    def conditional_likelihoods(
        self, tip_vectors: Mapping[str, np.ndarray]
    ) -> dict[int, np.ndarray]:
        """
        Conditional likelihood vectors of every node, keyed by node id.

        Intended for inspection; :meth:`prune` keeps only what it needs.
        """
        return self._run(self.tree.root(), tip_vectors, keep_all=True, scaling=False)[0]

    def prune(
        self, tip_vectors: Mapping[str, np.ndarray], scaling: bool = False
    ) -> PruningResult:
        """
        Run the pruning pass up to the root.

        Parameters
        ----------
        tip_vectors : Mapping[str, np.ndarray]
            Taxon name -> encoded vector(s)
        scaling : bool, default=False
            Divide every internal vector by its largest entry and carry the
            log of the factor, so deep trees do not underflow

        Returns
        -------
        PruningResult
            Root vector and accumulated log scale factor
        """
        root = self.tree.root()
        vectors, log_scale = self._run(root, tip_vectors, keep_all=False, scaling=scaling)
        if np.ndim(log_scale) == 0:
            log_scale = float(log_scale)
        return PruningResult(root_vector=vectors[root], log_scale=log_scale)

    def _check_tips(self, start: int, tip_vectors: Mapping[str, np.ndarray]) -> None:
        shapes = set()
        for node_id in self.tree.postorder(start):
            node = self.tree.node(node_id)
            if not node.is_leaf:
                continue
            if node.name not in tip_vectors:
                raise MissingTaxonError(
                    f"No encoded vector for taxon '{node.name}' (leaf node {node_id})"
                )
            shape = np.shape(tip_vectors[node.name])
            if not shape or shape[-1] != self.n_states:
                raise ValueError(
                    f"Vector for taxon '{node.name}' has shape {shape}; "
                    f"last axis must have {self.n_states} states"
                )
            shapes.add(shape)
        if len(shapes) > 1:
            raise ValueError(f"Tip vectors have inconsistent shapes: {sorted(shapes)}")

    def _run(
        self,
        start: int,
        tip_vectors: Mapping[str, np.ndarray],
        keep_all: bool,
        scaling: bool,
    ) -> tuple[dict[int, np.ndarray], Union[float, np.ndarray]]:
        self._check_tips(start, tip_vectors)

        nodes = self.tree.nodes
        vectors: dict[int, np.ndarray] = {}
        log_scale: Optional[np.ndarray] = None

        for node_id in self.tree.postorder(start):
            node = nodes[node_id]
            if node.is_leaf:
                vectors[node_id] = np.asarray(tip_vectors[node.name], dtype=float)
                continue

            partial = None
            for child in node.children:
                try:
                    child_vector = vectors[child] if keep_all else vectors.pop(child)
                except KeyError:
                    raise PruningInternalError(
                        f"Vector for child {child} of node {node_id} was not computed "
                        f"before its parent"
                    ) from None
                # sum_j P[i, j] * L_child[j] for every ancestral state i
                contribution = child_vector @ self._matrices[child].T
                partial = contribution if partial is None else partial * contribution

            if scaling:
                factor = partial.max(axis=-1, keepdims=True)
                factor = np.where(factor > 0.0, factor, 1.0)
                partial = partial / factor
                node_log = np.log(factor[..., 0])
                log_scale = node_log if log_scale is None else log_scale + node_log

            vectors[node_id] = partial

        if log_scale is None:
            log_scale = np.zeros(np.shape(vectors[start])[:-1])
        return vectors, log_scale
