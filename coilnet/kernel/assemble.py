# coilnet/kernel/assemble.py
"""
ASSEMBLY: Global Matrix Scatter-Add
===================================

PURPOSE:
--------
Builds a global (nodes × nodes) matrix from small element contributions.
Each contribution is a node map plus a square element matrix; the element
matrix entries are added into the global matrix at the mapped positions.

The capacitance matrix is the main client:
    - a segment with series capacitance Cs between nodes (a, b) contributes
          [a, b],  Cs · [[ 1, -1],
                         [-1,  1]]
    - a shunt capacitance C between nodes (a, b) contributes the same stamp
    - a shunt capacitance C from node a to ground contributes
          [a],     [[C]]

Whatever the element, the assembly logic is identical.

USAGE:
------
    contributions = [([0, 1], two_terminal_stamp(Cs)), ([2], np.array([[Cg]]))]
    C = assemble_global_matrix(n_nodes, contributions)
"""

import numpy as np
from typing import List, Sequence, Tuple


def two_terminal_stamp(value: float) -> np.ndarray:
    """Element matrix of a two-terminal admittance-like element."""
    return value * np.array([[1.0, -1.0], [-1.0, 1.0]])


def assemble_global_matrix(
    n: int,
    contributions: List[Tuple[Sequence[int], np.ndarray]]
) -> np.ndarray:
    """
    Assemble a global matrix from element contributions.

    ALGORITHM:
    ----------
    G = zeros(n × n)
    for each element:
        for each (local_i, local_j) in element matrix:
            G[map[local_i], map[local_j]] += ke[local_i, local_j]

    Parameters:
    -----------
    n : int
        Size of the global matrix (number of nodes)

    contributions : List[Tuple[Sequence[int], np.ndarray]]
        (node_map, ke) pairs. ke must be (len(node_map), len(node_map)).

    Returns:
    --------
    np.ndarray
        Global matrix, shape (n, n). Symmetric if every ke is symmetric.
    """
    G = np.zeros((n, n), dtype=float)

    for node_map, ke in contributions:
        n_element = len(node_map)

        assert ke.shape == (n_element, n_element), \
            f"Element matrix shape {ke.shape} doesn't match node map length {n_element}"

        for a in range(n_element):
            ia = node_map[a]
            for b in range(n_element):
                ib = node_map[b]
                G[ia, ib] += ke[a, b]

    return G
