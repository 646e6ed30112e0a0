# coilnet/capacitance.py
"""
CAPACITANCE: Shunt Synthesis and Capacitance Matrix Assembly
============================================================

PURPOSE:
--------
Everything between "the nodes exist and every segment has a series
capacitance" and "here is C":

    1. coaxial_capacitance       lumped shunt capacitance of a hilo
    2. capacitance_profile       each node's share of a coil's height
    3. distribute_shunt_capacitance
                                 spread a lumped capacitance over the nodes
                                 of two facing coils (two-pointer merge)
    4. ground_split              the inner side is a ground plane (core or
                                 radial shield)
    5. capacitance_matrix        scatter-add of series and shunt stamps
    6. fix_capacitance_matrix    C' for the transient solver

THE TWO-POINTER MERGE:
----------------------
Both coils get a profile: node k's share of the coil's total height. Both
profiles are walked bottom-up with cumulative sums cum_in / cum_out and one
pointer per side. At each step:

  - if |cum_in − cum_out| is within one node's share (the smaller of the
    next shares still to come), emit a link between the two current nodes
    carrying the capacitance covered by both sides since the last link,

        C_link = C_total · (min(cum_in, cum_out) − emitted)

    and advance both pointers;
  - otherwise advance the side whose next node's share is smaller (the
    side that is behind on a tie).

A side that has run out stays on its last node. When both sides are on
their last node, a closing link between them takes whatever is left, so
the links sum exactly to C_total.

A ground plane is the two-point profile [0.5, 0.5] at node GROUND_NODE, so
the same merge distributes a capacitance to ground along one coil.
"""

import logging
import math
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .config import CONFIG, EPSILON_0, EPSILON_BOARD, EPSILON_OIL
from .errors import (
    CapacitanceNotCalculatedError,
    IllegalGeometryError,
    NodeHasNoSegmentsError,
    ShuntProfileError,
)
from .kernel.assemble import assemble_global_matrix, two_terminal_stamp
from .kernel.matrix import Matrix
from .node import GROUND_NODE, Node

logger = logging.getLogger(__name__)

# (from node, to node, capacitance)
ShuntLink = Tuple[int, int, float]

GROUND_PROFILE = np.array([0.5, 0.5])


def effective_permittivity(solid_fraction: Optional[float] = None) -> float:
    """Relative permittivity of an oil gap with a fraction of pressboard barriers, in series."""
    if solid_fraction is None:
        solid_fraction = CONFIG.hilo_solid_fraction
    return 1.0 / ((1.0 - solid_fraction) / EPSILON_OIL + solid_fraction / EPSILON_BOARD)


def coaxial_capacitance(
    r_inner: float,
    r_outer: float,
    height: float,
    solid_fraction: Optional[float] = None
) -> float:
    """
    Capacitance between two coaxial cylinders.

        C = 2π·ε0·ε_eff·h / ln(r_outer / r_inner)

    Parameters:
    -----------
    r_inner, r_outer : float
        Radii of the facing surfaces (m)
    height : float
        Axial height of the cylinders (m)
    solid_fraction : float
        Fraction of the gap filled with pressboard (default from CONFIG)
    """
    if r_inner <= 0.0 or r_outer <= r_inner:
        raise IllegalGeometryError(f"Illegal radii for coaxial capacitance: {r_inner}, {r_outer}")
    eps = effective_permittivity(solid_fraction)
    return 2.0 * math.pi * EPSILON_0 * eps * height / math.log(r_outer / r_inner)


def capacitance_profile(nodes: Sequence[Node], segment_heights: Mapping[int, float]) -> np.ndarray:
    """
    Each node's share of its coil's height: half of the segment below plus
    half of the segment above, normalised so the shares sum to 1.
    """
    shares = np.zeros(len(nodes))
    for k, node in enumerate(nodes):
        if node.below_segment_id is not None:
            shares[k] += segment_heights[node.below_segment_id] / 2.0
        if node.above_segment_id is not None:
            shares[k] += segment_heights[node.above_segment_id] / 2.0
    total = shares.sum()
    if total <= 0.0:
        raise ShuntProfileError("Capacitance profile has zero total height")
    return shares / total


def distribute_shunt_capacitance(
    inner_nodes: Sequence[int],
    inner_profile: Sequence[float],
    outer_nodes: Sequence[int],
    outer_profile: Sequence[float],
    total: float,
    tolerance: Optional[float] = None,
) -> List[ShuntLink]:
    """
    Spread 'total' over pairs of inner/outer nodes by the two-pointer merge.

    Parameters:
    -----------
    inner_nodes, outer_nodes : Sequence[int]
        Node numbers, bottom to top (GROUND_NODE for a ground plane)
    inner_profile, outer_profile : Sequence[float]
        Node shares, same length as the node lists, each summing to 1
    total : float
        Lumped capacitance to distribute (F)
    tolerance : float
        Rounding slack on the one-node-share window (default from CONFIG)

    Returns:
    --------
    List[ShuntLink]
        (inner node, outer node, capacitance) links summing to total
    """
    if tolerance is None:
        tolerance = CONFIG.profile_match_tolerance
    if len(inner_nodes) != len(inner_profile) or len(outer_nodes) != len(outer_profile):
        raise ShuntProfileError("Node lists and profiles must have the same length")
    if not inner_nodes or not outer_nodes:
        raise ShuntProfileError("Cannot distribute over an empty profile")

    links: List[ShuntLink] = []
    i = j = 0
    cum_in = inner_profile[0]
    cum_out = outer_profile[0]
    emitted = 0.0
    last_i = len(inner_nodes) - 1
    last_j = len(outer_nodes) - 1

    while i < last_i or j < last_j:
        next_in = inner_profile[i + 1] if i < last_i else None
        next_out = outer_profile[j + 1] if j < last_j else None
        share = min(s for s in (next_in, next_out) if s is not None)

        if abs(cum_in - cum_out) <= share + tolerance:
            common = min(cum_in, cum_out)
            if common > emitted:
                links.append((inner_nodes[i], outer_nodes[j], total * (common - emitted)))
                emitted = common
            if next_in is not None:
                i += 1
                cum_in += next_in
            if next_out is not None:
                j += 1
                cum_out += next_out
        elif next_out is None or (next_in is not None and (next_in, cum_in) < (next_out, cum_out)):
            i += 1
            cum_in += next_in
        else:
            j += 1
            cum_out += next_out

    # closing link, so the links add up to the total exactly
    remainder = total - sum(c for _, _, c in links)
    closing = (inner_nodes[last_i], outer_nodes[last_j])
    if links and links[-1][:2] == closing:
        links[-1] = (closing[0], closing[1], links[-1][2] + remainder)
    elif remainder != 0.0:
        links.append((closing[0], closing[1], remainder))

    return links


def distribute_to_ground(outer_nodes: Sequence[int], outer_profile: Sequence[float], total: float) -> List[ShuntLink]:
    """Distribute a capacitance to ground along one coil (against the two-point ground profile)."""
    return distribute_shunt_capacitance(
        [GROUND_NODE, GROUND_NODE], GROUND_PROFILE, outer_nodes, outer_profile, total
    )


def ground_split(bottom_node: int, top_node: int, total: float) -> List[ShuntLink]:
    """Capacitance to a ground plane on the inner side: half at the bottom node, half at the top."""
    return [(GROUND_NODE, bottom_node, total / 2.0), (GROUND_NODE, top_node, total / 2.0)]


def apply_shunt_links(nodes: Sequence[Node], links: Iterable[ShuntLink]) -> None:
    """Record links on the nodes (both ends; ground ends are skipped)."""
    for a, b, c in links:
        if c == 0.0:
            continue
        if a == GROUND_NODE and b == GROUND_NODE:
            continue
        if a == GROUND_NODE:
            nodes[b].add_shunt_capacitance(GROUND_NODE, c)
        elif b == GROUND_NODE:
            nodes[a].add_shunt_capacitance(GROUND_NODE, c)
        else:
            nodes[a].add_shunt_capacitance(b, c)
            nodes[b].add_shunt_capacitance(a, c)


def capacitance_matrix(nodes: Sequence[Node], series_capacitances: Mapping[int, float]) -> np.ndarray:
    """
    Assemble the nodal capacitance matrix.

    Every segment's series capacitance is stamped between the node below it
    and the node above it; every node-to-node shunt capacitance is stamped
    once between its two nodes; ground shunts go on the diagonal only.

    Raises:
    -------
    NodeHasNoSegmentsError
        If a node has neither a segment below nor one above
    CapacitanceNotCalculatedError
        If a segment has no series capacitance
    """
    n = len(nodes)
    ends: Dict[int, List[int]] = {}
    for node in nodes:
        if node.below_segment_id is None and node.above_segment_id is None:
            raise NodeHasNoSegmentsError(f"Node {node.number} has no segments")
        if node.above_segment_id is not None:
            ends.setdefault(node.above_segment_id, [-1, -1])[0] = node.number
        if node.below_segment_id is not None:
            ends.setdefault(node.below_segment_id, [-1, -1])[1] = node.number

    contributions = []
    for seg_id, (lower, upper) in ends.items():
        if seg_id not in series_capacitances:
            raise CapacitanceNotCalculatedError(f"Series capacitance of segment {seg_id} has not been calculated")
        if lower < 0 or upper < 0:
            raise NodeHasNoSegmentsError(f"Segment {seg_id} is missing a node")
        contributions.append(([lower, upper], two_terminal_stamp(series_capacitances[seg_id])))

    for node in nodes:
        for shunt in node.shunt_capacitances:
            if shunt.to_node == GROUND_NODE:
                contributions.append(([node.number], np.array([[shunt.capacitance]])))
            elif shunt.to_node > node.number:
                contributions.append(([node.number, shunt.to_node], two_terminal_stamp(shunt.capacitance)))

    C = assemble_global_matrix(n, contributions)
    logger.info("Capacitance matrix assembled: %d nodes, %d contributions", n, len(contributions))
    return C


def fix_capacitance_matrix(
    C: Matrix,
    fixed_nodes: Iterable[int],
    tied_groups: Mapping[int, Iterable[int]],
) -> Matrix:
    """
    Build C' from C for the transient solver.

    Rows of impulsed and grounded nodes become identity rows (their voltage is
    imposed). For each group of nodes tied together by a connection, the rows
    of the tied nodes are added into the key node's row, then each tied row
    becomes V_tied − V_key = 0.

    Parameters:
    -----------
    C : Matrix
        Capacitance matrix (GENERAL)
    fixed_nodes : Iterable[int]
        Impulsed and grounded nodes
    tied_groups : Mapping[int, Iterable[int]]
        key node → nodes tied to it (none of them fixed)
    """
    fixed = C.as_general_matrix()
    for node in fixed_nodes:
        fixed.zero_row(node)
        fixed[node, node] = 1.0

    for key, tied in tied_groups.items():
        for node in tied:
            fixed.add_row(node, key)
            fixed.zero_row(node)
            fixed[node, node] = 1.0
            fixed[node, key] = -1.0

    logger.debug("Sparsity of C': %.3f", fixed.sparsity())
    return fixed
