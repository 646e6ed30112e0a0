# coilnet/phase_model.py
"""
PHASE MODEL: Network Assembly Engine
====================================

PURPOSE:
--------
Owns the segments and nodes of one transformer phase and turns them into the
network the impulse-distribution solver needs:

    segments ──► series capacitances ──► nodes ──► shunt capacitances
                                                  │
                                                  ▼
                                 C (capacitance) and M (inductance)

Every mutation (insert, remove, replace, shielding elements, connections)
throws away everything computed downstream; the calculate_* methods must be
called again, in the order above. build_network() runs the whole chain.

SEGMENT STORE:
--------------
Segments are kept sorted by location (radial, then axial). Shielding elements
sort into the same store (their locations use negative sentinels, see
coilnet.model.NEGATIVE_ZERO) so that they can be found by location, but they
get no matrix row and no nodes.

USAGE:
------
    model = PhaseModel.from_basic_sections(core, tank_depth, sections)
    model.connect(bottom_segment, Location.OUTSIDE_LOWER, None, Location.IMPULSE)
    model.connect(top_segment, Location.OUTSIDE_UPPER, None, Location.GROUND)
    C, M = model.build_network()
"""

import bisect
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

import numpy as np

from .capacitance import (
    apply_shunt_links,
    capacitance_matrix,
    capacitance_profile,
    coaxial_capacitance,
    distribute_shunt_capacitance,
    distribute_to_ground,
    fix_capacitance_matrix,
    ground_split,
)
from .connector import Location, alternating_location, standard_to_location
from .errors import (
    ArgAIsNotAMultipleOfArgBError,
    ArgumentIsZeroCountError,
    CapacitanceNotCalculatedError,
    CoilDoesNotExistError,
    CoilnetError,
    EmptyModelError,
    IllegalAxialGapError,
    IllegalLocationError,
    InductanceMatrixError,
    NoRoomForShieldingElementError,
    NotAShieldingElementError,
    OldSegmentCountIsNotOneError,
    OnlyOneStaticRingAllowedError,
    SameCoilTwiceError,
    SegmentExistsError,
    SegmentIsShieldingElementError,
    SegmentNotInModelError,
    ShieldingElementExistsError,
    TerminationMissingError,
    TooManyConnectorsError,
    UnequalBasicSectionsPerSetError,
)
from .inductance import EslamianVahidi, mutual_inductance
from .kernel.matrix import Matrix
from .model import NEGATIVE_ZERO, BasicSection, Core, LocStruct, WindingType
from .node import Node
from .segment import Connection, Segment, SegmentIdAllocator, SeriesGapContext

logger = logging.getLogger(__name__)


def _location_key(segment: Segment) -> LocStruct:
    return segment.location


class PhaseModel:
    """
    Network assembly engine for one phase.

    Parameters:
    -----------
    core : Core
        The core the coils sit on
    tank_depth : float
        Distance from the core-leg centre to the tank wall (m)
    segments : Iterable[Segment]
        Initial segments (any order)
    id_allocator : SegmentIdAllocator
        Serial number source for segments the model creates itself
        (static rings, radial shields, make_segment). A new one is made if
        not given; pass the allocator that numbered 'segments'.
    """

    def __init__(
        self,
        core: Core,
        tank_depth: float,
        segments: Iterable[Segment] = (),
        id_allocator: Optional[SegmentIdAllocator] = None,
    ):
        self.core = core
        self.tank_depth = tank_depth
        self.ids = id_allocator if id_allocator is not None else SegmentIdAllocator()

        self._segments: List[Segment] = []
        self._by_id: Dict[int, Segment] = {}

        self.nodes: List[Node] = []
        self._coil_top_nodes: List[int] = []
        self._series_capacitances: Optional[Dict[int, float]] = None
        self.C: Optional[Matrix] = None
        self.M: Optional[Matrix] = None
        self.fixed_C: Optional[Matrix] = None
        self.fixed_C_sparse: Optional[Matrix] = None

        self.insert_segments(list(segments))

    @classmethod
    def from_basic_sections(
        cls,
        core: Core,
        tank_depth: float,
        sections: Sequence[BasicSection],
        entry_location: Location = Location.OUTSIDE_LOWER,
    ) -> "PhaseModel":
        """
        One segment per BasicSection, each coil wound in series from the bottom.

        Disc coils alternate between inside and outside from disc to disc;
        other winding types step straight up. The bottom entry and top exit
        of every coil are left floating.
        """
        model = cls(core, tank_depth)
        if not sections:
            raise EmptyModelError("No BasicSections to build a model from")

        segments = [model.make_segment([s]) for s in sections]
        model.insert_segments(segments)
        for coil in range(model.num_coils()):
            model.wind_coil(model.segments_in_coil(coil), entry_location)
        return model

    def make_segment(self, sections: Sequence[BasicSection], interleaved: bool = False) -> Segment:
        """Create (but do not insert) a segment numbered by this model's allocator."""
        return Segment(
            sections, self.ids.next_id(),
            self.core.real_window_height, self.core.adjusted_window_height,
            interleaved=interleaved,
        )

    # =========================================================================
    # Invalidation
    # =========================================================================

    def invalidate(self) -> None:
        """Forget everything computed from the topology."""
        self.nodes = []
        self._coil_top_nodes = []
        self._series_capacitances = None
        self.C = None
        self.M = None
        self.fixed_C = None
        self.fixed_C_sparse = None

    # =========================================================================
    # Segment store and indexing
    # =========================================================================

    @property
    def segments(self) -> List[Segment]:
        """All segments, shielding elements included, in location order."""
        return list(self._segments)

    def segment(self, serial_number: int) -> Segment:
        try:
            return self._by_id[serial_number]
        except KeyError:
            raise SegmentNotInModelError(f"No segment #{serial_number} in the model") from None

    def coil_segments(self) -> List[Segment]:
        """All non-shielding segments, in location order."""
        return [s for s in self._segments if not s.is_shielding_element]

    def num_coils(self) -> int:
        coil_segments = self.coil_segments()
        if not coil_segments:
            return 0
        return coil_segments[-1].radial_pos + 1

    def segments_in_coil(self, coil: int) -> List[Segment]:
        result = [s for s in self._segments if not s.is_shielding_element and s.radial_pos == coil]
        if not result:
            raise CoilDoesNotExistError(f"Coil {coil} does not exist")
        return result

    def segment_at(self, location: LocStruct) -> Optional[Segment]:
        index = bisect.bisect_left(self._segments, location, key=_location_key)
        if index < len(self._segments) and self._segments[index].location == location:
            return self._segments[index]
        return None

    def highest_section(self, coil: int) -> int:
        """Axial position of the highest segment in a coil."""
        return self.segments_in_coil(coil)[-1].axial_pos

    def coil_extent(self, coil: int) -> Tuple[float, float, float, float]:
        """(r1, r2, z1, z2) of the whole coil."""
        segments = self.segments_in_coil(coil)
        return (
            min(s.r1 for s in segments), max(s.r2 for s in segments),
            min(s.z1 for s in segments), max(s.z2 for s in segments),
        )

    def _check_in_model(self, segment: Segment) -> None:
        if self._by_id.get(segment.serial_number) is not segment:
            raise SegmentNotInModelError(f"{segment!r} is not in the model")

    def segment_index(self, segment: Segment) -> int:
        """
        Row of a segment in the inductance matrix.

        Segments of the lower coils come first, then the segment's position in
        its own coil.
        """
        if segment.is_shielding_element:
            raise SegmentIsShieldingElementError(f"{segment!r} is a shielding element")
        self._check_in_model(segment)
        for index, s in enumerate(self.coil_segments()):
            if s == segment:
                return index
        raise SegmentNotInModelError(f"{segment!r} is not in the model")

    def segments_are_adjacent(self, segment1: Segment, segment2: Segment) -> bool:
        """True if the segments are neighbours in the same coil."""
        if segment1.is_shielding_element or segment2.is_shielding_element:
            return False
        if segment1.radial_pos != segment2.radial_pos:
            return False
        coil = self.segments_in_coil(segment1.radial_pos)
        try:
            i = coil.index(segment1)
            j = coil.index(segment2)
        except ValueError:
            return False
        return abs(i - j) == 1

    def non_adjacent_connections(self, segment: Segment) -> List[Connection]:
        """Connections from 'segment' to segments that are not its neighbours."""
        result = []
        for conn in segment.connections:
            if conn.segment_id is None:
                continue
            other = self.segment(conn.segment_id)
            if not self.segments_are_adjacent(segment, other):
                result.append(conn)
        return result

    # =========================================================================
    # Mutations
    # =========================================================================

    def _snapshot(self, extra: Sequence[Segment] = ()) -> Tuple[List[Segment], List[Tuple[Segment, List[Connection]]]]:
        connections = [(s, list(s.connections)) for s in list(self._segments) + list(extra)]
        return list(self._segments), connections

    def _restore(self, snapshot) -> None:
        segments, connections = snapshot
        self._segments = segments
        self._by_id = {s.serial_number: s for s in segments}
        for segment, conns in connections:
            segment.connections = conns

    def _insert(self, segment: Segment) -> None:
        if self.segment_at(segment.location) is not None:
            raise SegmentExistsError(f"There is already a segment at {segment.location}")
        if segment.serial_number in self._by_id:
            raise SegmentExistsError(f"Segment #{segment.serial_number} is already in the model")
        index = bisect.bisect_left(self._segments, segment.location, key=_location_key)
        self._segments.insert(index, segment)
        self._by_id[segment.serial_number] = segment

    def insert_segment(self, segment: Segment) -> None:
        """
        Insert a segment, keeping the store sorted.

        Raises SegmentExistsError if its location is already taken.
        """
        self._insert(segment)
        self.invalidate()

    def insert_segments(self, segments: Sequence[Segment]) -> None:
        """Insert several segments; if any insert fails, none of them stay."""
        if not segments:
            return
        snapshot = self._snapshot()
        try:
            for segment in segments:
                self._insert(segment)
        except CoilnetError:
            self._restore(snapshot)
            raise
        self.invalidate()

    def remove_segment(self, segment: Segment) -> None:
        """
        Remove a segment, and every connection to it from the other segments.

        A coil segment's static ring is removed with it.
        """
        self._check_in_model(segment)
        removed = [segment]
        if not segment.is_shielding_element:
            ring = self.static_ring_of(segment)
            if ring is not None:
                removed.append(ring)
        self._discard(removed)
        self.invalidate()

    def _discard(self, segments: Sequence[Segment]) -> None:
        ids = {s.serial_number for s in segments}
        for segment in segments:
            self._segments.remove(segment)
            del self._by_id[segment.serial_number]
        for other in self._segments:
            other.connections = [c for c in other.connections if c.segment_id not in ids]

    def connect(
        self,
        segment: Segment,
        from_location: Location,
        to_segment: Optional[Segment],
        to_location: Location,
    ) -> None:
        """
        Add a connection from 'segment' to another segment or to a termination.

        Raises IllegalLocationError if the locations don't make sense: the from
        side must be physical; the to side must be physical for a segment and a
        termination otherwise.
        """
        self._check_in_model(segment)
        if segment.is_shielding_element:
            raise SegmentIsShieldingElementError(f"{segment!r} is a shielding element")
        if from_location.is_termination:
            raise IllegalLocationError(f"Cannot connect from a termination ({from_location.value})")
        if to_segment is None:
            if not to_location.is_termination:
                raise IllegalLocationError(f"{to_location.value} needs a segment to connect to")
        else:
            self._check_in_model(to_segment)
            if to_location.is_termination:
                raise IllegalLocationError(f"Cannot connect a segment to a termination ({to_location.value})")
            self._drop_floating(segment, from_location)
            self._drop_floating(to_segment, to_location)
        segment.add_connector(from_location, to_location, to_segment)
        self.invalidate()

    @staticmethod
    def _drop_floating(segment: Segment, location: Location) -> None:
        segment.connections = [
            c for c in segment.connections
            if not (c.from_location == location and c.segment_id is None and c.to_location == Location.FLOATING)
        ]

    def disconnect(self, segment: Segment, connection: Connection) -> None:
        """Remove a connection (and its reverse). Ground/impulse become floating."""
        self._check_in_model(segment)
        other = None if connection.segment_id is None else self.segment(connection.segment_id)
        segment.remove_connection(connection, other)
        self.invalidate()

    def wind_coil(self, segments: Sequence[Segment], entry_location: Location = Location.OUTSIDE_LOWER) -> None:
        """
        Connect a run of segments in series from the bottom, leaving floating ends.

        The exit of a disc segment alternates between inside and outside; other
        winding types exit straight above the entry.
        """
        if not segments:
            raise ArgumentIsZeroCountError("No segments to wind")
        for segment in segments:
            self._check_in_model(segment)
        self._link_in_series(segments, entry_location)
        self.invalidate()

    @staticmethod
    def _exit_location(segment: Segment, entry: Location) -> Location:
        # each disc swaps inside and outside
        if segment.wdg_type == WindingType.DISC and len(segment.basic_sections) % 2 == 1:
            return alternating_location(entry)
        return standard_to_location(entry)

    def _link_in_series(self, segments: Sequence[Segment], entry: Location) -> Tuple[Location, Location]:
        """Link consecutive segments; returns (entry of the first, exit of the last)."""
        first_entry = entry
        exit_location = entry
        for k, segment in enumerate(segments):
            exit_location = self._exit_location(segment, entry)
            if k + 1 < len(segments):
                next_entry = standard_to_location(exit_location)
                segment.add_connector(exit_location, next_entry, segments[k + 1])
                entry = next_entry

        if not segments[0].connection_destinations(first_entry):
            segments[0].add_connector(first_entry, Location.FLOATING)
        if not segments[-1].connection_destinations(exit_location):
            segments[-1].add_connector(exit_location, Location.FLOATING)
        return first_entry, exit_location

    def replace_segments(self, old_segments: Sequence[Segment], new_segments: Sequence[Segment]) -> None:
        """
        Replace N old segments with M new ones covering the same BasicSections.

        Either a split (one old segment into M) or a combination (N old into
        M, N a multiple of M). Connections from the bottom of the first old
        segment move to the first new one; connections from the top of the
        last old segment move to the last new one; the new segments are wound
        in series between them. A static ring below the first old segment or
        above the last one moves to the matching new segment; a ring between
        old segments is dropped. On any failure the model is left as it was.

        Raises:
        -------
        ArgumentIsZeroCountError
            If either list is empty
        OldSegmentCountIsNotOneError
            If splitting (M > N) more than one old segment
        ArgAIsNotAMultipleOfArgBError
            If combining and N is not a multiple of M
        UnequalBasicSectionsPerSetError
            If the new segments don't hold the same BasicSections as the old ones,
            or don't each hold the same number of them
        TooManyConnectorsError
            If an old segment has an outside connection that has nowhere to go
        """
        N = len(old_segments)
        M = len(new_segments)
        if N == 0 or M == 0:
            raise ArgumentIsZeroCountError("replace_segments needs at least one old and one new segment")
        if M > N and N != 1:
            raise OldSegmentCountIsNotOneError(f"Can only split one segment at a time (got {N})")
        if N >= M and N % M != 0:
            raise ArgAIsNotAMultipleOfArgBError(f"{N} old segments cannot be combined into {M}")

        old = sorted(old_segments, key=_location_key)
        new = sorted(new_segments, key=_location_key)
        for segment in old:
            if segment.is_shielding_element:
                raise SegmentIsShieldingElementError(f"{segment!r} is a shielding element")
            self._check_in_model(segment)

        old_locations = [bs.location for s in old for bs in s.basic_sections]
        new_locations = [bs.location for s in new for bs in s.basic_sections]
        if old_locations != new_locations:
            raise UnequalBasicSectionsPerSetError("New segments must hold exactly the BasicSections of the old ones")
        per_set = len(new_locations) // M
        if any(len(s.basic_sections) != per_set for s in new):
            raise UnequalBasicSectionsPerSetError(f"Every new segment must hold {per_set} BasicSections")

        snapshot = self._snapshot(new)
        try:
            self._replace(old, new)
        except CoilnetError:
            self._restore(snapshot)
            raise
        self.invalidate()
        logger.info("Replaced %d segment(s) with %d", N, M)

    def _replace(self, old: List[Segment], new: List[Segment]) -> None:
        old_ids = {s.serial_number for s in old}
        bottom, top = old[0], old[-1]

        # connections that leave the old set, and where they go
        moves: List[Tuple[Connection, Segment, Segment]] = []
        for segment in old:
            for conn in segment.connections:
                if conn.segment_id in old_ids:
                    continue
                if segment == bottom and conn.from_location.is_lower:
                    moves.append((conn, segment, new[0]))
                elif segment == top and conn.from_location.is_upper:
                    moves.append((conn, segment, new[-1]))
                elif conn.to_location == Location.FLOATING:
                    continue
                else:
                    raise TooManyConnectorsError(
                        f"Connection {conn.from_location.value} -> {conn.to_location.value} on {segment!r} "
                        f"cannot be kept by the new segments"
                    )

        # a static ring survives only on the outer end of the run, moved to the new end segment
        rings = [(s, self.static_ring_of(s)) for s in old]
        rings = [(s, ring) for s, ring in rings if ring is not None]
        ring_ids = {ring.serial_number for _, ring in rings}
        self._discard([ring for _, ring in rings])

        for segment in old:
            self._segments.remove(segment)
            del self._by_id[segment.serial_number]
        for segment in new:
            segment.connections = []
            self._insert(segment)

        for owner, ring in rings:
            if owner == bottom and ring.z2 <= owner.z1:
                self._insert(Segment.static_ring(
                    new[0], owner.z1 - ring.z2, False, self.ids.next_id(), ring.height,
                ))
            elif owner == top and ring.z1 >= owner.z2:
                self._insert(Segment.static_ring(
                    new[-1], ring.z1 - owner.z2, True, self.ids.next_id(), ring.height,
                ))
            else:
                logger.info("Dropped %r, it would sit inside a new segment", ring)

        for conn, old_segment, new_segment in moves:
            if conn.segment_id in ring_ids:
                continue
            if conn.segment_id is None:
                new_segment.connections.append(conn)
                continue
            other = self.segment(conn.segment_id)
            reverse = Connection(old_segment.serial_number, conn.connector.reversed())
            other.connections = [
                Connection(new_segment.serial_number, c.connector) if c == reverse else c
                for c in other.connections
            ]
            new_segment.connections.append(Connection(other.serial_number, conn.connector))

        lower_moves = [c for c, _, target in moves if target is new[0] and c.from_location.is_lower]
        entry = lower_moves[0].from_location if lower_moves else Location.OUTSIDE_LOWER
        self._link_in_series(new, entry)

    # =========================================================================
    # Shielding elements
    # =========================================================================

    @staticmethod
    def static_ring_location(segment: Segment) -> LocStruct:
        axial = NEGATIVE_ZERO if segment.axial_pos == 0 else -segment.axial_pos
        return LocStruct(segment.radial_pos, axial)

    @staticmethod
    def radial_shield_location(coil: int) -> LocStruct:
        return LocStruct(NEGATIVE_ZERO if coil == 0 else -coil, 0)

    def static_ring_of(self, segment: Segment) -> Optional[Segment]:
        """The static ring attached to a segment, if any."""
        ring = self.segment_at(self.static_ring_location(segment))
        if ring is not None and ring.is_static_ring:
            return ring
        return None

    def radial_shield_of(self, coil: int) -> Optional[Segment]:
        """The radial shield in the hilo under a coil, if any."""
        shield = self.segment_at(self.radial_shield_location(coil))
        if shield is not None and shield.is_radial_shield:
            return shield
        return None

    def add_static_ring(
        self,
        adjacent_segment: Segment,
        gap_to_segment: float,
        static_ring_is_above: bool,
        static_ring_thickness: Optional[float] = None,
    ) -> Segment:
        """
        Add a static ring above or below a segment.

        Raises:
        -------
        SegmentIsShieldingElementError
            If adjacent_segment is itself a shielding element
        IllegalAxialGapError
            If the gap is negative
        ShieldingElementExistsError
            If the segment already has a static ring on that side
        OnlyOneStaticRingAllowedError
            If the segment already has a static ring on the other side
        NoRoomForShieldingElementError
            If the ring would overlap the neighbouring segment
        """
        if adjacent_segment.is_shielding_element:
            raise SegmentIsShieldingElementError(f"{adjacent_segment!r} is a shielding element")
        self._check_in_model(adjacent_segment)
        if gap_to_segment < 0.0:
            raise IllegalAxialGapError(f"Negative gap to static ring: {gap_to_segment}")

        existing = self.static_ring_of(adjacent_segment)
        if existing is not None:
            existing_is_above = existing.z1 >= adjacent_segment.z2
            if existing_is_above == static_ring_is_above:
                raise ShieldingElementExistsError(f"{adjacent_segment!r} already has that static ring")
            raise OnlyOneStaticRingAllowedError(f"{adjacent_segment!r} already has a static ring")

        ring = Segment.static_ring(
            adjacent_segment, gap_to_segment, static_ring_is_above,
            self.ids.next_id(), static_ring_thickness,
        )

        coil = self.segments_in_coil(adjacent_segment.radial_pos)
        position = coil.index(adjacent_segment)
        if static_ring_is_above and position + 1 < len(coil):
            neighbour = coil[position + 1]
            if ring.z2 > neighbour.z1 or self._ring_below(neighbour) is not None:
                raise NoRoomForShieldingElementError(f"No room for a static ring above {adjacent_segment!r}")
        if not static_ring_is_above and position > 0:
            neighbour = coil[position - 1]
            if ring.z1 < neighbour.z2 or self._ring_above(neighbour) is not None:
                raise NoRoomForShieldingElementError(f"No room for a static ring below {adjacent_segment!r}")

        self.insert_segment(ring)
        logger.debug("Added %r", ring)
        return ring

    def remove_static_ring(self, ring: Segment) -> None:
        if not ring.is_static_ring:
            raise NotAShieldingElementError(f"{ring!r} is not a static ring")
        self.remove_segment(ring)

    def add_radial_shield(self, coil: int, hilo_to_coil: float) -> Segment:
        """
        Add a grounded radial shield in the hilo under a coil, spanning the coil's height.

        Raises:
        -------
        CoilDoesNotExistError
        ShieldingElementExistsError
            If the hilo already has a shield
        NoRoomForShieldingElementError
            If the shield would touch the coil (or core) inside it
        """
        segments = self.segments_in_coil(coil)
        if self.radial_shield_of(coil) is not None:
            raise ShieldingElementExistsError(f"Coil {coil} already has a radial shield")
        if hilo_to_coil <= 0.0:
            raise NoRoomForShieldingElementError(f"Illegal hilo to radial shield: {hilo_to_coil}")

        r1, r2, z1, z2 = self.coil_extent(coil)
        shield = Segment.radial_shield(segments[0], hilo_to_coil, z2 - z1, self.ids.next_id())
        inner_r2 = self.core.radius if coil == 0 else self.coil_extent(coil - 1)[1]
        if shield.r1 <= inner_r2:
            raise NoRoomForShieldingElementError(f"No room for a radial shield under coil {coil}")

        self.insert_segment(shield)
        logger.debug("Added %r", shield)
        return shield

    def remove_radial_shield(self, shield: Segment) -> None:
        if not shield.is_radial_shield:
            raise NotAShieldingElementError(f"{shield!r} is not a radial shield")
        self.remove_segment(shield)

    # =========================================================================
    # Nodes
    # =========================================================================

    def _explicitly_connected(self, lower: Segment, upper: Segment) -> bool:
        return any(c.segment_id == upper.serial_number for c in lower.connections)

    def _add_node(self, below: Optional[Segment], above: Optional[Segment], z: float) -> None:
        self.nodes.append(Node(
            number=len(self.nodes),
            below_segment_id=None if below is None else below.serial_number,
            above_segment_id=None if above is None else above.serial_number,
            z=z,
        ))

    def set_nodes(self) -> List[int]:
        """
        Regenerate all nodes.

        For each coil, bottom to top: a node under the first segment, one node
        between two segments that are connected to each other (two nodes if
        they are not), and a node over the last segment.

        Returns:
        --------
        List[int]
            The number of the top node of each coil
        """
        coil_segments = self.coil_segments()
        if not coil_segments:
            raise EmptyModelError("The model has no segments")

        self.nodes = []
        self._coil_top_nodes = []
        self.C = None
        self.fixed_C = None
        self.fixed_C_sparse = None

        for coil in range(self.num_coils()):
            segments = self.segments_in_coil(coil)
            self._add_node(None, segments[0], segments[0].z1)
            for lower, upper in zip(segments[:-1], segments[1:]):
                if self._explicitly_connected(lower, upper):
                    self._add_node(lower, upper, (lower.z2 + upper.z1) / 2.0)
                else:
                    self._add_node(lower, None, lower.z2)
                    self._add_node(None, upper, upper.z1)
            self._add_node(segments[-1], None, segments[-1].z2)
            self._coil_top_nodes.append(len(self.nodes) - 1)

        logger.info("Created %d nodes for %d coils", len(self.nodes), self.num_coils())
        return list(self._coil_top_nodes)

    def coil_nodes(self, coil: int) -> List[Node]:
        if not self._coil_top_nodes:
            raise CapacitanceNotCalculatedError("Nodes have not been set")
        if not 0 <= coil < len(self._coil_top_nodes):
            raise CoilDoesNotExistError(f"Coil {coil} does not exist")
        first = 0 if coil == 0 else self._coil_top_nodes[coil - 1] + 1
        return self.nodes[first:self._coil_top_nodes[coil] + 1]

    def node_at(self, segment: Segment, location: Location) -> Optional[Node]:
        """The node at a connector location of a segment (None for centre locations)."""
        if location.is_upper:
            return next((n for n in self.nodes if n.below_segment_id == segment.serial_number), None)
        if location.is_lower:
            return next((n for n in self.nodes if n.above_segment_id == segment.serial_number), None)
        return None

    def nodes_of_type(self, termination: Location) -> List[int]:
        """Numbers of the nodes connected to a termination (floating, ground or impulse)."""
        if not termination.is_termination:
            raise IllegalLocationError(f"{termination.value} is not a termination")
        result: Set[int] = set()
        for segment in self.coil_segments():
            for conn in segment.connections:
                if conn.segment_id is None and conn.to_location == termination:
                    node = self.node_at(segment, conn.from_location)
                    if node is not None:
                        result.add(node.number)
        return sorted(result)

    # =========================================================================
    # Series capacitance
    # =========================================================================

    def _ring_below(self, segment: Segment) -> Optional[Segment]:
        ring = self.static_ring_of(segment)
        if ring is not None and ring.z2 <= segment.z1:
            return ring
        return None

    def _ring_above(self, segment: Segment) -> Optional[Segment]:
        ring = self.static_ring_of(segment)
        if ring is not None and ring.z1 >= segment.z2:
            return ring
        return None

    def series_gap_context(self, segment: Segment) -> SeriesGapContext:
        """
        Axial gaps around a segment: to its own static ring, to a static ring on
        the neighbouring segment (one neighbour in each direction), or to the
        neighbouring segment itself.
        """
        if segment.is_shielding_element:
            raise SegmentIsShieldingElementError(f"{segment!r} is a shielding element")
        coil = self.segments_in_coil(segment.radial_pos)
        position = coil.index(segment)

        gap_below = None
        ring_below = False
        ring = self._ring_below(segment)
        if ring is not None:
            gap_below, ring_below = segment.z1 - ring.z2, True
        elif position > 0:
            neighbour = coil[position - 1]
            ring = self._ring_above(neighbour)
            if ring is not None:
                gap_below, ring_below = segment.z1 - ring.z2, True
            else:
                gap_below = segment.z1 - neighbour.z2

        gap_above = None
        ring_above = False
        ring = self._ring_above(segment)
        if ring is not None:
            gap_above, ring_above = ring.z1 - segment.z2, True
        elif position + 1 < len(coil):
            neighbour = coil[position + 1]
            ring = self._ring_below(neighbour)
            if ring is not None:
                gap_above, ring_above = ring.z1 - segment.z2, True
            else:
                gap_above = neighbour.z1 - segment.z2

        return SeriesGapContext(
            gap_below=gap_below,
            gap_above=gap_above,
            static_ring_below=ring_below,
            static_ring_above=ring_above,
            is_coil_bottom=position == 0,
            is_coil_top=position == len(coil) - 1,
        )

    def calculate_series_capacitances(self) -> Dict[int, float]:
        """Series capacitance of every coil segment, keyed by serial number."""
        coil_segments = self.coil_segments()
        if not coil_segments:
            raise EmptyModelError("The model has no segments")
        self._series_capacitances = {
            s.serial_number: s.series_capacitance(self.series_gap_context(s)) for s in coil_segments
        }
        self.C = None
        self.fixed_C = None
        self.fixed_C_sparse = None
        return dict(self._series_capacitances)

    def series_capacitance_of(self, segment: Segment) -> float:
        if self._series_capacitances is None:
            raise CapacitanceNotCalculatedError("Series capacitances have not been calculated")
        if segment.is_shielding_element:
            raise SegmentIsShieldingElementError(f"{segment!r} is a shielding element")
        try:
            return self._series_capacitances[segment.serial_number]
        except KeyError:
            raise SegmentNotInModelError(f"{segment!r} is not in the model") from None

    # =========================================================================
    # Coil quantities
    # =========================================================================

    def coil_current_density(self, coil: int, n_terms: Optional[int] = None) -> np.ndarray:
        """
        1-D Fourier series of a coil's axial current density: the sum of its
        segments' series (term 0 is the mean).
        """
        return sum(s.fourier_current_density(n_terms) for s in self.segments_in_coil(coil))

    def coil_resistance(self, coil: int, temp: Optional[float] = None) -> float:
        """DC resistance of a coil (its segments in series) at temp (°C)."""
        return sum(s.resistance(temp) for s in self.segments_in_coil(coil))

    # =========================================================================
    # Shunt capacitance
    # =========================================================================

    def _coil_height(self, coil: int) -> float:
        _, _, z1, z2 = self.coil_extent(coil)
        return z2 - z1

    def _coil_profile(self, coil: int) -> Tuple[List[int], np.ndarray]:
        nodes = self.coil_nodes(coil)
        heights = {s.serial_number: s.height for s in self.segments_in_coil(coil)}
        return [n.number for n in nodes], capacitance_profile(nodes, heights)

    def coil_pair_capacitance(self, coil_a: int, coil_b: int) -> float:
        """Lumped shunt capacitance across the hilo between two coils."""
        if coil_a == coil_b:
            raise SameCoilTwiceError(f"Coil {coil_a} given twice")
        inner, outer = sorted((coil_a, coil_b))
        r_inner = self.coil_extent(inner)[1]
        r_outer = self.coil_extent(outer)[0]
        height = (self._coil_height(inner) + self._coil_height(outer)) / 2.0
        return coaxial_capacitance(r_inner, r_outer, height)

    def calculate_shunt_capacitances(self) -> None:
        """
        Shunt capacitances of every coil, stored on the nodes.

        Each coil faces the core (coil 0), a radial shield, or the coil inside
        it. Against the core or a shield, the capacitance goes to ground half
        at the coil's bottom node and half at its top node. Between two coils
        it is spread by the two-pointer merge. The outermost coil also sees
        the tank wall and the neighbouring core leg.
        """
        if not self.nodes:
            raise CapacitanceNotCalculatedError("Nodes have not been set")
        for node in self.nodes:
            node.shunt_capacitances = []
        self.C = None
        self.fixed_C = None
        self.fixed_C_sparse = None

        for coil in range(self.num_coils()):
            r1, r2, z1, z2 = self.coil_extent(coil)
            height = z2 - z1
            nodes, profile = self._coil_profile(coil)
            shield = self.radial_shield_of(coil)

            if shield is not None:
                # shield is grounded; both the coil inside and this one face it
                links = ground_split(nodes[0], nodes[-1], coaxial_capacitance(shield.r2, r1, height))
                if coil > 0:
                    inner_nodes, _ = self._coil_profile(coil - 1)
                    inner_r2 = self.coil_extent(coil - 1)[1]
                    links += ground_split(
                        inner_nodes[0], inner_nodes[-1],
                        coaxial_capacitance(inner_r2, shield.r1, self._coil_height(coil - 1)),
                    )
            elif coil == 0:
                links = ground_split(nodes[0], nodes[-1], coaxial_capacitance(self.core.radius, r1, height))
            else:
                inner_nodes, inner_profile = self._coil_profile(coil - 1)
                links = distribute_shunt_capacitance(
                    inner_nodes, inner_profile, nodes, profile,
                    self.coil_pair_capacitance(coil - 1, coil),
                )
            apply_shunt_links(self.nodes, links)

        # outermost coil to the tank wall and to the next core leg
        outer = self.num_coils() - 1
        r1, r2, z1, z2 = self.coil_extent(outer)
        height = z2 - z1
        nodes, profile = self._coil_profile(outer)
        c_tank = 0.5 * coaxial_capacitance(r2, self.tank_depth, height)
        c_leg = 0.5 * coaxial_capacitance(r2, self.core.leg_centers - self.core.radius, height)
        apply_shunt_links(self.nodes, distribute_to_ground(nodes, profile, c_tank))
        apply_shunt_links(self.nodes, distribute_to_ground(nodes, profile, c_leg))
        logger.info("Shunt capacitances: tank %.4e F, leg %.4e F", c_tank, c_leg)

    # =========================================================================
    # Matrices
    # =========================================================================

    def calculate_capacitance_matrix(self) -> Matrix:
        if self._series_capacitances is None:
            raise CapacitanceNotCalculatedError("Series capacitances have not been calculated")
        if not self.nodes:
            raise CapacitanceNotCalculatedError("Nodes have not been set")
        self.C = Matrix.from_array(capacitance_matrix(self.nodes, self._series_capacitances))
        self.fixed_C = None
        self.fixed_C_sparse = None
        return self.C

    def calculate_inductance_matrix(self, include_outside: bool = True) -> Matrix:
        """
        Inductance matrix indexed by segment_index.

        Raises InductanceMatrixError if the result is not positive-definite.
        """
        coil_segments = self.coil_segments()
        if not coil_segments:
            raise EmptyModelError("The model has no segments")

        n = len(coil_segments)
        logger.info("Calculating inductance matrix for %d segments", n)
        models = [EslamianVahidi(s, self.core) for s in coil_segments]

        M = Matrix(n, n)
        for i in range(n):
            for j in range(i, n):
                value = mutual_inductance(models[i], models[j], include_outside)
                M[i, j] = value
                M[j, i] = value

        if not M.test_positive_definite():
            raise InductanceMatrixError("The inductance matrix is not positive-definite")
        self.M = M
        return M

    def tied_node_groups(self) -> List[Set[int]]:
        """Groups of nodes tied together by non-adjacent connections."""
        parent: Dict[int, int] = {}

        def find(k: int) -> int:
            while parent.setdefault(k, k) != k:
                k = parent[k]
            return k

        for segment in self.coil_segments():
            for conn in self.non_adjacent_connections(segment):
                other = self.segment(conn.segment_id)
                if other.is_shielding_element:
                    continue
                a = self.node_at(segment, conn.from_location)
                b = self.node_at(other, conn.to_location)
                if a is None or b is None or a.number == b.number:
                    continue
                parent[find(a.number)] = find(b.number)

        groups: Dict[int, Set[int]] = {}
        for k in parent:
            groups.setdefault(find(k), set()).add(k)
        return [g for g in groups.values() if len(g) > 1]

    def fixed_capacitance_matrix(self) -> Matrix:
        """
        C' for the transient solver (also kept as self.fixed_C_sparse in SPARSE form).

        Impulsed and grounded node rows become identity rows. Groups of nodes
        tied together by non-adjacent connections collapse onto their lowest
        node; a group containing a grounded (or impulsed) node is grounded (or
        impulsed) as a whole.

        Raises:
        -------
        CapacitanceNotCalculatedError
            If C has not been calculated
        TerminationMissingError
            If no node is impulsed or no node is grounded
        """
        if self.C is None:
            raise CapacitanceNotCalculatedError("The capacitance matrix has not been calculated")

        impulsed = set(self.nodes_of_type(Location.IMPULSE))
        grounded = set(self.nodes_of_type(Location.GROUND))
        floating = self.nodes_of_type(Location.FLOATING)
        if not impulsed or not grounded:
            raise TerminationMissingError("The model needs at least one impulsed and one grounded node")
        if floating:
            logger.warning("There are floating nodes in the model: %s", floating)

        tied: Dict[int, List[int]] = {}
        for group in self.tied_node_groups():
            if group & grounded:
                grounded |= group
            elif group & impulsed:
                impulsed |= group
            else:
                key = min(group)
                tied[key] = sorted(group - {key})

        self.fixed_C = fix_capacitance_matrix(self.C, sorted(impulsed | grounded), tied)
        self.fixed_C_sparse = self.fixed_C.as_sparse_matrix()
        return self.fixed_C

    def build_network(self, include_outside: bool = True) -> Tuple[Matrix, Matrix]:
        """Run the whole chain: series capacitances, nodes, shunt capacitances, C, M."""
        self.calculate_series_capacitances()
        self.set_nodes()
        self.calculate_shunt_capacitances()
        C = self.calculate_capacitance_matrix()
        M = self.calculate_inductance_matrix(include_outside)
        return C, M
