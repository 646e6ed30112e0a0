# coilnet/segment.py
"""
SEGMENT: The Unit Actually Simulated
====================================

PURPOSE:
--------
A Segment is an axially contiguous run of BasicSections from one coil. It is
the smallest thing that gets its own row in the inductance matrix and its own
series capacitance. Static rings and radial shields are also Segments (with
the is_static_ring / is_radial_shield flag set) so that they sort into the
same store and take part in adjacency queries.

IDENTITY:
---------
Segments compare equal by serial number only. Serial numbers come from a
SegmentIdAllocator that the PhaseModel owns; there is no module-level counter.

CONNECTIONS:
------------
A Connection says "from this location on me, to that location on segment
<id>" or, with segment_id None, "from this location to a termination"
(floating, ground or impulse). Connections are always kept in pairs between
segments: adding one adds its reverse on the other segment.

USAGE:
------
    ids = SegmentIdAllocator()
    seg = Segment(sections, ids.next_id(), core.real_window_height,
                  core.adjusted_window_height)
    seg.add_connector(Location.OUTSIDE_LOWER, Location.GROUND)
    Cs = seg.series_capacitance()
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .config import CONFIG, EPSILON_0, EPSILON_OIL, EPSILON_PAPER
from .connector import Connector, Location
from .errors import (
    EmptyModelError,
    IllegalGeometryError,
    IllegalSectionError,
    SegmentIsShieldingElementError,
    UnimplementedWindingTypeError,
)
from .model import NEGATIVE_ZERO, BasicSection, LocStruct, Rect, WindingData, WindingType

logger = logging.getLogger(__name__)


class SegmentIdAllocator:
    """Hands out serial numbers for Segments, starting at 0."""

    def __init__(self, start: int = 0):
        self._next = start

    def next_id(self) -> int:
        result = self._next
        self._next += 1
        return result

    def reset(self) -> None:
        """
        Start numbering from 0 again.

        Every Segment numbered by this allocator must be discarded first,
        otherwise equality tests between old and new Segments will collide.
        """
        self._next = 0


@dataclass(frozen=True)
class Connection:
    """A connector on a segment, leading to another segment (by id) or to a termination."""
    segment_id: Optional[int]
    connector: Connector

    @property
    def from_location(self) -> Location:
        return self.connector.from_location

    @property
    def to_location(self) -> Location:
        return self.connector.to_location


@dataclass(frozen=True)
class SeriesGapContext:
    """
    Axial surroundings of a segment, used for the series capacitance.

    gap_below / gap_above are the axial gaps to the nearest neighbour (another
    segment or a static ring) or None if there is nothing there.
    """
    gap_below: Optional[float] = None
    gap_above: Optional[float] = None
    static_ring_below: bool = False
    static_ring_above: bool = False
    is_coil_bottom: bool = False
    is_coil_top: bool = False


class Segment:
    """
    An axially contiguous collection of BasicSections from a single coil.

    Parameters:
    -----------
    basic_sections : Sequence[BasicSection]
        Sections from one coil, adjacent and ordered from lowest to highest
    serial_number : int
        Identity key (see SegmentIdAllocator)
    real_window_height : float
        Actual window height of the core (m)
    use_window_height : float
        Window height used for the Fourier current density (m)
    interleaved : bool
        True for interleaved disc segments
    is_static_ring, is_radial_shield : bool
        Mark the segment as a shielding element

    Raises:
    -------
    EmptyModelError
        If basic_sections is empty
    IllegalSectionError
        If the sections change coil or skip an axial position
    """

    def __init__(
        self,
        basic_sections: Sequence[BasicSection],
        serial_number: int,
        real_window_height: float,
        use_window_height: float,
        interleaved: bool = False,
        is_static_ring: bool = False,
        is_radial_shield: bool = False,
    ):
        if not basic_sections:
            raise EmptyModelError("There are no BasicSections in the array")

        first = basic_sections[0]
        last = basic_sections[-1]
        for prev, nxt in zip(basic_sections[:-1], basic_sections[1:]):
            if nxt.location.radial != first.location.radial or nxt.location.axial != prev.location.axial + 1:
                raise IllegalSectionError(
                    f"Illegal BasicSection at {nxt.location}: all sections must be in the "
                    f"same coil, adjacent, and ordered from lowest to highest"
                )

        self.basic_sections: Tuple[BasicSection, ...] = tuple(basic_sections)
        self.serial_number = serial_number
        self.real_window_height = real_window_height
        self.use_window_height = use_window_height
        self.interleaved = interleaved
        self.is_static_ring = is_static_ring
        self.is_radial_shield = is_radial_shield
        self.I = first.I
        self.rect = Rect(first.r1, first.z1, first.width, last.z2 - first.z1)
        self.connections: List[Connection] = []

    def __eq__(self, other) -> bool:
        if not isinstance(other, Segment):
            return NotImplemented
        return self.serial_number == other.serial_number

    def __hash__(self) -> int:
        return hash(self.serial_number)

    def __repr__(self) -> str:
        kind = "StaticRing" if self.is_static_ring else "RadialShield" if self.is_radial_shield else "Segment"
        return f"{kind}(#{self.serial_number} at {self.location})"

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    @property
    def is_shielding_element(self) -> bool:
        return self.is_static_ring or self.is_radial_shield

    @property
    def winding(self) -> WindingData:
        return self.basic_sections[0].winding

    @property
    def wdg_type(self) -> WindingType:
        return self.winding.wdg_type

    @property
    def radial_pos(self) -> int:
        return self.basic_sections[0].location.radial

    @property
    def axial_pos(self) -> int:
        """Axial position of the lowest BasicSection."""
        return self.basic_sections[0].location.axial

    @property
    def location(self) -> LocStruct:
        return LocStruct(self.radial_pos, self.axial_pos)

    @property
    def r1(self) -> float:
        return self.rect.r1

    @property
    def r2(self) -> float:
        return self.rect.r2

    @property
    def z1(self) -> float:
        return self.rect.z1

    @property
    def z2(self) -> float:
        return self.rect.z2

    @property
    def z_mean(self) -> float:
        return (self.z1 + self.z2) / 2.0

    @property
    def r_mean(self) -> float:
        return (self.r1 + self.r2) / 2.0

    @property
    def height(self) -> float:
        return self.rect.height

    @property
    def area(self) -> float:
        return self.rect.area

    @property
    def L(self) -> float:
        """Window height used in the 1-D Fourier series."""
        return max(self.real_window_height, self.use_window_height)

    @property
    def z_wind_ht_adder(self) -> float:
        """Offset that centres the real window inside the Fourier window L."""
        return (self.L - self.real_window_height) / 2.0

    @property
    def N(self) -> float:
        return sum(s.N for s in self.basic_sections)

    @property
    def actual_j(self) -> float:
        """Current density (A/m²) over the segment cross-section."""
        return self.N * self.I / self.area

    def x1(self, core_radius: float) -> float:
        """Radial distance from the core surface to the inner edge."""
        return self.r1 - core_radius

    def x2(self, core_radius: float) -> float:
        """Radial distance from the core surface to the outer edge."""
        return self.r2 - core_radius

    def y1(self) -> float:
        return self.z1

    def y2(self) -> float:
        return self.z2

    def resistance(self, temp: Optional[float] = None) -> float:
        """DC resistance at temp (°C), copper temperature correction."""
        if temp is None:
            temp = CONFIG.reference_temperature
        temp_factor = (234.5 + temp) / (234.5 + 20.0)
        lmt = math.pi * (self.r1 + self.r2)
        return self.N * lmt * self.winding.resistance_per_meter * temp_factor

    def fourier_current_density(self, n_terms: Optional[int] = None) -> np.ndarray:
        """
        1-D Fourier series of the axial current density over the window L.

        Term 0 is the mean value; term n is
            2J/(nπ) · [sin(nπz2/L) − sin(nπz1/L)]
        with z measured in the Fourier window (real z plus z_wind_ht_adder).
        """
        if n_terms is None:
            n_terms = CONFIG.fourier_iterations
        L = self.L
        J = self.actual_j
        z1 = self.z1 + self.z_wind_ht_adder
        z2 = self.z2 + self.z_wind_ht_adder

        n = np.arange(1, n_terms + 1, dtype=float)
        terms = 2.0 * J / (n * np.pi) * (np.sin(n * np.pi * z2 / L) - np.sin(n * np.pi * z1 / L))
        return np.concatenate(([J * (self.z2 - self.z1) / L], terms))

    # ------------------------------------------------------------------
    # Capacitance
    # ------------------------------------------------------------------

    def _check_not_shielding(self) -> None:
        if self.is_shielding_element:
            raise SegmentIsShieldingElementError(f"{self!r} is a shielding element")

    def capacitance_turn_to_turn(self) -> float:
        """
        Turn-to-turn capacitance Ctt.

        Disc: Ctt across the paper between two turns of the disc.
        Layer: the same formula turned on its side (axial turn-to-turn).
        Helical and sheet windings have no turn-to-turn series path: 0.
        """
        self._check_not_shielding()
        wdg_type = self.wdg_type
        if wdg_type in (WindingType.HELICAL, WindingType.SHEET):
            return 0.0
        if wdg_type not in (WindingType.DISC, WindingType.LAYER):
            raise UnimplementedWindingTypeError(f"Unimplemented winding type: {wdg_type.value}")

        tau = 2.0 * self.winding.turn_insulation
        if tau <= 0.0:
            raise IllegalGeometryError(f"Turn insulation must be positive for {self!r}")

        first = self.basic_sections[0]
        if wdg_type == WindingType.DISC:
            h = first.height - tau
        else:
            h = first.width / self.winding.num_layers

        return EPSILON_0 * EPSILON_PAPER * math.pi * (self.r1 + self.r2) * (h + 2.0 * tau) / tau

    def capacitance_disc_to_disc(self, gap: float) -> float:
        """Capacitance across an axial gap (oil) to the next disc or static ring, paper on the turns."""
        self._check_not_shielding()
        tau = 2.0 * self.winding.turn_insulation
        denominator = gap / EPSILON_OIL + tau / EPSILON_PAPER
        if denominator <= 0.0:
            raise IllegalGeometryError(f"Zero insulation between {self!r} and its neighbour")
        return EPSILON_0 * math.pi * (self.r2 ** 2 - self.r1 ** 2) / denominator

    def series_capacitance(self, context: Optional[SeriesGapContext] = None) -> float:
        """
        Series capacitance of the segment.

        Disc (Del Vecchio):   Cs = Ctt·(N−1)/N² + 4/3·Cdd
        Interleaved disc:     Cs = Ctt·(N−1)/2
        Layer:                Cs = Ctt·(n−1)/n², n = turns per layer
        Helical, sheet:       Cs = 0

        Cdd is the mean disc-to-disc capacitance over the gaps named in the
        context; without a context (or without gaps) the Cdd term is dropped.
        """
        self._check_not_shielding()
        wdg_type = self.wdg_type
        if wdg_type in (WindingType.HELICAL, WindingType.SHEET):
            return 0.0

        Ctt = self.capacitance_turn_to_turn()
        N = self.N

        if wdg_type == WindingType.DISC and self.interleaved:
            return Ctt * (N - 1.0) / 2.0

        if wdg_type == WindingType.DISC:
            Cs = Ctt * (N - 1.0) / (N * N)
            if context is not None:
                gaps = [g for g in (context.gap_below, context.gap_above) if g is not None]
                if gaps:
                    Cdd = sum(self.capacitance_disc_to_disc(g) for g in gaps) / len(gaps)
                    Cs += 4.0 * Cdd / 3.0
            return Cs

        # layer
        turns_per_layer = N / self.winding.num_layers
        return Ctt * (turns_per_layer - 1.0) / (turns_per_layer * turns_per_layer)

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    def connection_destinations(self, from_location: Location) -> List[Tuple[Optional[int], Location]]:
        """All (segment_id, to_location) pairs leaving from_location."""
        return [(c.segment_id, c.to_location) for c in self.connections if c.from_location == from_location]

    def add_connector(
        self,
        from_location: Location,
        to_location: Location,
        to_segment: Optional["Segment"] = None,
    ) -> None:
        """
        Add a connector at from_location.

        With to_segment, to_location is on to_segment and the reverse
        connection is added there too. Without it, to_location must be a
        termination: an existing floating connector at from_location is
        replaced, and a second ground/impulse on an already grounded or
        impulsed segment is ignored.
        """
        if to_segment is not None:
            if to_segment == self:
                return
            self.connections.append(Connection(to_segment.serial_number, Connector(from_location, to_location)))
            to_segment.connections.append(Connection(self.serial_number, Connector(to_location, from_location)))
            return

        for index, conn in enumerate(self.connections):
            if conn.from_location == from_location and conn.segment_id is None and conn.to_location == Location.FLOATING:
                self.connections[index] = Connection(None, Connector(from_location, to_location))
                return

        if to_location in (Location.GROUND, Location.IMPULSE):
            already = any(c.to_location in (Location.GROUND, Location.IMPULSE) for c in self.connections)
            if already:
                logger.debug("%r is already grounded or impulsed, ignoring %s", self, to_location.value)
                return

        self.connections.append(Connection(None, Connector(from_location, to_location)))

    def remove_connection(self, connection: Connection, other: Optional["Segment"] = None) -> None:
        """
        Remove a connection and its reverse on 'other' (the segment it points to).

        Floating connections are never removed. A ground or impulse connection
        becomes a floating one.
        """
        if connection.to_location == Location.FLOATING:
            return
        if connection not in self.connections:
            return

        if other is not None:
            reverse = Connection(self.serial_number, connection.connector.reversed())
            if reverse in other.connections:
                other.connections.remove(reverse)

        self.connections.remove(connection)

        if connection.to_location in (Location.GROUND, Location.IMPULSE):
            self.connections.append(Connection(None, Connector(connection.from_location, Location.FLOATING)))

    # ------------------------------------------------------------------
    # Shielding elements
    # ------------------------------------------------------------------

    @classmethod
    def static_ring(
        cls,
        adjacent_segment: "Segment",
        gap_to_segment: float,
        static_ring_is_above: bool,
        serial_number: int,
        static_ring_thickness: Optional[float] = None,
    ) -> "Segment":
        """
        Create a static ring above or below adjacent_segment.

        The ring sits in the same coil, at axial position −axial of the
        adjacent segment (NEGATIVE_ZERO when that is 0), and has the same
        radial build.
        """
        axial = NEGATIVE_ZERO if adjacent_segment.axial_pos == 0 else -adjacent_segment.axial_pos
        thickness = CONFIG.static_ring_thickness if static_ring_thickness is None else static_ring_thickness

        rect = adjacent_segment.rect.copy()
        if static_ring_is_above:
            rect.y = adjacent_segment.z2 + gap_to_segment
        else:
            rect.y = adjacent_segment.z1 - gap_to_segment - thickness
        rect.height = thickness

        winding = WindingData(
            wdg_type=WindingType.DISC,
            turn_insulation=CONFIG.static_ring_insulation,
        )
        section = BasicSection(LocStruct(adjacent_segment.radial_pos, axial), 0.0, 0.0, winding, rect)
        return cls(
            [section], serial_number,
            adjacent_segment.real_window_height, adjacent_segment.use_window_height,
            is_static_ring=True,
        )

    @classmethod
    def radial_shield(
        cls,
        adjacent_segment: "Segment",
        hilo_to_segment: float,
        elec_ht: float,
        serial_number: int,
    ) -> "Segment":
        """
        Create a radial shield in the hilo under adjacent_segment's coil.

        adjacent_segment should be the lowest segment of the coil just outside
        the shield; the shield spans elec_ht from that segment's z1.
        """
        radial = NEGATIVE_ZERO if adjacent_segment.radial_pos == 0 else -adjacent_segment.radial_pos
        thickness = CONFIG.radial_shield_thickness
        rect = Rect(adjacent_segment.r1 - hilo_to_segment - thickness, adjacent_segment.z1, thickness, elec_ht)
        winding = WindingData(wdg_type=WindingType.DISC, turn_radial=thickness, turn_axial=elec_ht)
        section = BasicSection(LocStruct(radial, 0), 0.0, 0.0, winding, rect)
        return cls(
            [section], serial_number,
            adjacent_segment.real_window_height, adjacent_segment.use_window_height,
            is_radial_shield=True,
        )
