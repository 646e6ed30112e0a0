# coilnet/model.py
"""
TOPOLOGY DATA MODEL: Core, locations and basic winding sections
===============================================================

These are the geometric/electrical descriptors produced by the design-data
loader and consumed by the network assembly engine.

COORDINATES:
------------
All rectangles live in the (r, z) half-plane of the core window:
    r = radial distance from the core-leg centre (m)
    z = axial distance from the top of the bottom yoke (m)

LOCATIONS:
----------
A LocStruct identifies a winding position:
    radial = 0 is the coil closest to the core
    axial  = 0 is the section closest to the bottom yoke
Negative values are reserved for shielding elements (see NEGATIVE_ZERO).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Sequence, Tuple


# Stand-in for "-0" when a shielding element belongs to position 0
NEGATIVE_ZERO = -2048


@dataclass(frozen=True)
class Core:
    """
    A simple core, used for the inductance calculations.

    Parameters:
    -----------
    diameter : float
        Core-leg diameter (m)
    real_window_height : float
        Actual window height (m)
    leg_centers : float
        Distance between adjacent leg centres (m)
    wind_ht_multiplier : float
        Multiplier applied to the window height to model fringing/leakage
        margin (default 3.0)
    """
    diameter: float
    real_window_height: float
    leg_centers: float
    wind_ht_multiplier: float = 3.0

    @property
    def radius(self) -> float:
        return self.diameter / 2.0

    @property
    def adjusted_window_height(self) -> float:
        return self.real_window_height * self.wind_ht_multiplier

    @property
    def window_width(self) -> float:
        """Window width, from leg surface to leg surface."""
        return self.leg_centers - self.diameter


@dataclass(frozen=True, order=True)
class LocStruct:
    """
    Physical location of a section in the window.

    Ordering is lexicographic: a section in a coil closer to the core is
    "less than" one further away; within a coil, the lower one is lesser.
    """
    radial: int
    axial: int

    def __str__(self) -> str:
        return f"(R:{self.radial}, A:{self.axial})"


@dataclass
class Rect:
    """
    Axis-aligned rectangle stored as (origin, size).

    The edge setters keep the opposite edge where it is, so origin and size
    never drift out of sync.
    """
    x: float
    y: float
    width: float
    height: float

    @property
    def r1(self) -> float:
        return self.x

    @r1.setter
    def r1(self, value: float) -> None:
        r2 = self.r2
        self.x = value
        self.width = r2 - value

    @property
    def r2(self) -> float:
        return self.x + self.width

    @r2.setter
    def r2(self, value: float) -> None:
        self.width = value - self.x

    @property
    def z1(self) -> float:
        return self.y

    @z1.setter
    def z1(self, value: float) -> None:
        z2 = self.z2
        self.y = value
        self.height = z2 - value

    @property
    def z2(self) -> float:
        return self.y + self.height

    @z2.setter
    def z2(self, value: float) -> None:
        self.height = value - self.y

    @property
    def area(self) -> float:
        return self.width * self.height

    def copy(self) -> "Rect":
        return Rect(self.x, self.y, self.width, self.height)


class WindingType(Enum):
    """Winding constructions that we recognise."""
    LAYER = "layer"
    DISC = "disc"
    HELICAL = "helical"
    MULTISTART = "multistart"
    SHEET = "sheet"


@dataclass(frozen=True)
class WindingData:
    """
    Winding data needed for capacitance and resistance calculations.

    Only the fields relevant to the winding type are used: num_layers for
    layer-type windings, the turn dimensions for everything.
    """
    wdg_type: WindingType
    num_layers: int = 1
    turn_radial: float = 0.0
    turn_axial: float = 0.0
    turn_insulation: float = 0.0
    resistance_per_meter: float = 0.0


@dataclass
class BasicSection:
    """
    The smallest physical unit of a coil: one disc or one layer.

    No electrical behaviour beyond geometry, turns and current.

    Parameters:
    -----------
    location : LocStruct
        Position of the section in the phase
    N : float
        Number of turns
    I : float
        Series current through a single turn (A)
    winding : WindingData
        Data for the winding that owns the section
    rect : Rect
        The rectangle occupied by the section (origin at leg centre / bottom yoke)
    """
    location: LocStruct
    N: float
    I: float
    winding: WindingData
    rect: Rect = field(default_factory=lambda: Rect(0.0, 0.0, 0.0, 0.0))

    @property
    def r1(self) -> float:
        return self.rect.r1

    @r1.setter
    def r1(self, value: float) -> None:
        self.rect.r1 = value

    @property
    def r2(self) -> float:
        return self.rect.r2

    @r2.setter
    def r2(self, value: float) -> None:
        self.rect.r2 = value

    @property
    def z1(self) -> float:
        return self.rect.z1

    @z1.setter
    def z1(self, value: float) -> None:
        self.rect.z1 = value

    @property
    def z2(self) -> float:
        return self.rect.z2

    @z2.setter
    def z2(self, value: float) -> None:
        self.rect.z2 = value

    @property
    def height(self) -> float:
        return self.rect.height

    @property
    def width(self) -> float:
        """Radial build of the section."""
        return self.rect.width

    @property
    def area(self) -> float:
        return self.rect.area


# Convenience routines for sequences of BasicSections, which are assumed to be
# in location order.

def number_of_coils(sections: Sequence[BasicSection]) -> int:
    if not sections:
        return 0
    return sections[-1].location.radial + 1


def coil_ends(coil: int, sections: Sequence[BasicSection]) -> Tuple[int, int]:
    """Indices of the first and last section of a coil, or (-1, -1)."""
    indices = [i for i, s in enumerate(sections) if s.location.radial == coil]
    if not indices:
        return -1, -1
    return indices[0], indices[-1]


def num_axial_sections(coil: int, sections: Sequence[BasicSection]) -> int:
    first, last = coil_ends(coil, sections)
    if first < 0:
        return 0
    return last - first + 1


def make_coil_sections(
    radial: int,
    r1: float,
    width: float,
    z_start: float,
    section_height: float,
    axial_gap: float,
    count: int,
    N: float,
    I: float,
    winding: WindingData,
) -> List[BasicSection]:
    """
    Build a stack of identical BasicSections for one coil.

    Sections are placed bottom-up starting at z_start with axial_gap between
    them. Mostly useful for demos and tests.
    """
    sections = []
    z = z_start
    for axial in range(count):
        sections.append(BasicSection(
            location=LocStruct(radial, axial),
            N=N,
            I=I,
            winding=winding,
            rect=Rect(r1, z, width, section_height),
        ))
        z += section_height + axial_gap
    return sections
