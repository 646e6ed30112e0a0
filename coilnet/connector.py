# coilnet/connector.py
"""Connector locations on a segment and the disc/helical stepping rules."""

from dataclasses import dataclass
from enum import Enum


class Location(Enum):
    """Physical connection points on a segment, plus the three terminations."""
    OUTSIDE_UPPER = "outside_upper"
    CENTER_UPPER = "center_upper"
    INSIDE_UPPER = "inside_upper"
    OUTSIDE_LOWER = "outside_lower"
    CENTER_LOWER = "center_lower"
    INSIDE_LOWER = "inside_lower"
    OUTSIDE_CENTER = "outside_center"
    INSIDE_CENTER = "inside_center"

    # Terminations (not really locations)
    FLOATING = "floating"
    GROUND = "ground"
    IMPULSE = "impulse"

    @property
    def is_termination(self) -> bool:
        return self in TERMINATIONS

    @property
    def is_upper(self) -> bool:
        return self in (Location.OUTSIDE_UPPER, Location.CENTER_UPPER, Location.INSIDE_UPPER)

    @property
    def is_lower(self) -> bool:
        return self in (Location.OUTSIDE_LOWER, Location.CENTER_LOWER, Location.INSIDE_LOWER)

    @property
    def is_outside(self) -> bool:
        return self in (Location.OUTSIDE_UPPER, Location.OUTSIDE_LOWER, Location.OUTSIDE_CENTER)

    @property
    def is_inside(self) -> bool:
        return self in (Location.INSIDE_UPPER, Location.INSIDE_LOWER, Location.INSIDE_CENTER)


TERMINATIONS = frozenset({Location.FLOATING, Location.GROUND, Location.IMPULSE})


# Stepping from disc to disc in a disc (or helical) winding
ALTERNATING_LOCATION = {
    Location.OUTSIDE_UPPER: Location.INSIDE_LOWER,
    Location.INSIDE_LOWER: Location.OUTSIDE_UPPER,
    Location.CENTER_LOWER: Location.CENTER_UPPER,
    Location.CENTER_UPPER: Location.CENTER_LOWER,
    Location.INSIDE_UPPER: Location.OUTSIDE_LOWER,
    Location.OUTSIDE_LOWER: Location.INSIDE_UPPER,
    Location.OUTSIDE_CENTER: Location.INSIDE_CENTER,
    Location.INSIDE_CENTER: Location.OUTSIDE_CENTER,
}

# Single-segment helical/disc connections (the radial-type centre points are no-ops)
STANDARD_TO_LOCATION = {
    Location.OUTSIDE_UPPER: Location.OUTSIDE_LOWER,
    Location.INSIDE_LOWER: Location.INSIDE_UPPER,
    Location.CENTER_LOWER: Location.CENTER_UPPER,
    Location.CENTER_UPPER: Location.CENTER_LOWER,
    Location.INSIDE_UPPER: Location.INSIDE_LOWER,
    Location.OUTSIDE_LOWER: Location.OUTSIDE_UPPER,
    Location.OUTSIDE_CENTER: Location.OUTSIDE_CENTER,
    Location.INSIDE_CENTER: Location.INSIDE_CENTER,
}


def alternating_location(location: Location) -> Location:
    """Location on the far end of a disc entered at 'location'. Terminations map to themselves."""
    return ALTERNATING_LOCATION.get(location, location)


def standard_to_location(location: Location) -> Location:
    """Location on the adjacent segment that 'location' normally connects to."""
    return STANDARD_TO_LOCATION.get(location, location)


@dataclass(frozen=True)
class Connector:
    from_location: Location
    to_location: Location

    def reversed(self) -> "Connector":
        return Connector(self.to_location, self.from_location)
