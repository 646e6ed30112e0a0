# coilnet/node.py
# Electrical junctions between segments

from dataclasses import dataclass, field
from typing import List, Optional

# Target node number for a shunt capacitance to ground
GROUND_NODE = -1


@dataclass(frozen=True)
class ShuntCap:
    to_node: int
    capacitance: float


@dataclass
class Node:
    """
    An electrical node. 'number' is also the row/column in the capacitance matrix.

    Segments are referenced by serial number; either may be None at the ends
    of a coil.
    """
    number: int
    below_segment_id: Optional[int]
    above_segment_id: Optional[int]
    z: float
    shunt_capacitances: List[ShuntCap] = field(default_factory=list)

    def add_shunt_capacitance(self, to_node: int, capacitance: float) -> None:
        """Add a shunt capacitance, summing into any existing entry with the same target."""
        for index, shunt in enumerate(self.shunt_capacitances):
            if shunt.to_node == to_node:
                self.shunt_capacitances[index] = ShuntCap(to_node, shunt.capacitance + capacitance)
                return
        self.shunt_capacitances.append(ShuntCap(to_node, capacitance))

    @property
    def ground_capacitance(self) -> float:
        return sum(s.capacitance for s in self.shunt_capacitances if s.to_node == GROUND_NODE)

    @property
    def total_shunt_capacitance(self) -> float:
        return sum(s.capacitance for s in self.shunt_capacitances)
