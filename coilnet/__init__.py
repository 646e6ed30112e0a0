# coilnet - Transformer winding impulse-distribution network model
"""
COILNET: Impulse-Distribution Network Model of a Transformer Phase
===================================================================

This package provides:
- The winding topology (BasicSections, Segments, connectors, shielding)
- Series and shunt capacitances, assembled into the nodal matrix C
- Self and mutual inductances (Eslamian-Vahidi), assembled into M
- C' (the fixed capacitance matrix) for a transient solver

ARCHITECTURE:
-------------
    kernel/          Numeric core (Matrix, LAPACK/SuperLU wrappers, assembly)
    config.py        Physical constants and numerical settings (CONFIG)
    errors.py        Typed failures of the topology model and engine
    model.py         Core, LocStruct, Rect, WindingData, BasicSection
    connector.py     Connector locations and stepping rules
    segment.py       Segment, connections, series capacitance, shields
    node.py          Node, ShuntCap
    inductance.py    Eslamian-Vahidi mutual inductance
    capacitance.py   Shunt distribution and C / C' assembly
    phase_model.py   PhaseModel, the network assembly engine
"""

from .config import CONFIG, ModelConfig
from .connector import Connector, Location
from .errors import CoilnetError
from .kernel import Matrix, MatrixError, MatrixType, NumberType
from .model import BasicSection, Core, LocStruct, Rect, WindingData, WindingType, make_coil_sections
from .node import GROUND_NODE, Node, ShuntCap
from .phase_model import PhaseModel
from .segment import Connection, Segment, SegmentIdAllocator

__version__ = "0.1.0"
