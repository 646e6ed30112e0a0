# coilnet/errors.py
"""
Exception types raised by the topology model and the network assembly engine.

Every failure is a typed, catchable exception. The engine never retries; the
caller decides how to present the problem (usually: fix the winding geometry).
Matrix and numeric failures are defined in coilnet.kernel.solve.
"""


class CoilnetError(RuntimeError):
    """Base class for all coilnet errors."""
    pass


# =============================================================================
# Topology errors
# =============================================================================

class TopologyError(CoilnetError):
    pass


class EmptyModelError(TopologyError):
    pass


class IllegalSectionError(TopologyError):
    """BasicSections do not form one contiguous, ascending run in one coil."""
    pass


class CoilDoesNotExistError(TopologyError):
    pass


class SegmentExistsError(TopologyError):
    pass


class SegmentNotInModelError(TopologyError):
    pass


class IllegalLocationError(TopologyError):
    pass


class IllegalAxialGapError(TopologyError):
    pass


class SegmentIsShieldingElementError(TopologyError):
    pass


class SameCoilTwiceError(TopologyError):
    pass


class UnimplementedWindingTypeError(TopologyError):
    """No series-capacitance method exists for this winding construction."""
    pass


class IllegalGeometryError(TopologyError):
    """Radii, heights or insulation that no capacitance formula can use."""
    pass


# =============================================================================
# Structural-mutation errors
# =============================================================================

class StructuralMutationError(CoilnetError):
    pass


class ArgAIsNotAMultipleOfArgBError(StructuralMutationError):
    pass


class OldSegmentCountIsNotOneError(StructuralMutationError):
    pass


class UnequalBasicSectionsPerSetError(StructuralMutationError):
    pass


class ArgumentIsZeroCountError(StructuralMutationError):
    pass


class TooManyConnectorsError(StructuralMutationError):
    pass


# =============================================================================
# Shielding errors
# =============================================================================

class ShieldingError(CoilnetError):
    pass


class ShieldingElementExistsError(ShieldingError):
    pass


class NoRoomForShieldingElementError(ShieldingError):
    pass


class NotAShieldingElementError(ShieldingError):
    pass


class OnlyOneStaticRingAllowedError(ShieldingError):
    pass


# =============================================================================
# Capacitance / state errors
# =============================================================================

class ModelStateError(CoilnetError):
    pass


class CapacitanceNotCalculatedError(ModelStateError):
    pass


class NodeHasNoSegmentsError(ModelStateError):
    pass


class InductanceMatrixError(ModelStateError):
    """The assembled inductance matrix is not positive-definite."""
    pass


class TerminationMissingError(ModelStateError):
    """The fixed capacitance matrix needs at least one impulsed and one grounded node."""
    pass


class ZeroCurrentError(ModelStateError):
    """A coil segment carries no current, so its inductance is undefined."""
    pass


class ShuntProfileError(ModelStateError):
    """Node lists and capacitance profiles do not match up."""
    pass


class InductanceIntegrationError(CoilnetError):
    """Adaptive quadrature outside the core window did not converge."""
    pass
