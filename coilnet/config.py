# coilnet/config.py
"""
Physical constants and model configuration defaults.
"""

import math
from dataclasses import dataclass


# Physical constants (SI)
EPSILON_0 = 8.8541878128e-12    # F/m
MU_0 = 4.0e-7 * math.pi         # H/m
METER_PER_INCH = 0.0254

# Relative permittivities of the insulation system
EPSILON_OIL = 2.2
EPSILON_PAPER = 3.5
EPSILON_BOARD = 4.5


@dataclass
class ModelConfig:
    """Global model configuration."""

    # Mutual inductance integrator
    fourier_iterations: int = 200
    quad_epsabs: float = 1.0e-10
    quad_epsrel: float = 1.0e-9

    # Fraction of a mean turn that lies inside the core window(s)
    window_fraction: float = 0.5

    # Matrix engine
    equality_precision: float = 1.0e-8

    # Shunt capacitance distribution: two cumulative profile values closer than
    # this (as a fraction of the profile total) are treated as coincident
    profile_match_tolerance: float = 1.0e-6

    # Fraction of a hilo (or tank/leg clearance) occupied by solid insulation
    hilo_solid_fraction: float = 0.25

    # Shielding elements
    static_ring_thickness: float = 0.625 * METER_PER_INCH
    static_ring_insulation: float = 0.125 * METER_PER_INCH
    radial_shield_thickness: float = 0.002

    # Temperature (C) used for the default segment resistance
    reference_temperature: float = 20.0


# Global config instance
CONFIG = ModelConfig()
