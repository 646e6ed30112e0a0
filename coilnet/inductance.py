# coilnet/inductance.py
"""
MUTUAL INDUCTANCE: Eslamian-Vahidi Model
========================================

PURPOSE:
--------
Self and mutual inductances between segments, from "New Methods for
Computation of the Inductance Matrix of Transformer Windings for Very Fast
Transients Studies" (M. Eslamian, B. Vahidi).

Two regimes:

INSIDE THE WINDOW:
------------------
The current density of a segment is expanded in a 2-D Fourier series over
the window (width L from leg surface to leg surface, height H):

    J_mn = 4J/(mnπ²) · [cos(mπx1/L) − cos(mπx2/L)] · [cos(nπy1/H) − cos(nπy2/H)]
    A_mn = µ0 · J_mn / [(mπ/L)² + (nπ/H)²]

x is measured from the core surface, y from the bottom yoke. The per-unit-
length inductance between segments 1 and 2 is

    M12 = L·H / (4·I1·I2) · Σ J1_mn · A2_mn

OUTSIDE THE WINDOW:
-------------------
Each turn has a return side at −r (the other side of the core leg), so the
per-unit-length mutual inductance between two single turns is
µ0/(2π)·ln(d'/d), with d' the distance to the return side. Averaged over
both cross-sections:

    M12 = µ0 / (4π·A1·A2) · ∫∫_S1 [ I(S2') − I(S2) ] dS1,
    I(S)(x, y) = ∫∫_S ln((x−x')² + (y−y')²) dx'dy'

I(S) has a closed form (logs and arctangents); the outer integral is done
with scipy's adaptive dblquad.

USAGE:
------
    ev1 = EslamianVahidi(seg1, core)
    ev2 = EslamianVahidi(seg2, core)
    M = mutual_inductance(ev1, ev2)     # henries, whole turns
"""

import logging
import math
import warnings
from typing import Optional

import numpy as np
from scipy.integrate import IntegrationWarning, dblquad

from .config import CONFIG, MU_0
from .errors import InductanceIntegrationError, ZeroCurrentError
from .model import Core
from .segment import Segment

logger = logging.getLogger(__name__)


class EslamianVahidi:
    """
    Precomputed Fourier coefficients J_mn and A_mn for one segment.

    The coefficient arrays are (iterations × iterations); index [m-1, n-1]
    holds term (m, n).
    """

    def __init__(self, segment: Segment, core: Core, iterations: Optional[int] = None):
        if segment.I == 0.0:
            raise ZeroCurrentError(f"{segment!r} carries no current")
        self.segment = segment
        self.core = core
        self.iterations = CONFIG.fourier_iterations if iterations is None else iterations

        logger.debug("Calculating all Jmn and Amn for segment %d", segment.serial_number)
        L = core.window_width
        H = core.real_window_height
        m = np.arange(1, self.iterations + 1, dtype=float)[:, np.newaxis]
        n = np.arange(1, self.iterations + 1, dtype=float)[np.newaxis, :]

        x1 = segment.x1(core.radius)
        x2 = segment.x2(core.radius)
        y1 = segment.y1()
        y2 = segment.y2()

        radial = np.cos(m * np.pi * x1 / L) - np.cos(m * np.pi * x2 / L)
        axial = np.cos(n * np.pi * y1 / H) - np.cos(n * np.pi * y2 / H)
        self.J = 4.0 * segment.actual_j / (m * n * np.pi ** 2) * radial * axial
        self.A = MU_0 * self.J / ((m * np.pi / L) ** 2 + (n * np.pi / H) ** 2)

    def M(self, other: "EslamianVahidi") -> float:
        """Mutual inductance per unit length inside the window (H/m)."""
        L = self.core.window_width
        H = self.core.real_window_height
        I1 = self.segment.I
        I2 = other.segment.I
        return L * H / (4.0 * I1 * I2) * float(np.sum(self.J * other.A))

    def L(self) -> float:
        """Self inductance per unit length inside the window (H/m)."""
        return self.M(self)


def _log_antiderivative(u: float, v: float) -> float:
    """
    F(u, v) with ∂²F/∂u∂v = ln(u² + v²):

        F = uv·(ln(u² + v²) − 3) + u²·atan(v/u) + v²·atan(u/v)

    Terms multiplied by a zero coordinate are taken as 0.
    """
    result = 0.0
    if u != 0.0 and v != 0.0:
        result += u * v * (math.log(u * u + v * v) - 3.0)
    if u != 0.0:
        result += u * u * math.atan(v / u)
    if v != 0.0:
        result += v * v * math.atan(u / v)
    return result


def rectangle_log_integral(x: float, y: float, a1: float, a2: float, b1: float, b2: float) -> float:
    """∫∫ ln((x−x')² + (y−y')²) dx'dy' over x' in [a1, a2], y' in [b1, b2]."""
    F = _log_antiderivative
    return F(x - a1, y - b1) - F(x - a1, y - b2) - F(x - a2, y - b1) + F(x - a2, y - b2)


def outside_window_mutual(seg1: Segment, seg2: Segment) -> float:
    """
    Mutual inductance per unit length between two single turns outside the window (H/m).

    The image of seg2 is its return side, mirrored through the core-leg axis
    (r → −r); it carries the opposite current, so its term has the opposite
    sign.

    Raises:
    -------
    InductanceIntegrationError
        If the adaptive quadrature reports any problem
    """
    a1, a2 = seg2.r1, seg2.r2
    b1, b2 = seg2.z1, seg2.z2

    def integrand(y: float, x: float) -> float:
        direct = rectangle_log_integral(x, y, a1, a2, b1, b2)
        image = rectangle_log_integral(x, y, -a2, -a1, b1, b2)
        return image - direct

    with warnings.catch_warnings():
        warnings.simplefilter("error", IntegrationWarning)
        try:
            value, abserr = dblquad(
                integrand, seg1.r1, seg1.r2, seg1.z1, seg1.z2,
                epsabs=CONFIG.quad_epsabs, epsrel=CONFIG.quad_epsrel,
            )
        except IntegrationWarning as e:
            raise InductanceIntegrationError(
                f"Integration failed between {seg1!r} and {seg2!r}: {e}"
            ) from e

    if not math.isfinite(value):
        raise InductanceIntegrationError(f"Non-finite integral between {seg1!r} and {seg2!r}")

    logger.debug("Outside-window integral %r-%r: %.6e (err %.1e)", seg1, seg2, value, abserr)
    return MU_0 / (4.0 * math.pi * seg1.area * seg2.area) * value


def mean_turn_length(seg1: Segment, seg2: Segment) -> float:
    """Mean turn length shared by two segments: 2π times the average of their mean radii."""
    return 2.0 * math.pi * (seg1.r_mean + seg2.r_mean) / 2.0


def mutual_inductance(ev1: EslamianVahidi, ev2: EslamianVahidi, include_outside: bool = True) -> float:
    """
    Total mutual (or self, when ev1 is ev2) inductance between two segments (H).

        M = M_in · l_in + N1·N2 · M_out · l_out

    l_in and l_out split the mean turn length by CONFIG.window_fraction. With
    include_outside False, the window value is used along the whole turn.
    """
    seg1 = ev1.segment
    seg2 = ev2.segment
    length = mean_turn_length(seg1, seg2)
    m_in = ev1.M(ev2)

    if not include_outside:
        return m_in * length

    l_in = CONFIG.window_fraction * length
    l_out = length - l_in
    m_out = outside_window_mutual(seg1, seg2)
    return m_in * l_in + seg1.N * seg2.N * m_out * l_out
