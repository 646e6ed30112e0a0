#!/usr/bin/env python3
"""
RUN_DISC_COIL: Impulse-Distribution Network of a Two-Coil Phase
===============================================================

This demo builds the network model of a small transformer phase:
1. Define the core and two disc coils (LV inside, HV outside)
2. Add a static ring above the HV line-end disc
3. Connect the impulse and ground terminals
4. Build C and M
5. Build C' for the transient solver
6. Print the results

Run with:
    python demos/run_disc_coil.py
"""

import logging
import sys
from pathlib import Path

import numpy as np

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from coilnet import Core, Location, PhaseModel, WindingData, WindingType, make_coil_sections


def print_header(text: str):
    """Print a formatted section header."""
    print("\n" + "=" * 60)
    print(f"  {text}")
    print("=" * 60)


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    print_header("TWO-COIL PHASE: IMPULSE-DISTRIBUTION NETWORK")

    # =========================================================================
    # STEP 1: GEOMETRY
    # =========================================================================
    print_header("STEP 1: Define Geometry")

    core = Core(diameter=0.50, real_window_height=1.20, leg_centers=1.10)
    tank_depth = 0.95  # m, core-leg centre to tank wall

    lv = WindingData(wdg_type=WindingType.DISC, turn_radial=0.004, turn_axial=0.012, turn_insulation=0.0004)
    hv = WindingData(wdg_type=WindingType.DISC, turn_radial=0.003, turn_axial=0.010, turn_insulation=0.0006)

    sections = make_coil_sections(
        radial=0, r1=0.28, width=0.05, z_start=0.15, section_height=0.018,
        axial_gap=0.004, count=6, N=12.0, I=400.0, winding=lv,
    )
    sections += make_coil_sections(
        radial=1, r1=0.38, width=0.06, z_start=0.15, section_height=0.016,
        axial_gap=0.006, count=6, N=30.0, I=160.0, winding=hv,
    )

    print(f"\nCore: D = {core.diameter:.3f} m, window {core.window_width:.3f} x {core.real_window_height:.3f} m")
    print(f"BasicSections: {len(sections)} (2 coils x 6 discs)")

    model = PhaseModel.from_basic_sections(core, tank_depth, sections)

    # =========================================================================
    # STEP 2: STATIC RING
    # =========================================================================
    print_header("STEP 2: Static Ring")

    hv_segments = model.segments_in_coil(1)
    ring = model.add_static_ring(hv_segments[-1], 0.006, static_ring_is_above=True)
    print(f"\n{ring!r}: z = {ring.z1:.4f} .. {ring.z2:.4f} m")

    # =========================================================================
    # STEP 3: TERMINALS
    # =========================================================================
    print_header("STEP 3: Terminals")

    # impulse on the HV line end (top), HV neutral to ground
    top, bottom = hv_segments[-1], hv_segments[0]
    model.connect(top, Location.OUTSIDE_UPPER, None, Location.IMPULSE)
    model.connect(bottom, Location.OUTSIDE_LOWER, None, Location.GROUND)
    print("\nHV line end impulsed, HV neutral grounded, LV left floating")

    # =========================================================================
    # STEP 4: C AND M
    # =========================================================================
    print_header("STEP 4: Capacitance and Inductance Matrices")

    C, M = model.build_network()
    print(f"\nNodes: {len(model.nodes)}   Segments: {len(model.coil_segments())}")

    np.set_printoptions(precision=3, linewidth=140)
    print("\nC (pF):")
    print(C.to_array() * 1e12)
    print("\nM (µH):")
    print(M.to_array() * 1e6)

    # =========================================================================
    # STEP 5: C'
    # =========================================================================
    print_header("STEP 5: Fixed Capacitance Matrix")

    fixed = model.fixed_capacitance_matrix()
    print(f"\nC' sparsity: {fixed.sparsity():.2%}")

    # =========================================================================
    # STEP 6: SUMMARY
    # =========================================================================
    print_header("SUMMARY")

    total_ground = sum(n.ground_capacitance for n in model.nodes)
    print(f"\nTotal capacitance to ground: {total_ground * 1e12:.1f} pF")
    print(f"C symmetric:                 {C.test_for_symmetry()}")
    print(f"M positive-definite:         {M.test_positive_definite()}")


if __name__ == "__main__":
    main()
