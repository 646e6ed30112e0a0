# tests/test_phase_model.py
"""
PHASE MODEL TESTS: Network Assembly
===================================

End-to-end checks of the PhaseModel:

1. NODES: a coil of k series-connected segments has k+1 nodes
2. C: symmetric, rows sum to the capacitance to ground
3. M: symmetric and positive-definite
4. MUTATIONS: failed inserts and replacements leave the model untouched
5. SHIELDING: static rings and radial shields obey their placement rules
6. C': terminations and tied nodes
"""

import math

import numpy as np
import pytest

from coilnet.capacitance import coaxial_capacitance
from coilnet.config import EPSILON_0, EPSILON_OIL, EPSILON_PAPER
from coilnet.connector import Location
from coilnet.errors import (
    ArgAIsNotAMultipleOfArgBError,
    ArgumentIsZeroCountError,
    CapacitanceNotCalculatedError,
    CoilDoesNotExistError,
    CoilnetError,
    EmptyModelError,
    IllegalAxialGapError,
    IllegalLocationError,
    NoRoomForShieldingElementError,
    NotAShieldingElementError,
    OldSegmentCountIsNotOneError,
    OnlyOneStaticRingAllowedError,
    SegmentExistsError,
    SegmentIsShieldingElementError,
    ShieldingElementExistsError,
    TerminationMissingError,
    TooManyConnectorsError,
    UnequalBasicSectionsPerSetError,
    ZeroCurrentError,
)
from coilnet.kernel import MatrixType
from coilnet.model import Core, WindingData, WindingType, make_coil_sections
from coilnet.phase_model import PhaseModel


CORE = Core(diameter=0.5, real_window_height=1.2, leg_centers=1.0)
TANK_DEPTH = 0.9
DISC = WindingData(wdg_type=WindingType.DISC, turn_radial=0.005, turn_axial=0.015, turn_insulation=0.0005)
HELICAL = WindingData(wdg_type=WindingType.HELICAL, turn_insulation=0.0005)


def disc_coil(radial: int, r1: float, count: int = 4):
    return make_coil_sections(
        radial=radial, r1=r1, width=0.05, z_start=0.20,
        section_height=0.02, axial_gap=0.005, count=count,
        N=10.0, I=100.0, winding=DISC,
    )


def make_disc_model(coils: int = 1, count: int = 4) -> PhaseModel:
    """Disc coils, 0.05 m hilo between them."""
    sections = []
    for c in range(coils):
        sections += disc_coil(c, 0.30 + 0.10 * c, count)
    return PhaseModel.from_basic_sections(CORE, TANK_DEPTH, sections)


def make_helical_model() -> PhaseModel:
    """One helical coil of two segments, impulse at the bottom and ground at the top."""
    sections = make_coil_sections(
        radial=0, r1=0.30, width=0.04, z_start=0.20,
        section_height=0.30, axial_gap=0.0, count=2,
        N=20.0, I=50.0, winding=HELICAL,
    )
    model = PhaseModel.from_basic_sections(CORE, TANK_DEPTH, sections)
    bottom, top = model.segments_in_coil(0)
    model.connect(bottom, Location.OUTSIDE_LOWER, None, Location.IMPULSE)
    model.connect(top, Location.OUTSIDE_UPPER, None, Location.GROUND)
    return model


# =============================================================================
# Construction and indexing
# =============================================================================

class TestConstruction:

    def test_one_segment_per_section(self):
        model = make_disc_model(coils=2, count=4)
        assert len(model.segments) == 8
        assert model.num_coils() == 2
        assert model.highest_section(1) == 3

    def test_disc_coil_is_wound_in_series(self):
        model = make_disc_model(count=3)
        s0, s1, s2 = model.segments_in_coil(0)

        assert s0.connection_destinations(Location.OUTSIDE_LOWER) == [(None, Location.FLOATING)]
        assert s0.connection_destinations(Location.INSIDE_UPPER) == [(s1.serial_number, Location.INSIDE_LOWER)]
        assert s1.connection_destinations(Location.OUTSIDE_UPPER) == [(s2.serial_number, Location.OUTSIDE_LOWER)]
        assert s2.connection_destinations(Location.INSIDE_UPPER) == [(None, Location.FLOATING)]

    def test_empty(self):
        with pytest.raises(EmptyModelError):
            PhaseModel.from_basic_sections(CORE, TANK_DEPTH, [])
        with pytest.raises(EmptyModelError):
            PhaseModel(CORE, TANK_DEPTH).set_nodes()

    def test_segment_index_runs_across_coils(self):
        model = make_disc_model(coils=2, count=3)
        inner = model.segments_in_coil(0)
        outer = model.segments_in_coil(1)
        assert [model.segment_index(s) for s in inner + outer] == list(range(6))

    def test_missing_coil(self):
        with pytest.raises(CoilDoesNotExistError):
            make_disc_model().segments_in_coil(3)

    def test_adjacency(self):
        model = make_disc_model(coils=2, count=3)
        s0, s1, s2 = model.segments_in_coil(0)
        t0 = model.segments_in_coil(1)[0]
        assert model.segments_are_adjacent(s0, s1)
        assert not model.segments_are_adjacent(s0, s2)
        assert not model.segments_are_adjacent(s2, t0)

    def test_connect_rejects_termination_on_segment(self):
        model = make_disc_model(count=2)
        s0, s1 = model.segments_in_coil(0)
        with pytest.raises(IllegalLocationError):
            model.connect(s0, Location.OUTSIDE_UPPER, s1, Location.GROUND)
        with pytest.raises(IllegalLocationError):
            model.connect(s0, Location.OUTSIDE_UPPER, None, Location.INSIDE_LOWER)


# =============================================================================
# Mutations
# =============================================================================

class TestInsert:

    def test_duplicate_location_leaves_count_unchanged(self):
        model = make_disc_model(count=3)
        duplicate = model.make_segment([disc_coil(0, 0.30, 3)[1]])
        with pytest.raises(SegmentExistsError):
            model.insert_segment(duplicate)
        assert len(model.segments) == 3

    def test_failed_batch_is_rolled_back(self):
        model = make_disc_model(count=3)
        new = model.make_segment([disc_coil(1, 0.40, 1)[0]])
        duplicate = model.make_segment([disc_coil(0, 0.30, 3)[0]])
        with pytest.raises(SegmentExistsError):
            model.insert_segments([new, duplicate])
        assert len(model.segments) == 3
        assert model.num_coils() == 1

    def test_remove_strips_reverse_connections(self):
        model = make_disc_model(count=3)
        s0, s1, s2 = model.segments_in_coil(0)
        model.remove_segment(s1)
        assert all(c.segment_id != s1.serial_number for c in s0.connections + s2.connections)

    def test_remove_takes_the_static_ring_along(self):
        """A segment inserted later at the same place must not pick up the old ring."""
        model = make_disc_model(count=3)
        s0 = model.segments_in_coil(0)[0]
        ring = model.add_static_ring(s0, 0.002, False)

        model.remove_segment(s0)
        assert ring not in model.segments
        assert len(model.segments) == 2

        again = model.make_segment(list(s0.basic_sections))
        model.insert_segment(again)
        assert model.static_ring_of(again) is None
        assert model.series_gap_context(again).gap_below is None


class TestReplace:

    def test_combine_four_into_two(self):
        model = make_disc_model(count=4)
        old = model.segments_in_coil(0)
        sections = [bs for s in old for bs in s.basic_sections]
        new = [model.make_segment(sections[:2]), model.make_segment(sections[2:])]

        model.replace_segments(old, new)

        assert model.segments == new
        assert new[0].connection_destinations(Location.OUTSIDE_LOWER) == [(None, Location.FLOATING)]
        assert any(c.segment_id == new[1].serial_number for c in new[0].connections)
        assert len(model.set_nodes()) == 1
        assert len(model.nodes) == 3

    def test_split_one_into_two_keeps_neighbour_links(self):
        model = make_disc_model(count=3)
        s0, s1, s2 = model.segments_in_coil(0)
        # combine s0 and s1, then split them again
        sections = list(s0.basic_sections) + list(s1.basic_sections)
        combined = model.make_segment(sections)
        model.replace_segments([s0, s1], [combined])

        halves = [model.make_segment(sections[:1]), model.make_segment(sections[1:])]
        model.replace_segments([combined], halves)

        assert len(model.segments) == 3
        upper_links = [c for c in halves[1].connections if c.segment_id == s2.serial_number]
        assert len(upper_links) == 1
        assert any(c.segment_id == halves[1].serial_number for c in s2.connections)

    def test_argument_checks(self):
        model = make_disc_model(count=4)
        segs = model.segments_in_coil(0)
        sections = [bs for s in segs for bs in s.basic_sections]

        with pytest.raises(ArgumentIsZeroCountError):
            model.replace_segments([], segs)
        with pytest.raises(OldSegmentCountIsNotOneError):
            model.replace_segments(segs[:2], [model.make_segment([bs]) for bs in sections])
        with pytest.raises(ArgAIsNotAMultipleOfArgBError):
            model.replace_segments(segs[:3], [model.make_segment(sections[:2]), model.make_segment(sections[2:3])])
        with pytest.raises(UnequalBasicSectionsPerSetError):
            model.replace_segments(segs, [model.make_segment(sections[:1]), model.make_segment(sections[1:])])

    def test_outside_connection_with_nowhere_to_go(self):
        model = make_disc_model(coils=2, count=2)
        s0, s1 = model.segments_in_coil(0)
        t0 = model.segments_in_coil(1)[0]
        model.connect(s0, Location.OUTSIDE_CENTER, t0, Location.INSIDE_CENTER)

        combined = model.make_segment(list(s0.basic_sections) + list(s1.basic_sections))
        with pytest.raises(TooManyConnectorsError):
            model.replace_segments([s0, s1], [combined])
        assert model.segments_in_coil(0) == [s0, s1]

    def test_failure_after_removal_is_rolled_back(self):
        """The new segment reuses a serial number already in the model: everything is restored."""
        model = make_disc_model(coils=2, count=2)
        s0, s1 = model.segments_in_coil(0)
        t0 = model.segments_in_coil(1)[0]
        before = model.segments
        connections_before = {s.serial_number: list(s.connections) for s in before}

        combined = model.make_segment(list(s0.basic_sections) + list(s1.basic_sections))
        combined.serial_number = t0.serial_number
        with pytest.raises(SegmentExistsError):
            model.replace_segments([s0, s1], [combined])

        assert model.segments == before
        assert {s.serial_number: s.connections for s in before} == connections_before

    def test_end_ring_follows_the_new_end_segment(self):
        model = make_disc_model(count=2)
        s0, s1 = model.segments_in_coil(0)
        ring = model.add_static_ring(s1, 0.003, True)
        sections = list(s0.basic_sections) + list(s1.basic_sections)

        combined = model.make_segment(sections)
        model.replace_segments([s0, s1], [combined])
        moved = model.static_ring_of(combined)
        assert ring not in model.segments
        assert moved.z1 == pytest.approx(ring.z1)
        assert moved.height == pytest.approx(ring.height)
        context = model.series_gap_context(combined)
        assert context.static_ring_above
        assert context.gap_above == pytest.approx(0.003)

        halves = [model.make_segment(sections[:1]), model.make_segment(sections[1:])]
        model.replace_segments([combined], halves)
        assert model.static_ring_of(halves[0]) is None
        assert model.static_ring_of(halves[1]).z1 == pytest.approx(ring.z1)
        assert len(model.segments) == 3

    def test_ring_between_combined_segments_is_dropped(self):
        model = make_disc_model(count=2)
        s0, s1 = model.segments_in_coil(0)
        model.add_static_ring(s0, 0.001, True, static_ring_thickness=0.002)

        combined = model.make_segment(list(s0.basic_sections) + list(s1.basic_sections))
        model.replace_segments([s0, s1], [combined])
        assert model.static_ring_of(combined) is None
        assert model.segments == [combined]


# =============================================================================
# Shielding elements
# =============================================================================

class TestStaticRing:

    def test_rules(self):
        model = make_disc_model(count=3)
        s0, s1, s2 = model.segments_in_coil(0)

        with pytest.raises(IllegalAxialGapError):
            model.add_static_ring(s0, -0.001, False)

        ring = model.add_static_ring(s0, 0.002, False)
        assert model.static_ring_of(s0) is ring
        assert len(model.coil_segments()) == 3

        with pytest.raises(ShieldingElementExistsError):
            model.add_static_ring(s0, 0.002, False)
        with pytest.raises(OnlyOneStaticRingAllowedError):
            model.add_static_ring(s0, 0.002, True)
        with pytest.raises(NoRoomForShieldingElementError):
            model.add_static_ring(s1, 0.001, False)
        with pytest.raises(SegmentIsShieldingElementError):
            model.add_static_ring(ring, 0.002, True)

    def test_ring_sets_the_gap_for_series_capacitance(self):
        model = make_disc_model(count=3)
        s0 = model.segments_in_coil(0)[0]
        model.add_static_ring(s0, 0.002, False)

        context = model.series_gap_context(s0)
        assert context.gap_below == pytest.approx(0.002)
        assert context.static_ring_below
        assert context.gap_above == pytest.approx(0.005)
        assert context.is_coil_bottom and not context.is_coil_top

    def test_remove(self):
        model = make_disc_model(count=3)
        s0 = model.segments_in_coil(0)[0]
        ring = model.add_static_ring(s0, 0.002, False)
        with pytest.raises(NotAShieldingElementError):
            model.remove_static_ring(s0)
        model.remove_static_ring(ring)
        assert model.static_ring_of(s0) is None


class TestRadialShield:

    def test_rules(self):
        model = make_disc_model(coils=2, count=2)
        with pytest.raises(CoilDoesNotExistError):
            model.add_radial_shield(4, 0.01)
        with pytest.raises(NoRoomForShieldingElementError):
            model.add_radial_shield(1, 0.0)
        with pytest.raises(NoRoomForShieldingElementError):
            model.add_radial_shield(1, 0.049)

        shield = model.add_radial_shield(1, 0.02)
        assert shield.r1 == pytest.approx(0.40 - 0.02 - 0.002)
        with pytest.raises(ShieldingElementExistsError):
            model.add_radial_shield(1, 0.02)

        model.remove_radial_shield(shield)
        assert model.radial_shield_of(1) is None

    def test_shield_decouples_the_coils(self):
        model = make_disc_model(coils=2, count=2)
        model.add_radial_shield(1, 0.02)
        model.calculate_series_capacitances()
        model.set_nodes()
        model.calculate_shunt_capacitances()
        C = model.calculate_capacitance_matrix().to_array()

        inner = [n.number for n in model.coil_nodes(0)]
        outer = [n.number for n in model.coil_nodes(1)]
        np.testing.assert_allclose(C[np.ix_(inner, outer)], 0.0)
        np.testing.assert_allclose(C, C.T, rtol=1e-14)


# =============================================================================
# Nodes and C
# =============================================================================

class TestNodes:

    def test_k_segments_give_k_plus_one_nodes(self):
        model = make_disc_model(coils=2, count=4)
        assert model.set_nodes() == [4, 9]
        assert len(model.nodes) == 10
        assert [n.number for n in model.nodes] == list(range(10))

        s0, s1 = model.segments_in_coil(0)[:2]
        shared = model.nodes[1]
        assert shared.below_segment_id == s0.serial_number
        assert shared.above_segment_id == s1.serial_number

    def test_unconnected_neighbours_get_two_nodes(self):
        model = make_disc_model(count=2)
        s0, s1 = model.segments_in_coil(0)
        model.disconnect(s0, next(c for c in s0.connections if c.segment_id == s1.serial_number))
        model.set_nodes()
        assert len(model.nodes) == 4

    def test_node_at(self):
        model = make_disc_model(count=2)
        s0, s1 = model.segments_in_coil(0)
        model.set_nodes()
        assert model.node_at(s0, Location.OUTSIDE_LOWER).number == 0
        assert model.node_at(s0, Location.INSIDE_UPPER).number == 1
        assert model.node_at(s1, Location.INSIDE_LOWER).number == 1
        assert model.node_at(s0, Location.OUTSIDE_CENTER) is None

    def test_shunts_need_nodes(self):
        with pytest.raises(CapacitanceNotCalculatedError):
            make_disc_model().calculate_shunt_capacitances()

    def test_matrix_needs_series_capacitances(self):
        model = make_disc_model()
        model.set_nodes()
        with pytest.raises(CapacitanceNotCalculatedError):
            model.calculate_capacitance_matrix()


def test_capacitance_matrix_of_two_disc_coils():
    model = make_disc_model(coils=2, count=4)
    model.calculate_series_capacitances()
    model.set_nodes()
    model.calculate_shunt_capacitances()
    C = model.calculate_capacitance_matrix()

    assert C.matrix_type == MatrixType.GENERAL
    assert C.test_for_symmetry()
    A = C.to_array()
    ground = np.array([n.ground_capacitance for n in model.nodes])
    np.testing.assert_allclose(A.sum(axis=1), ground, rtol=1e-9, atol=1e-24)
    assert np.all(np.diag(A) > 0.0)

    # the hilo capacitance is spread over both coils
    hilo = model.coil_pair_capacitance(0, 1)
    coupling = -A[np.ix_(range(5), range(5, 10))].sum()
    assert coupling == pytest.approx(hilo, rel=1e-9)


def test_helical_coil_end_to_end():
    """
    Two helical segments: zero series capacitance, so C is diagonal. Half of
    the core capacitance sits at each end node; the tank and leg capacitance
    follows the node profile [1/4, 1/2, 1/4].
    """
    model = make_helical_model()
    model.add_static_ring(model.segments_in_coil(0)[0], 0.01, False)

    C, M = model.build_network()
    assert len(model.nodes) == 3

    height = 0.60
    c_core = coaxial_capacitance(CORE.radius, 0.30, height)
    c_tank = (0.5 * coaxial_capacitance(0.34, TANK_DEPTH, height)
              + 0.5 * coaxial_capacitance(0.34, CORE.leg_centers - CORE.radius, height))
    expected = np.diag([c_core / 2.0 + c_tank / 4.0, c_tank / 2.0, c_core / 2.0 + c_tank / 4.0])
    np.testing.assert_allclose(C.to_array(), expected, rtol=1e-9, atol=1e-25)

    assert M.shape == (2, 2)
    assert M.test_for_symmetry()
    assert M.test_positive_definite()
    assert M[0, 0] > M[0, 1] > 0.0


def test_disc_coil_end_to_end():
    """
    Two discs, bottom left floating and top grounded. Each disc's series
    capacitance is Del Vecchio's Ctt·(N−1)/N² + 4/3·Cdd over the 5 mm gap
    between them; the core capacitance is split over the end nodes and the
    tank and leg capacitance follows the node profile [1/4, 1/2, 1/4].
    """
    model = make_disc_model(count=2)
    s0, s1 = model.segments_in_coil(0)
    model.connect(s1, Location.OUTSIDE_UPPER, None, Location.GROUND)

    C, M = model.build_network()
    assert len(model.nodes) == 3
    assert model.nodes_of_type(Location.FLOATING) == [0]
    assert model.nodes_of_type(Location.GROUND) == [2]

    tau = 2.0 * DISC.turn_insulation
    Ctt = EPSILON_0 * EPSILON_PAPER * math.pi * (0.30 + 0.35) * (0.02 + tau) / tau
    Cdd = EPSILON_0 * math.pi * (0.35 ** 2 - 0.30 ** 2) / (0.005 / EPSILON_OIL + tau / EPSILON_PAPER)
    Cs = Ctt * 9.0 / 100.0 + 4.0 * Cdd / 3.0
    assert model.series_capacitance_of(s0) == pytest.approx(Cs)
    assert model.series_capacitance_of(s1) == pytest.approx(Cs)

    height = 0.045
    c_core = coaxial_capacitance(CORE.radius, 0.30, height)
    c_tank = (0.5 * coaxial_capacitance(0.35, TANK_DEPTH, height)
              + 0.5 * coaxial_capacitance(0.35, CORE.leg_centers - CORE.radius, height))

    A = C.to_array()
    assert A[0, 0] == pytest.approx(Cs + c_core / 2.0 + c_tank / 4.0, rel=1e-9)
    assert A[1, 1] == pytest.approx(2.0 * Cs + c_tank / 2.0, rel=1e-9)
    assert A[0, 1] == pytest.approx(-Cs, rel=1e-9)
    assert A[0, 2] == 0.0

    assert M.shape == (2, 2)
    assert M.test_positive_definite()


def test_coil_without_current_is_a_model_error():
    sections = make_coil_sections(0, 0.30, 0.05, 0.20, 0.02, 0.005, 2, 10.0, 0.0, DISC)
    model = PhaseModel.from_basic_sections(CORE, TANK_DEPTH, sections)
    with pytest.raises(ZeroCurrentError):
        model.calculate_inductance_matrix()
    with pytest.raises(CoilnetError):
        model.build_network()


class TestCoilQuantities:

    def test_current_density_is_the_sum_over_the_coil(self):
        model = make_disc_model(coils=2, count=3)
        model.add_static_ring(model.segments_in_coil(0)[0], 0.002, False)

        series = model.coil_current_density(0, 50)
        expected = sum(s.fourier_current_density(50) for s in model.segments_in_coil(0))
        assert series.shape == (51,)
        np.testing.assert_allclose(series, expected)
        # three discs of 10 turns × 100 A over 0.05 m × 0.02 m
        assert series[0] == pytest.approx(3 * 1.0e6 * 0.02 / CORE.adjusted_window_height)

    def test_coil_resistance(self):
        winding = WindingData(wdg_type=WindingType.DISC, turn_insulation=0.0005, resistance_per_meter=2.0e-4)
        sections = make_coil_sections(0, 0.30, 0.05, 0.20, 0.02, 0.005, 3, 10.0, 100.0, winding)
        model = PhaseModel.from_basic_sections(CORE, TANK_DEPTH, sections)

        expected = 3 * 10.0 * math.pi * 0.65 * 2.0e-4
        assert model.coil_resistance(0) == pytest.approx(expected)
        assert model.coil_resistance(0, 75.0) == pytest.approx(expected * 309.5 / 254.5)


# =============================================================================
# C'
# =============================================================================

class TestFixedCapacitance:

    def test_terminations_become_identity_rows(self):
        model = make_helical_model()
        model.calculate_series_capacitances()
        model.set_nodes()
        model.calculate_shunt_capacitances()
        C = model.calculate_capacitance_matrix().to_array()

        fixed = model.fixed_capacitance_matrix().to_array()
        np.testing.assert_allclose(fixed[0], [1.0, 0.0, 0.0])
        np.testing.assert_allclose(fixed[2], [0.0, 0.0, 1.0])
        np.testing.assert_allclose(fixed[1], C[1])
        assert model.fixed_C_sparse.matrix_type == MatrixType.SPARSE

    def test_needs_ground(self):
        model = make_disc_model(count=2)
        model.connect(model.segments_in_coil(0)[0], Location.OUTSIDE_LOWER, None, Location.IMPULSE)
        model.calculate_series_capacitances()
        model.set_nodes()
        model.calculate_shunt_capacitances()
        model.calculate_capacitance_matrix()
        with pytest.raises(TerminationMissingError):
            model.fixed_capacitance_matrix()

    def test_needs_c(self):
        with pytest.raises(CapacitanceNotCalculatedError):
            make_helical_model().fixed_capacitance_matrix()

    def test_coils_in_series_are_tied(self):
        """Coil 0's top is wired to coil 1's bottom: those two nodes collapse onto the lower one."""
        model = make_disc_model(coils=2, count=4)
        inner = model.segments_in_coil(0)
        outer = model.segments_in_coil(1)
        model.connect(inner[0], Location.OUTSIDE_LOWER, None, Location.IMPULSE)
        model.connect(inner[-1], Location.OUTSIDE_UPPER, outer[0], Location.OUTSIDE_LOWER)
        model.connect(outer[-1], Location.OUTSIDE_UPPER, None, Location.GROUND)

        assert len(model.non_adjacent_connections(inner[-1])) == 1
        model.calculate_series_capacitances()
        model.set_nodes()
        model.calculate_shunt_capacitances()
        C = model.calculate_capacitance_matrix().to_array()

        assert model.tied_node_groups() == [{4, 5}]
        assert model.nodes_of_type(Location.FLOATING) == []

        fixed = model.fixed_capacitance_matrix().to_array()
        np.testing.assert_allclose(fixed[0], np.eye(10)[0])
        np.testing.assert_allclose(fixed[9], np.eye(10)[9])
        np.testing.assert_allclose(fixed[4], C[4] + C[5])
        expected_row = np.zeros(10)
        expected_row[5] = 1.0
        expected_row[4] = -1.0
        np.testing.assert_allclose(fixed[5], expected_row)
