# tests/test_matrix.py
"""
MATRIX ENGINE TESTS
===================

The Matrix class wraps numpy storage with layout and number-type tags. These
tests pin down:
- the shape rules (vectors are columns, diagonals are square)
- tag-dependent writes (symmetric layouts mirror, real matrices reject complex)
- arithmetic and its dimension checks
- the LAPACK / SuperLU solvers and how their failures surface
- the symmetry and positive-definite tests
"""

import numpy as np
import pytest

import coilnet.kernel.matrix as matrix_module
from coilnet.kernel import (
    DimensionMismatchError,
    FactorizationType,
    Matrix,
    MatrixIndexError,
    MatrixType,
    MatrixTypeError,
    NumberType,
    SingularMatrixError,
    UnsupportedOperationError,
)


def make_spd(n: int = 4) -> np.ndarray:
    """A well-conditioned symmetric positive-definite matrix."""
    rng = np.random.default_rng(42)
    B = rng.normal(size=(n, n))
    return B @ B.T + n * np.eye(n)


# =============================================================================
# Shape and tags
# =============================================================================

class TestShape:

    def test_row_request_becomes_column_vector(self):
        v = Matrix(1, 5)
        assert v.shape == (5, 1)
        assert v.is_vector

    def test_diagonal_is_square(self):
        D = Matrix(3, 7, MatrixType.DIAGONAL)
        assert D.shape == (3, 3)

    def test_illegal_shape(self):
        with pytest.raises(DimensionMismatchError):
            Matrix(0, 3)

    def test_complex_sparse_not_supported(self):
        with pytest.raises(UnsupportedOperationError):
            Matrix(3, 3, MatrixType.SPARSE, NumberType.COMPLEX)

    def test_backing_length_doubles_for_complex(self):
        A = Matrix(3, 2)
        assert len(A.backing) == 6
        assert len(A.as_complex_matrix().backing) == 12


class TestElementAccess:

    def test_symmetric_write_mirrors(self):
        S = Matrix(3, 3, MatrixType.SYMMETRIC)
        S[0, 2] = 5.0
        assert S[2, 0] == 5.0

    def test_general_write_does_not_mirror(self):
        A = Matrix(3, 3)
        A[0, 2] = 5.0
        assert A[2, 0] == 0.0

    def test_out_of_bounds(self):
        A = Matrix(2, 2)
        with pytest.raises(MatrixIndexError):
            A[2, 0] = 1.0
        with pytest.raises(IndexError):
            _ = A[0, -1]

    def test_complex_value_in_real_matrix(self):
        A = Matrix(2, 2)
        with pytest.raises(MatrixTypeError):
            A[0, 0] = 1.0 + 2.0j

    def test_get_real_and_complex_check_type(self):
        A = Matrix(2, 2)
        with pytest.raises(MatrixTypeError):
            A.get_complex(0, 0)
        with pytest.raises(MatrixTypeError):
            A.as_complex_matrix().get_real(0, 0)

    def test_diagonal_off_diagonal_write(self):
        D = Matrix(3, 3, MatrixType.DIAGONAL)
        D[0, 1] = 0.0  # ignored
        with pytest.raises(MatrixIndexError):
            D[0, 1] = 1.0

    def test_sparse_entries(self):
        A = Matrix(4, 4, MatrixType.SPARSE)
        A[1, 3] = 2.5
        assert A[1, 3] == 2.5
        assert A[3, 1] == 0.0
        A[1, 3] = 0.0
        assert A.sparsity() == 1.0


# =============================================================================
# Conversions
# =============================================================================

def test_complex_then_general_round_trip():
    """as_complex_matrix followed by as_general_matrix keeps every value."""
    S = Matrix.from_array(make_spd(3), MatrixType.SYMMETRIC)
    G = S.as_complex_matrix().as_general_matrix()

    assert G.matrix_type == MatrixType.GENERAL
    assert G.is_complex
    np.testing.assert_allclose(G.to_array().real, S.to_array())
    np.testing.assert_allclose(G.to_array().imag, 0.0)


def test_dict_round_trip_keeps_lu_factors():
    """A factored matrix survives to_dict/from_dict and can still be reused."""
    A = Matrix.from_array(make_spd(4))
    b = Matrix.from_array(np.arange(1.0, 5.0))
    A.solve_general(b, overwrite_a=True)

    B = Matrix.from_dict(A.to_dict())
    assert B == A
    assert B.factorization_type == FactorizationType.LU
    np.testing.assert_allclose(B.solve_general(b).to_array(), A.solve_general(b).to_array())


def test_equality_uses_relative_precision():
    A = Matrix.from_array(np.array([[1.0, 2.0], [3.0, 4.0]]))
    B = Matrix.from_array(np.array([[1.0, 2.0], [3.0, 4.0 * (1.0 + 1e-12)]]))
    C = Matrix.from_array(np.array([[1.0, 2.0], [3.0, 4.1]]))
    assert A == B
    assert A != C
    assert A != A.as_complex_matrix()


def test_to_csv_has_headers():
    A = Matrix.from_array(np.array([[1.0, 0.0], [0.0, 2.0]]))
    lines = A.to_csv().splitlines()
    assert lines[0] == ",0,1"
    assert lines[1].startswith("0,")
    assert len(lines) == 3


# =============================================================================
# Arithmetic
# =============================================================================

class TestArithmetic:

    def test_multiply_dimension_mismatch(self):
        A = Matrix(3, 2)
        B = Matrix(3, 3)
        with pytest.raises(DimensionMismatchError):
            A.multiply(B)

    def test_diagonal_times_vector_matches_dense(self):
        d = np.array([1.0, -2.0, 3.5])
        x = np.array([4.0, 5.0, 6.0])
        D = Matrix.from_array(np.diag(d), MatrixType.DIAGONAL)
        v = Matrix.from_array(x)

        result = D @ v
        assert result.matrix_type == MatrixType.GENERAL
        assert result.shape == (3, 1)
        np.testing.assert_allclose(result.to_array()[:, 0], np.diag(d) @ x)

    def test_general_product(self):
        A = np.array([[1.0, 2.0], [3.0, 4.0]])
        B = np.array([[0.5, 1.0], [-1.0, 2.0]])
        np.testing.assert_allclose(
            (Matrix.from_array(A) * Matrix.from_array(B)).to_array(), A @ B
        )

    def test_complex_scale_promotes(self):
        A = Matrix.from_array(np.eye(2))
        Z = 2j * A
        assert Z.is_complex
        assert Z[1, 1] == 2j
        assert not A.is_complex


# =============================================================================
# Solvers
# =============================================================================

class TestSolveGeneral:

    def test_real_solve(self):
        A_np = make_spd(5)
        b_np = np.linspace(1.0, 2.0, 5)
        x = Matrix.from_array(A_np).solve_general(Matrix.from_array(b_np))
        np.testing.assert_allclose(A_np @ x.to_array()[:, 0], b_np, rtol=1e-10)

    def test_factors_are_reused(self):
        A_np = make_spd(4)
        A = Matrix.from_array(A_np)
        b1 = Matrix.from_array(np.ones(4))
        b2 = Matrix.from_array(np.arange(4.0))

        A.solve_general(b1, overwrite_a=True)
        assert A.factorization_type == FactorizationType.LU
        assert A.ipiv is not None

        x2 = A.solve_general(b2)
        np.testing.assert_allclose(A_np @ x2.to_array()[:, 0], np.arange(4.0), atol=1e-10)

    def test_complex_rhs_on_real_matrix(self):
        A_np = make_spd(3)
        b_np = np.array([1.0 + 1.0j, 2.0, -1.0j])
        x = Matrix.from_array(A_np).solve_general(Matrix.from_array(b_np))
        assert x.is_complex
        np.testing.assert_allclose(A_np @ x.to_array()[:, 0], b_np, atol=1e-10)

    def test_real_factors_cannot_solve_complex_system(self):
        A = Matrix.from_array(make_spd(3))
        A.solve_general(Matrix.from_array(np.ones(3)), overwrite_a=True)
        with pytest.raises(UnsupportedOperationError):
            A.solve_general(Matrix.from_array(np.array([1.0j, 0.0, 0.0])))

    def test_singular(self):
        A = Matrix.from_array(np.array([[1.0, 2.0], [2.0, 4.0]]))
        with pytest.raises(SingularMatrixError):
            A.solve_general(Matrix.from_array(np.ones(2)))

    def test_rhs_must_be_vector(self):
        A = Matrix.from_array(np.eye(3))
        with pytest.raises(DimensionMismatchError):
            A.solve_general(Matrix(3, 3))

    def test_layout_must_be_general(self):
        A = Matrix.from_array(np.eye(3), MatrixType.SYMMETRIC)
        with pytest.raises(MatrixTypeError):
            A.solve_general(Matrix(3, 1))


class TestSolveSparse:

    def test_matches_dense(self):
        A_np = np.array([
            [4.0, -1.0, 0.0, 0.0],
            [-1.0, 4.0, -1.0, 0.0],
            [0.0, -1.0, 4.0, -1.0],
            [0.0, 0.0, -1.0, 3.0],
        ])
        b_np = np.array([1.0, 0.0, 0.0, 1.0])
        A = Matrix.from_array(A_np, MatrixType.SPARSE)
        x = A.solve_sparse(Matrix.from_array(b_np))

        np.testing.assert_allclose(x.to_array()[:, 0], np.linalg.solve(A_np, b_np), rtol=1e-10)
        assert A.factorization_type == FactorizationType.NONE

    def test_singular(self):
        A = Matrix(3, 3, MatrixType.SPARSE)
        A[0, 0] = 1.0
        A[1, 1] = 1.0
        with pytest.raises(SingularMatrixError):
            A.solve_sparse(Matrix.from_array(np.ones(3)))

    def test_needs_sparse_layout(self):
        with pytest.raises(MatrixTypeError):
            Matrix.from_array(np.eye(2)).solve_sparse(Matrix(2, 1))


# =============================================================================
# Row operations
# =============================================================================

def test_row_operations():
    A = Matrix.from_array(np.array([[1.0, 2.0], [3.0, 4.0]]))
    A.add_row(0, 1)
    np.testing.assert_allclose(A.to_array(), [[1.0, 2.0], [4.0, 6.0]])
    A.zero_row(0)
    np.testing.assert_allclose(A.to_array(), [[0.0, 0.0], [4.0, 6.0]])


def test_row_operations_refused_on_symmetric():
    S = Matrix.from_array(np.eye(2), MatrixType.SYMMETRIC)
    with pytest.raises(MatrixTypeError):
        S.zero_row(0)


# =============================================================================
# Symmetry and positive-definiteness
# =============================================================================

class TestPositiveDefinite:

    def test_spd_matrix(self):
        assert Matrix.from_array(make_spd(4)).test_positive_definite()

    def test_indefinite_matrix(self):
        A = Matrix.from_array(np.array([[1.0, 2.0], [2.0, 1.0]]))
        assert A.test_for_symmetry()
        assert not A.test_positive_definite()

    def test_unsymmetric_matrix(self):
        A = Matrix.from_array(np.array([[2.0, 1.0], [0.0, 2.0]]))
        assert not A.test_for_symmetry()
        assert not A.test_positive_definite()

    def test_overwrite_stores_cholesky_factor(self):
        A_np = make_spd(3)
        A = Matrix.from_array(A_np)
        assert A.test_positive_definite(overwrite=True)
        assert A.factorization_type == FactorizationType.CHOLESKY
        U = A.to_array()
        np.testing.assert_allclose(U.T @ U, A_np, rtol=1e-10)

    def test_diagonal_checked_without_factorizing(self, monkeypatch):
        """A diagonal matrix is judged from its entries; Cholesky is never called."""
        def fail(_):
            raise AssertionError("cholesky should not be called for diagonal matrices")
        monkeypatch.setattr(matrix_module, "cholesky", fail)

        assert Matrix.from_array(np.diag([1.0, 2.0, 3.0]), MatrixType.DIAGONAL).test_positive_definite()
        assert not Matrix.from_array(np.diag([1.0, -2.0, 3.0]), MatrixType.DIAGONAL).test_positive_definite()
