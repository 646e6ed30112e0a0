# coilnet/kernel/solve.py
"""LAPACK and SuperLU wrappers used by the Matrix engine, plus the matrix error types."""

import logging
from typing import Dict, Tuple

import numpy as np
from scipy.linalg import get_lapack_funcs
from scipy.sparse import coo_matrix
from scipy.sparse.linalg import splu

from ..errors import CoilnetError

logger = logging.getLogger(__name__)


class MatrixError(CoilnetError):
    """Base class for matrix and numeric failures."""
    pass


class IllegalArgumentError(MatrixError):
    """A LAPACK routine rejected one of its arguments (info < 0)."""
    pass


class SingularMatrixError(MatrixError):
    """Zero pivot during LU, or a non-positive leading minor during Cholesky."""
    pass


class DimensionMismatchError(MatrixError):
    pass


class UnsupportedOperationError(MatrixError):
    pass


class MatrixIndexError(MatrixError, IndexError):
    pass


class MatrixTypeError(MatrixError, TypeError):
    pass


def _check_info(routine: str, info: int) -> None:
    if info < 0:
        raise IllegalArgumentError(f"{routine}: illegal argument #{-info}")
    if info > 0:
        raise SingularMatrixError(f"{routine}: the element U({info},{info}) is exactly zero")


def lu_solve(A: np.ndarray, b: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Solve A·x = b with LAPACK ?gesv.

    Returns:
    --------
    x : np.ndarray
        Solution vector
    lu : np.ndarray
        LU factors of A (packed, as returned by ?getrf)
    piv : np.ndarray
        Pivot indices to go with lu

    Raises:
    -------
    IllegalArgumentError, SingularMatrixError
    """
    b = np.asarray(b).reshape(-1, 1)
    gesv, = get_lapack_funcs(("gesv",), (A, b))
    lu, piv, x, info = gesv(A, b)
    _check_info(gesv.typecode + "gesv", info)
    return x[:, 0], lu, piv


def lu_resolve(lu: np.ndarray, piv: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Solve A·x = b reusing the LU factors from lu_solve (LAPACK ?getrs)."""
    b = np.asarray(b).reshape(-1, 1)
    getrs, = get_lapack_funcs(("getrs",), (lu, b))
    x, info = getrs(lu, piv, b)
    _check_info(getrs.typecode + "getrs", info)
    return x[:, 0]


def cholesky(A: np.ndarray) -> np.ndarray:
    """
    Upper Cholesky factor of A (LAPACK ?potrf).

    Raises SingularMatrixError when a leading minor is not positive-definite,
    which is how positive-definiteness is tested.
    """
    potrf, = get_lapack_funcs(("potrf",), (A,))
    c, info = potrf(A, lower=False, clean=True)
    if info > 0:
        raise SingularMatrixError(
            f"{potrf.typecode}potrf: leading minor of order {info} is not positive-definite"
        )
    _check_info(potrf.typecode + "potrf", info)
    return c


def sparse_solve(n: int, entries: Dict[Tuple[int, int], float], b: np.ndarray) -> np.ndarray:
    """
    Solve a real sparse n×n system given as a coordinate map {(row, col): value}.

    SciPy has no sparse QR, so the matrix is factored with SuperLU.
    """
    if entries:
        rows, cols = zip(*entries.keys())
        values = list(entries.values())
    else:
        rows, cols, values = (), (), ()
    A = coo_matrix((values, (rows, cols)), shape=(n, n), dtype=float).tocsc()

    try:
        factor = splu(A)
    except RuntimeError as e:
        raise SingularMatrixError(f"Sparse factorization failed: {e}") from e

    x = factor.solve(np.asarray(b, dtype=float))
    if not np.all(np.isfinite(x)):
        raise SingularMatrixError("Sparse solve produced non-finite values")
    logger.debug("Sparse solve: n=%d, nnz=%d", n, A.nnz)
    return x
