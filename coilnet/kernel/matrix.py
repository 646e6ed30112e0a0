# coilnet/kernel/matrix.py
"""
MATRIX ENGINE: Tagged Numeric Matrix
====================================

PURPOSE:
--------
One container for every matrix the network model produces (C, fixed C', M)
and for the vectors the solvers return. A Matrix carries three tags:

    matrix_type        GENERAL, DIAGONAL, SPARSE, SYMMETRIC, POSITIVE_DEFINITE
    num_type           REAL, COMPLEX
    factorization_type NONE, LU, CHOLESKY, QR

STORAGE:
--------
    GENERAL / SYMMETRIC / POSITIVE_DEFINITE   dense (rows × columns) numpy array
    DIAGONAL                                  1-D numpy array of the diagonal
    SPARSE                                    {(row, col): value} coordinate map

`backing` exposes the storage as the flat column-major float buffer (complex
entries interleaved as re, im), so a complex matrix has twice the backing
length of a real one. Sparse matrices have no backing buffer.

Shape rules:
    - a 1×n request is stored as an n×1 vector (vectors always have one column)
    - DIAGONAL forces columns = rows
    - writes to SYMMETRIC / POSITIVE_DEFINITE matrices also set (j, i)

FAILURES:
---------
Every precondition failure raises a MatrixError subclass (see solve.py).
LAPACK failures are reported as IllegalArgumentError (info < 0) or
SingularMatrixError (info > 0).

USAGE:
------
    A = Matrix(3, 3)
    A[0, 0] = 4.0
    ...
    b = Matrix(3, 1)
    x = A.solve_general(b, overwrite_a=True)   # A now holds its LU factors
    y = A.solve_general(b2)                    # reuses them
"""

import logging
from enum import Enum
from typing import Dict, Optional, Tuple, Union

import numpy as np

from ..config import CONFIG
from .solve import (
    DimensionMismatchError,
    MatrixIndexError,
    MatrixTypeError,
    SingularMatrixError,
    UnsupportedOperationError,
    cholesky,
    lu_resolve,
    lu_solve,
    sparse_solve,
)

logger = logging.getLogger(__name__)

Number = Union[float, complex]


class MatrixType(Enum):
    GENERAL = "general"
    DIAGONAL = "diagonal"
    SPARSE = "sparse"
    SYMMETRIC = "symmetric"
    POSITIVE_DEFINITE = "positive_definite"


class NumberType(Enum):
    REAL = "real"
    COMPLEX = "complex"


class FactorizationType(Enum):
    NONE = "none"
    LU = "lu"
    CHOLESKY = "cholesky"
    QR = "qr"


DENSE_TYPES = (MatrixType.GENERAL, MatrixType.SYMMETRIC, MatrixType.POSITIVE_DEFINITE)


def relative_difference(lhs, rhs) -> np.ndarray:
    """
    |lhs − rhs| / |lhs|, elementwise.

    Equal values give 0 (including 0 vs 0); lhs = 0 with rhs ≠ 0 gives inf.
    """
    lhs = np.asarray(lhs, dtype=float)
    rhs = np.asarray(rhs, dtype=float)
    diff = np.abs(lhs - rhs)
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.where(diff == 0.0, 0.0, diff / np.abs(lhs))


class Matrix:
    """
    Real or complex matrix with a storage-layout tag.

    Parameters:
    -----------
    rows, columns : int
        Requested shape (see the shape rules in the module docstring)
    matrix_type : MatrixType
        Storage layout (default GENERAL)
    num_type : NumberType
        REAL or COMPLEX (default REAL). Complex SPARSE is not supported.
    """

    # Relative tolerance used by __eq__ and test_for_symmetry
    equality_precision: float = CONFIG.equality_precision

    def __init__(
        self,
        rows: int,
        columns: int,
        matrix_type: MatrixType = MatrixType.GENERAL,
        num_type: NumberType = NumberType.REAL,
    ):
        if rows < 1 or columns < 1:
            raise DimensionMismatchError(f"Illegal matrix shape {rows}x{columns}")
        if matrix_type == MatrixType.SPARSE and num_type == NumberType.COMPLEX:
            raise UnsupportedOperationError("Complex sparse matrices are not supported")

        # vectors have a single column, never a single row
        if rows == 1:
            rows, columns = (1 if matrix_type == MatrixType.DIAGONAL else columns), 1
        elif matrix_type == MatrixType.DIAGONAL:
            columns = rows

        self._rows = rows
        self._columns = columns
        self._matrix_type = matrix_type
        self._num_type = num_type
        self.factorization_type = FactorizationType.NONE
        self._ipiv: Optional[np.ndarray] = None
        self._sparse: Dict[Tuple[int, int], float] = {}

        dtype = complex if num_type == NumberType.COMPLEX else float
        if matrix_type == MatrixType.DIAGONAL:
            self._data = np.zeros(rows, dtype=dtype)
        elif matrix_type == MatrixType.SPARSE:
            self._data = None
        else:
            self._data = np.zeros((rows, columns), dtype=dtype)

    # ------------------------------------------------------------------
    # Tags and shape
    # ------------------------------------------------------------------

    @property
    def rows(self) -> int:
        return self._rows

    @property
    def columns(self) -> int:
        return self._columns

    @property
    def shape(self) -> Tuple[int, int]:
        return self._rows, self._columns

    @property
    def matrix_type(self) -> MatrixType:
        return self._matrix_type

    @property
    def num_type(self) -> NumberType:
        return self._num_type

    @property
    def is_complex(self) -> bool:
        return self._num_type == NumberType.COMPLEX

    @property
    def is_vector(self) -> bool:
        return self._columns == 1

    @property
    def is_square(self) -> bool:
        return self._rows == self._columns

    @property
    def dtype(self):
        return complex if self.is_complex else float

    @property
    def ipiv(self) -> Optional[np.ndarray]:
        """Pivot indices when the matrix holds its own LU factors."""
        return self._ipiv

    @property
    def backing(self) -> np.ndarray:
        """Flat column-major float buffer (complex interleaved re, im)."""
        if self._matrix_type == MatrixType.SPARSE:
            return np.zeros(0, dtype=float)
        flat = np.ascontiguousarray(self._data.ravel(order="F"))
        if self.is_complex:
            return flat.view(np.float64).copy()
        return flat.copy()

    def __repr__(self) -> str:
        return (f"Matrix({self._rows}x{self._columns}, {self._matrix_type.value}, "
                f"{self._num_type.value}, factorization={self.factorization_type.value})")

    def __str__(self) -> str:
        A = self.to_array()
        lines = []
        for i in range(self._rows):
            if self.is_complex:
                cells = "".join(f" {v.real: 5.3f}{v.imag:+5.3f}i" for v in A[i])
            else:
                cells = "".join(f" {v: 6.6f}" for v in A[i])
            lines.append(f"|{cells} |")
        return "\n".join(lines)

    def to_csv(self) -> str:
        """Matrix as CSV text, with row and column indices as headers."""
        A = self.to_array()
        lines = ["," + ",".join(str(j) for j in range(self._columns))]
        for i in range(self._rows):
            if self.is_complex:
                cells = [f"{v.real:.6f}{v.imag:+.6f}i" for v in A[i]]
            else:
                cells = [f"{v:6.5E}" for v in A[i]]
            lines.append(f"{i}," + ",".join(cells))
        return "\n".join(lines) + "\n"

    # ------------------------------------------------------------------
    # Element access
    # ------------------------------------------------------------------

    def _check_bounds(self, row: int, column: int) -> None:
        if not (0 <= row < self._rows and 0 <= column < self._columns):
            raise MatrixIndexError(
                f"Index ({row}, {column}) out of bounds for {self._rows}x{self._columns} matrix"
            )

    def __getitem__(self, key: Tuple[int, int]) -> Number:
        row, column = key
        self._check_bounds(row, column)

        if self._matrix_type == MatrixType.SPARSE:
            return self._sparse.get((row, column), 0.0)
        if self._matrix_type == MatrixType.DIAGONAL:
            value = self._data[row] if row == column else 0.0
        else:
            value = self._data[row, column]
        return complex(value) if self.is_complex else float(value)

    def __setitem__(self, key: Tuple[int, int], value: Number) -> None:
        row, column = key
        self._check_bounds(row, column)
        if isinstance(value, complex) and not self.is_complex:
            raise MatrixTypeError("Cannot store a complex value in a real matrix")

        if self._matrix_type == MatrixType.SPARSE:
            if value == 0.0:
                self._sparse.pop((row, column), None)
            else:
                self._sparse[(row, column)] = float(value)
        elif self._matrix_type == MatrixType.DIAGONAL:
            if row != column:
                if value != 0.0:
                    raise MatrixIndexError(f"Cannot set off-diagonal entry ({row}, {column}) of a diagonal matrix")
                return
            self._data[row] = value
        else:
            self._data[row, column] = value
            if self._matrix_type != MatrixType.GENERAL:
                self._data[column, row] = value

    def get_real(self, row: int, column: int) -> float:
        if self.is_complex:
            raise MatrixTypeError("Requested a real value from a complex matrix")
        return self[row, column]

    def get_complex(self, row: int, column: int) -> complex:
        if not self.is_complex:
            raise MatrixTypeError("Requested a complex value from a real matrix")
        return self[row, column]

    # ------------------------------------------------------------------
    # Conversions
    # ------------------------------------------------------------------

    def copy(self) -> "Matrix":
        result = Matrix.__new__(Matrix)
        result.__dict__.update(self.__dict__)
        result._data = None if self._data is None else self._data.copy()
        result._ipiv = None if self._ipiv is None else self._ipiv.copy()
        result._sparse = dict(self._sparse)
        return result

    def to_array(self) -> np.ndarray:
        """Dense (rows × columns) numpy copy of the matrix."""
        if self._matrix_type == MatrixType.DIAGONAL:
            return np.diag(self._data)
        if self._matrix_type == MatrixType.SPARSE:
            A = np.zeros((self._rows, self._columns), dtype=float)
            for (i, j), v in self._sparse.items():
                A[i, j] = v
            return A
        return self._data.copy()

    @classmethod
    def from_array(cls, array, matrix_type: MatrixType = MatrixType.GENERAL) -> "Matrix":
        """
        Build a Matrix from a numpy array (1-D arrays become column vectors).

        The number type follows the array's dtype.
        """
        A = np.asarray(array)
        if A.ndim == 1:
            A = A.reshape(-1, 1)
        if A.ndim != 2:
            raise DimensionMismatchError(f"Expected a 1-D or 2-D array, got {A.ndim}-D")
        num_type = NumberType.COMPLEX if np.iscomplexobj(A) else NumberType.REAL
        rows, columns = A.shape
        if rows == 1 and columns > 1:
            A = A.T
            rows, columns = A.shape

        result = cls(rows, columns, matrix_type, num_type)
        if matrix_type == MatrixType.DIAGONAL:
            if rows != columns:
                raise DimensionMismatchError("Diagonal matrices must be square")
            result._data[:] = np.diag(A)
        elif matrix_type == MatrixType.SPARSE:
            for i, j in zip(*np.nonzero(A)):
                result._sparse[(int(i), int(j))] = float(A[i, j])
        else:
            result._data[:, :] = A
        return result

    def as_complex_matrix(self) -> "Matrix":
        """Complex copy of the matrix (a plain copy if it is already complex)."""
        if self._matrix_type == MatrixType.SPARSE:
            raise UnsupportedOperationError("Complex sparse matrices are not supported")
        if self.is_complex:
            return self.copy()
        result = Matrix(self._rows, self._columns, self._matrix_type, NumberType.COMPLEX)
        result._data = self._data.astype(complex)
        return result

    def as_general_matrix(self) -> "Matrix":
        """GENERAL-layout copy of the matrix."""
        if self._matrix_type == MatrixType.GENERAL:
            return self.copy()
        return Matrix.from_array(self.to_array().astype(self.dtype), MatrixType.GENERAL)

    def as_sparse_matrix(self) -> "Matrix":
        if self.is_complex:
            raise UnsupportedOperationError("Complex sparse matrices are not supported")
        if self._matrix_type == MatrixType.SPARSE:
            return self.copy()
        return Matrix.from_array(self.to_array(), MatrixType.SPARSE)

    def to_dict(self) -> dict:
        return {
            "matrix_type": self._matrix_type.value,
            "num_type": self._num_type.value,
            "factorization_type": self.factorization_type.value,
            "rows": self._rows,
            "columns": self._columns,
            "backing": self.backing.tolist(),
            "ipiv": None if self._ipiv is None else self._ipiv.tolist(),
            "sparse": [[i, j, v] for (i, j), v in sorted(self._sparse.items())],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Matrix":
        result = cls(
            data["rows"], data["columns"],
            MatrixType(data["matrix_type"]), NumberType(data["num_type"]),
        )
        result.factorization_type = FactorizationType(data["factorization_type"])
        if data.get("ipiv") is not None:
            result._ipiv = np.asarray(data["ipiv"], dtype=np.int32)

        if result.matrix_type == MatrixType.SPARSE:
            result._sparse = {(int(i), int(j)): float(v) for i, j, v in data["sparse"]}
            return result

        flat = np.asarray(data["backing"], dtype=float)
        if result.is_complex:
            flat = flat.view(complex)
        if result.matrix_type == MatrixType.DIAGONAL:
            result._data = flat.copy()
        else:
            result._data = flat.reshape((result.rows, result.columns), order="F").copy()
        return result

    # ------------------------------------------------------------------
    # Row operations (used to build the fixed capacitance matrix)
    # ------------------------------------------------------------------

    def _check_row_operation(self) -> None:
        if self._matrix_type in (MatrixType.SYMMETRIC, MatrixType.POSITIVE_DEFINITE):
            raise MatrixTypeError(f"Row operations are not allowed on {self._matrix_type.value} matrices")
        if self._matrix_type == MatrixType.DIAGONAL:
            raise MatrixTypeError("Row operations are not allowed on diagonal matrices")

    def zero_row(self, row: int) -> None:
        self._check_row_operation()
        self._check_bounds(row, 0)
        if self._matrix_type == MatrixType.SPARSE:
            for key in [k for k in self._sparse if k[0] == row]:
                del self._sparse[key]
        else:
            self._data[row, :] = 0.0

    def add_row(self, from_row: int, to_row: int) -> None:
        """Add from_row into to_row."""
        self._check_row_operation()
        self._check_bounds(from_row, 0)
        self._check_bounds(to_row, 0)
        if self._matrix_type == MatrixType.SPARSE:
            for (i, j), v in list(self._sparse.items()):
                if i == from_row:
                    self[to_row, j] = self._sparse.get((to_row, j), 0.0) + v
        else:
            self._data[to_row, :] += self._data[from_row, :]

    def sparsity(self) -> float:
        """Fraction of entries that are exactly zero."""
        total = self._rows * self._columns
        if self._matrix_type == MatrixType.SPARSE:
            nonzero = len(self._sparse)
        else:
            nonzero = int(np.count_nonzero(self.to_array()))
        return 1.0 - nonzero / total

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def scale(self, scalar: Number) -> "Matrix":
        """
        Multiply every entry by a scalar.

        Real × real keeps the layout and number type; a complex scalar promotes
        a real matrix to complex.
        """
        if isinstance(scalar, complex) and not self.is_complex:
            result = self.as_complex_matrix()
        else:
            result = self.copy()
        result.factorization_type = FactorizationType.NONE
        result._ipiv = None

        if result._matrix_type == MatrixType.SPARSE:
            result._sparse = {k: v * scalar for k, v in result._sparse.items()}
        else:
            result._data = result._data * scalar
        return result

    def multiply(self, rhs: "Matrix") -> "Matrix":
        """
        Matrix product self · rhs.

        Raises DimensionMismatchError unless self.columns == rhs.rows. The
        result is complex if either operand is complex.
        """
        if self._columns != rhs.rows:
            raise DimensionMismatchError(
                f"Cannot multiply {self._rows}x{self._columns} by {rhs.rows}x{rhs.columns}"
            )

        if self._matrix_type == MatrixType.DIAGONAL:
            if rhs.matrix_type == MatrixType.DIAGONAL:
                return Matrix.from_array(np.diag(self._data * rhs._data), MatrixType.DIAGONAL)
            if rhs.is_vector:
                # diagonal × vector is an elementwise product
                x = rhs.to_array()[:, 0]
                return Matrix.from_array((self._data * x).reshape(-1, 1))

        return Matrix.from_array(self.to_array() @ rhs.to_array())

    def __mul__(self, other):
        if isinstance(other, Matrix):
            return self.multiply(other)
        if isinstance(other, (int, float, complex, np.number)):
            return self.scale(other)
        return NotImplemented

    def __rmul__(self, other):
        if isinstance(other, (int, float, complex, np.number)):
            return self.scale(other)
        return NotImplemented

    def __matmul__(self, other):
        if isinstance(other, Matrix):
            return self.multiply(other)
        return NotImplemented

    # ------------------------------------------------------------------
    # Solvers
    # ------------------------------------------------------------------

    def _check_rhs_vector(self, B: "Matrix") -> None:
        if not self.is_square:
            raise DimensionMismatchError(f"Matrix is not square ({self._rows}x{self._columns})")
        if not B.is_vector:
            raise DimensionMismatchError("B must be a vector")
        if B.rows != self._rows:
            raise DimensionMismatchError(f"B has {B.rows} rows, expected {self._rows}")

    def solve_general(self, B: "Matrix", overwrite_a: bool = False) -> "Matrix":
        """
        Solve A·X = B for a dense square A and a vector B, by LU factorization.

        If either side is complex the solve is done in complex arithmetic.

        Parameters:
        -----------
        B : Matrix
            GENERAL vector
        overwrite_a : bool
            Store the LU factors in self for later solves. Only honoured when
            self is not factored yet and its number type is the solve type.

        Returns:
        --------
        Matrix
            The solution vector X

        Raises:
        -------
        MatrixTypeError
            If A or B is not GENERAL
        DimensionMismatchError
            If A is not square or B is not a matching vector
        UnsupportedOperationError
            If A holds a factorization that cannot be reused for this solve
        IllegalArgumentError, SingularMatrixError
            From LAPACK
        """
        if self._matrix_type != MatrixType.GENERAL or B.matrix_type != MatrixType.GENERAL:
            raise MatrixTypeError("solve_general needs GENERAL matrices")
        self._check_rhs_vector(B)

        solve_type = NumberType.COMPLEX if (self.is_complex or B.is_complex) else NumberType.REAL
        dtype = complex if solve_type == NumberType.COMPLEX else float
        b = B.to_array()[:, 0].astype(dtype)

        if self.factorization_type == FactorizationType.LU and self._num_type == solve_type:
            x = lu_resolve(self._data, self._ipiv, b)
            return Matrix.from_array(x)

        if self.factorization_type != FactorizationType.NONE:
            raise UnsupportedOperationError(
                f"Matrix holds a {self._num_type.value} {self.factorization_type.value} "
                f"factorization, cannot solve a {solve_type.value} system with it"
            )

        x, lu, piv = lu_solve(self._data.astype(dtype), b)
        if overwrite_a and self._num_type == solve_type:
            self._data = lu
            self._ipiv = piv
            self.factorization_type = FactorizationType.LU
        return Matrix.from_array(x)

    def solve_sparse(self, B: "Matrix") -> "Matrix":
        """
        Solve A·X = B for a real SPARSE square A and a real GENERAL vector B.

        The factorization is not stored (factorization_type stays NONE).
        """
        if self.is_complex or B.is_complex:
            raise UnsupportedOperationError("Complex numbers are not supported for sparse solves")
        if self._matrix_type != MatrixType.SPARSE or B.matrix_type != MatrixType.GENERAL:
            raise MatrixTypeError("solve_sparse needs a SPARSE A and a GENERAL B")
        self._check_rhs_vector(B)

        x = sparse_solve(self._rows, self._sparse, B.to_array()[:, 0])
        return Matrix.from_array(x)

    # ------------------------------------------------------------------
    # Tests
    # ------------------------------------------------------------------

    def test_for_symmetry(self, precision: Optional[float] = None) -> bool:
        """True if the matrix is square and every (i,j)/(j,i) pair agrees within precision."""
        if precision is None:
            precision = Matrix.equality_precision
        if not self.is_square:
            return False
        A = self.to_array()
        if np.any(relative_difference(A.real, A.T.real) > precision):
            return False
        if self.is_complex and np.any(relative_difference(A.imag, A.T.imag) > precision):
            return False
        return True

    def test_positive_definite(self, overwrite: bool = False) -> bool:
        """
        Test for positive-definiteness by attempting a Cholesky factorization.

        POSITIVE_DEFINITE matrices return True straight away. The matrix must be
        symmetric, otherwise False. DIAGONAL matrices are checked directly
        (real parts of the diagonal non-negative) without factorizing. With
        overwrite, a successful factorization replaces the matrix contents and
        sets factorization_type to CHOLESKY.
        """
        if self._matrix_type == MatrixType.POSITIVE_DEFINITE:
            return True
        if self._matrix_type == MatrixType.SPARSE:
            raise UnsupportedOperationError("Positive-definite test is not implemented for sparse matrices")
        if not self.test_for_symmetry():
            logger.debug("Matrix must be square and symmetric")
            return False

        if self._matrix_type == MatrixType.DIAGONAL:
            return bool(np.all(self._data.real >= 0.0))

        try:
            factor = cholesky(self._data)
        except SingularMatrixError as e:
            logger.debug("Not positive-definite: %s", e)
            return False

        if overwrite:
            self._data = factor
            self.factorization_type = FactorizationType.CHOLESKY
        return True

    def __eq__(self, other) -> bool:
        if not isinstance(other, Matrix):
            return NotImplemented
        if (self._matrix_type != other._matrix_type or self._num_type != other._num_type
                or self.shape != other.shape or self.factorization_type != other.factorization_type):
            return False

        if self._matrix_type == MatrixType.SPARSE:
            keys = sorted(set(self._sparse) | set(other._sparse))
            lhs = [self._sparse.get(k, 0.0) for k in keys]
            rhs = [other._sparse.get(k, 0.0) for k in keys]
        else:
            lhs = self.backing
            rhs = other.backing
            if len(lhs) != len(rhs):
                return False
        return bool(np.all(relative_difference(lhs, rhs) <= Matrix.equality_precision))

    __hash__ = None
