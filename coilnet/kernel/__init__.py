# coilnet/kernel - Numeric core
"""
KERNEL: THE NUMERIC FOUNDATION
==============================

This package holds the pieces that know nothing about transformers:
- Matrix: tagged real/complex matrix with dense, diagonal and sparse storage
- LAPACK / SuperLU wrappers and the matrix error types
- Scatter-add assembly of element contributions into a global matrix

The network model (nodes, segments, capacitances, inductances) is built on
top of it.
"""

from .assemble import assemble_global_matrix, two_terminal_stamp
from .matrix import FactorizationType, Matrix, MatrixType, NumberType
from .solve import (
    DimensionMismatchError,
    IllegalArgumentError,
    MatrixError,
    MatrixIndexError,
    MatrixTypeError,
    SingularMatrixError,
    UnsupportedOperationError,
)

__all__ = [
    'Matrix', 'MatrixType', 'NumberType', 'FactorizationType',
    'assemble_global_matrix', 'two_terminal_stamp',
    'MatrixError', 'IllegalArgumentError', 'SingularMatrixError',
    'DimensionMismatchError', 'UnsupportedOperationError',
    'MatrixIndexError', 'MatrixTypeError',
]
