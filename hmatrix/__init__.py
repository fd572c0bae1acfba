"""Paired host/device half-precision matrices for HGEMM benchmarking.

This package provides a fixture type that keeps one logical fp16 matrix in two
places, host memory and accelerator memory, with explicit transfers between
them and a statistical comparison against a baseline matrix.

Available names:
    - PairedMatrixBuffer: host/device matrix pair with fill, transfer and compare
    - MatrixCheckError: raised when a precondition or device operation fails

Requirements:
    - PyTorch
    - CUDA capable device (a CPU device can stand in for tests)
"""

from .common import MatrixCheckError
from .paired_matrix import PairedMatrixBuffer

__all__ = ["MatrixCheckError", "PairedMatrixBuffer"]
