"""Small rank-2 tensor helpers (2D/3D, NumPy arrays of shape ``(dim, dim)``).

Unrolled component orders
-------------------------
* symmetric tensors: diagonal first, then the upper off-diagonal entries
  (``xx, yy, xy`` in 2D; ``xx, yy, zz, xy, xz, yz`` in 3D);
* full tensors: row-major (``s11, s12, s21, s22`` in 2D).
"""

from __future__ import annotations

from typing import List, Tuple

import numpy as np


def n_independent_symmetric_components(dim: int) -> int:
    return dim * (dim + 1) // 2


def n_independent_components(dim: int) -> int:
    return dim * dim


def symmetric_unrolled_indices(dim: int) -> List[Tuple[int, int]]:
    """Component ``k`` -> ``(i, j)`` for symmetric rank-2 tensors."""
    idx = [(i, i) for i in range(dim)]
    for i in range(dim):
        for j in range(i + 1, dim):
            idx.append((i, j))
    return idx


def tensor_unrolled_indices(dim: int) -> List[Tuple[int, int]]:
    """Component ``k`` -> ``(i, j)`` for full rank-2 tensors (row-major)."""
    return [(i, j) for i in range(dim) for j in range(dim)]


def nth_basis_for_symmetric_tensors(k: int, dim: int) -> np.ndarray:
    """Unit symmetric tensor for unrolled component ``k``."""
    i, j = symmetric_unrolled_indices(dim)[k]
    B = np.zeros((dim, dim), dtype=float)
    B[i, j] = 1.0
    B[j, i] = 1.0
    return B


def symmetrize(T: np.ndarray) -> np.ndarray:
    T = np.asarray(T, dtype=float)
    return 0.5 * (T + T.T)


def deviator(T: np.ndarray) -> np.ndarray:
    """``T - tr(T)/dim * I``."""
    T = np.asarray(T, dtype=float)
    dim = T.shape[0]
    return T - np.trace(T) / dim * np.eye(dim)


def second_invariant(T: np.ndarray) -> float:
    """Second principal invariant of a symmetric tensor.

    For a deviatoric tensor this equals ``-0.5 * T:T``.
    """
    T = np.asarray(T, dtype=float)
    if T.shape[0] == 2:
        return float(T[0, 0] * T[1, 1] - T[0, 1] ** 2)
    return float(
        T[0, 0] * T[1, 1]
        + T[1, 1] * T[2, 2]
        + T[2, 2] * T[0, 0]
        - T[0, 1] ** 2
        - T[0, 2] ** 2
        - T[1, 2] ** 2
    )


def strain_rate_invariant(strain_rate: np.ndarray) -> float:
    """Square root of |I2| of the deviatoric strain rate (``edot_ii``)."""
    return float(np.sqrt(abs(second_invariant(deviator(strain_rate)))))


def tensor_from_components(values: np.ndarray, first: int, dim: int) -> np.ndarray:
    """Gather ``dim**2`` consecutive row-major entries of ``values`` into a tensor."""
    values = np.asarray(values, dtype=float)
    F = np.zeros((dim, dim), dtype=float)
    for q, (i, j) in enumerate(tensor_unrolled_indices(dim)):
        F[i, j] = values[first + q]
    return F
