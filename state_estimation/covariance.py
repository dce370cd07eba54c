"""
Covariance update forms for the measurement update.

Both forms share the signature (P, K, H, W) -> P_new so the estimator
can switch between them through configuration.
"""

from enum import Enum
from typing import Callable, Dict

import numpy as np
from numpy.typing import NDArray

Matrix = NDArray[np.float64]
CovarianceUpdateFn = Callable[[Matrix, Matrix, Matrix, Matrix], Matrix]


class CovarianceUpdate(str, Enum):
    """Available covariance update forms."""

    SIMPLE = "simple"
    JOSEPH = "joseph"


def simple_update(P: Matrix, K: Matrix, H: Matrix, W: Matrix) -> Matrix:
    """
    Standard form P - K H P.

    Cheap, but rounding slowly breaks symmetry and can lose positive
    semi-definiteness when S is ill-conditioned. W is unused.
    """
    return P - K @ H @ P


def joseph_update(P: Matrix, K: Matrix, H: Matrix, W: Matrix) -> Matrix:
    """
    Joseph form (I - K H) P (I - K H)^T + K W K^T.

    Symmetric and positive semi-definite for any gain K.
    """
    I_KH = np.eye(P.shape[0]) - K @ H
    return I_KH @ P @ I_KH.T + K @ W @ K.T


_UPDATES: Dict[CovarianceUpdate, CovarianceUpdateFn] = {
    CovarianceUpdate.SIMPLE: simple_update,
    CovarianceUpdate.JOSEPH: joseph_update,
}


def get_covariance_update(name: str) -> CovarianceUpdateFn:
    """
    Look up a covariance update form by name.

    Args:
        name: "simple" or "joseph"

    Returns:
        Update function (P, K, H, W) -> P_new

    Raises:
        ValueError: If the name is unknown
    """
    try:
        form = CovarianceUpdate(name)
    except ValueError:
        raise ValueError(
            f"Unknown covariance update '{name}', "
            f"expected one of {[f.value for f in CovarianceUpdate]}"
        ) from None
    return _UPDATES[form]
