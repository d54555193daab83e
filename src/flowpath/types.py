from __future__ import annotations

from typing import TypeAlias

import numpy as np
from jaxtyping import Float

Vec3: TypeAlias = Float[np.ndarray, "3"]
Mat3: TypeAlias = Float[np.ndarray, "3 3"]
NpPoints: TypeAlias = Float[np.ndarray, "N 3"]
NpTimes: TypeAlias = Float[np.ndarray, "N"]
NpBasisMatrix: TypeAlias = Float[np.ndarray, "M N"]
