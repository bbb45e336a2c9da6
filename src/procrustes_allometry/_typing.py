"""Shared type aliases for the procrustes_allometry package."""

import numpy as np
import pandas as pd

# Array-like inputs accepted by the public API.
ArrayLike = np.ndarray | pd.DataFrame | pd.Series

# Seed policy: None (reproducible default), "random", or an explicit integer.
SeedLike = int | str | None
