"""Allometric projections of shape data for plotting.

Given the accepted model and its fit, :class:`AllometryProjector`
derives the low-dimensional summaries used to draw allometry plots:

* **CAC / RSC** (Mitteroecker et al., 2004).  Shapes are first centred
  on the group means: the intercept and group columns of the design
  (never the size slope or the size-by-group columns) span a subspace
  that is projected out,

      Y_c = Y - U U'Y,      U = orthonormal basis of [1, gps dummies].

  The common allometric direction is the normalised regression of the
  centred shapes on size, ``a = Y_c' s / (s' s)``, ``a <- a / |a|``.
  ``CAC = Y_c a`` and the residual shape components (RSC) are the
  principal-component scores of ``Y_c (I - a a')``.

* **RegScore** (Drake & Klingenberg, 2008).  Shapes projected on the
  normalised size-slope coefficients ``b`` of the fitted model,
  ``Y b / |b|``.

* **PredLine** (Adams & Nistri, 2010).  The first principal-component
  score of the fitted shapes.

It also extracts the fitted shapes at the smallest and largest
specimen and the mean shape.

References:
    Mitteroecker, P., Gunz, P., Bernhard, M., Schaefer, K. &
    Bookstein, F. L. (2004). Comparison of cranial ontogenetic
    trajectories among great apes and humans. *Journal of Human
    Evolution*, 46, 679-698.

    Drake, A. G. & Klingenberg, C. P. (2008). The pace of
    morphological change: historical transformation of skull shape in
    St Bernard dogs. *Proceedings of the Royal Society B*, 275, 71-76.

    Adams, D. C. & Nistri, A. (2010). Ontogenetic convergence and
    evolution of foot morphology in European cave salamanders.
    *BMC Evolutionary Biology*, 10, 216.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
from sklearn.decomposition import PCA

from .design import DesignMatrix, ModelSpec, Term
from .exceptions import DegenerateAllometricDirection, SingleCovariateRequired
from .fitting import LinearFitResult, orthonormal_basis
from .landmarks import mean_shape

logger = logging.getLogger(__name__)

_DEGENERATE_ATOL = 1e-12


@dataclass(frozen=True)
class AllometryProjection:
    """Projections of one fitted allometry model (2-D layout)."""

    centered: np.ndarray
    """Group-centred shapes ``Y_c`` ``(n, v)``."""

    allometric_direction: np.ndarray
    """Unit vector ``a`` ``(v,)``."""

    cac: np.ndarray
    """Common allometric component ``Y_c a`` ``(n,)``."""

    rsc: np.ndarray
    """Residual shape component scores ``(n, m)``."""

    rsc_rotation: np.ndarray
    """Principal axes of the residual shapes, ``(m, v)``."""

    regression_direction: np.ndarray
    """Unit size-slope vector ``b / |b|`` ``(v,)``."""

    reg_proj: np.ndarray
    """RegScore ``(n,)``."""

    pred_val: np.ndarray
    """PredLine scores ``(n,)``."""

    fitted: np.ndarray
    """Fitted shapes ``(n, v)``."""

    at_min: np.ndarray
    """Fitted shape of the smallest specimen ``(v,)``."""

    at_max: np.ndarray
    """Fitted shape of the largest specimen ``(v,)``."""

    argmin: int
    argmax: int

    ref: np.ndarray
    """Mean shape ``(v,)``."""


class AllometryProjector:
    """Derive allometric projections from a fitted model.

    Args:
        model: The accepted model.  It must contain exactly one
            continuous (size) term.
        design: Its design matrix on the analysis data.
        fit: Its least-squares fit.
    """

    def __init__(
        self,
        model: ModelSpec,
        design: DesignMatrix,
        fit: LinearFitResult,
    ) -> None:
        size_terms = model.terms_of_kind("continuous")
        if len(size_terms) != 1:
            raise SingleCovariateRequired(
                f"Allometric projections need exactly one size term; "
                f"'{model.formula}' has {len(size_terms)}."
            )
        self.model = model
        self.design = design
        self.fit = fit
        self.size_term: Term = size_terms[0]

    def centering_columns(self) -> list[int]:
        """Design positions of the intercept and group columns."""
        cols: list[int] = [0] if self.design.intercept else []
        for term in self.model.terms_of_kind("categorical"):
            cols.extend(self.design.columns_for(term.label))
        return cols

    def center(self, Y: np.ndarray) -> np.ndarray:
        """Project out the intercept / group-mean structure of *Y*."""
        cols = self.centering_columns()
        if not cols:
            return np.array(Y, dtype=float)
        U = orthonormal_basis(self.design.values[:, cols])
        return Y - U @ (U.T @ Y)

    def size_slope(self) -> np.ndarray:
        """Coefficient row of the size term in the fitted model."""
        (col,) = self.design.columns_for(self.size_term.label)
        return np.asarray(self.fit.coefficients[col], dtype=float)

    def project(self, Y: np.ndarray, sz: np.ndarray) -> AllometryProjection:
        """Compute every projection.

        Args:
            Y: Shape matrix ``(n, v)`` the model was fitted to.
            sz: Size covariate on the model scale (log-transformed
                when the model uses ``log(size)``).

        Raises:
            DegenerateAllometricDirection: If the allometric direction
                or the size slope has zero length.
        """
        Y = np.asarray(Y, dtype=float)
        sz = np.asarray(sz, dtype=float).ravel()

        # ---- CAC / RSC --------------------------------------------
        y_cent = self.center(Y)
        ss_size = float(sz @ sz)
        if ss_size <= 0:
            raise DegenerateAllometricDirection("The size covariate is identically zero.")
        a = (y_cent.T @ sz) / ss_size
        norm_a = float(np.sqrt(a @ a))
        scale = max(float(np.sqrt(np.sum(y_cent**2))), 1.0)
        if norm_a <= _DEGENERATE_ATOL * scale:
            raise DegenerateAllometricDirection(
                "The allometric direction has zero length: shape does not "
                "covary with size once group means are removed."
            )
        a = a / norm_a
        cac = y_cent @ a

        resid = y_cent @ (np.eye(y_cent.shape[1]) - np.outer(a, a))
        pca = PCA(svd_solver="full")
        rsc = pca.fit_transform(resid)

        # ---- RegScore ---------------------------------------------
        b = self.size_slope()
        norm_b = float(np.sqrt(b @ b))
        if norm_b == 0.0:
            raise DegenerateAllometricDirection("The fitted size slope is exactly zero.")
        b_unit = b / norm_b
        reg_proj = Y @ b_unit

        # ---- PredLine ---------------------------------------------
        yhat = self.fit.fitted
        pred_val = PCA(n_components=1, svd_solver="full").fit_transform(yhat)[:, 0]

        imin, imax = int(np.argmin(sz)), int(np.argmax(sz))
        logger.debug(
            "Projections: |a| before scaling %.4g, smallest specimen %d, largest %d",
            norm_a,
            imin,
            imax,
        )
        return AllometryProjection(
            centered=y_cent,
            allometric_direction=a,
            cac=cac,
            rsc=rsc,
            rsc_rotation=pca.components_,
            regression_direction=b_unit,
            reg_proj=reg_proj,
            pred_val=pred_val,
            fitted=yhat,
            at_min=yhat[imin].copy(),
            at_max=yhat[imax].copy(),
            argmin=imin,
            argmax=imax,
            ref=mean_shape(Y),
        )


__all__ = ["AllometryProjection", "AllometryProjector"]
