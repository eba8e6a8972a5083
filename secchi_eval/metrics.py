# secchi_eval/metrics.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd
from sklearn.metrics import mean_absolute_error, mean_absolute_percentage_error, mean_squared_error

from .config import ZERO_POLICIES
from .errors import DivisionByZeroError, EmptyInputError, EvaluationError, SchemaMismatchError


@dataclass(frozen=True)
class PredictionSet:
    """Observed/predicted pairs for the test rows, in test-row order."""

    observed: np.ndarray
    predicted: np.ndarray
    row_ids: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        obs = np.asarray(self.observed, dtype=float).ravel()
        pred = np.asarray(self.predicted, dtype=float).ravel()
        if obs.shape != pred.shape:
            raise SchemaMismatchError(
                f"Observed/predicted length mismatch: {obs.size} observed vs {pred.size} predicted."
            )
        object.__setattr__(self, "observed", obs)
        object.__setattr__(self, "predicted", pred)
        if self.row_ids is not None:
            ids = np.asarray(self.row_ids).ravel()
            if ids.size != obs.size:
                raise SchemaMismatchError(f"row_ids length {ids.size} does not match {obs.size} predictions.")
            object.__setattr__(self, "row_ids", ids)

    def __len__(self) -> int:
        return int(self.observed.size)

    @property
    def residuals(self) -> np.ndarray:
        return self.observed - self.predicted

    def to_frame(self) -> pd.DataFrame:
        ids = self.row_ids if self.row_ids is not None else np.arange(len(self))
        return pd.DataFrame(
            {
                "row_id": ids,
                "observed": self.observed,
                "predicted": self.predicted,
                "residual": self.residuals,
            }
        )


@dataclass(frozen=True)
class Metrics:
    mape: float
    rmse: float
    mae: float
    n: int

    def to_dict(self) -> Dict[str, Any]:
        return {"mape": float(self.mape), "rmse": float(self.rmse), "mae": float(self.mae), "n": int(self.n)}


def _check_inputs(y_true: Any, y_pred: Any) -> tuple:
    y_true = np.asarray(y_true, dtype=float).ravel()
    y_pred = np.asarray(y_pred, dtype=float).ravel()
    if y_true.shape != y_pred.shape:
        raise SchemaMismatchError(f"Length mismatch: {y_true.size} observed vs {y_pred.size} predicted.")
    if y_true.size == 0:
        raise EmptyInputError("Cannot score an empty prediction set.")
    if not np.all(np.isfinite(y_true)):
        raise EvaluationError("Observed values contain NaN/inf; clean or drop these rows before scoring.")
    if not np.all(np.isfinite(y_pred)):
        raise EvaluationError("Predicted values contain NaN/inf.")
    return y_true, y_pred


def rmse(y_true: Any, y_pred: Any) -> float:
    y_true, y_pred = _check_inputs(y_true, y_pred)
    return float(np.sqrt(mean_squared_error(y_true, y_pred)))


def mae(y_true: Any, y_pred: Any) -> float:
    y_true, y_pred = _check_inputs(y_true, y_pred)
    return float(mean_absolute_error(y_true, y_pred))


def mape(y_true: Any, y_pred: Any, *, zero_policy: str = "raise") -> float:
    """
    Mean absolute percentage error as a fraction: mean(|o - p| / |o|).

    zero_policy decides what happens when an observed value is exactly 0:
      - "raise": DivisionByZeroError
      - "skip": those rows are left out of the mean (EmptyInputError if nothing is left)
      - "epsilon": denominator is max(|o|, machine epsilon), as in sklearn
    """
    if zero_policy not in ZERO_POLICIES:
        raise ValueError(f"Unknown zero_policy {zero_policy!r}; expected one of {list(ZERO_POLICIES)}")
    y_true, y_pred = _check_inputs(y_true, y_pred)

    zero = y_true == 0.0
    if zero_policy == "epsilon":
        return float(mean_absolute_percentage_error(y_true, y_pred))

    if zero.any():
        if zero_policy == "raise":
            raise DivisionByZeroError(
                f"MAPE is undefined: {int(zero.sum())} observed value(s) are exactly 0 "
                "(use zero_policy='skip' or 'epsilon' to score anyway)."
            )
        y_true = y_true[~zero]
        y_pred = y_pred[~zero]
        if y_true.size == 0:
            raise EmptyInputError("MAPE skipped every row: all observed values are 0.")

    return float(np.mean(np.abs(y_true - y_pred) / np.abs(y_true)))


def score(predictions: PredictionSet, *, zero_policy: str = "raise") -> Metrics:
    """Compute MAPE, RMSE and MAE for a prediction set."""
    if len(predictions) == 0:
        raise EmptyInputError("Cannot score an empty prediction set.")
    obs, pred = predictions.observed, predictions.predicted
    return Metrics(
        mape=mape(obs, pred, zero_policy=zero_policy),
        rmse=rmse(obs, pred),
        mae=mae(obs, pred),
        n=len(predictions),
    )
