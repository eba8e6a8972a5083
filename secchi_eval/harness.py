# secchi_eval/harness.py
from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .data import Dataset
from .errors import EmptyInputError, EvaluationError, SchemaMismatchError
from .metrics import Metrics, PredictionSet, score
from .models import FittedModel, RegressionModel
from .splitters import GroupExclusion, GroupShuffle, RandomFraction, SplitPlan, describe_plan, safe_label, split


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EvaluationResult:
    plan: SplitPlan
    model_name: str
    target_field: str
    feature_fields: List[str]
    n_train: int
    n_test: int
    predictions: PredictionSet
    metrics: Metrics
    fitted_model: Optional[FittedModel] = field(default=None, repr=False, compare=False)

    @property
    def label(self) -> str:
        return f"{describe_plan(self.plan)}__{safe_label(self.model_name)}"

    def to_dict(self) -> Dict[str, Any]:
        """JSON-serialisable record (the fitted model is not included)."""
        return {
            "label": self.label,
            "plan": _plan_to_dict(self.plan),
            "model": self.model_name,
            "target": self.target_field,
            "features": list(self.feature_fields),
            "n_train": int(self.n_train),
            "n_test": int(self.n_test),
            "metrics": self.metrics.to_dict(),
        }


def _jsonable(v: Any) -> Any:
    if isinstance(v, np.generic):
        return v.item()
    if isinstance(v, tuple):
        return [_jsonable(x) for x in v]
    return v


def _plan_to_dict(plan: SplitPlan) -> Dict[str, Any]:
    if isinstance(plan, RandomFraction):
        return {"kind": "random_fraction", "fraction": float(plan.fraction), "seed": int(plan.seed)}
    if isinstance(plan, GroupExclusion):
        return {
            "kind": "group_exclusion",
            "group_field": plan.group_field,
            "excluded_group_value": _jsonable(plan.excluded_group_value),
            "test_group_values": _jsonable(plan.test_group_values),
        }
    if isinstance(plan, GroupShuffle):
        return {
            "kind": "group_shuffle",
            "group_field": plan.group_field,
            "fraction": float(plan.fraction),
            "seed": int(plan.seed),
        }
    raise TypeError(f"Unknown split plan: {type(plan).__name__}")


def validate_fields(dataset: Dataset, target_field: str, feature_fields: Sequence[str]) -> List[str]:
    """Check target/feature fields against the dataset and return the features as a list."""
    feats = list(feature_fields)
    if not feats:
        raise SchemaMismatchError("At least one feature field is required.")

    dup = sorted({f for f in feats if feats.count(f) > 1})
    if dup:
        raise SchemaMismatchError(f"Duplicated feature fields: {dup}")

    # Targets are outcomes and never features (no leakage).
    if target_field in feats:
        raise SchemaMismatchError(f"Target '{target_field}' must not be in features.")

    missing = [f for f in [target_field] + feats if not dataset.has_field(f)]
    if missing:
        raise SchemaMismatchError(f"Missing required fields: {missing} (available: {dataset.fields})")

    if not dataset.is_numeric(target_field):
        raise SchemaMismatchError(f"Target '{target_field}' must be numeric.")
    return feats


def _require_complete_target(part: Dataset, target_field: str, name: str) -> None:
    y = pd.Series(part.column(target_field))
    n_missing = int(y.isna().sum())
    if n_missing:
        raise EvaluationError(
            f"Target '{target_field}' has {n_missing} missing value(s) in the {name} split; "
            "drop these rows before evaluating."
        )


def evaluate(
    dataset: Dataset,
    plan: SplitPlan,
    model: RegressionModel,
    target_field: str,
    feature_fields: Sequence[str],
    *,
    zero_policy: str = "raise",
) -> EvaluationResult:
    """
    One isolated split -> fit -> predict -> score run.

    Nothing is cached between calls: each run splits the dataset afresh and fits a new model.
    Every error propagates to the caller.
    """
    feats = validate_fields(dataset, target_field, feature_fields)

    parts = split(dataset, plan)
    cols = [target_field] + feats
    train = parts.train.project(cols)
    test = parts.test.project(cols)

    if len(train) == 0:
        raise EmptyInputError(f"Training split is empty for {describe_plan(plan)}.")
    if len(test) == 0:
        raise EmptyInputError(f"Test split is empty for {describe_plan(plan)}.")
    _require_complete_target(train, target_field, "train")
    _require_complete_target(test, target_field, "test")

    model_name = str(getattr(model, "name", type(model).__name__))
    fitted = model.fit(train, target_field)

    # The model only sees features at prediction time.
    pred = np.asarray(fitted.predict(test.project(feats)), dtype=float).ravel()
    if pred.size != len(test):
        raise SchemaMismatchError(
            f"Model '{model_name}' returned {pred.size} predictions for {len(test)} test rows."
        )

    predictions = PredictionSet(observed=test.column(target_field), predicted=pred, row_ids=test.row_ids)
    metrics = score(predictions, zero_policy=zero_policy)
    logger.info(
        "%s / %s: n_train=%d n_test=%d rmse=%.4f mape=%.4f",
        describe_plan(plan),
        model_name,
        len(train),
        len(test),
        metrics.rmse,
        metrics.mape,
    )

    return EvaluationResult(
        plan=plan,
        model_name=model_name,
        target_field=target_field,
        feature_fields=feats,
        n_train=len(train),
        n_test=len(test),
        predictions=predictions,
        metrics=metrics,
        fitted_model=fitted,
    )


def compare_models(
    dataset: Dataset,
    plans: Mapping[str, SplitPlan],
    models: Mapping[str, RegressionModel],
    target_field: str,
    feature_fields: Sequence[str],
    *,
    zero_policy: str = "raise",
) -> Tuple[Dict[Tuple[str, str], EvaluationResult], pd.DataFrame]:
    """Run `evaluate` for every (plan, model) pair and tabulate the scores."""
    results: Dict[Tuple[str, str], EvaluationResult] = {}
    rows: List[Dict[str, Any]] = []

    for plan_name, plan in plans.items():
        for model_name, model in models.items():
            res = evaluate(dataset, plan, model, target_field, feature_fields, zero_policy=zero_policy)
            results[(plan_name, model_name)] = res
            rows.append(
                {
                    "plan": plan_name,
                    "model": model_name,
                    "n_train": res.n_train,
                    "n_test": res.n_test,
                    "rmse": res.metrics.rmse,
                    "mape": res.metrics.mape,
                    "mae": res.metrics.mae,
                }
            )

    table = pd.DataFrame(rows, columns=["plan", "model", "n_train", "n_test", "rmse", "mape", "mae"])
    return results, table
