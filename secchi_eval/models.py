# secchi_eval/models.py
from __future__ import annotations

from dataclasses import dataclass
import os
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import numpy as np
from sklearn.base import clone
from sklearn.compose import ColumnTransformer
from sklearn.dummy import DummyRegressor
from sklearn.ensemble import RandomForestRegressor
from sklearn.impute import SimpleImputer
from sklearn.linear_model import LinearRegression
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import OneHotEncoder, StandardScaler
from xgboost import XGBRegressor

from .config import DEFAULT_N_JOBS, DEFAULT_SEED
from .data import Dataset
from .errors import EmptyInputError, SchemaMismatchError


# -----------------------------
# Default hyperparameters (can be overridden via env)
# -----------------------------
DEFAULT_RF_PARAMS: Dict[str, Any] = dict(
    n_estimators=int(os.environ.get("RF_N_ESTIMATORS", "500")),
    max_features=float(os.environ.get("RF_MAX_FEATURES", "1.0")),
    min_samples_leaf=int(os.environ.get("RF_MIN_SAMPLES_LEAF", "1")),
)

DEFAULT_XGB_PARAMS: Dict[str, Any] = dict(
    n_estimators=int(os.environ.get("XGB_N_ESTIMATORS", "600")),
    learning_rate=float(os.environ.get("XGB_LEARNING_RATE", "0.05")),
    max_depth=int(os.environ.get("XGB_MAX_DEPTH", "6")),
    min_child_weight=float(os.environ.get("XGB_MIN_CHILD_WEIGHT", "1")),
    subsample=float(os.environ.get("XGB_SUBSAMPLE", "0.8")),
    colsample_bytree=float(os.environ.get("XGB_COLSAMPLE_BYTREE", "0.8")),
    reg_lambda=float(os.environ.get("XGB_REG_LAMBDA", "1.0")),
    reg_alpha=float(os.environ.get("XGB_REG_ALPHA", "0.0")),
)
DEFAULT_XGB_TREE_METHOD: str = str(os.environ.get("XGB_TREE_METHOD", "hist"))
DEFAULT_XGB_DEVICE: str = str(os.environ.get("XGB_DEVICE", "cpu"))


# -----------------------------
# Capability the harness consumes
# -----------------------------
@runtime_checkable
class FittedModel(Protocol):
    def predict(self, dataset: Dataset) -> np.ndarray:
        """One float prediction per row of `dataset`, in row order."""
        ...


@runtime_checkable
class RegressionModel(Protocol):
    name: str

    def fit(self, train: Dataset, target_field: str) -> FittedModel:
        """Fit on every field of `train` except `target_field`."""
        ...


def build_preprocessor(numeric_features: List[str], categorical_features: List[str]) -> ColumnTransformer:
    """
    ColumnTransformer preprocessing:
      - Numeric: SimpleImputer(median) + StandardScaler
      - Categorical: OneHotEncoder(handle_unknown="ignore")
    """
    num_pipe = Pipeline(
        steps=[
            ("imputer", SimpleImputer(strategy="median")),
            ("scaler", StandardScaler()),
        ]
    )
    cat_pipe = Pipeline(
        steps=[
            ("imputer", SimpleImputer(strategy="most_frequent")),
            ("onehot", OneHotEncoder(handle_unknown="ignore", sparse_output=False)),
        ]
    )
    return ColumnTransformer(
        transformers=[
            ("num", num_pipe, numeric_features),
            ("cat", cat_pipe, categorical_features),
        ],
        remainder="drop",
        verbose_feature_names_out=False,
    )


@dataclass
class FittedEstimator:
    """A fitted preprocessing + estimator pipeline bound to its feature fields."""

    name: str
    target_field: str
    feature_fields: List[str]
    pipeline: Pipeline

    def predict(self, dataset: Dataset) -> np.ndarray:
        missing = [f for f in self.feature_fields if not dataset.has_field(f)]
        if missing:
            raise SchemaMismatchError(f"Model '{self.name}' was fitted on fields missing from input: {missing}")
        if len(dataset) == 0:
            return np.empty((0,), dtype=float)
        X = dataset.project(self.feature_fields).to_frame()
        return np.asarray(self.pipeline.predict(X), dtype=float).ravel()


@dataclass
class EstimatorModel:
    """Adapts any scikit-learn style regressor to the fit/predict capability."""

    name: str
    estimator: Any

    def fit(self, train: Dataset, target_field: str) -> FittedEstimator:
        if not train.has_field(target_field):
            raise SchemaMismatchError(f"Target field '{target_field}' missing from training data.")
        if len(train) == 0:
            raise EmptyInputError(f"Model '{self.name}' cannot be fitted on an empty training set.")

        features = [f for f in train.fields if f != target_field]
        if not features:
            raise SchemaMismatchError(f"Model '{self.name}' needs at least one feature field.")

        numeric = [f for f in features if train.is_numeric(f)]
        categorical = [f for f in features if f not in numeric]

        pipe = Pipeline(
            steps=[
                ("preprocess", build_preprocessor(numeric, categorical)),
                ("model", clone(self.estimator)),
            ]
        )
        frame = train.to_frame()
        y = frame[target_field].to_numpy(dtype=float)
        pipe.fit(frame[features], y)
        return FittedEstimator(name=self.name, target_field=target_field, feature_fields=features, pipeline=pipe)


# -----------------------------
# Factories
# -----------------------------
def make_baseline() -> EstimatorModel:
    """Predicts the training mean for every row."""
    return EstimatorModel(name="baseline", estimator=DummyRegressor(strategy="mean"))


def make_linear() -> EstimatorModel:
    return EstimatorModel(name="linear", estimator=LinearRegression())


def make_random_forest(
    *,
    seed: int = DEFAULT_SEED,
    n_jobs: int = DEFAULT_N_JOBS,
    params: Optional[Dict[str, Any]] = None,
) -> EstimatorModel:
    p = dict(DEFAULT_RF_PARAMS)
    if params:
        p.update(params)
    est = RandomForestRegressor(random_state=int(seed), n_jobs=int(n_jobs), **p)
    return EstimatorModel(name="random_forest", estimator=est)


def make_xgboost(
    *,
    seed: int = DEFAULT_SEED,
    n_jobs: int = DEFAULT_N_JOBS,
    params: Optional[Dict[str, Any]] = None,
    tree_method: str = DEFAULT_XGB_TREE_METHOD,
    device: str = DEFAULT_XGB_DEVICE,
) -> EstimatorModel:
    p = dict(DEFAULT_XGB_PARAMS)
    if params:
        p.update(params)
    est = XGBRegressor(
        objective="reg:squarederror",
        eval_metric="rmse",
        random_state=int(seed),
        n_jobs=int(n_jobs),
        tree_method=str(tree_method),
        device=str(device),
        verbosity=0,
        **p,
    )
    return EstimatorModel(name="xgboost", estimator=est)


def make_model(kind: str, *, seed: int = DEFAULT_SEED, n_jobs: int = DEFAULT_N_JOBS) -> EstimatorModel:
    if kind == "baseline":
        return make_baseline()
    if kind == "linear":
        return make_linear()
    if kind == "random_forest":
        return make_random_forest(seed=seed, n_jobs=n_jobs)
    if kind == "xgboost":
        return make_xgboost(seed=seed, n_jobs=n_jobs)
    raise ValueError(f"Unknown model kind: {kind}")


def default_models(seed: int = DEFAULT_SEED, n_jobs: int = DEFAULT_N_JOBS) -> Dict[str, EstimatorModel]:
    """The notebook line-up: mean baseline, linear regression, Random Forest, XGBoost."""
    return {k: make_model(k, seed=seed, n_jobs=n_jobs) for k in ("baseline", "linear", "random_forest", "xgboost")}
