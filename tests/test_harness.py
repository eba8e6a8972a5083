from __future__ import annotations

import math

import numpy as np
import pandas as pd
import pytest

from secchi_eval.data import Dataset
from secchi_eval.errors import DivisionByZeroError, EmptyInputError, EvaluationError, SchemaMismatchError
from secchi_eval.harness import compare_models, evaluate
from secchi_eval.models import make_baseline, make_linear
from secchi_eval.splitters import GroupExclusion, RandomFraction, split


def _ten_rows() -> Dataset:
    return Dataset.from_frame(
        pd.DataFrame(
            {
                "green": np.linspace(0.01, 0.10, 10),
                "SDD": np.arange(1, 11, dtype=float),
            }
        )
    )


def _linear_sdd(n: int = 40, n_groups: int = 5) -> Dataset:
    # Noise-free linear relation so a linear model scores perfectly on any split.
    rng = np.random.RandomState(1)
    blue = rng.uniform(0.01, 0.05, size=n)
    red = rng.uniform(0.01, 0.03, size=n)
    return Dataset.from_frame(
        pd.DataFrame(
            {
                "blue": blue,
                "red": red,
                "group": np.arange(n) % n_groups + 1,
                "SDD": 1.0 + 40.0 * blue - 25.0 * red,
            }
        )
    )


class _WrongLength:
    name = "wrong_length"

    def fit(self, train, target_field):
        return self

    def predict(self, dataset):
        return np.zeros(len(dataset) + 1)


class _Recorder:
    """Records what the harness hands to the model."""

    name = "recorder"

    def __init__(self):
        self.fit_fields = None
        self.predict_fields = None

    def fit(self, train, target_field):
        self.fit_fields = train.fields
        self.mean = float(np.mean(train.column(target_field)))
        return self

    def predict(self, dataset):
        self.predict_fields = dataset.fields
        return np.full(len(dataset), self.mean)


def test_mean_predictor_on_ten_rows_matches_hand_computation():
    ds = _ten_rows()
    plan = RandomFraction(fraction=0.2, seed=42)
    res = evaluate(ds, plan, make_baseline(), "SDD", ["green"])

    assert res.n_test == 2
    assert res.n_train == 8

    # Test rows are ids 1 and 8 (SDD 2 and 9); training mean = (55 - 11) / 8 = 5.5.
    assert res.predictions.row_ids.tolist() == [1, 8]
    assert res.predictions.observed.tolist() == [2.0, 9.0]
    assert res.predictions.predicted.tolist() == pytest.approx([5.5, 5.5])
    assert res.metrics.rmse == pytest.approx(3.5)
    assert res.metrics.mape == pytest.approx(77.0 / 72.0)


def test_mean_predictor_rmse_is_population_std_around_training_mean():
    ds = _ten_rows()
    plan = RandomFraction(fraction=0.2, seed=42)
    s = split(ds, plan)
    train_mean = float(np.mean(s.train.column("SDD")))
    held_out = s.test.column("SDD")
    expected = math.sqrt(sum((v - train_mean) ** 2 for v in held_out) / len(held_out))

    res = evaluate(ds, plan, make_baseline(), "SDD", ["green"])
    assert res.metrics.rmse == pytest.approx(expected)


def test_group_exclusion_end_to_end():
    ds = _linear_sdd(40, n_groups=5)
    res = evaluate(ds, GroupExclusion(group_field="group", excluded_group_value=5), make_linear(), "SDD", ["blue", "red"])

    assert res.n_train == 8
    assert res.n_test == 32
    assert res.n_train + res.n_test == len(ds)
    assert res.metrics.rmse == pytest.approx(0.0, abs=1e-8)
    assert res.metrics.mape == pytest.approx(0.0, abs=1e-8)


def test_harness_projects_onto_target_and_features():
    ds = _linear_sdd()
    rec = _Recorder()
    evaluate(ds, RandomFraction(fraction=0.25, seed=0), rec, "SDD", ["red"])
    assert rec.fit_fields == ["SDD", "red"]
    assert rec.predict_fields == ["red"]


def test_runs_are_isolated_and_repeatable():
    ds = _linear_sdd()
    plan = RandomFraction(fraction=0.25, seed=3)
    model = make_baseline()
    a = evaluate(ds, plan, model, "SDD", ["blue", "red"])
    b = evaluate(ds, plan, model, "SDD", ["blue", "red"])
    assert a.metrics == b.metrics
    assert a.predictions.row_ids.tolist() == b.predictions.row_ids.tolist()
    assert a.fitted_model is not b.fitted_model


@pytest.mark.parametrize(
    "target, features",
    [
        ("SDD", ["nir"]),
        ("secchi", ["blue"]),
        ("SDD", []),
        ("SDD", ["blue", "blue"]),
        ("SDD", ["SDD", "blue"]),
    ],
)
def test_field_validation(target, features):
    with pytest.raises(SchemaMismatchError):
        evaluate(_linear_sdd(), RandomFraction(fraction=0.2, seed=0), make_baseline(), target, features)


def test_prediction_count_mismatch_is_reported():
    with pytest.raises(SchemaMismatchError):
        evaluate(_linear_sdd(), RandomFraction(fraction=0.2, seed=0), _WrongLength(), "SDD", ["blue"])


def test_empty_training_split_fails_before_fitting():
    rec = _Recorder()
    with pytest.raises(EmptyInputError):
        evaluate(_linear_sdd(), GroupExclusion(group_field="group", excluded_group_value=42), rec, "SDD", ["blue"])
    assert rec.fit_fields is None


def test_empty_test_split():
    ds = Dataset.from_frame(pd.DataFrame({"blue": [0.1, 0.2, 0.3], "SDD": [1.0, 2.0, 3.0]}))
    with pytest.raises(EmptyInputError):
        evaluate(ds, RandomFraction(fraction=0.2, seed=0), make_baseline(), "SDD", ["blue"])


def test_zero_observation_policy_flows_through():
    df = _ten_rows().to_frame()
    df["SDD"] = 0.0
    ds = Dataset.from_frame(df)
    plan = RandomFraction(fraction=0.2, seed=42)

    with pytest.raises(DivisionByZeroError):
        evaluate(ds, plan, make_baseline(), "SDD", ["green"])
    res = evaluate(ds, plan, make_baseline(), "SDD", ["green"], zero_policy="epsilon")
    assert res.metrics.rmse == 0.0


def test_missing_target_values_are_rejected():
    df = _ten_rows().to_frame()
    df.loc[0, "SDD"] = np.nan
    with pytest.raises(EvaluationError):
        evaluate(Dataset.from_frame(df), RandomFraction(fraction=0.2, seed=42), make_baseline(), "SDD", ["green"])


def test_compare_models_table():
    ds = _linear_sdd()
    plans = {
        "random": RandomFraction(fraction=0.25, seed=0),
        "group": GroupExclusion(group_field="group", excluded_group_value=5),
    }
    models = {"baseline": make_baseline(), "linear": make_linear()}
    results, table = compare_models(ds, plans, models, "SDD", ["blue", "red"])

    assert set(results) == {("random", "baseline"), ("random", "linear"), ("group", "baseline"), ("group", "linear")}
    assert table.columns.tolist() == ["plan", "model", "n_train", "n_test", "rmse", "mape", "mae"]
    assert len(table) == 4
    lin = table[(table["plan"] == "random") & (table["model"] == "linear")].iloc[0]
    base = table[(table["plan"] == "random") & (table["model"] == "baseline")].iloc[0]
    assert lin["rmse"] < base["rmse"]


def test_result_to_dict_is_plain_data():
    res = evaluate(_ten_rows(), RandomFraction(fraction=0.2, seed=42), make_baseline(), "SDD", ["green"])
    d = res.to_dict()
    assert d["plan"] == {"kind": "random_fraction", "fraction": 0.2, "seed": 42}
    assert d["model"] == "baseline"
    assert d["n_test"] == 2
    assert d["metrics"]["rmse"] == pytest.approx(3.5)
    assert d["label"] == "random_f0.2_s42__baseline"
