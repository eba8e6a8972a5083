from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from secchi_eval.data import Dataset, coerce_group_value, infer_feature_fields, read_dataset
from secchi_eval.errors import SchemaMismatchError


def _toy_frame(n: int = 12) -> pd.DataFrame:
    rng = np.random.RandomState(0)
    return pd.DataFrame(
        {
            "blue": rng.uniform(0.01, 0.05, size=n),
            "green": rng.uniform(0.02, 0.08, size=n),
            "part": np.arange(n) % 3 + 1,
            "site": [f"s{i % 4}" for i in range(n)],
            "SDD": rng.uniform(0.5, 6.0, size=n),
        }
    )


def test_from_frame_assigns_positional_row_ids():
    ds = Dataset.from_frame(_toy_frame(5).set_index(pd.Index([10, 11, 12, 13, 14])))
    assert ds.row_ids.tolist() == [0, 1, 2, 3, 4]
    assert len(ds) == 5
    assert ds.fields == ["blue", "green", "part", "site", "SDD"]


def test_dataset_cannot_be_mutated_through_its_views():
    df = _toy_frame(4)
    ds = Dataset.from_frame(df)

    df.loc[0, "SDD"] = -1.0
    ds.to_frame().loc[0, "SDD"] = -2.0
    col = ds.column("SDD")
    col[0] = -3.0

    assert ds.column("SDD")[0] > 0
    with pytest.raises(AttributeError):
        ds._frame = df  # type: ignore[misc]


def test_take_where_project_keep_row_ids():
    ds = Dataset.from_frame(_toy_frame(6))
    sub = ds.take([4, 1])
    assert sub.row_ids.tolist() == [4, 1]

    mask = ds.column("part") == 1
    only1 = ds.where(mask)
    assert set(only1.column("part").tolist()) == {1}
    assert only1.row_ids.tolist() == [0, 3]

    proj = ds.project(["SDD", "blue"])
    assert proj.fields == ["SDD", "blue"]
    assert len(proj) == len(ds)


def test_project_unknown_field_raises():
    ds = Dataset.from_frame(_toy_frame(3))
    with pytest.raises(SchemaMismatchError):
        ds.project(["SDD", "nir"])


def test_duplicate_field_names_rejected():
    df = pd.DataFrame([[1.0, 2.0]], columns=["a", "a"])
    with pytest.raises(SchemaMismatchError):
        Dataset.from_frame(df)


def test_repeated_row_ids_rejected():
    df = _toy_frame(10)
    df.index = pd.Index([0, 0, 1, 1, 2, 2, 3, 3, 4, 4], name="row_id")
    with pytest.raises(SchemaMismatchError):
        Dataset(df)


def test_dropna_on_subset():
    df = _toy_frame(4)
    df.loc[2, "SDD"] = np.nan
    df.loc[3, "site"] = None
    ds = Dataset.from_frame(df)
    assert ds.dropna(["SDD"]).row_ids.tolist() == [0, 1, 3]
    assert len(ds.dropna()) == 2


def test_infer_feature_fields_skips_target_group_and_text():
    ds = Dataset.from_frame(_toy_frame())
    assert infer_feature_fields(ds, "SDD", exclude=["part"]) == ["blue", "green"]


def test_coerce_group_value_matches_column_dtype():
    ds = Dataset.from_frame(_toy_frame())
    assert coerce_group_value(ds, "part", "2") == 2
    assert isinstance(coerce_group_value(ds, "part", "2"), int)
    assert coerce_group_value(ds, "site", "s1") == "s1"


def test_read_dataset_roundtrip_and_missing(tmp_path):
    p = tmp_path / "sdd.csv"
    _toy_frame(7).to_csv(p, index=False)
    ds = read_dataset(str(p))
    assert len(ds) == 7
    assert "SDD" in ds.fields

    with pytest.raises(FileNotFoundError):
        read_dataset(str(tmp_path / "nope.csv"))
