# secchi_eval/cli.py
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .config import (
    DEFAULT_DATA_PATH,
    DEFAULT_EXCLUDED_GROUP,
    DEFAULT_GROUP_FIELD,
    DEFAULT_N_JOBS,
    DEFAULT_OUTDIR,
    DEFAULT_SEED,
    DEFAULT_TARGET,
    DEFAULT_TEST_FRACTION,
    DEFAULT_ZERO_POLICY,
    MODEL_KINDS,
    SPLIT_KINDS,
    ZERO_POLICIES,
    EvaluationConfig,
    parse_feature_list,
)
from .data import Dataset, coerce_group_value, infer_feature_fields, read_dataset
from .errors import EvaluationError
from .harness import compare_models, evaluate
from .models import default_models, make_model
from .reporting import plot_predictions, save_comparison, save_json, save_result
from .splitters import GroupExclusion, GroupShuffle, RandomFraction, SplitPlan


logger = logging.getLogger(__name__)


def _config_from_args(args: argparse.Namespace) -> EvaluationConfig:
    return EvaluationConfig(
        data=args.data,
        outdir=args.outdir,
        target=args.target,
        features=parse_feature_list(args.features),
        seed=int(args.seed),
        n_jobs=int(args.n_jobs),
        split=getattr(args, "split", "random"),
        fraction=float(args.fraction),
        group_field=args.group_field,
        excluded_group=str(args.excluded_group),
        model=getattr(args, "model", "random_forest"),
        zero_policy=args.zero_policy,
        save_model=bool(getattr(args, "save_model", False)),
        plot=bool(getattr(args, "plot", False)),
        include_group_shuffle=bool(getattr(args, "include_group_shuffle", False)),
    )


def _load(cfg: EvaluationConfig, *, need_group: bool) -> tuple:
    """Read the CSV, resolve feature fields and drop rows with missing values in the used columns."""
    dataset = read_dataset(cfg.data)

    exclude = [cfg.group_field] if dataset.has_field(cfg.group_field) else []
    features = list(cfg.features) or infer_feature_fields(dataset, cfg.target, exclude=exclude)

    used = [cfg.target] + features
    if need_group:
        used.append(cfg.group_field)
    used = [c for c in dict.fromkeys(used) if dataset.has_field(c)]

    clean = dataset.dropna(used)
    if len(clean) < len(dataset):
        logger.warning(
            "Dropped %d rows with missing values in %s (applies to every split of this run)",
            len(dataset) - len(clean),
            used,
        )
    return clean, features


def _make_plan(kind: str, cfg: EvaluationConfig, dataset: Dataset) -> SplitPlan:
    if kind == "random":
        return RandomFraction(fraction=cfg.fraction, seed=cfg.seed)
    if kind == "group-exclusion":
        value = (
            coerce_group_value(dataset, cfg.group_field, cfg.excluded_group)
            if dataset.has_field(cfg.group_field)
            else cfg.excluded_group
        )
        return GroupExclusion(group_field=cfg.group_field, excluded_group_value=value)
    if kind == "group-shuffle":
        return GroupShuffle(group_field=cfg.group_field, fraction=cfg.fraction, seed=cfg.seed)
    raise ValueError(f"Unknown split kind: {kind}")


def cmd_evaluate(args: argparse.Namespace) -> None:
    cfg = _config_from_args(args)
    dataset, features = _load(cfg, need_group=cfg.split != "random")

    plan = _make_plan(cfg.split, cfg, dataset)
    model = make_model(cfg.model, seed=cfg.seed, n_jobs=cfg.n_jobs)

    result = evaluate(dataset, plan, model, cfg.target, features, zero_policy=cfg.zero_policy)
    paths = save_result(result, cfg.outdir, save_model=cfg.save_model)
    if cfg.plot:
        paths["plot"] = plot_predictions(result, outdir=cfg.outdir)

    m = result.metrics
    print(f"{result.model_name} on {cfg.split} split: n_train={result.n_train} n_test={result.n_test}")
    print(f"  RMSE: {m.rmse:.4f}")
    print(f"  MAPE: {100.0 * m.mape:.2f}%")
    print(f"  MAE:  {m.mae:.4f}")
    print(f"Metrics saved to: {paths['metrics']}")


def cmd_compare(args: argparse.Namespace) -> None:
    cfg = _config_from_args(args)
    dataset, features = _load(cfg, need_group=True)

    kinds: List[str] = ["random", "group-exclusion"]
    if cfg.include_group_shuffle:
        kinds.append("group-shuffle")
    plans: Dict[str, SplitPlan] = {k: _make_plan(k, cfg, dataset) for k in kinds}

    results, table = compare_models(
        dataset,
        plans,
        default_models(seed=cfg.seed, n_jobs=cfg.n_jobs),
        cfg.target,
        features,
        zero_policy=cfg.zero_policy,
    )
    for res in results.values():
        save_result(res, cfg.outdir, save_model=cfg.save_model)
    out = save_comparison(table, cfg.outdir)
    save_json(
        {"comparison_csv": out["csv"], "comparison_json": out["json"], "features": features, "target": cfg.target},
        str(Path(cfg.outdir) / "run_manifest.json"),
    )

    print(table.to_string(index=False, float_format=lambda v: f"{v:.4f}"))
    print(f"Comparison saved to: {out['csv']}")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Secchi Disk Depth evaluation harness (evaluate / compare).")
    p.add_argument("--data", type=str, default=DEFAULT_DATA_PATH, help="Path to CSV dataset.")
    p.add_argument("--outdir", type=str, default=DEFAULT_OUTDIR, help="Output directory root.")
    p.add_argument("--target", type=str, default=DEFAULT_TARGET, help="Target field (Secchi Disk Depth).")
    p.add_argument("--features", type=str, default=None, help="Comma separated feature fields (default: all numeric).")
    p.add_argument("--seed", type=int, default=DEFAULT_SEED, help="Random seed for splits and models.")
    p.add_argument("--n-jobs", dest="n_jobs", type=int, default=DEFAULT_N_JOBS, help="Model n_jobs.")
    p.add_argument("--fraction", type=float, default=DEFAULT_TEST_FRACTION, help="Test fraction for random/group-shuffle splits.")
    p.add_argument("--group-field", dest="group_field", type=str, default=DEFAULT_GROUP_FIELD, help="Spatial partition field.")
    p.add_argument("--excluded-group", dest="excluded_group", type=str, default=DEFAULT_EXCLUDED_GROUP, help="Group used for training by the group-exclusion split.")
    p.add_argument("--zero-policy", dest="zero_policy", type=str, default=DEFAULT_ZERO_POLICY, choices=list(ZERO_POLICIES), help="MAPE handling of zero observations.")
    p.add_argument("--save-model", dest="save_model", action="store_true", help="Dump fitted models with joblib.")
    p.add_argument("--log-level", dest="log_level", type=str, default="WARNING", help="Logging level.")

    sub = p.add_subparsers(dest="command")

    e = sub.add_parser("evaluate", help="Evaluate one model under one split strategy.")
    e.add_argument("--model", type=str, default="random_forest", choices=list(MODEL_KINDS), help="Model to fit.")
    e.add_argument("--split", type=str, default="random", choices=list(SPLIT_KINDS), help="Split strategy.")
    e.add_argument("--plot", action="store_true", help="Save an observed-vs-predicted plot.")
    e.set_defaults(func=cmd_evaluate)

    c = sub.add_parser(
        "compare",
        help=(
            "Evaluate every model under random and group-exclusion splits. Rows missing the group field "
            "are dropped before any split, so every run (random included) sees the same rows."
        ),
    )
    c.add_argument("--include-group-shuffle", dest="include_group_shuffle", action="store_true", help="Also run a group-aware shuffle split.")
    c.set_defaults(func=cmd_compare)

    return p


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not getattr(args, "command", None):
        args.command = "compare"
        args.func = cmd_compare

    try:
        args.func(args)
    except EvaluationError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    return 0
