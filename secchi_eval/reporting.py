# secchi_eval/reporting.py
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd
from joblib import dump, load

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from .harness import EvaluationResult


logger = logging.getLogger(__name__)


def _ensure_outdirs(outdir: str) -> Dict[str, Path]:
    base = Path(outdir)
    paths = {
        "base": base,
        "metrics": base / "metrics",
        "predictions": base / "predictions",
        "models": base / "models",
        "plots": base / "plots",
    }
    for p in paths.values():
        p.mkdir(parents=True, exist_ok=True)
    return paths


def save_json(obj: Any, path: str) -> str:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "w", encoding="utf-8") as f:
        json.dump(obj, f, indent=2)
    return str(p)


def save_result(result: EvaluationResult, outdir: str, *, save_model: bool = False) -> Dict[str, str]:
    """Write metrics JSON, predictions CSV and (optionally) the fitted model for one run."""
    paths = _ensure_outdirs(outdir)
    name = result.label

    out = {
        "metrics": save_json(result.to_dict(), str(paths["metrics"] / f"{name}.json")),
    }

    pred_path = paths["predictions"] / f"{name}.csv"
    result.predictions.to_frame().to_csv(pred_path, index=False)
    out["predictions"] = str(pred_path)

    if save_model:
        if result.fitted_model is None:
            raise ValueError(f"Result '{name}' carries no fitted model to save.")
        model_path = paths["models"] / f"{name}.joblib"
        dump(result.fitted_model, str(model_path))
        out["model"] = str(model_path)

    logger.debug("Saved %s -> %s", name, out)
    return out


def load_model(path: str) -> Any:
    return load(path)


def save_comparison(table: pd.DataFrame, outdir: str) -> Dict[str, str]:
    paths = _ensure_outdirs(outdir)
    csv_path = paths["metrics"] / "comparison.csv"
    table.to_csv(csv_path, index=False)
    json_path = save_json(json.loads(table.to_json(orient="records")), str(paths["metrics"] / "comparison.json"))
    return {"csv": str(csv_path), "json": json_path}


def plot_predictions(result: EvaluationResult, path: Optional[str] = None, *, outdir: str = "outputs") -> str:
    """Observed vs predicted scatter with the 1:1 line."""
    if path is None:
        path = str(_ensure_outdirs(outdir)["plots"] / f"{result.label}.png")
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    obs = result.predictions.observed
    pred = result.predictions.predicted
    lo = float(np.min([obs.min(), pred.min()]))
    hi = float(np.max([obs.max(), pred.max()]))

    fig, ax = plt.subplots(figsize=(5, 5))
    ax.scatter(obs, pred, s=12, alpha=0.6)
    ax.plot([lo, hi], [lo, hi], color="black", linewidth=1)
    ax.set_xlabel(f"Observed {result.target_field}")
    ax.set_ylabel(f"Predicted {result.target_field}")
    ax.set_title(
        f"{result.model_name}: RMSE={result.metrics.rmse:.3f}, MAPE={100.0 * result.metrics.mape:.1f}%"
    )
    ax.grid(True)
    fig.tight_layout()
    fig.savefig(p, dpi=120)
    plt.close(fig)
    return str(p)
