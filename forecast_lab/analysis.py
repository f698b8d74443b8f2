from __future__ import annotations

import json
from pathlib import Path

import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns

from .database import Database


def visualize_history(df: pd.DataFrame, output_dir: Path) -> list[Path]:
    """Saves plots of best MSE and diversity per generation, one line per run."""
    if df.empty:
        return []

    output_dir.mkdir(exist_ok=True)
    print(f"\n--- Generating Visualizations in {output_dir} ---")
    saved: list[Path] = []

    # 1. Best MSE per generation
    plt.figure(figsize=(12, 7))
    sns.lineplot(data=df.dropna(subset=["best_mse"]), x="generation", y="best_mse", hue="run_id", marker="o")
    plt.title("Best MSE per Generation", fontsize=16)
    plt.xlabel("Generation")
    plt.ylabel("MSE")
    plt.grid(True)
    mse_path = output_dir / "best_mse.png"
    plt.savefig(mse_path)
    plt.close()
    saved.append(mse_path)
    print(f"Saved best MSE plot to {mse_path}")

    # 2. Diversity (convergence metric)
    plt.figure(figsize=(12, 7))
    sns.lineplot(data=df, x="generation", y="diversity", hue="run_id", marker="o")
    plt.title("Population Diversity per Generation", fontsize=16)
    plt.xlabel("Generation")
    plt.ylabel("Mean distance from centroid")
    plt.grid(True)
    diversity_path = output_dir / "diversity.png"
    plt.savefig(diversity_path)
    plt.close()
    saved.append(diversity_path)
    print(f"Saved diversity plot to {diversity_path}")

    # 3. Winning feature parameters
    param_cols = [c for c in df.columns if c.startswith("params.")]
    if param_cols:
        melted = df.melt(id_vars=["run_id", "generation"], value_vars=param_cols, var_name="param")
        plt.figure(figsize=(12, 7))
        sns.boxplot(data=melted.dropna(), x="param", y="value", color="skyblue")
        plt.title("Feature Parameters of Generation Winners", fontsize=16)
        plt.xticks(rotation=30, ha="right")
        params_path = output_dir / "winner_params.png"
        plt.savefig(params_path, bbox_inches="tight")
        plt.close()
        saved.append(params_path)
        print(f"Saved parameter plot to {params_path}")

    return saved


def expand_params(df: pd.DataFrame) -> pd.DataFrame:
    if df.empty or "params" not in df.columns:
        return df
    parsed = df["params"].apply(lambda raw: json.loads(raw) if raw else {})
    normalized = pd.json_normalize(parsed.tolist()).add_prefix("params.")
    normalized.index = df.index
    return df.drop("params", axis=1).join(normalized)


def view_history(
    db: Database,
    pair: str,
    visualize: bool = False,
    output_dir: Path = Path("analysis_plots"),
) -> pd.DataFrame:
    """Prints the model slots and generation history of a pair."""
    print(f"--- Model slots for {pair} ---")
    models_df = db.get_model_summaries(pair)
    print(models_df if not models_df.empty else "No models found in the database.")

    print(f"\n--- Generation history for {pair} ---")
    history_df = expand_params(db.load_generations(pair))
    if history_df.empty:
        print("No training runs found in the database.")
        return history_df

    pd.set_option("display.max_columns", 50)
    pd.set_option("display.width", 250)
    print(history_df)

    if visualize:
        visualize_history(history_df, output_dir)
    return history_df
