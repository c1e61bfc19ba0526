"""
Synthetic dataset generator for local exports.

Writes deterministic pseudo-random items into the local storage layout read by
`LocalDatasetSource` (`<storage>/datasets/<dataset_id>/000000001.json`, ...),
so an export can be exercised end to end with `DATA_SOURCE=local`.
"""

from __future__ import annotations

import json
import random
import sys
import time
from datetime import UTC, datetime
from pathlib import Path

import typer

app = typer.Typer(help="Generate a synthetic local dataset for export runs.")


def _generate_item(rng: random.Random, index: int, now: str) -> dict:
    item = {
        "url": f"https://example.com/products/{index}",
        "title": rng.choice(["Lamp", "Chair", "Desk", "Shelf"]) + f" #{index}",
        "category": rng.choice(["alpha", "beta", "gamma", "delta"]),
        "price": round(rng.uniform(1, 10_000), 2),
        "inStock": rng.choice([True, False]),
        "scrapedAt": now,
        "meta": {"session": rng.randint(1, 1_000_000)},
        "#debug": {"requestId": rng.randint(1, 1_000_000)},
    }
    # Sparse column, so row-groups end up with missing fields
    if rng.random() < 0.3:
        item["description"] = rng.choice(["O'Brien's pick", "C:\\path\\to\\file", "plain"])
    return item


def write_dataset(storage_dir: Path, dataset_id: str, items: int, seed: int) -> Path:
    """Write `items` records for `dataset_id`; return the dataset directory."""
    rng = random.Random(seed)
    now = datetime.now(UTC).isoformat()
    dataset_dir = storage_dir / "datasets" / dataset_id
    dataset_dir.mkdir(parents=True, exist_ok=True)
    for stale in dataset_dir.glob("*.json"):
        stale.unlink()

    for index in range(items):
        path = dataset_dir / f"{index + 1:09d}.json"
        with path.open("w", encoding="utf-8") as f:
            json.dump(_generate_item(rng, index, now), f)
    return dataset_dir


@app.command()
def main(
    items: int = typer.Option(10_000, "--items", "-n", help="Number of items to generate."),
    dataset_id: str = typer.Option("default", "--dataset-id", "-d", help="Dataset id."),
    storage_dir: Path = typer.Option(Path("storage"), "--storage-dir", help="Storage root."),
    seed: int = typer.Option(42, "--seed", help="Deterministic RNG seed."),
) -> None:
    """
    Generate synthetic items into the local storage directory.
    """
    start = time.perf_counter()
    typer.echo(f"Generating {items:,} items -> {storage_dir}/datasets/{dataset_id} (seed={seed})")
    write_dataset(storage_dir, dataset_id, items=items, seed=seed)
    duration = time.perf_counter() - start
    rate = items / duration if duration > 0 else float(items)
    typer.echo(f"Generation completed in {duration:.2f}s ({rate:,.0f} items/s)")


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
