"""Demo script for the orthomosaic pipeline with synthetic data.

This script writes a small synthetic survey (one LAS scan of a straight
road with kerbs and a few poles, plus its trajectory) and runs the
pipeline on it in both modes.

Usage:
    python examples/demo_orthomosaic.py
"""

import sys
from pathlib import Path

import numpy as np
import pandas as pd
import yaml

from tileortho.common.lidar_io import write_las
from tileortho.engine.types import PointCloud
from tileortho.mosaic.pipeline import main as run_pipeline


def create_synthetic_survey(
    survey_dir: Path,
    road_length: float = 80.0,
    spacing: float = 0.25,
    origin: tuple = (100000.0, 450000.0),
) -> Path:
    """Write a survey directory holding one scan and its trajectory.

    Parameters
    ----------
    survey_dir : Path
        Directory to create.
    road_length : float
        Length of the road along X in metres.
    spacing : float
        Point spacing of the road surface.
    origin : tuple
        Survey origin (x, y).

    Returns
    -------
    Path
        The survey directory.
    """
    print("Creating synthetic survey...")
    rng = np.random.default_rng(0)
    (survey_dir / "scans").mkdir(parents=True, exist_ok=True)
    (survey_dir / "trajectories").mkdir(parents=True, exist_ok=True)

    # Road surface with a slight slope and lane markings
    gx, gy = np.meshgrid(np.arange(0.0, road_length, spacing), np.arange(-6.0, 6.0, spacing))
    x_road, y_road = gx.ravel(), gy.ravel()
    z_road = 0.01 * x_road + rng.normal(0, 0.005, len(x_road))
    marking = (np.abs(y_road) < 0.15) & ((x_road % 6.0) < 3.0)
    intensity_road = np.where(marking, rng.uniform(200, 255, len(x_road)), rng.uniform(20, 50, len(x_road)))
    class_road = np.full(len(x_road), 11)
    print(f"  - Road points: {len(x_road):,}")

    # Poles every 20 m on the verge
    n_pole = 400
    x_poles = np.concatenate([rng.normal(px, 0.1, n_pole) for px in np.arange(10.0, road_length, 20.0)])
    y_poles = rng.normal(7.0, 0.1, len(x_poles))
    z_poles = rng.uniform(0, 8, len(x_poles))
    print(f"  - Pole points: {len(x_poles):,}")

    x = np.concatenate([x_road, x_poles]) + origin[0]
    y = np.concatenate([y_road, y_poles]) + origin[1]
    z = np.concatenate([z_road, z_poles])
    intensity = np.concatenate([intensity_road, rng.uniform(100, 150, len(x_poles))])
    grey = np.clip(intensity, 60, 230).astype(np.uint8)
    cloud = PointCloud(
        xyz=np.column_stack([x, y, z]),
        intensity=intensity,
        rgb=np.column_stack([grey, grey, grey]),
        classification=np.concatenate([class_road, np.full(len(x_poles), 15)]),
        name="run1",
    )
    write_las(cloud, survey_dir / "scans" / "run1.las")

    xt = np.arange(0.0, road_length, 1.0)
    pd.DataFrame({
        "x": xt + origin[0],
        "y": np.full(len(xt), origin[1] + 2.0),
        "z": 0.01 * xt + 2.1,
    }).to_csv(survey_dir / "trajectories" / "run1.csv", index=False)

    manifest = {"clouds": ["scans/run1.las"], "trajectories": ["trajectories/run1.csv"]}
    with open(survey_dir / "survey.yaml", "w", encoding="utf-8") as f:
        yaml.safe_dump(manifest, f)

    print(f"✓ Created {len(cloud):,} points in {survey_dir}")
    return survey_dir


def main():
    """Run the demo in LIDAR mode and in image mode."""
    print("="*70)
    print("Orthomosaic Pipeline - Demo")
    print("="*70)
    print()

    output_dir = Path("output/demo_orthomosaic")
    survey_dir = create_synthetic_survey(output_dir / "survey")
    print()

    lidar_code = run_pipeline([
        str(survey_dir),
        "--mode", "lidar",
        "--output-prefix", str(output_dir / "lidar" / "ortho"),
        "--texel-size", "0.05",
        "--representation", "by_class",
        "--export", "parquet",
    ])
    image_code = run_pipeline([
        str(survey_dir),
        "--mode", "image",
        "--output-prefix", str(output_dir / "image" / "ortho"),
        "--texel-size", "0.05",
        "--mesh-size", "0.25",
    ])

    print()
    print("="*70)
    print("Demo Complete!")
    print("="*70)
    print()
    for mode, code in (("lidar", lidar_code), ("image", image_code)):
        n_tiles = len(list((output_dir / mode).glob("ortho_*.jpg")))
        print(f"  • {mode}: exit code {code}, {n_tiles} orthoimages in {output_dir / mode}")
    print(f"  • Tile index: {output_dir / 'lidar' / 'ortho_tiles.parquet'}")
    print()

    return max(lidar_code, image_code)


if __name__ == "__main__":
    sys.exit(main())
