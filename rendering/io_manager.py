"""Data I/O manager: persist render results as NumPy arrays.

Saves and loads framebuffers and surface caches so that images can be
re-plotted without re-running the passes.

File layout under output_dir/:
    framebuffers/<label>.npy    Linear RGB framebuffer, shape (H, W, 3)
    irradiance/<object>.npy     Irradiance cache, shape (v_res, h_res, 3)
    angles/<object>.npy         Center-cell exit radiance, shape (vA, hA, 3)
    metadata.json               Run metadata and per-pass statistics
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import numpy as np

logger = logging.getLogger(__name__)

_GROUPS = ("framebuffers", "irradiance", "angles")


def save_results(
    output_dir: Path | str,
    framebuffers: dict[str, np.ndarray],
    irradiance: dict[str, np.ndarray],
    angles: dict[str, np.ndarray],
    metadata: dict,
) -> list[Path]:
    """Save render results to disk as NumPy arrays + JSON.

    Parameters
    ----------
    output_dir : Path or str
        Output directory (created if needed).
    framebuffers : dict[str, np.ndarray]
        Eye pass images keyed by label.
    irradiance : dict[str, np.ndarray]
        Irradiance caches keyed by object name.
    angles : dict[str, np.ndarray]
        Exit-radiance buckets keyed by object name.
    metadata : dict
        Run metadata.

    Returns
    -------
    list[Path]
        Paths to all saved files.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    saved: list[Path] = []

    for group, arrays in zip(_GROUPS, (framebuffers, irradiance, angles)):
        if not arrays:
            continue
        group_dir = output_dir / group
        group_dir.mkdir(exist_ok=True)
        for name, arr in arrays.items():
            path = group_dir / f"{name}.npy"
            np.save(path, arr)
            saved.append(path)
            logger.debug("Saved %s/%s: shape=%s, dtype=%s", group, path.name, arr.shape, arr.dtype)

    meta_path = output_dir / "metadata.json"
    safe_meta = _sanitize_for_json(metadata)
    with open(meta_path, "w", encoding="utf-8") as f:
        json.dump(safe_meta, f, indent=2, ensure_ascii=False)
    saved.append(meta_path)

    logger.info(
        "Saved %d files to %s (%d framebuffers, %d irradiance maps, %d angle maps)",
        len(saved), output_dir, len(framebuffers), len(irradiance), len(angles),
    )

    return saved


def load_results(
    output_dir: Path | str,
) -> dict[str, dict]:
    """Load previously saved render results.

    Parameters
    ----------
    output_dir : Path or str
        Directory containing saved results.

    Returns
    -------
    dict
        Keys: 'framebuffers', 'irradiance', 'angles' (each a name → array
        mapping) and 'metadata'.

    Raises
    ------
    FileNotFoundError
        If ``output_dir`` does not exist.
    """
    output_dir = Path(output_dir)

    if not output_dir.exists():
        raise FileNotFoundError(f"Output directory not found: {output_dir}")

    data: dict = {}

    for group in _GROUPS:
        group_dir = output_dir / group
        data[group] = {}
        if not group_dir.is_dir():
            logger.warning("Missing directory: %s", group_dir)
            continue
        for path in sorted(group_dir.glob("*.npy")):
            data[group][path.stem] = np.load(path)
            logger.debug("Loaded %s/%s: shape=%s", group, path.stem, data[group][path.stem].shape)

    meta_path = output_dir / "metadata.json"
    if meta_path.exists():
        with open(meta_path, "r", encoding="utf-8") as f:
            data["metadata"] = json.load(f)
    else:
        data["metadata"] = {}

    logger.info(
        "Loaded results from %s (%d framebuffers)", output_dir, len(data["framebuffers"])
    )

    return data


def _sanitize_for_json(obj: object) -> object:
    """Recursively convert NumPy types and other non-JSON types to Python natives."""
    if isinstance(obj, dict):
        return {str(k): _sanitize_for_json(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_sanitize_for_json(v) for v in obj]
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.floating):
        return float(obj)
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, Path):
        return str(obj)
    return obj
