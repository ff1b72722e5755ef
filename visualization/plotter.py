"""Visualization module for framebuffers and surface caches.

Generates figures using matplotlib:
- Eye pass framebuffers (clamped linear RGB)
- Irradiance cache maps per object (v × h grid, magma colormap)
- Exit-radiance bucket maps for one cell (theta × phi)
- Ray counts per pass (stacked bars)
"""

from __future__ import annotations

import logging
from pathlib import Path

import matplotlib

matplotlib.use("Agg")  # Non-interactive backend for headless rendering

import matplotlib.pyplot as plt
import numpy as np

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Color Configuration
# ---------------------------------------------------------------------------

_IRRADIANCE_CMAP = "magma"
_FACE_COLOR = "#1a1a2e"
_DPI = 150
_STAT_KEYS = ("origin", "reflection", "refraction", "diffuse", "no_hit", "weak", "overflow")
_STAT_COLORS = ("#748ffc", "#51cf66", "#69db7c", "#ffd43b", "#ff6b6b", "#e599f7", "#adb5bd")


def _style_axes(ax: plt.Axes, title: str) -> None:
    ax.set_title(title, fontsize=12, fontweight="bold", color="white")
    ax.tick_params(colors="white")
    for spine in ax.spines.values():
        spine.set_edgecolor("#444")


def _save(fig: plt.Figure, output_path: Path | str | None, dpi: int, what: str) -> None:
    if output_path is not None:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(output_path, dpi=dpi, facecolor=fig.get_facecolor())
        logger.info("%s saved: %s", what, output_path)
    plt.close(fig)


def to_display_rgb(image: np.ndarray) -> np.ndarray:
    """Clamp linear RGB to [0, 1] for display."""
    return np.clip(np.asarray(image, dtype=np.float64), 0.0, 1.0)


def luminance(image: np.ndarray) -> np.ndarray:
    """Rec. 709 luminance of an (..., 3) RGB array."""
    return image[..., 0] * 0.2126 + image[..., 1] * 0.7152 + image[..., 2] * 0.0722


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def plot_framebuffer(
    framebuffer: np.ndarray,
    title: str = "Framebuffer",
    output_path: Path | str | None = None,
    dpi: int = _DPI,
) -> plt.Figure:
    """Plot an eye pass framebuffer.

    Parameters
    ----------
    framebuffer : np.ndarray
        Linear RGB image. Shape: (height, width, 3).
    title : str
        Figure title.
    output_path : Path or str, optional
        If provided, save figure to this path.
    dpi : int
        Figure resolution.

    Returns
    -------
    matplotlib.figure.Figure
        The generated figure.
    """
    height, width = framebuffer.shape[:2]
    fig, ax = plt.subplots(1, 1, figsize=(8, 8 * height / width + 0.6), facecolor=_FACE_COLOR)
    ax.imshow(to_display_rgb(framebuffer), interpolation="nearest")
    ax.set_axis_off()
    _style_axes(ax, title)
    fig.tight_layout()
    _save(fig, output_path, dpi, "Framebuffer")
    return fig


def save_image(framebuffer: np.ndarray, output_path: Path | str) -> Path:
    """Write a framebuffer pixel-for-pixel (no axes), clamped to [0, 1]."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    plt.imsave(output_path, to_display_rgb(framebuffer))
    logger.info("Image saved: %s", output_path)
    return output_path


def plot_irradiance_map(
    irradiance: np.ndarray,
    title: str = "Irradiance Cache",
    output_path: Path | str | None = None,
    dpi: int = _DPI,
) -> plt.Figure:
    """Plot the luminance of an object's irradiance cache.

    Parameters
    ----------
    irradiance : np.ndarray
        Cached ``diffuse_amt`` per cell. Shape: (v_res, h_res, 3).
    title : str
        Figure title.
    output_path : Path or str, optional
        If provided, save figure to this path.
    dpi : int
        Figure resolution.

    Returns
    -------
    matplotlib.figure.Figure
        The generated figure.
    """
    fig, ax = plt.subplots(1, 1, figsize=(10, 6), facecolor=_FACE_COLOR)
    ax.set_facecolor(_FACE_COLOR)

    lum = luminance(irradiance)
    vmax = float(lum.max()) if lum.size and lum.max() > 0 else 1.0
    im = ax.imshow(lum, cmap=_IRRADIANCE_CMAP, vmin=0.0, vmax=vmax, aspect="auto", origin="upper")

    cbar = fig.colorbar(im, ax=ax, label="Irradiance (luminance)", shrink=0.8)
    cbar.ax.yaxis.label.set_color("white")
    cbar.ax.tick_params(colors="white")

    ax.set_xlabel("h (horizontal cell)", color="white")
    ax.set_ylabel("v (vertical cell)", color="white")
    _style_axes(ax, title)
    fig.tight_layout()
    _save(fig, output_path, dpi, "Irradiance map")
    return fig


def plot_angle_map(
    angle_colors: np.ndarray,
    title: str = "Exit Radiance by Direction",
    output_path: Path | str | None = None,
    dpi: int = _DPI,
) -> plt.Figure:
    """Plot one cell's directional exit-radiance buckets.

    Parameters
    ----------
    angle_colors : np.ndarray
        Bucket colors. Shape: (v_angle_res, h_angle_res, 3).
    title : str
        Figure title.
    output_path : Path or str, optional
        If provided, save figure to this path.
    dpi : int
        Figure resolution.

    Returns
    -------
    matplotlib.figure.Figure
        The generated figure.
    """
    fig, ax = plt.subplots(1, 1, figsize=(10, 4), facecolor=_FACE_COLOR)
    ax.imshow(
        to_display_rgb(angle_colors),
        extent=(0.0, 360.0, 90.0, 0.0),
        aspect="auto",
        interpolation="nearest",
    )
    ax.set_xlabel("phi [deg]", color="white")
    ax.set_ylabel("theta [deg]", color="white")
    _style_axes(ax, title)
    fig.tight_layout()
    _save(fig, output_path, dpi, "Angle map")
    return fig


def plot_pass_stats(
    passes: list[dict],
    title: str = "Rays per Pass",
    output_path: Path | str | None = None,
    dpi: int = _DPI,
) -> plt.Figure:
    """Stacked bar chart of ray counters for each executed pass.

    Parameters
    ----------
    passes : list[dict]
        Per-pass entries with ``option_index``, ``kind`` and counter keys
        (as stored in ``metadata['passes']``).
    """
    fig, ax = plt.subplots(1, 1, figsize=(12, 5), facecolor=_FACE_COLOR)
    ax.set_facecolor(_FACE_COLOR)

    labels = [f"{p['option_index']}:{p['kind']}" for p in passes]
    x = np.arange(len(passes))
    bottom = np.zeros(len(passes), dtype=np.float64)
    for key, color in zip(_STAT_KEYS, _STAT_COLORS):
        counts = np.array([p.get(key, 0) for p in passes], dtype=np.float64)
        ax.bar(x, counts, bottom=bottom, color=color, label=key)
        bottom += counts

    ax.set_xticks(x)
    ax.set_xticklabels(labels, rotation=30, ha="right")
    ax.set_ylabel("Rays", color="white")
    ax.grid(True, axis="y", alpha=0.2, color="white")

    legend = ax.legend(facecolor=_FACE_COLOR, edgecolor="#444", fontsize=9)
    for text in legend.get_texts():
        text.set_color("white")

    _style_axes(ax, title)
    fig.tight_layout()
    _save(fig, output_path, dpi, "Pass statistics")
    return fig


def generate_all_plots(
    framebuffers: dict[str, np.ndarray],
    irradiance: dict[str, np.ndarray],
    angles: dict[str, np.ndarray],
    passes: list[dict] | None = None,
    output_dir: Path | str = "output",
    dpi: int = _DPI,
) -> list[Path]:
    """Generate all standard plots from render results.

    Parameters
    ----------
    framebuffers, irradiance, angles : dict[str, np.ndarray]
        Arrays as held by ``RenderResults`` or returned by
        ``rendering.io_manager.load_results``.
    passes : list[dict], optional
        Per-pass statistics (``metadata['passes']``).
    output_dir : Path or str
        Directory for output plots.
    dpi : int
        Figure resolution.

    Returns
    -------
    list[Path]
        Paths to all generated plot files.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    saved: list[Path] = []

    for label, fb in framebuffers.items():
        saved.append(save_image(fb, output_dir / f"{label}.png"))
        p = output_dir / f"{label}_figure.png"
        plot_framebuffer(fb, title=label, output_path=p, dpi=dpi)
        saved.append(p)

    for name, irr in irradiance.items():
        p = output_dir / f"irradiance_{name}.png"
        plot_irradiance_map(irr, title=f"Irradiance Cache: {name}", output_path=p, dpi=dpi)
        saved.append(p)

    for name, ang in angles.items():
        p = output_dir / f"angles_{name}.png"
        plot_angle_map(ang, title=f"Exit Radiance (center cell): {name}", output_path=p, dpi=dpi)
        saved.append(p)

    if passes:
        p = output_dir / "pass_stats.png"
        plot_pass_stats(passes, output_path=p, dpi=dpi)
        saved.append(p)

    logger.info("Generated %d plots in %s", len(saved), output_dir)
    return saved


def plot_from_saved_data(data_dir: Path | str, dpi: int = _DPI) -> list[Path]:
    """Re-plot everything from a directory written by ``save_results``."""
    from rendering.io_manager import load_results

    data = load_results(data_dir)
    return generate_all_plots(
        data["framebuffers"],
        data["irradiance"],
        data["angles"],
        passes=data["metadata"].get("passes"),
        output_dir=data_dir,
        dpi=dpi,
    )
