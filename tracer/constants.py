"""Tracer constants, render options, and configuration loader.

Every tunable of a run (grid density, recursion ceilings, pruning
threshold, camera and pass switches, output locations) is read from a YAML
file into frozen dataclasses. The scene section is kept as raw mappings and
handed to :func:`tracer.scene.build_scene`.

Default values reproduce the reference scene: 640x480, 90° field of view,
five bounces, one sample per pixel, and all three render passes enabled.
"""

from __future__ import annotations

import hashlib
import logging
import platform
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numba
import numpy as np
import yaml

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration Data Classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TracerConfig:
    """Ray-propagation tunables shared by every pass.

    Attributes
    ----------
    ray_cast_density : float
        Grid density constant. Surface and angle resolutions scale with it.
    forward_max_depth : int
        Recursion ceiling of light-to-surface propagation.
    weak_intensity_threshold : float
        Branches whose squared intensity magnitude is below this are pruned.
    forward_reflectivity : float
        Attenuation of pure mirrors during forward propagation.
    backward_reflectivity : float
        Attenuation of pure mirrors during eye/angle propagation.
    angle_probe_distance : float
        Distance from the cell at which angle-pass probes start.
    """

    ray_cast_density: float = 0.25
    forward_max_depth: int = 9
    weak_intensity_threshold: float = 1e-6
    forward_reflectivity: float = 0.9
    backward_reflectivity: float = 0.5
    angle_probe_distance: float = 1.0


@dataclass(frozen=True)
class RenderOptions:
    """One option set: camera, recursion depth and which passes to run.

    Attributes
    ----------
    max_depth : int
        Backward recursion ceiling.
    spp : int
        Sub-pixel grid size per axis (``spp × spp`` samples per pixel).
    width, height : int
        Framebuffer size [pixels].
    fov : float
        Vertical field of view [deg].
    background_color : tuple[float, float, float]
        Color returned by rays that escape or overflow.
    bias : float
        Offset along the normal for secondary ray origins.
    do_traditional_render : bool
        Plain Whitted eye pass.
    do_render_after_diffuse_preprocess : bool
        Light pass, then eye pass reading the irradiance cache.
    do_render_after_diffuse_and_reflect_preprocess : bool
        Light pass and angle pass, then eye pass reading both caches.
    viewpoints : tuple[tuple[float, float, float], ...]
        Camera positions; one eye pass per viewpoint.
    """

    max_depth: int = 5
    spp: int = 1
    width: int = 640
    height: int = 480
    fov: float = 90.0
    background_color: tuple[float, float, float] = (0.95, 0.95, 0.95)
    bias: float = 0.001
    do_traditional_render: bool = True
    do_render_after_diffuse_preprocess: bool = True
    do_render_after_diffuse_and_reflect_preprocess: bool = True
    viewpoints: tuple[tuple[float, float, float], ...] = ((0.0, 0.0, 0.0),)

    @property
    def background(self) -> np.ndarray:
        """Background color as a float64 (3,) array."""
        return np.array(self.background_color, dtype=np.float64)

    @property
    def needs_light_pass(self) -> bool:
        return (
            self.do_render_after_diffuse_preprocess
            or self.do_render_after_diffuse_and_reflect_preprocess
        )


@dataclass(frozen=True)
class OutputConfig:
    """Where and what to write after a run.

    Attributes
    ----------
    directory : str
        Output directory (created if missing).
    save_arrays : bool
        Persist framebuffers and caches as ``.npy`` files.
    save_plots : bool
        Render PNG figures.
    dpi : int
        Figure resolution.
    dump_pixels : tuple[tuple[int, int], ...]
        Pixels (row, col) whose eye ray trees are recorded and logged.
    record_primitives : tuple[str, ...]
        Primitives whose light-pass ray trees are recorded.
    """

    directory: str = "output"
    save_arrays: bool = True
    save_plots: bool = True
    dpi: int = 150
    dump_pixels: tuple[tuple[int, int], ...] = ()
    record_primitives: tuple[str, ...] = ()


@dataclass
class RenderConfig:
    """Top-level configuration loaded from YAML.

    Attributes
    ----------
    tracer : TracerConfig
        Propagation tunables.
    options : list[RenderOptions]
        Option sets, executed in order.
    output : OutputConfig
        Output settings.
    scene : dict
        Raw ``lights`` / ``objects`` mappings for :func:`tracer.scene.build_scene`.
    """

    tracer: TracerConfig
    options: list[RenderOptions]
    output: OutputConfig
    scene: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Configuration Loader
# ---------------------------------------------------------------------------


def _as_color(value: Any, name: str) -> tuple[float, float, float]:
    """Scalar or 3-sequence to an RGB tuple."""
    if isinstance(value, (int, float)):
        return (float(value),) * 3
    try:
        r, g, b = (float(c) for c in value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be a scalar or a 3-vector, got {value!r}") from exc
    return (r, g, b)


def _parse_tracer(raw: dict[str, Any]) -> TracerConfig:
    d = TracerConfig()
    return TracerConfig(
        ray_cast_density=float(raw.get("ray_cast_density", d.ray_cast_density)),
        forward_max_depth=int(raw.get("forward_max_depth", d.forward_max_depth)),
        weak_intensity_threshold=float(
            raw.get("weak_intensity_threshold", d.weak_intensity_threshold)
        ),
        forward_reflectivity=float(raw.get("forward_reflectivity", d.forward_reflectivity)),
        backward_reflectivity=float(raw.get("backward_reflectivity", d.backward_reflectivity)),
        angle_probe_distance=float(raw.get("angle_probe_distance", d.angle_probe_distance)),
    )


def _parse_options(raw: dict[str, Any]) -> RenderOptions:
    d = RenderOptions()
    viewpoints = raw.get("viewpoints", d.viewpoints)
    return RenderOptions(
        max_depth=int(raw.get("max_depth", d.max_depth)),
        spp=int(raw.get("spp", d.spp)),
        width=int(raw.get("width", d.width)),
        height=int(raw.get("height", d.height)),
        fov=float(raw.get("fov", d.fov)),
        background_color=_as_color(
            raw.get("background_color", d.background_color), "background_color"
        ),
        bias=float(raw.get("bias", d.bias)),
        do_traditional_render=bool(raw.get("do_traditional_render", d.do_traditional_render)),
        do_render_after_diffuse_preprocess=bool(
            raw.get("do_render_after_diffuse_preprocess", d.do_render_after_diffuse_preprocess)
        ),
        do_render_after_diffuse_and_reflect_preprocess=bool(
            raw.get(
                "do_render_after_diffuse_and_reflect_preprocess",
                d.do_render_after_diffuse_and_reflect_preprocess,
            )
        ),
        viewpoints=tuple(_as_color(vp, "viewpoint") for vp in viewpoints),
    )


def _parse_output(raw: dict[str, Any]) -> OutputConfig:
    d = OutputConfig()
    try:
        dump_pixels = tuple((int(r), int(c)) for r, c in raw.get("dump_pixels", ()))
    except (TypeError, ValueError) as exc:
        raise ValueError("output.dump_pixels must be a list of [row, col] pairs") from exc
    return OutputConfig(
        directory=str(raw.get("directory", d.directory)),
        save_arrays=bool(raw.get("save_arrays", d.save_arrays)),
        save_plots=bool(raw.get("save_plots", d.save_plots)),
        dpi=int(raw.get("dpi", d.dpi)),
        dump_pixels=dump_pixels,
        record_primitives=tuple(str(n) for n in raw.get("record_primitives", ())),
    )


def load_config(config_path: str | Path) -> RenderConfig:
    """Load and validate a render configuration from a YAML file.

    Parameters
    ----------
    config_path : str or Path
        Path to the YAML configuration file.

    Returns
    -------
    RenderConfig
        Fully populated, typed configuration object.

    Raises
    ------
    FileNotFoundError
        If the configuration file does not exist.
    ValueError
        If sections are malformed or values are invalid.
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        raw: dict[str, Any] = yaml.safe_load(f) or {}

    logger.info("Loading configuration from: %s", config_path)
    config = config_from_dict(raw)
    logger.info(
        "Configuration loaded successfully. %d option set(s), %d object(s), %d light(s).",
        len(config.options),
        len(config.scene.get("objects", [])),
        len(config.scene.get("lights", [])),
    )
    return config


def config_from_dict(raw: dict[str, Any]) -> RenderConfig:
    """Build and validate a :class:`RenderConfig` from parsed YAML data.

    Raises
    ------
    ValueError
        If sections are malformed or values are invalid.
    """
    if not isinstance(raw, dict):
        raise ValueError("Configuration root must be a mapping")

    render_raw = raw.get("render", [{}])
    if isinstance(render_raw, dict):
        render_raw = [render_raw]
    if not render_raw:
        raise ValueError("At least one render option set is required")

    config = RenderConfig(
        tracer=_parse_tracer(raw.get("tracer") or {}),
        options=[_parse_options(opt or {}) for opt in render_raw],
        output=_parse_output(raw.get("output") or {}),
        scene=raw.get("scene") or {},
    )
    _validate_config(config)
    return config


def _validate_config(config: RenderConfig) -> None:
    """Validate value ranges of every configuration section.

    Parameters
    ----------
    config : RenderConfig
        Configuration to validate.

    Raises
    ------
    ValueError
        If any value is out of range.
    """
    t = config.tracer
    if t.ray_cast_density <= 0:
        raise ValueError(f"ray_cast_density must be positive, got {t.ray_cast_density}")
    if t.forward_max_depth < 0:
        raise ValueError("forward_max_depth cannot be negative.")
    if t.weak_intensity_threshold < 0:
        raise ValueError("weak_intensity_threshold cannot be negative.")
    if not (0.0 <= t.forward_reflectivity <= 1.0):
        raise ValueError(
            f"forward_reflectivity must be in [0, 1], got {t.forward_reflectivity}"
        )
    if not (0.0 <= t.backward_reflectivity <= 1.0):
        raise ValueError(
            f"backward_reflectivity must be in [0, 1], got {t.backward_reflectivity}"
        )
    if t.angle_probe_distance <= 0:
        raise ValueError("angle_probe_distance must be positive.")

    for i, opt in enumerate(config.options):
        if opt.max_depth < 0:
            raise ValueError(f"Option set {i}: max_depth cannot be negative.")
        if opt.spp < 1:
            raise ValueError(f"Option set {i}: spp must be >= 1, got {opt.spp}")
        if opt.width <= 0 or opt.height <= 0:
            raise ValueError(
                f"Option set {i}: image size must be positive, got {opt.width}x{opt.height}"
            )
        if not (0.0 < opt.fov < 180.0):
            raise ValueError(f"Option set {i}: fov must be in (0, 180), got {opt.fov}")
        if opt.bias <= 0:
            raise ValueError(f"Option set {i}: bias must be positive.")
        if not opt.viewpoints:
            raise ValueError(f"Option set {i}: at least one viewpoint is required.")

    if config.output.dpi <= 0:
        raise ValueError("Output dpi must be positive.")

    logger.debug("Configuration validation passed.")


def log_platform_info() -> None:
    """Log platform and library version information for reproducibility."""
    logger.info("=" * 70)
    logger.info("PLATFORM INFORMATION (for reproducibility)")
    logger.info("=" * 70)
    logger.info("  Python:    %s", sys.version)
    logger.info("  Platform:  %s", platform.platform())
    logger.info("  NumPy:     %s", np.__version__)
    logger.info("  Numba:     %s", numba.__version__)
    logger.info("=" * 70)


def hash_array(arr: np.ndarray) -> str:
    """SHA-256 hex digest of an array's bytes (framebuffer fingerprints)."""
    return hashlib.sha256(np.ascontiguousarray(arr).tobytes()).hexdigest()
