"""Render Runner: executes every option set of a configuration.

For each option set, in order:
1. Reset all primitive caches.
2. Light pass, if either preprocess switch is on.
3. ``after_diffuse`` eye passes (irradiance reads), one per viewpoint.
4. Angle pass, then ``after_reflect`` eye passes (irradiance + angle reads).
5. ``traditional`` eye passes (no cache reads).

Every pass gets its own :class:`~tracer.ray_store.RayStore`; its counters
are logged as one row of the stats table and kept in the results.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np

from rendering.passes import angle_render, eye_render, light_render
from tracer.constants import RenderConfig, RenderOptions, hash_array
from tracer.ray_store import RayStore, stats_header
from tracer.scene import Scene, build_scene

logger = logging.getLogger(__name__)

EYE_PASS_PREFIX = {
    "after_diffuse": "afterDiffusePreprocess",
    "after_reflect": "afterReflectPreprocess",
    "traditional": "traditional",
}


# ---------------------------------------------------------------------------
# Result Containers
# ---------------------------------------------------------------------------


@dataclass
class PassRecord:
    """Statistics of one executed pass.

    Attributes
    ----------
    option_index : int
        Index of the option set that ran the pass.
    kind : str
        'light', 'angle', or one of the eye pass kinds.
    label : str
        Framebuffer key for eye passes, pass kind otherwise.
    stats : dict[str, int]
        RayStore counters at pass end.
    elapsed_s : float
        Wall time [s].
    """

    option_index: int
    kind: str
    label: str
    stats: dict[str, int]
    elapsed_s: float


@dataclass
class RenderResults:
    """Container for render output data.

    Attributes
    ----------
    passes : list[PassRecord]
        Every executed pass, in order.
    framebuffers : dict[str, np.ndarray]
        Eye pass images keyed by label. Each: (height, width, 3).
    irradiance : dict[str, np.ndarray]
        Irradiance cache per primitive after the last preprocessed option
        set. Each: (v_res, h_res, 3).
    angles : dict[str, np.ndarray]
        Exit-radiance buckets of each specular primitive's center cell.
    metadata : dict
        Run metadata (config summary, timing, hashes).
    """

    passes: list[PassRecord] = field(default_factory=list)
    framebuffers: dict[str, np.ndarray] = field(default_factory=dict)
    irradiance: dict[str, np.ndarray] = field(default_factory=dict)
    angles: dict[str, np.ndarray] = field(default_factory=dict)
    metadata: dict = field(default_factory=dict)


def framebuffer_label(kind: str, viewpoint, density: float, options: RenderOptions) -> str:
    """File-name style key, e.g. ``traditional_x.0_y.0_z.0_density.0.05_dep.5_spp.1``."""
    x, y, z = (int(c) for c in viewpoint)
    return (
        f"{EYE_PASS_PREFIX[kind]}_x.{x}_y.{y}_z.{z}_density.{density:.2f}"
        f"_dep.{options.max_depth}_spp.{options.spp}"
    )


# ---------------------------------------------------------------------------
# Render Runner
# ---------------------------------------------------------------------------


class RenderRunner:
    """Runs the configured passes against one scene.

    Parameters
    ----------
    config : RenderConfig
        Full configuration loaded from YAML.
    scene : Scene, optional
        Pre-built scene. If None, built from ``config.scene``.
    """

    def __init__(self, config: RenderConfig, scene: Scene | None = None) -> None:
        self._config = config
        self.scene = scene if scene is not None else build_scene(config.scene, config.tracer)

        for name in config.output.record_primitives:
            self.scene.get(name).enable_recorder()

        logger.info(
            "RenderRunner initialized: %d option set(s), density=%.3f, %d objects, %d lights",
            len(config.options),
            config.tracer.ray_cast_density,
            len(self.scene.primitives),
            len(self.scene.lights),
        )

    def run(
        self,
        save_data: bool = True,
        output_dir: Path | str | None = None,
    ) -> RenderResults:
        """Execute every option set in order.

        Parameters
        ----------
        save_data : bool
            Persist arrays and metadata via :mod:`rendering.io_manager`.
        output_dir : Path or str, optional
            Override the configured output directory.

        Returns
        -------
        RenderResults
            Framebuffers, caches and per-pass statistics.
        """
        results = RenderResults(
            metadata={
                "ray_cast_density": self._config.tracer.ray_cast_density,
                "forward_max_depth": self._config.tracer.forward_max_depth,
                "num_option_sets": len(self._config.options),
                "objects": [p.name for p in self.scene.primitives],
                "num_lights": len(self.scene.lights),
            },
        )

        wall_start = time.perf_counter()
        logger.info(stats_header())
        for idx, options in enumerate(self._config.options):
            self._run_option_set(idx, options, results)

        wall_elapsed = time.perf_counter() - wall_start
        results.metadata["wall_time_s"] = wall_elapsed
        results.metadata["total_rays"] = sum(p.stats["total"] for p in results.passes)
        results.metadata["framebuffer_sha256"] = {
            label: hash_array(fb) for label, fb in results.framebuffers.items()
        }
        results.metadata["passes"] = [
            {
                "option_index": p.option_index,
                "kind": p.kind,
                "label": p.label,
                "elapsed_s": p.elapsed_s,
                **p.stats,
            }
            for p in results.passes
        ]

        logger.info(
            "Render complete: %.1f seconds wall time, %d passes, %d framebuffers",
            wall_elapsed, len(results.passes), len(results.framebuffers),
        )

        if save_data:
            from rendering.io_manager import save_results

            save_results(
                output_dir=output_dir if output_dir is not None else self._config.output.directory,
                framebuffers=results.framebuffers,
                irradiance=results.irradiance,
                angles=results.angles,
                metadata=results.metadata,
            )

        return results

    # ------------------------------------------------------------------

    def _new_store(self, options: RenderOptions, record_eye: bool = False) -> RayStore:
        pixels = self._config.output.dump_pixels if record_eye else ()
        return RayStore(options, self._config.tracer, record_pixels=pixels)

    def _finish_pass(
        self,
        results: RenderResults,
        idx: int,
        kind: str,
        label: str,
        store: RayStore,
        elapsed: float,
    ) -> None:
        logger.info("### %s ###", label)
        logger.info(store.stats_row(idx, elapsed))
        results.passes.append(PassRecord(idx, kind, label, store.stats(), elapsed))

    def _run_option_set(self, idx: int, options: RenderOptions, results: RenderResults) -> None:
        logger.info(
            "Option set %d: %dx%d, fov=%.1f, max_depth=%d, spp=%d, %d viewpoint(s)",
            idx, options.width, options.height, options.fov,
            options.max_depth, options.spp, len(options.viewpoints),
        )
        self.scene.reset()

        if options.needs_light_pass:
            store = self._new_store(options)
            start = time.perf_counter()
            light_render(store, self.scene)
            self._finish_pass(results, idx, "light", "light", store, time.perf_counter() - start)
            for name in self._config.output.record_primitives:
                store.dump_object_trace_link(self.scene.get(name), 0, 0)

        if options.do_render_after_diffuse_preprocess:
            self._eye_passes(idx, options, "after_diffuse", True, False, results)

        if options.do_render_after_diffuse_and_reflect_preprocess:
            store = self._new_store(options)
            start = time.perf_counter()
            angle_render(store, self.scene)
            self._finish_pass(results, idx, "angle", "angle", store, time.perf_counter() - start)
            self._eye_passes(idx, options, "after_reflect", True, True, results)

        if options.needs_light_pass:
            self._capture_caches(results)

        if options.do_traditional_render:
            self._eye_passes(idx, options, "traditional", False, False, results)

    def _eye_passes(
        self,
        idx: int,
        options: RenderOptions,
        kind: str,
        read_irradiance: bool,
        read_angles: bool,
        results: RenderResults,
    ) -> None:
        density = self._config.tracer.ray_cast_density
        for viewpoint in options.viewpoints:
            label = framebuffer_label(kind, viewpoint, density, options)
            store = self._new_store(options, record_eye=True)
            start = time.perf_counter()
            framebuffer = eye_render(store, self.scene, viewpoint, read_irradiance, read_angles)
            self._finish_pass(results, idx, kind, label, store, time.perf_counter() - start)
            results.framebuffers[label] = framebuffer
            for row, col in self._config.output.dump_pixels:
                store.dump_eye_trace_link(row, col)

    def _capture_caches(self, results: RenderResults) -> None:
        for prim in self.scene.primitives:
            results.irradiance[prim.name] = prim.irradiance_image()
            angles = prim.angle_image(prim.v_res // 2, prim.h_res // 2)
            if angles is not None:
                results.angles[prim.name] = angles
