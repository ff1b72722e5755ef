"""Render drivers: light pass, angle pass, and eye pass.

Pipeline
--------
1. ``light_render``: one forced forward ray per (light, primitive, cell)
   fills every ``Surface.diffuse_amt``.
2. ``angle_render``: for each primitive with a directional cache, one
   backward probe per (cell, bucket) reads the irradiance cache and stores
   the exit radiance in the bucket. Requires step 1.
3. ``eye_render``: pinhole camera at a viewpoint looking down −z; each
   pixel averages an ``spp × spp`` sub-pixel grid of backward rays that
   optionally read the caches filled by steps 1-2.

All three are serial loops over independent work items. Every primary ray
increments ``store.origin``.
"""

from __future__ import annotations

import logging

import numpy as np

from tracer.backward import backward_cast_ray
from tracer.forward import ForcedTarget, forward_cast_ray
from tracer.geometry import as_vec3, deg2rad, normalize, vec3
from tracer.ray_store import RayStore, RayType
from tracer.scene import Scene

logger = logging.getLogger(__name__)


def light_render(store: RayStore, scene: Scene) -> None:
    """Accumulate direct (and specularly propagated) light into every cell.

    Parameters
    ----------
    store : RayStore
        Pass-local counters and recording state.
    scene : Scene
        Scene whose irradiance caches are filled.
    """
    bias = store.options.bias
    for li, light in enumerate(scene.lights):
        for prim in scene.primitives:
            for v in range(prim.v_res):
                for h in range(prim.h_res):
                    surface, point = prim.surface_at(v, h)
                    segment = point + surface.normal * bias - light.position
                    store.origin += 1
                    root = store.record(
                        RayType.ORIGIN, prim.trace_link(v, h), light.position, normalize(segment)
                    )
                    forward_cast_ray(
                        store,
                        scene,
                        light.position,
                        segment,
                        light.intensity,
                        depth=0,
                        target=ForcedTarget(prim, surface, point),
                        parent=root,
                    )
            irradiance = prim.irradiance_image()
            logger.debug(
                "Light %d -> %s: %d cells, irradiance max=%.4f mean=%.4f",
                li, prim.name, prim.v_res * prim.h_res, irradiance.max(), irradiance.mean(),
            )


def angle_render(store: RayStore, scene: Scene) -> None:
    """Fill every directional exit-radiance bucket from the irradiance cache.

    Each bucket direction ``d`` is probed by a backward ray starting at
    ``cell + d · angle_probe_distance`` and travelling along ``−d``, with
    irradiance reads on and angle reads off.
    """
    probe = store.tracer.angle_probe_distance
    for prim in scene.primitives:
        if not prim.has_angles:
            continue
        for v in range(prim.v_res):
            for h in range(prim.h_res):
                surface, point = prim.surface_at(v, h)
                links = prim.trace_link(v, h)
                for va in range(surface.v_angle_res):
                    for ha in range(surface.h_angle_res):
                        angle = surface.lookup_angle_by_grid(va, ha)
                        d = surface.angle_direction(va, ha)
                        origin = point + d * probe
                        store.origin += 1
                        root = store.record(RayType.ORIGIN, links, origin, -d)
                        angle.angle_color = backward_cast_ray(
                            store, scene, origin, -d, 0,
                            read_irradiance=True, read_angles=False, parent=root,
                        )
        logger.debug(
            "Angle cache filled for %s: %d cells x %d buckets",
            prim.name, prim.v_res * prim.h_res,
            prim.surfaces.v_angle_res * prim.surfaces.h_angle_res,
        )


def primary_ray_direction(
    row: float,
    col: float,
    width: int,
    height: int,
    fov: float,
) -> np.ndarray:
    """Unit camera ray through image position ``(row, col)`` (pixel units).

    Pixel centers sit at half-integer positions.
    """
    scale = np.tan(deg2rad(fov * 0.5))
    aspect = width / float(height)
    x = (2.0 * col / width - 1.0) * aspect * scale
    y = (1.0 - 2.0 * row / height) * scale
    return normalize(vec3(x, y, -1.0))


def eye_render(
    store: RayStore,
    scene: Scene,
    viewpoint,
    read_irradiance: bool = False,
    read_angles: bool = False,
) -> np.ndarray:
    """Render one framebuffer from ``viewpoint``.

    Parameters
    ----------
    store : RayStore
        Pass-local counters; pixels in ``store.record_pixels`` are recorded.
    scene : Scene
        Scene to render.
    viewpoint : array_like
        Camera position. Shape: (3,).
    read_irradiance, read_angles : bool
        Cache reads forwarded to :func:`backward_cast_ray`.

    Returns
    -------
    np.ndarray
        Linear RGB framebuffer. Shape: (height, width, 3).
    """
    opt = store.options
    origin = as_vec3(viewpoint)
    framebuffer = np.zeros((opt.height, opt.width, 3), dtype=np.float64)
    offsets = (np.arange(opt.spp, dtype=np.float64) + 0.5) / opt.spp
    inv_samples = 1.0 / (opt.spp * opt.spp)
    progress_every = max(1, opt.height // 10)

    for j in range(opt.height):
        for i in range(opt.width):
            links = store.eye_trace_link(j, i)
            color = np.zeros(3, dtype=np.float64)
            for sy in offsets:
                for sx in offsets:
                    direction = primary_ray_direction(j + sy, i + sx, opt.width, opt.height, opt.fov)
                    store.origin += 1
                    root = store.record(RayType.ORIGIN, links, origin, direction)
                    color += backward_cast_ray(
                        store, scene, origin, direction, 0,
                        read_irradiance, read_angles, root,
                    )
            framebuffer[j, i] = color * inv_samples
        if j % progress_every == 0:
            logger.debug("  eye pass row %d/%d", j, opt.height)

    return framebuffer
