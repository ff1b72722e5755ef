"""Forward propagation: light source to surfaces.

The light pass fires one ray per (light, primitive, cell). Each ray is
aimed at a specific cell (the *forced target*); if anything else is hit
first, the cell is in shadow for that light. Otherwise the light's
Lambert deposit is accumulated into the cell's irradiance cache, and
specular materials keep propagating the remaining energy through
reflection and refraction so that mirrored and refracted light also lands
in the caches of the surfaces it reaches.

Algorithm
---------
1. Depth guard against ``tracer.forward_max_depth``.
2. Nearest-hit trace. With a target, the query direction is the
   *unnormalised* segment light → biased target, so any hit with
   ``t <= 1`` lies between the light and the cell.
3. Material dispatch (reflect/refract with Fresnel weights, pure mirror
   with a fixed reflectivity, diffuse is terminal). Every branch is
   pruned on its own when its intensity falls below the weak threshold.
4. Deposit ``intensity · max(0, −L·N) · Kd`` into the hit cell.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from tracer.geometry import dot, fresnel, normalize, reflect, refract
from tracer.primitives import MaterialType, Primitive
from tracer.ray_store import Ray, RayStore, RayType
from tracer.scene import Scene
from tracer.surface import Surface

logger = logging.getLogger(__name__)


@dataclass
class ForcedTarget:
    """Cell a light-pass ray is aimed at.

    Attributes
    ----------
    primitive : Primitive
        Owner of the cell.
    surface : Surface
        The cell itself.
    point : np.ndarray
        World position of the cell (unbiased). Shape: (3,).
    """

    primitive: Primitive
    surface: Surface
    point: np.ndarray


def _is_weak(store: RayStore, intensity: np.ndarray, parent: Ray | None) -> bool:
    if dot(intensity, intensity) < store.tracer.weak_intensity_threshold:
        store.weak += 1
        if parent is not None:
            parent.weak_count += 1
        return True
    return False


def _branch(
    store: RayStore,
    scene: Scene,
    ray_type: RayType,
    hit_point: np.ndarray,
    normal: np.ndarray,
    direction: np.ndarray,
    intensity: np.ndarray,
    depth: int,
    parent: Ray | None,
) -> np.ndarray:
    """Spawn one secondary forward ray from ``hit_point``."""
    inside = dot(direction, normal) < 0.0
    bias = store.options.bias
    origin = hit_point - normal * bias if inside else hit_point + normal * bias
    child = store.spawn(parent, ray_type, origin, direction, intensity, inside)
    return forward_cast_ray(store, scene, origin, direction, intensity, depth + 1, parent=child)


def forward_cast_ray(
    store: RayStore,
    scene: Scene,
    origin: np.ndarray,
    direction: np.ndarray,
    intensity: np.ndarray,
    depth: int = 0,
    target: ForcedTarget | None = None,
    parent: Ray | None = None,
) -> np.ndarray:
    """Propagate light energy and deposit it into irradiance caches.

    Parameters
    ----------
    store : RayStore
        Counters and recording state of the running pass.
    scene : Scene
        Primitives and lights.
    origin : np.ndarray
        Ray start (the light position for primary rays). Shape: (3,).
    direction : np.ndarray
        Unit direction, or the light → target segment when ``target`` is
        given. Shape: (3,).
    intensity : np.ndarray
        RGB intensity carried by the ray. Shape: (3,).
    depth : int
        Current recursion depth.
    target : ForcedTarget, optional
        Cell the ray must reach unoccluded.
    parent : Ray, optional
        Recorded node for this ray. Branches spawned here are attached to it.

    Returns
    -------
    np.ndarray
        Propagated color: background for a miss or terminal material.
    """
    background = store.options.background

    if depth > store.tracer.forward_max_depth:
        store.overflow += 1
        if parent is not None:
            parent.mark_overflow()
        return background

    store.total += 1

    hit = scene.trace(origin, direction)
    if target is not None:
        if hit is not None and hit.distance <= 1.0:
            # occluded between the light and the target cell
            store.no_hit += 1
            if parent is not None:
                parent.mark_no_hit()
            return background
        hit_primitive = target.primitive
        hit_surface = target.surface
        hit_point = target.point
    else:
        if hit is None:
            store.no_hit += 1
            if parent is not None:
                parent.mark_no_hit()
            return background
        hit_primitive = hit.primitive
        hit_surface = hit.surface
        hit_point = hit.point

    normal = hit_surface.normal
    if parent is not None:
        parent.mark_hit(hit_primitive.name, hit_point)

    unit_dir = normalize(direction)
    hit_color = background

    if hit_primitive.material is MaterialType.REFLECTION_AND_REFRACTION:
        kr = fresnel(unit_dir, normal, hit_primitive.ior)

        reflection_color = np.zeros(3, dtype=np.float64)
        reflected = normalize(reflect(unit_dir, normal))
        left = intensity * kr
        if dot(reflected, normal) >= 0.0 and not _is_weak(store, left, parent):
            reflection_color = _branch(
                store, scene, RayType.REFLECTION, hit_point, normal,
                reflected, left, depth, parent,
            )

        refraction_color = np.zeros(3, dtype=np.float64)
        refracted = refract(unit_dir, normal, hit_primitive.ior)
        left = intensity * (1.0 - kr)
        if dot(refracted, refracted) > 0.0 and not _is_weak(store, left, parent):
            refraction_color = _branch(
                store, scene, RayType.REFRACTION, hit_point, normal,
                normalize(refracted), left, depth, parent,
            )

        hit_color = reflection_color * kr + refraction_color * (1.0 - kr)

    elif hit_primitive.material is MaterialType.REFLECTION:
        kr = store.tracer.forward_reflectivity
        left = intensity * kr
        if not _is_weak(store, left, parent):
            reflected = reflect(unit_dir, normal)
            hit_color = _branch(
                store, scene, RayType.REFLECTION, hit_point, normal,
                reflected, left, depth, parent,
            ) * kr

    light_dir = normalize(hit_point - origin)
    n_dot_l = max(0.0, -dot(light_dir, normal))
    hit_surface.accumulate(intensity * n_dot_l * hit_primitive.kd)

    return hit_color
