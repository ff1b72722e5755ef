"""Backward propagation: Whitted recursive shading from the eye.

The same routine serves three callers:

- the traditional eye pass (no cache reads),
- the eye pass after the light pass (``read_irradiance``: the cached
  ``diffuse_amt`` replaces per-light Lambert and shadow rays),
- the angle pass and the eye pass after it (``read_angles``: a hit whose
  cell owns an angle bucket for the incoming direction returns the cached
  exit radiance without recursing).

State machine::

    Start → depth check ─(overflow)→ background
          → trace ─(no hit)→ background
          → cached angle? ─(yes)→ angle_color
          → material dispatch → recurse (0..2 branches) → compose
"""

from __future__ import annotations

import logging

import numpy as np

from tracer.geometry import dot, fresnel, normalize, reflect, refract
from tracer.primitives import MaterialType
from tracer.ray_store import Ray, RayStatus, RayStore, RayType
from tracer.scene import Scene

logger = logging.getLogger(__name__)


def _offset_origin(point: np.ndarray, normal: np.ndarray, direction: np.ndarray, bias: float) -> np.ndarray:
    """Shift ``point`` off the surface to the side ``direction`` leaves on."""
    if dot(direction, normal) < 0.0:
        return point - normal * bias
    return point + normal * bias


def backward_cast_ray(
    store: RayStore,
    scene: Scene,
    origin: np.ndarray,
    direction: np.ndarray,
    depth: int = 0,
    read_irradiance: bool = False,
    read_angles: bool = False,
    parent: Ray | None = None,
) -> np.ndarray:
    """Shade the nearest surface seen along a ray.

    Parameters
    ----------
    store : RayStore
        Counters and recording state of the running pass.
    scene : Scene
        Primitives and lights.
    origin : np.ndarray
        Ray start. Shape: (3,).
    direction : np.ndarray
        Unit ray direction. Shape: (3,).
    depth : int
        Current recursion depth.
    read_irradiance : bool
        Use the cached irradiance instead of per-light Lambert terms.
    read_angles : bool
        Return cached exit radiance where the hit cell has it.
    parent : Ray, optional
        Recorded node for this ray. Branches spawned here are attached to it.

    Returns
    -------
    np.ndarray
        RGB color. Shape: (3,).
    """
    options = store.options
    background = options.background

    if depth > options.max_depth:
        store.overflow += 1
        if parent is not None:
            parent.mark_overflow()
        return background

    store.total += 1

    hit = scene.trace(origin, direction)
    if hit is None:
        store.no_hit += 1
        if parent is not None:
            parent.mark_no_hit()
        return background

    prim = hit.primitive
    surface = hit.surface
    normal = surface.normal
    hit_point = hit.point
    if parent is not None:
        parent.mark_hit(prim.name, hit_point)

    if read_angles and hit.angle is not None:
        return hit.angle.angle_color.copy()

    def cast(ray_type: RayType, new_dir: np.ndarray) -> np.ndarray:
        ray_orig = _offset_origin(hit_point, normal, new_dir, options.bias)
        inside = dot(new_dir, normal) < 0.0
        child = store.spawn(parent, ray_type, ray_orig, new_dir, inside=inside)
        return backward_cast_ray(
            store, scene, ray_orig, new_dir, depth + 1,
            read_irradiance, read_angles, child,
        )

    if prim.material is MaterialType.REFLECTION_AND_REFRACTION:
        kr = fresnel(direction, normal, prim.ior)

        reflection_color = np.zeros(3, dtype=np.float64)
        reflected = normalize(reflect(direction, normal))
        if dot(reflected, normal) >= 0.0:
            reflection_color = cast(RayType.REFLECTION, reflected)

        refraction_color = np.zeros(3, dtype=np.float64)
        refracted = refract(direction, normal, prim.ior)
        if dot(refracted, refracted) > 0.0:
            refraction_color = cast(RayType.REFRACTION, normalize(refracted))

        color = reflection_color * kr + refraction_color * (1.0 - kr)
        if read_irradiance:
            color = color + surface.diffuse_amt * prim.eval_diffuse_color(hit.st)
        return color

    if prim.material is MaterialType.REFLECTION:
        kr = store.tracer.backward_reflectivity
        color = cast(RayType.REFLECTION, reflect(direction, normal)) * kr
        if read_irradiance:
            color = color + surface.diffuse_amt * prim.eval_diffuse_color(hit.st)
        return color

    # Phong: Lambert diffuse plus specular highlight per light
    shadow_orig = _offset_origin(hit_point, normal, -direction, options.bias)
    local_amt = np.zeros(3, dtype=np.float64)
    specular = np.zeros(3, dtype=np.float64)
    for light in scene.lights:
        to_light = light.position - hit_point
        light_distance2 = dot(to_light, to_light)
        light_dir = normalize(to_light)
        if not read_irradiance:
            n_dot_l = max(0.0, dot(light_dir, normal))
            shadow_hit = scene.trace(shadow_orig, light_dir)
            in_shadow = shadow_hit is not None and shadow_hit.distance ** 2 < light_distance2
            if not in_shadow:
                local_amt = local_amt + light.intensity * n_dot_l * prim.kd
        r = reflect(-light_dir, normal)
        specular = specular + max(0.0, -dot(r, direction)) ** prim.specular_exponent * light.intensity

    irradiance = surface.diffuse_amt if read_irradiance else local_amt
    if not np.any(irradiance):
        store.invisible += 1
        if parent is not None:
            parent.status = RayStatus.INVISIBLE
            parent.invisible_count += 1
    else:
        store.valid += 1

    return irradiance * prim.eval_diffuse_color(hit.st) + specular * prim.ks
