"""Scene container, nearest-hit query, and YAML scene builder."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from tracer.constants import TracerConfig
from tracer.geometry import as_vec3
from tracer.primitives import Intersection, MaterialType, MeshTriangle, Primitive, Sphere

logger = logging.getLogger(__name__)

_MATERIAL_KEYS = ("ior", "kd", "ks", "diffuse_color", "specular_exponent")


@dataclass
class Light:
    """Point light.

    Attributes
    ----------
    position : np.ndarray
        World position. Shape: (3,).
    intensity : np.ndarray
        RGB intensity (a scalar in YAML broadcasts to grey). Shape: (3,).
    """

    position: np.ndarray
    intensity: np.ndarray

    def __post_init__(self) -> None:
        self.position = as_vec3(self.position)
        self.intensity = as_vec3(self.intensity)


@dataclass
class Scene:
    """Ordered primitives plus lights. Read-only during a pass apart from caches."""

    primitives: list[Primitive] = field(default_factory=list)
    lights: list[Light] = field(default_factory=list)

    def trace(self, origin: np.ndarray, direction: np.ndarray) -> Intersection | None:
        """Nearest intersection over all primitives, or None."""
        nearest: Intersection | None = None
        for prim in self.primitives:
            hit = prim.intersect(origin, direction)
            if hit is not None and (nearest is None or hit.distance < nearest.distance):
                nearest = hit
        return nearest

    def reset(self) -> None:
        """Clear every irradiance and angle cache."""
        for prim in self.primitives:
            prim.reset()
        logger.debug("Scene caches reset (%d primitives)", len(self.primitives))

    def get(self, name: str) -> Primitive:
        for prim in self.primitives:
            if prim.name == name:
                return prim
        raise KeyError(f"No primitive named '{name}'")


def _material_kwargs(raw: dict[str, Any], density: float) -> dict[str, Any]:
    kwargs = {k: raw[k] for k in _MATERIAL_KEYS if k in raw}
    kwargs["density"] = density
    return kwargs


def _parse_material(value: Any, name: str) -> MaterialType:
    try:
        return MaterialType(str(value).lower())
    except ValueError as exc:
        choices = ", ".join(m.value for m in MaterialType)
        raise ValueError(f"Object '{name}': unknown material '{value}' (expected {choices})") from exc


def build_primitive(raw: dict[str, Any], density: float) -> Primitive:
    """Construct one primitive from its YAML mapping.

    Raises
    ------
    ValueError
        On an unknown type or material, or malformed geometry.
    """
    kind = str(raw.get("type", "")).lower()
    name = str(raw.get("name", kind or "object"))
    material = _parse_material(raw.get("material", MaterialType.DIFFUSE_AND_GLOSSY.value), name)
    kwargs = _material_kwargs(raw, density)

    try:
        if kind == "sphere":
            return Sphere(name, material, center=raw["center"], radius=float(raw["radius"]), **kwargs)
        if kind == "mesh":
            return MeshTriangle(
                name,
                material,
                vertices=raw["vertices"],
                vertex_index=raw["indices"],
                st_coordinates=raw["st"],
                local_diffuse_color=raw.get("local_diffuse_color"),
                map_ratio=int(raw.get("map_ratio", 5)),
                **kwargs,
            )
    except KeyError as exc:
        raise ValueError(f"Object '{name}': missing key {exc}") from exc
    raise ValueError(f"Object '{name}': unknown type '{kind}' (expected sphere or mesh)")


def build_scene(raw: dict[str, Any], tracer: TracerConfig) -> Scene:
    """Build a :class:`Scene` from the ``scene`` section of the config.

    An empty section yields the reference scene (see :func:`default_scene`).
    """
    if not raw:
        logger.info("No scene section, using the reference scene")
        return default_scene(tracer)

    scene = Scene()
    for obj in raw.get("objects", []):
        scene.primitives.append(build_primitive(obj, tracer.ray_cast_density))
    for light in raw.get("lights", []):
        try:
            scene.lights.append(Light(light["position"], light.get("intensity", 1.0)))
        except KeyError as exc:
            raise ValueError(f"Light is missing key {exc}") from exc

    names = [p.name for p in scene.primitives]
    if len(set(names)) != len(names):
        raise ValueError(f"Object names must be unique, got {names}")
    logger.info("Scene built: %d objects, %d lights", len(scene.primitives), len(scene.lights))
    return scene


def default_scene(tracer: TracerConfig) -> Scene:
    """Diffuse sphere over a mirror floor in front of a checkered wall."""
    density = tracer.ray_cast_density
    sphere = Sphere(
        "sph1",
        MaterialType.DIFFUSE_AND_GLOSSY,
        center=(-4.0, 0.0, -8.0),
        radius=2.0,
        kd=0.8,
        diffuse_color=(0.6, 0.7, 0.8),
        density=density,
    )
    floor = MeshTriangle(
        "mesh1",
        MaterialType.REFLECTION,
        vertices=[[-10, -2, 0], [10, -2, 0], [10, -2, -14], [-10, -2, -14]],
        vertex_index=[0, 1, 3, 1, 2, 3],
        st_coordinates=[[0, 0], [1, 0], [1, 1], [0, 1]],
        local_diffuse_color=(0.3843, 0.3569, 0.3412),
        ior=1.5,
        kd=0.1,
        density=density,
    )
    wall = MeshTriangle(
        "mesh2",
        MaterialType.DIFFUSE_AND_GLOSSY,
        vertices=[[-10, -2, -14], [10, -2, -14], [10, 18, -14], [-10, 18, -14]],
        vertex_index=[0, 1, 3, 1, 2, 3],
        st_coordinates=[[0, 0], [1, 0], [1, 1], [0, 1]],
        kd=0.8,
        density=density,
    )
    return Scene(
        primitives=[sphere, floor, wall],
        lights=[Light((20.0, 25.0, 8.0), 1.0)],
    )
