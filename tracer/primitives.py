"""Scene primitives: implicit spheres and indexed triangle meshes.

Both variants share the :class:`Primitive` capability interface consumed by
the tracers:

- ``intersect(origin, direction) -> Intersection | None``
- ``surface_at(v, h) -> (Surface, world_point)``
- ``eval_diffuse_color(st) -> color``
- ``point_local_to_world`` / ``point_world_to_local``
- ``reset()`` and the optional ray recorder

Grid resolution
---------------
Each primitive owns a :class:`~tracer.surface.SurfaceGrid` whose size is
the ray-cast density scaled by object size and material:

    ============================  ===================  ===============
    material                      surface ratio        angle ratio
    ============================  ===================  ===============
    diffuse_and_glossy            density              0 (no cache)
    reflection(_and_refraction)   k · density          density
    ============================  ===================  ===============

with ``k = 4`` for spheres and ``k = 2`` for meshes. Specular materials
vary more with viewing angle and get a finer grid plus a directional cache.

Sphere grid layout::

    v ∈ [0, v_res)  → theta = 180 · v / (v_res − 1)   (both poles included)
    h ∈ [0, h_res)  → phi   = 360 · h / h_res
    normal          = (cos φ sin θ,  cos θ,  sin φ sin θ)

Mesh grid layout (planar meshes; the first triangle spans the domain)::

    point(v, h) = v0 + (h + ½) · (v1 − v0) / h_res + (v + ½) · (v2 − v0) / v_res
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

import numpy as np

from tracer.geometry import (
    as_vec3,
    cross,
    dot,
    normalize,
    rad2deg,
    ray_sphere_intersect,
    ray_triangle_intersect,
)
from tracer.ray_store import Ray
from tracer.surface import Surface, SurfaceAngle, SurfaceGrid

logger = logging.getLogger(__name__)

_CHECKER_COLOR_A = np.array([0.815, 0.235, 0.031], dtype=np.float64)
_CHECKER_COLOR_B = np.array([0.937, 0.937, 0.231], dtype=np.float64)


class MaterialType(Enum):
    """Surface response model selecting the tracers' control flow."""

    DIFFUSE_AND_GLOSSY = "diffuse_and_glossy"
    REFLECTION_AND_REFRACTION = "reflection_and_refraction"
    REFLECTION = "reflection"


@dataclass
class Intersection:
    """Nearest hit of a ray against a primitive.

    Attributes
    ----------
    distance : float
        Ray parameter ``t`` (units of the query direction).
    point : np.ndarray
        World hit point. Shape: (3,).
    st : np.ndarray
        Parametric surface coordinate (sphere: theta/phi in degrees,
        mesh: interpolated texture coordinate). Shape: (2,).
    surface : Surface
        Cached grid cell containing the hit.
    angle : SurfaceAngle or None
        Directional bucket for the approach direction, if the cell has one.
    primitive : Primitive
        The object that was hit.
    """

    distance: float
    point: np.ndarray
    st: np.ndarray
    surface: Surface
    angle: SurfaceAngle | None
    primitive: Primitive


class Primitive(ABC):
    """Common base for every traceable object.

    Parameters
    ----------
    name : str
        Identifier used in logs and output file names.
    material : MaterialType
        Surface response model.
    ior : float
        Index of refraction.
    kd, ks : float
        Diffuse and specular weights.
    diffuse_color : float or sequence
        Base albedo (scalar broadcasts to grey).
    specular_exponent : float
        Phong exponent.
    density : float
        Ray-cast density constant used to size the surface grids.
    """

    def __init__(
        self,
        name: str,
        material: MaterialType,
        ior: float = 1.3,
        kd: float = 0.1,
        ks: float = 0.2,
        diffuse_color=0.2,
        specular_exponent: float = 25.0,
        density: float = 0.25,
    ) -> None:
        self.name = name
        self.material = MaterialType(material)
        self.ior = float(ior)
        self.kd = float(kd)
        self.ks = float(ks)
        self.diffuse_color = as_vec3(diffuse_color)
        self.specular_exponent = float(specular_exponent)
        self.density = float(density)

        self.surfaces: SurfaceGrid | None = None
        self.trace_links: list[list[Ray]] | None = None
        self.recorder_enabled = False

    # ------------------------------------------------------------------
    # Grid sizing and allocation
    # ------------------------------------------------------------------

    @property
    def is_diffuse(self) -> bool:
        return self.material is MaterialType.DIFFUSE_AND_GLOSSY

    def _ratios(self, specular_scale: float) -> tuple[float, float]:
        """Return ``(surface_ratio, angle_ratio)`` for this material."""
        if self.is_diffuse:
            return self.density, 0.0
        return specular_scale * self.density, self.density

    def _allocate(self, v_res: int, h_res: int, angle_ratio: float) -> None:
        self.surface_angle_ratio = angle_ratio
        self.surfaces = SurfaceGrid(v_res, h_res, angle_ratio)
        logger.info(
            "%s '%s': %d shade points (v_res=%d, h_res=%d), "
            "%d angles per point (v_angle=%d, h_angle=%d)",
            type(self).__name__,
            self.name,
            v_res * h_res,
            v_res,
            h_res,
            self.surfaces.v_angle_res * self.surfaces.h_angle_res,
            self.surfaces.v_angle_res,
            self.surfaces.h_angle_res,
        )

    @property
    def v_res(self) -> int:
        return self.surfaces.v_res

    @property
    def h_res(self) -> int:
        return self.surfaces.h_res

    @property
    def has_angles(self) -> bool:
        return self.surface_angle_ratio > 0.0 and self.surfaces.v_angle_res > 0

    # ------------------------------------------------------------------
    # Ray recorder
    # ------------------------------------------------------------------

    def enable_recorder(self) -> None:
        """Allocate one trace-link list per surface cell and start recording."""
        if self.trace_links is None:
            self.trace_links = [[] for _ in range(self.v_res * self.h_res)]
        self.recorder_enabled = True

    def disable_recorder(self) -> None:
        self.recorder_enabled = False

    def clear_trace_links(self) -> None:
        """Drop recorded rays so a new option set starts with empty lists."""
        if self.trace_links is not None:
            for links in self.trace_links:
                links.clear()

    def trace_link(self, v: int, h: int) -> list[Ray] | None:
        """Recorded root rays for cell ``(v, h)`` (wrapped), if recording."""
        if not self.recorder_enabled or self.trace_links is None:
            return None
        return self.trace_links[(v % self.v_res) * self.h_res + (h % self.h_res)]

    # ------------------------------------------------------------------
    # Cache output
    # ------------------------------------------------------------------

    def irradiance_image(self) -> np.ndarray:
        """Irradiance cache as a ``(v_res, h_res, 3)`` array."""
        return self.surfaces.irradiance_image()

    def angle_image(self, v: int = 0, h: int = 0) -> np.ndarray | None:
        """Exit-radiance buckets of cell ``(v, h)``, or None."""
        return self.surfaces.angle_image(v, h)

    # ------------------------------------------------------------------
    # Capability interface
    # ------------------------------------------------------------------

    def eval_diffuse_color(self, st: np.ndarray) -> np.ndarray:
        return self.diffuse_color

    @abstractmethod
    def reset(self) -> None:
        """Re-initialise every surface cell and empty the recorded rays."""

    @abstractmethod
    def intersect(self, origin: np.ndarray, direction: np.ndarray) -> Intersection | None:
        """Nearest intersection with this primitive, or None."""

    @abstractmethod
    def surface_at(self, v: int, h: int) -> tuple[Surface, np.ndarray]:
        """Cell ``(v, h)`` (wrapped) and its world position."""

    @abstractmethod
    def point_local_to_world(self, point: np.ndarray) -> np.ndarray:
        """Object-relative point to world space."""

    @abstractmethod
    def point_world_to_local(self, point: np.ndarray) -> np.ndarray:
        """World point to object-relative space."""


class Sphere(Primitive):
    """Implicit sphere with a latitude/longitude surface grid."""

    def __init__(
        self,
        name: str,
        material: MaterialType,
        center,
        radius: float,
        **kwargs,
    ) -> None:
        super().__init__(name, material, **kwargs)
        if radius <= 0.0:
            raise ValueError(f"Sphere radius must be positive, got {radius}")
        self.center = as_vec3(center)
        self.radius = float(radius)
        self.radius2 = self.radius * self.radius

        surface_ratio, angle_ratio = self._ratios(4.0)
        # v spans [0, 180] inclusive of both poles, h spans [0, 360)
        v_res = max(2, int((180.0 + 1.0) * surface_ratio * self.radius))
        h_res = max(1, int(360.0 * surface_ratio * self.radius))
        self._allocate(v_res, h_res, angle_ratio)
        self.reset()

    def reset(self) -> None:
        self.clear_trace_links()
        idx = 0
        for v in range(self.v_res):
            theta = math.radians(180.0 * v / (self.v_res - 1))
            for h in range(self.h_res):
                phi = math.radians(360.0 * h / self.h_res)
                normal = np.array(
                    [math.cos(phi) * math.sin(theta), math.cos(theta), math.sin(phi) * math.sin(theta)],
                    dtype=np.float64,
                )
                self.surfaces.lookup(v, h).reset(idx, normal, self.center + normal * self.radius)
                idx += 1

    def grid_index(self, normal: np.ndarray) -> tuple[int, int, float, float]:
        """Map a unit normal to ``(v, h, theta_deg, phi_deg)``."""
        theta = rad2deg(math.acos(min(1.0, max(-1.0, normal[1]))))
        phi = rad2deg(math.atan2(normal[2], normal[0]))
        v = int(theta / 180.0 * (self.v_res - 1) + 0.5)
        h = int(phi / 360.0 * self.h_res + 0.5)
        return v, h, theta, phi

    def intersect(self, origin: np.ndarray, direction: np.ndarray) -> Intersection | None:
        t = ray_sphere_intersect(origin, direction, self.center, self.radius2)
        if t < 0.0:
            return None

        point = origin + direction * t
        normal = normalize(point - self.center)
        v, h, theta, phi = self.grid_index(normal)
        surface = self.surfaces.lookup(v, h)
        return Intersection(
            distance=t,
            point=point,
            st=np.array([theta, phi], dtype=np.float64),
            surface=surface,
            angle=surface.lookup_angle_by_direction(-direction),
            primitive=self,
        )

    def surface_at(self, v: int, h: int) -> tuple[Surface, np.ndarray]:
        surface = self.surfaces.lookup(v, h)
        return surface, self.center + surface.normal * self.radius

    def point_local_to_world(self, point: np.ndarray) -> np.ndarray:
        return self.center + point * self.radius

    def point_world_to_local(self, point: np.ndarray) -> np.ndarray:
        return (point - self.center) * (1.0 / self.radius)


class MeshTriangle(Primitive):
    """Indexed planar triangle mesh with texture coordinates.

    Parameters
    ----------
    vertices : array_like
        Vertex positions. Shape: (num_vertices, 3).
    vertex_index : array_like
        Triangle vertex indices, flat or shape (num_triangles, 3).
    st_coordinates : array_like
        Per-vertex texture coordinates. Shape: (num_vertices, 2).
    local_diffuse_color : sequence, optional
        Solid albedo. When None a checkerboard of ``map_ratio`` tiles is used.
    map_ratio : int
        Checkerboard frequency.
    """

    def __init__(
        self,
        name: str,
        material: MaterialType,
        vertices,
        vertex_index,
        st_coordinates,
        local_diffuse_color=None,
        map_ratio: int = 5,
        **kwargs,
    ) -> None:
        super().__init__(name, material, **kwargs)
        self.vertices = np.asarray(vertices, dtype=np.float64).reshape(-1, 3)
        self.triangles = np.asarray(vertex_index, dtype=np.int64).reshape(-1, 3)
        self.st_coordinates = np.asarray(st_coordinates, dtype=np.float64).reshape(-1, 2)
        if self.triangles.shape[0] == 0:
            raise ValueError(f"Mesh '{name}' has no triangles")
        if self.triangles.max() >= self.vertices.shape[0]:
            raise ValueError(f"Mesh '{name}' indexes a vertex that does not exist")
        if self.st_coordinates.shape[0] < self.vertices.shape[0]:
            raise ValueError(f"Mesh '{name}' needs one st coordinate per vertex")

        self.local_diffuse_color = (
            None if local_diffuse_color is None else as_vec3(local_diffuse_color)
        )
        self.map_ratio = int(map_ratio)

        # Per-triangle vertex positions: (num_triangles, 3, 3)
        self._tri_verts = np.ascontiguousarray(self.vertices[self.triangles])

        v0, v1, v2 = self._tri_verts[0]
        self._origin = v0.copy()
        self._edge_h = v1 - v0
        self._edge_v = v2 - v0
        self.normal = normalize(cross(self._edge_h, self._edge_v))

        surface_ratio, angle_ratio = self._ratios(2.0)
        v_res = max(1, int(surface_ratio * dot(self._edge_v, self._edge_v)))
        h_res = max(1, int(surface_ratio * dot(self._edge_h, self._edge_h)))
        self._allocate(v_res, h_res, angle_ratio)
        self.reset()

    def _grid_point(self, v: int, h: int) -> np.ndarray:
        """Center of cell ``(v, h)``; the same cell ``intersect`` maps st onto."""
        return (
            self._origin
            + ((h % self.h_res) + 0.5) * self._edge_h / self.h_res
            + ((v % self.v_res) + 0.5) * self._edge_v / self.v_res
        )

    def reset(self) -> None:
        self.clear_trace_links()
        idx = 0
        for v in range(self.v_res):
            for h in range(self.h_res):
                self.surfaces.lookup(v, h).reset(idx, self.normal, self._grid_point(v, h))
                idx += 1

    def intersect(self, origin: np.ndarray, direction: np.ndarray) -> Intersection | None:
        t_near = np.inf
        hit_index = -1
        hit_u = hit_v = 0.0
        for k in range(self._tri_verts.shape[0]):
            tri = self._tri_verts[k]
            t_k, u_k, v_k = ray_triangle_intersect(origin, direction, tri[0], tri[1], tri[2])
            if 0.0 < t_k < t_near:
                t_near = t_k
                hit_index = k
                hit_u = u_k
                hit_v = v_k

        if hit_index < 0:
            return None

        i0, i1, i2 = self.triangles[hit_index]
        st = (
            self.st_coordinates[i0] * (1.0 - hit_u - hit_v)
            + self.st_coordinates[i1] * hit_u
            + self.st_coordinates[i2] * hit_v
        )
        surface = self.surfaces.lookup(
            int(math.floor(st[1] * self.v_res)),
            int(math.floor(st[0] * self.h_res)),
        )
        return Intersection(
            distance=t_near,
            point=origin + direction * t_near,
            st=st,
            surface=surface,
            angle=surface.lookup_angle_by_direction(-direction),
            primitive=self,
        )

    def surface_at(self, v: int, h: int) -> tuple[Surface, np.ndarray]:
        return self.surfaces.lookup(v, h), self._grid_point(v, h)

    def eval_diffuse_color(self, st: np.ndarray) -> np.ndarray:
        if self.local_diffuse_color is not None:
            return self.local_diffuse_color
        pattern = (math.fmod(st[0] * self.map_ratio, 1.0) > 0.5) ^ (
            math.fmod(st[1] * self.map_ratio, 1.0) > 0.5
        )
        return _CHECKER_COLOR_A * (1.0 - pattern) + _CHECKER_COLOR_B * pattern

    def point_local_to_world(self, point: np.ndarray) -> np.ndarray:
        return np.asarray(point, dtype=np.float64)

    def point_world_to_local(self, point: np.ndarray) -> np.ndarray:
        return np.asarray(point, dtype=np.float64)
