"""Per-surface-point irradiance cache and directional exit-radiance cache.

Every primitive discretises its parametric domain into a ``v_res × h_res``
grid. Each cell is a :class:`Surface` holding:

- the accumulated direct irradiance ``diffuse_amt`` (filled by the light
  pass), and
- optionally, a ``v_angle_res × h_angle_res`` grid of outgoing-direction
  colors (filled by the angle pass), stored as one contiguous NumPy buffer.

Bucket layout
-------------
The outgoing hemisphere is expressed in the cell's local frame, whose y
axis is the surface normal::

    theta ∈ [0, 90)   angle from the normal         → row    (v)
    phi   ∈ [0, 360)  atan2(z, x) around the normal → column (h)

    local = (cos φ sin θ,  cos θ,  sin φ sin θ)

All grid lookups wrap modulo their resolution, so any index (including
directions below the horizon, theta ≥ 90) aliases onto a valid bucket.
"""

from __future__ import annotations

import logging
import math

import numpy as np

from tracer.geometry import (
    build_local_frame,
    deg2rad,
    normalize,
    rad2deg,
    transform_dir,
)

logger = logging.getLogger(__name__)


class SurfaceAngle:
    """View onto one outgoing-direction bucket of a :class:`Surface`.

    The color lives in the owning surface's ``angle_colors`` buffer; this
    object only carries the ``(row, col)`` address.
    """

    __slots__ = ("surface", "v", "h")

    def __init__(self, surface: Surface, v: int, h: int) -> None:
        if not (0 <= v < surface.v_angle_res and 0 <= h < surface.h_angle_res):
            raise IndexError(
                f"Angle bucket ({v}, {h}) outside "
                f"{surface.v_angle_res}x{surface.h_angle_res} grid"
            )
        self.surface = surface
        self.v = v
        self.h = h

    @property
    def angle_color(self) -> np.ndarray:
        return self.surface.angle_colors[self.v, self.h]

    @angle_color.setter
    def angle_color(self, color: np.ndarray) -> None:
        self.surface.angle_colors[self.v, self.h] = color

    def __repr__(self) -> str:
        return f"SurfaceAngle(v={self.v}, h={self.h}, color={self.angle_color})"


class Surface:
    """One discretised shade point of a primitive.

    Parameters
    ----------
    angle_ratio : float
        Angular sampling density. ``0`` disables the directional cache
        (purely diffuse materials are view independent).

    Attributes
    ----------
    normal : np.ndarray
        Unit outward normal of the cell. Shape: (3,).
    center : np.ndarray
        World position of the cell center. Shape: (3,).
    local_to_world, world_to_local : np.ndarray
        4×4 frame transforms (identity until :meth:`reset`).
    diffuse_amt : np.ndarray
        Accumulated direct irradiance (RGB). Shape: (3,).
    angle_colors : np.ndarray or None
        Exit-radiance buckets. Shape: (v_angle_res, h_angle_res, 3).
    """

    def __init__(self, angle_ratio: float = 0.0) -> None:
        self.angle_ratio = float(angle_ratio)
        self.v_angle_res = int((90.0 + 1.0) * self.angle_ratio)
        self.h_angle_res = int(360.0 * self.angle_ratio)

        self.index = 0
        self.normal = np.array([0.0, 1.0, 0.0], dtype=np.float64)
        self.center = np.zeros(3, dtype=np.float64)
        self.local_to_world = np.eye(4, dtype=np.float64)
        self.world_to_local = np.eye(4, dtype=np.float64)
        self.diffuse_amt = np.zeros(3, dtype=np.float64)

        self.angle_colors: np.ndarray | None = None
        if self.angle_ratio > 0.0 and self.v_angle_res > 0 and self.h_angle_res > 0:
            self.angle_colors = np.zeros(
                (self.v_angle_res, self.h_angle_res, 3), dtype=np.float64
            )

    @property
    def has_angles(self) -> bool:
        return self.angle_colors is not None

    def reset(self, index: int, normal: np.ndarray, center: np.ndarray) -> None:
        """(Re)initialise the cell and clear every cached value.

        Safe to call repeatedly; the angle buffer is zeroed in place.
        """
        self.index = index
        self.normal = normalize(np.asarray(normal, dtype=np.float64))
        self.center = np.array(center, dtype=np.float64)
        self.local_to_world = build_local_frame(self.center, self.normal)
        self.world_to_local = np.linalg.inv(self.local_to_world)
        self.diffuse_amt[:] = 0.0
        if self.angle_colors is not None:
            self.angle_colors.fill(0.0)

    def accumulate(self, amount: np.ndarray) -> None:
        """Add a direct-light deposit to the irradiance cache."""
        self.diffuse_amt += amount

    # ------------------------------------------------------------------
    # Directional cache lookups
    # ------------------------------------------------------------------

    def lookup_angle_by_grid(self, v: int, h: int) -> SurfaceAngle | None:
        """Bucket at ``(v, h)``, wrapped modulo the angular resolution."""
        if self.angle_colors is None:
            return None
        return SurfaceAngle(self, v % self.v_angle_res, h % self.h_angle_res)

    def lookup_angle_by_direction(self, world_dir: np.ndarray) -> SurfaceAngle | None:
        """Bucket for an outgoing world direction.

        Parameters
        ----------
        world_dir : np.ndarray
            Direction leaving the surface (toward the viewer). Shape: (3,).

        Returns
        -------
        SurfaceAngle or None
            ``None`` when the surface carries no angular grid.
        """
        if self.angle_colors is None:
            return None
        local = normalize(transform_dir(self.world_to_local, np.asarray(world_dir, dtype=np.float64)))
        theta = rad2deg(math.acos(min(1.0, max(-1.0, local[1]))))
        phi = rad2deg(math.atan2(local[2], local[0]))
        v = int(math.floor(theta / 90.0 * self.v_angle_res))
        h = int(math.floor(phi / 360.0 * self.h_angle_res))
        return self.lookup_angle_by_grid(v, h)

    def angle_direction(self, v: int, h: int) -> np.ndarray:
        """World direction at the lower corner of bucket ``(v, h)``."""
        theta = deg2rad(v * 90.0 / self.v_angle_res)
        phi = deg2rad(h * 360.0 / self.h_angle_res)
        local = np.array(
            [math.cos(phi) * math.sin(theta), math.cos(theta), math.sin(phi) * math.sin(theta)],
            dtype=np.float64,
        )
        return transform_dir(self.local_to_world, local)


class SurfaceGrid:
    """Row-major ``v_res × h_res`` arena of :class:`Surface` cells.

    Owned exclusively by one primitive.
    """

    def __init__(self, v_res: int, h_res: int, angle_ratio: float = 0.0) -> None:
        if v_res <= 0 or h_res <= 0:
            raise ValueError(f"Surface grid must be non-empty, got {v_res}x{h_res}")
        self.v_res = int(v_res)
        self.h_res = int(h_res)
        self.angle_ratio = float(angle_ratio)
        self._cells = [Surface(angle_ratio) for _ in range(self.v_res * self.h_res)]

    def __len__(self) -> int:
        return len(self._cells)

    def __iter__(self):
        return iter(self._cells)

    def lookup(self, v: int, h: int) -> Surface:
        """Cell at ``(v, h)``; both indices wrap modulo the resolution."""
        return self._cells[(v % self.v_res) * self.h_res + (h % self.h_res)]

    @property
    def v_angle_res(self) -> int:
        return self._cells[0].v_angle_res

    @property
    def h_angle_res(self) -> int:
        return self._cells[0].h_angle_res

    def irradiance_image(self) -> np.ndarray:
        """All ``diffuse_amt`` values as a ``(v_res, h_res, 3)`` array."""
        data = np.stack([cell.diffuse_amt for cell in self._cells])
        return data.reshape(self.v_res, self.h_res, 3)

    def angle_image(self, v: int, h: int) -> np.ndarray | None:
        """Copy of one cell's exit-radiance buckets, or None if absent."""
        cell = self.lookup(v, h)
        if cell.angle_colors is None:
            return None
        return cell.angle_colors.copy()
