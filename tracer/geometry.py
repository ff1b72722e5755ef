"""Vector algebra and intersection kernels for the Whitted tracer.

Every function that sits on the per-ray hot path is compiled with Numba
``@njit(cache=True)``. The kernels operate on float64 ``(3,)`` arrays and
never raise: degenerate inputs (negative discriminant, total internal
reflection, parallel rays, zero-length vectors) are reported through
sentinel return values so that the recursive tracers can treat them as
ordinary "no contribution" outcomes.

Design Notes
------------
- Dot and cross products are written out component by component, the same
  way the Möller-Trumbore kernel does it, so that Numba never needs BLAS.
- ``fastmath=False`` keeps IEEE ordering; the Fresnel and quadratic
  branches compare against exact thresholds.
- Sentinel conventions:
    - ``solve_quadratic`` → ``(False, 0.0, 0.0)`` when there is no real root.
    - ``ray_sphere_intersect`` / ``ray_triangle_intersect`` → ``t = -1.0``.
    - ``refract`` → zero vector on total internal reflection.

References
----------
- Möller, T. & Trumbore, B. (1997). "Fast, Minimum Storage Ray-Triangle
  Intersection." J. Graphics Tools, 2(1), 21-28.
- Whitted, T. (1980). "An improved illumination model for shaded display."
  Commun. ACM, 23(6), 343-349.
"""

from __future__ import annotations

import logging

import numpy as np
from numba import njit

logger = logging.getLogger(__name__)

# Relative barycentric slack so an edge shared by two triangles is hit by
# at least one of them.
_EDGE_EPSILON = 1e-9


# ===================================================================
# BASIC VECTOR OPERATIONS (Numba JIT)
# ===================================================================


@njit(cache=True, fastmath=False)
def dot(a: np.ndarray, b: np.ndarray) -> float:
    """Dot product of two 3-vectors."""
    return a[0] * b[0] + a[1] * b[1] + a[2] * b[2]


@njit(cache=True, fastmath=False)
def cross(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Cross product of two 3-vectors."""
    out = np.empty(3, dtype=np.float64)
    out[0] = a[1] * b[2] - a[2] * b[1]
    out[1] = a[2] * b[0] - a[0] * b[2]
    out[2] = a[0] * b[1] - a[1] * b[0]
    return out


@njit(cache=True, fastmath=False)
def normalize(v: np.ndarray) -> np.ndarray:
    """Return ``v`` scaled to unit length.

    A zero-length vector is returned unchanged (as a copy) instead of
    producing NaNs.
    """
    out = np.empty(3, dtype=np.float64)
    mag2 = v[0] * v[0] + v[1] * v[1] + v[2] * v[2]
    if mag2 > 0.0:
        inv_mag = 1.0 / np.sqrt(mag2)
        out[0] = v[0] * inv_mag
        out[1] = v[1] * inv_mag
        out[2] = v[2] * inv_mag
    else:
        out[0] = v[0]
        out[1] = v[1]
        out[2] = v[2]
    return out


@njit(cache=True, fastmath=False)
def reflect(incident: np.ndarray, normal: np.ndarray) -> np.ndarray:
    """Mirror ``incident`` about ``normal``: I - 2 (I·N) N."""
    d = incident[0] * normal[0] + incident[1] * normal[1] + incident[2] * normal[2]
    out = np.empty(3, dtype=np.float64)
    out[0] = incident[0] - 2.0 * d * normal[0]
    out[1] = incident[1] - 2.0 * d * normal[1]
    out[2] = incident[2] - 2.0 * d * normal[2]
    return out


@njit(cache=True, fastmath=False)
def refract(incident: np.ndarray, normal: np.ndarray, ior: float) -> np.ndarray:
    """Refraction direction via Snell's law.

    Handles both sides of the boundary: when the ray leaves the object
    (I·N > 0) the indices are swapped and the normal is flipped.

    Parameters
    ----------
    incident : np.ndarray
        Unit incident direction. Shape: (3,).
    normal : np.ndarray
        Unit outward surface normal. Shape: (3,).
    ior : float
        Index of refraction of the object (outside medium is 1.0).

    Returns
    -------
    np.ndarray
        Transmitted direction, or the zero vector on total internal
        reflection. Shape: (3,).
    """
    cosi = incident[0] * normal[0] + incident[1] * normal[1] + incident[2] * normal[2]
    cosi = min(1.0, max(-1.0, cosi))
    etai = 1.0
    etat = ior
    sign = 1.0
    if cosi < 0.0:
        cosi = -cosi
    else:
        etai, etat = etat, etai
        sign = -1.0
    eta = etai / etat
    k = 1.0 - eta * eta * (1.0 - cosi * cosi)

    out = np.zeros(3, dtype=np.float64)
    if k < 0.0:
        return out

    scale = eta * cosi - np.sqrt(k)
    out[0] = eta * incident[0] + scale * sign * normal[0]
    out[1] = eta * incident[1] + scale * sign * normal[1]
    out[2] = eta * incident[2] + scale * sign * normal[2]
    return out


@njit(cache=True, fastmath=False)
def fresnel(incident: np.ndarray, normal: np.ndarray, ior: float) -> float:
    """Unpolarised Fresnel reflectance ``kr`` at a dielectric boundary.

    Transmittance is ``1 - kr``. Returns exactly 1.0 on total internal
    reflection.

    Parameters
    ----------
    incident : np.ndarray
        Unit incident direction. Shape: (3,).
    normal : np.ndarray
        Unit outward surface normal. Shape: (3,).
    ior : float
        Index of refraction of the object.

    Returns
    -------
    float
        Fraction of light reflected, in [0, 1].
    """
    cosi = incident[0] * normal[0] + incident[1] * normal[1] + incident[2] * normal[2]
    cosi = min(1.0, max(-1.0, cosi))
    etai = 1.0
    etat = ior
    if cosi > 0.0:
        etai, etat = etat, etai

    sint = etai / etat * np.sqrt(max(0.0, 1.0 - cosi * cosi))
    if sint >= 1.0:
        return 1.0

    cost = np.sqrt(max(0.0, 1.0 - sint * sint))
    cosi = abs(cosi)
    rs = ((etat * cosi) - (etai * cost)) / ((etat * cosi) + (etai * cost))
    rp = ((etai * cosi) - (etat * cost)) / ((etai * cosi) + (etat * cost))
    return (rs * rs + rp * rp) / 2.0


# ===================================================================
# INTERSECTION KERNELS (Numba JIT)
# ===================================================================


@njit(cache=True, fastmath=False)
def solve_quadratic(a: float, b: float, c: float):
    """Solve ``a x² + b x + c = 0`` with the numerically stable form.

    Returns
    -------
    tuple[bool, float, float]
        ``(has_roots, x0, x1)`` with ``x0 <= x1``. ``(False, 0.0, 0.0)``
        for a negative discriminant or a degenerate ``a``.
    """
    if a == 0.0:
        return False, 0.0, 0.0
    discr = b * b - 4.0 * a * c
    if discr < 0.0:
        return False, 0.0, 0.0
    if discr == 0.0:
        x = -0.5 * b / a
        return True, x, x

    if b > 0.0:
        q = -0.5 * (b + np.sqrt(discr))
    else:
        q = -0.5 * (b - np.sqrt(discr))
    x0 = q / a
    x1 = c / q if q != 0.0 else x0
    if x0 > x1:
        x0, x1 = x1, x0
    return True, x0, x1


@njit(cache=True, fastmath=False)
def ray_sphere_intersect(
    ray_origin: np.ndarray,
    ray_dir: np.ndarray,
    center: np.ndarray,
    radius2: float,
) -> float:
    """Analytic ray-sphere intersection.

    ``ray_dir`` need not be normalised; the returned parameter is in units
    of ``ray_dir``.

    Returns
    -------
    float
        Nearest non-negative parameter ``t``, or -1.0 on a miss.
    """
    lx = ray_origin[0] - center[0]
    ly = ray_origin[1] - center[1]
    lz = ray_origin[2] - center[2]
    a = ray_dir[0] * ray_dir[0] + ray_dir[1] * ray_dir[1] + ray_dir[2] * ray_dir[2]
    b = 2.0 * (ray_dir[0] * lx + ray_dir[1] * ly + ray_dir[2] * lz)
    c = lx * lx + ly * ly + lz * lz - radius2

    ok, t0, t1 = solve_quadratic(a, b, c)
    if not ok:
        return -1.0
    if t0 < 0.0:
        t0 = t1
    if t0 < 0.0:
        return -1.0
    return t0


@njit(cache=True, fastmath=False)
def ray_triangle_intersect(
    ray_origin: np.ndarray,
    ray_dir: np.ndarray,
    v0: np.ndarray,
    v1: np.ndarray,
    v2: np.ndarray,
):
    """Single-sided Möller-Trumbore ray-triangle intersection.

    Only the face whose normal is ``(v1 - v0) × (v2 - v0)`` is hit; rays
    arriving from behind, or parallel to the plane, miss. Barycentric
    bounds carry a ``1e-9`` relative slack so that a ray through an edge
    shared by two triangles of a mesh hits at least one of them.

    Returns
    -------
    tuple[float, float, float]
        ``(t, u, v)`` with barycentric ``u, v``. ``t = -1.0`` on a miss.
    """
    e1_x = v1[0] - v0[0]
    e1_y = v1[1] - v0[1]
    e1_z = v1[2] - v0[2]

    e2_x = v2[0] - v0[0]
    e2_y = v2[1] - v0[1]
    e2_z = v2[2] - v0[2]

    # P = ray_dir × e2
    p_x = ray_dir[1] * e2_z - ray_dir[2] * e2_y
    p_y = ray_dir[2] * e2_x - ray_dir[0] * e2_z
    p_z = ray_dir[0] * e2_y - ray_dir[1] * e2_x

    det = e1_x * p_x + e1_y * p_y + e1_z * p_z
    if det <= 0.0:
        return -1.0, 0.0, 0.0

    t_x = ray_origin[0] - v0[0]
    t_y = ray_origin[1] - v0[1]
    t_z = ray_origin[2] - v0[2]

    u = t_x * p_x + t_y * p_y + t_z * p_z
    if u < -_EDGE_EPSILON * det or u > (1.0 + _EDGE_EPSILON) * det:
        return -1.0, 0.0, 0.0

    # Q = T × e1
    q_x = t_y * e1_z - t_z * e1_y
    q_y = t_z * e1_x - t_x * e1_z
    q_z = t_x * e1_y - t_y * e1_x

    v = ray_dir[0] * q_x + ray_dir[1] * q_y + ray_dir[2] * q_z
    if v < -_EDGE_EPSILON * det or u + v > (1.0 + _EDGE_EPSILON) * det:
        return -1.0, 0.0, 0.0

    inv_det = 1.0 / det
    t_dist = (e2_x * q_x + e2_y * q_y + e2_z * q_z) * inv_det
    return t_dist, u * inv_det, v * inv_det


# ===================================================================
# ANGLE HELPERS AND LOCAL FRAMES (plain NumPy)
# ===================================================================


def deg2rad(deg: float) -> float:
    """Degrees to radians."""
    return deg * np.pi / 180.0


def rad2deg(rad: float) -> float:
    """Radians to degrees, wrapped into [0, 360) for negative input."""
    deg = rad * 180.0 / np.pi
    if deg < 0.0:
        deg += 360.0
    return deg


def vec3(x: float, y: float, z: float) -> np.ndarray:
    """Build a float64 3-vector."""
    return np.array([x, y, z], dtype=np.float64)


def as_vec3(values) -> np.ndarray:
    """Coerce a scalar or a 3-sequence into a float64 3-vector.

    A scalar is broadcast to all three components (used for grey
    intensities and colors).

    Raises
    ------
    ValueError
        If ``values`` is neither a scalar nor a length-3 sequence.
    """
    arr = np.asarray(values, dtype=np.float64)
    if arr.ndim == 0:
        return np.full(3, float(arr), dtype=np.float64)
    if arr.shape != (3,):
        raise ValueError(f"Expected a scalar or a 3-vector, got shape {arr.shape}")
    return arr.copy()


def build_local_frame(center: np.ndarray, normal: np.ndarray) -> np.ndarray:
    """Local-to-world transform anchored at ``center`` along ``normal``.

    The local y axis maps to ``normal``. The x (tangent) and z
    (bitangent) axes complete a right-handed orthonormal basis. Points are
    column vectors: ``world = M @ [x, y, z, 1]``.

    Parameters
    ----------
    center : np.ndarray
        Frame origin in world space. Shape: (3,).
    normal : np.ndarray
        Unit normal. Shape: (3,).

    Returns
    -------
    np.ndarray
        4×4 homogeneous matrix, dtype float64.
    """
    n = normalize(np.asarray(normal, dtype=np.float64))
    # Choose a helper axis not parallel to the normal
    helper = vec3(1.0, 0.0, 0.0) if abs(n[0]) < 0.9 else vec3(0.0, 0.0, 1.0)
    bitangent = normalize(cross(helper, n))
    tangent = cross(n, bitangent)

    m = np.eye(4, dtype=np.float64)
    m[:3, 0] = tangent
    m[:3, 1] = n
    m[:3, 2] = bitangent
    m[:3, 3] = center
    return m


def transform_dir(matrix: np.ndarray, direction: np.ndarray) -> np.ndarray:
    """Apply the rotational part of a 4×4 transform to a direction."""
    return matrix[:3, :3] @ direction


def transform_point(matrix: np.ndarray, point: np.ndarray) -> np.ndarray:
    """Apply a 4×4 homogeneous transform to a point."""
    return matrix[:3, :3] @ point + matrix[:3, 3]
