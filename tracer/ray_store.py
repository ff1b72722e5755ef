"""Per-pass ray statistics and optional ray-tree recording.

A :class:`RayStore` is created for every pass invocation. It counts every
ray the tracers spawn and, when recording is enabled for a primitive or a
pixel, keeps the full propagation tree as :class:`Ray` nodes so that a
single light path can be inspected after the fact.

Counter semantics
-----------------
- ``total``: every cast that passed the depth check (overflowing casts are
  not included).
- ``origin``: primary rays issued by a pass driver.
- ``reflection`` / ``refraction`` / ``diffuse``: secondary rays spawned.
- ``no_hit``, ``invisible``, ``weak``, ``overflow``, ``valid``: outcomes.
- ``total_mem``: bytes held by recorded :class:`Ray` nodes.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from enum import Enum

import numpy as np

from tracer.constants import RenderOptions, TracerConfig

logger = logging.getLogger(__name__)

STATS_COLUMNS = (
    "set",
    "depth",
    "origin",
    "reflect",
    "refract",
    "diffuse",
    "nohit",
    "invis",
    "weak",
    "overflow",
    "rays",
    "time",
    "mem",
)

_MAX_DUMP_DEPTH = 256


class RayType(Enum):
    ORIGIN = "origin"
    REFLECTION = "reflection"
    REFRACTION = "refraction"
    DIFFUSE = "diffuse"


class RayStatus(Enum):
    NO_HIT = "no_hit"
    VALID = "valid"
    INVISIBLE = "invisible"
    OVERFLOW = "overflow"


@dataclass(eq=False)
class Ray:
    """Recorded node of a ray tree.

    Attributes
    ----------
    ray_type : RayType
        How the ray was spawned.
    origin, direction : np.ndarray
        Ray start and direction. Shape: (3,).
    intensity : np.ndarray or None
        Carried light intensity (forward rays only).
    inside : bool
        True when the ray travels inside a refractive object.
    status : RayStatus
        Outcome of the cast.
    hit_name : str or None
        Name of the primitive that was hit.
    hit_point : np.ndarray or None
        World hit point.
    """

    ray_type: RayType
    origin: np.ndarray
    direction: np.ndarray
    intensity: np.ndarray | None = None
    inside: bool = False
    status: RayStatus = RayStatus.NO_HIT
    hit_name: str | None = None
    hit_point: np.ndarray | None = None
    reflections: list[Ray] = field(default_factory=list)
    refractions: list[Ray] = field(default_factory=list)
    diffuses: list[Ray] = field(default_factory=list)
    valid_count: int = 0
    no_hit_count: int = 0
    invisible_count: int = 0
    overflow_count: int = 0
    weak_count: int = 0

    def links(self, ray_type: RayType) -> list[Ray]:
        """Child list for a spawned ray of ``ray_type``."""
        if ray_type is RayType.REFLECTION:
            return self.reflections
        if ray_type is RayType.REFRACTION:
            return self.refractions
        if ray_type is RayType.DIFFUSE:
            return self.diffuses
        raise ValueError(f"Origin rays have no parent link list: {ray_type}")

    def mark_hit(self, name: str, point: np.ndarray) -> None:
        self.status = RayStatus.VALID
        self.valid_count += 1
        self.hit_name = name
        self.hit_point = np.array(point, dtype=np.float64)

    def mark_no_hit(self) -> None:
        self.status = RayStatus.NO_HIT
        self.no_hit_count += 1

    def mark_overflow(self) -> None:
        self.status = RayStatus.OVERFLOW
        self.overflow_count += 1


class RayStore:
    """Counters and recording state for one pass.

    Parameters
    ----------
    options : RenderOptions
        Active option set.
    tracer : TracerConfig
        Propagation tunables.
    record_pixels : iterable of (row, col), optional
        Pixels whose eye rays are recorded.
    """

    def __init__(
        self,
        options: RenderOptions,
        tracer: TracerConfig,
        record_pixels=(),
    ) -> None:
        self.options = options
        self.tracer = tracer

        self.total = 0
        self.origin = 0
        self.reflection = 0
        self.refraction = 0
        self.diffuse = 0
        self.invisible = 0
        self.weak = 0
        self.overflow = 0
        self.valid = 0
        self.no_hit = 0
        self.total_mem = 0

        self.record_pixels = {(int(r), int(c)) for r, c in record_pixels}
        self.eye_trace_links: dict[tuple[int, int], list[Ray]] = {}

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record(
        self,
        ray_type: RayType,
        links: list[Ray] | None,
        origin: np.ndarray,
        direction: np.ndarray,
        intensity: np.ndarray | None = None,
    ) -> Ray | None:
        """Append a new node to ``links`` and return it.

        Returns None without allocating when ``links`` is None (recording
        disabled for this path).
        """
        if links is None:
            return None
        ray = Ray(
            ray_type=ray_type,
            origin=np.array(origin, dtype=np.float64),
            direction=np.array(direction, dtype=np.float64),
            intensity=None if intensity is None else np.array(intensity, dtype=np.float64),
        )
        self.total_mem += sys.getsizeof(ray) + ray.origin.nbytes + ray.direction.nbytes
        links.append(ray)
        return ray

    def spawn(
        self,
        parent: Ray | None,
        ray_type: RayType,
        origin: np.ndarray,
        direction: np.ndarray,
        intensity: np.ndarray | None = None,
        inside: bool = False,
    ) -> Ray | None:
        """Count a secondary ray and record it under ``parent`` if recording."""
        if ray_type is RayType.REFLECTION:
            self.reflection += 1
        elif ray_type is RayType.REFRACTION:
            self.refraction += 1
        elif ray_type is RayType.DIFFUSE:
            self.diffuse += 1

        if parent is None:
            return None
        child = self.record(ray_type, parent.links(ray_type), origin, direction, intensity)
        child.inside = inside
        return child

    def eye_trace_link(self, row: int, col: int) -> list[Ray] | None:
        """Link list for pixel ``(row, col)`` if it is being recorded."""
        if (row, col) not in self.record_pixels:
            return None
        return self.eye_trace_links.setdefault((row, col), [])

    # ------------------------------------------------------------------
    # Dumps
    # ------------------------------------------------------------------

    def format_ray(self, ray: Ray, depth: int = 1) -> list[str]:
        """Render a recorded tree as indented text lines."""
        if depth >= _MAX_DUMP_DEPTH:
            return ["dump depth limit reached"]

        pad = " " * max(depth - 1, 0) + "#"
        o, d = ray.origin, ray.direction
        intensity = ray.intensity if ray.intensity is not None else np.full(3, -1.0)
        lines = [
            f"{pad}{depth} {ray.ray_type.value} from({o[0]:f},{o[1]:f},{o[2]:f})"
            f"-{int(ray.inside)}->to({d[0]:f},{d[1]:f},{d[2]:f}), "
            f"intensity({intensity[0]:f},{intensity[1]:f},{intensity[2]:f}) "
            f"[{ray.status.value}]"
        ]
        if ray.hit_name is None:
            lines.append(f"{pad}{depth} nohit")
            return lines

        p = ray.hit_point
        lines.append(f"{pad}{depth} hit object: {ray.hit_name}, point({p[0]:f}, {p[1]:f}, {p[2]:f})")
        child_pad = " " * depth + "#"
        for label, children in (
            ("reflect", ray.reflections),
            ("refract", ray.refractions),
            ("diffuse", ray.diffuses),
        ):
            for i, child in enumerate(children):
                lines.append(f"{child_pad}{depth + 1} {label}[{i}]:")
                lines.extend(self.format_ray(child, depth + 1))
        return lines

    def dump_eye_trace_link(self, row: int, col: int) -> None:
        links = self.eye_trace_links.get((row, col))
        if not links:
            logger.info("No recorded eye rays for pixel (%d, %d)", row, col)
            return
        logger.info("*** dump eye trace rays of pixel (%d, %d) ***", row, col)
        for line in self.format_ray(links[0]):
            logger.info(line)

    def dump_object_trace_link(self, primitive, v: int, h: int) -> None:
        links = primitive.trace_link(v, h)
        if not links:
            logger.info("No recorded light rays for %s (%d, %d)", primitive.name, v, h)
            return
        logger.info("*** dump light trace rays of object-vertical-horizon (%s, %d, %d) ***",
                    primitive.name, v, h)
        for line in self.format_ray(links[0]):
            logger.info(line)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def stats(self) -> dict[str, int]:
        return {
            "origin": self.origin,
            "reflection": self.reflection,
            "refraction": self.refraction,
            "diffuse": self.diffuse,
            "no_hit": self.no_hit,
            "invisible": self.invisible,
            "weak": self.weak,
            "overflow": self.overflow,
            "valid": self.valid,
            "total": self.total,
            "total_mem": self.total_mem,
        }

    def stats_row(self, option_index: int, elapsed_s: float) -> str:
        """One fixed-width row matching :data:`STATS_COLUMNS`."""
        values = (
            option_index,
            self.options.max_depth,
            self.origin,
            self.reflection,
            self.refraction,
            self.diffuse,
            self.no_hit,
            self.invisible,
            self.weak,
            self.overflow,
            self.total,
        )
        row = " ".join(f"{v:<10d}" for v in values)
        return f"{row} {elapsed_s:<10.2f} {self.total_mem / (1024.0 ** 3):<10.4f}"


def stats_header() -> str:
    return " ".join(f"{c:<10s}" for c in STATS_COLUMNS)
