"""Pytest configuration and shared fixtures for cloudray tests."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import numpy as np
import pytest


# Add project root to path so imports work
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from tracer.constants import RenderOptions, TracerConfig  # noqa: E402
from tracer.primitives import MaterialType, MeshTriangle, Sphere  # noqa: E402
from tracer.ray_store import RayStore  # noqa: E402
from tracer.scene import Light, Scene  # noqa: E402


def pytest_configure(config: pytest.Config) -> None:
    """Configure logging for tests."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s [%(levelname)s] %(message)s",
    )


# ===================================================================
# SHARED FIXTURES
# ===================================================================


@pytest.fixture
def tracer_config() -> TracerConfig:
    """Coarse grid density so scenes build in milliseconds."""
    return TracerConfig(ray_cast_density=0.05)


@pytest.fixture
def options() -> RenderOptions:
    """Tiny black-background image, five bounces."""
    return RenderOptions(
        max_depth=5,
        spp=1,
        width=4,
        height=3,
        fov=90.0,
        background_color=(0.0, 0.0, 0.0),
        bias=0.001,
    )


@pytest.fixture
def store(options: RenderOptions, tracer_config: TracerConfig) -> RayStore:
    return RayStore(options, tracer_config)


def make_lit_sphere(density: float = 0.05, material=MaterialType.DIFFUSE_AND_GLOSSY) -> Sphere:
    """Unit sphere at (0, 0, -5), albedo (0.6, 0.7, 0.8), no specular."""
    return Sphere(
        "ball",
        material,
        center=(0.0, 0.0, -5.0),
        radius=1.0,
        kd=0.8,
        ks=0.0,
        diffuse_color=(0.6, 0.7, 0.8),
        density=density,
    )


def make_quad(
    name: str,
    corners,
    material=MaterialType.DIFFUSE_AND_GLOSSY,
    density: float = 0.05,
    **kwargs,
) -> MeshTriangle:
    """Two-triangle quad; the visible face is (c1 - c0) x (c3 - c0)."""
    return MeshTriangle(
        name,
        material,
        vertices=corners,
        vertex_index=[0, 1, 3, 1, 2, 3],
        st_coordinates=[[0, 0], [1, 0], [1, 1], [0, 1]],
        density=density,
        **kwargs,
    )


@pytest.fixture
def lit_sphere_scene() -> Scene:
    """Diffuse unit sphere with a light straight above its north pole."""
    return Scene(
        primitives=[make_lit_sphere()],
        lights=[Light(np.array([0.0, 10.0, -5.0]), 1.0)],
    )


@pytest.fixture
def facing_mirrors_scene() -> Scene:
    """Two pure mirrors at z=-4 (facing +z) and z=0 (facing -z)."""
    back = make_quad(
        "back",
        [[-1, -1, -4], [1, -1, -4], [1, 1, -4], [-1, 1, -4]],
        material=MaterialType.REFLECTION,
    )
    front = make_quad(
        "front",
        [[-1, -1, 0], [-1, 1, 0], [1, 1, 0], [1, -1, 0]],
        material=MaterialType.REFLECTION,
    )
    return Scene(primitives=[back, front], lights=[])
