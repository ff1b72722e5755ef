"""Tests for figure generation (Agg backend, files only)."""

from __future__ import annotations

from pathlib import Path

import numpy as np

from rendering.io_manager import save_results
from visualization.plotter import (
    generate_all_plots,
    luminance,
    plot_from_saved_data,
    save_image,
    to_display_rgb,
)


def _results() -> tuple[dict, dict, dict, list[dict]]:
    rng = np.random.default_rng(1)
    framebuffers = {"traditional_x.0_y.0_z.0": rng.random((6, 8, 3)) * 1.5}
    irradiance = {"ball": rng.random((9, 18, 3))}
    angles = {"floor": rng.random((4, 18, 3))}
    passes = [
        {"option_index": 0, "kind": "light", "origin": 162, "no_hit": 70},
        {"option_index": 0, "kind": "traditional", "origin": 48, "reflection": 10},
    ]
    return framebuffers, irradiance, angles, passes


class TestHelpers:
    def test_display_clamps(self) -> None:
        out = to_display_rgb(np.array([[[-0.5, 0.5, 2.0]]]))
        np.testing.assert_array_equal(out, [[[0.0, 0.5, 1.0]]])

    def test_luminance_of_white(self) -> None:
        assert abs(luminance(np.ones(3)) - 1.0) < 1e-12


class TestGenerateAllPlots:
    def test_files_created(self, tmp_path: Path) -> None:
        fbs, irr, ang, passes = _results()
        saved = generate_all_plots(fbs, irr, ang, passes=passes, output_dir=tmp_path, dpi=40)
        names = {p.name for p in saved}
        assert names == {
            "traditional_x.0_y.0_z.0.png",
            "traditional_x.0_y.0_z.0_figure.png",
            "irradiance_ball.png",
            "angles_floor.png",
            "pass_stats.png",
        }
        for p in saved:
            assert p.exists() and p.stat().st_size > 0

    def test_image_is_pixel_exact_size(self, tmp_path: Path) -> None:
        import matplotlib.pyplot as plt

        path = save_image(np.zeros((6, 8, 3)), tmp_path / "img.png")
        assert plt.imread(path).shape[:2] == (6, 8)

    def test_plot_from_saved_data(self, tmp_path: Path) -> None:
        fbs, irr, ang, passes = _results()
        save_results(tmp_path, fbs, irr, ang, {"passes": passes})
        saved = plot_from_saved_data(tmp_path, dpi=40)
        assert len(saved) == 5
