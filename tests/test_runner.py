"""Tests for the render runner: pass order, results, and persistence."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import numpy as np
import pytest

from rendering.runner import RenderRunner, framebuffer_label
from tracer.constants import RenderConfig, config_from_dict


def _raw_config(**render) -> dict:
    """Diffuse ball over a small mirror floor, 4 x 3 images."""
    opts = {"width": 4, "height": 3, "max_depth": 2, "background_color": 0.0}
    opts.update(render)
    return {
        "tracer": {"ray_cast_density": 0.05},
        "render": opts,
        "output": {"save_arrays": False, "save_plots": False},
        "scene": {
            "lights": [{"position": [0, 10, -5], "intensity": 1.0}],
            "objects": [
                {"name": "ball", "type": "sphere", "center": [0, 0, -5], "radius": 1,
                 "kd": 0.8, "diffuse_color": [0.6, 0.7, 0.8]},
                {"name": "floor", "type": "mesh", "material": "reflection",
                 "vertices": [[-2, -2, -2], [2, -2, -2], [2, -2, -8], [-2, -2, -8]],
                 "indices": [0, 1, 3, 1, 2, 3], "st": [[0, 0], [1, 0], [1, 1], [0, 1]]},
            ],
        },
    }


@pytest.fixture
def config() -> RenderConfig:
    return config_from_dict(_raw_config())


# ===================================================================
# PASS ORDER
# ===================================================================


class TestPassOrder:
    def test_all_passes_in_order(self, config: RenderConfig) -> None:
        results = RenderRunner(config).run(save_data=False)
        kinds = [p.kind for p in results.passes]
        assert kinds == ["light", "after_diffuse", "angle", "after_reflect", "traditional"]
        assert len(results.framebuffers) == 3
        for fb in results.framebuffers.values():
            assert fb.shape == (3, 4, 3)
            assert np.all(np.isfinite(fb))

    def test_traditional_only(self) -> None:
        config = config_from_dict(_raw_config(
            do_render_after_diffuse_preprocess=False,
            do_render_after_diffuse_and_reflect_preprocess=False,
        ))
        results = RenderRunner(config).run(save_data=False)
        assert [p.kind for p in results.passes] == ["traditional"]
        assert results.irradiance == {}, "Caches are captured only after a light pass"

    def test_after_diffuse_only_skips_angle_pass(self) -> None:
        config = config_from_dict(_raw_config(
            do_traditional_render=False,
            do_render_after_diffuse_and_reflect_preprocess=False,
        ))
        results = RenderRunner(config).run(save_data=False)
        assert [p.kind for p in results.passes] == ["light", "after_diffuse"]
        assert set(results.irradiance) == {"ball", "floor"}

    def test_one_eye_pass_per_viewpoint(self) -> None:
        config = config_from_dict(_raw_config(
            viewpoints=[[0, 0, 0], [1, 0, 0]],
            do_render_after_diffuse_preprocess=False,
            do_render_after_diffuse_and_reflect_preprocess=False,
        ))
        results = RenderRunner(config).run(save_data=False)
        assert len(results.framebuffers) == 2
        assert any("_x.1_" in label for label in results.framebuffers)

    def test_option_sets_run_in_sequence(self) -> None:
        raw = _raw_config()
        base = raw["render"]
        raw["render"] = [
            dict(base, do_render_after_diffuse_preprocess=False,
                 do_render_after_diffuse_and_reflect_preprocess=False),
            dict(base, max_depth=1, do_render_after_diffuse_preprocess=False,
                 do_render_after_diffuse_and_reflect_preprocess=False),
        ]
        results = RenderRunner(config_from_dict(raw)).run(save_data=False)
        assert [p.option_index for p in results.passes] == [0, 1]
        assert any("_dep.1_" in label for label in results.framebuffers)


# ===================================================================
# RESULTS
# ===================================================================


class TestResults:
    def test_counters(self, config: RenderConfig) -> None:
        runner = RenderRunner(config)
        results = runner.run(save_data=False)
        by_kind = {p.kind: p for p in results.passes}
        ball = runner.scene.get("ball")
        floor = runner.scene.get("floor")
        assert by_kind["light"].stats["origin"] == ball.v_res * ball.h_res + floor.v_res * floor.h_res
        assert by_kind["after_diffuse"].stats["origin"] == 12
        buckets = floor.surfaces.v_angle_res * floor.surfaces.h_angle_res
        assert by_kind["angle"].stats["origin"] == floor.v_res * floor.h_res * buckets
        assert results.metadata["total_rays"] == sum(p.stats["total"] for p in results.passes)

    def test_caches_captured(self, config: RenderConfig) -> None:
        runner = RenderRunner(config)
        results = runner.run(save_data=False)
        ball = runner.scene.get("ball")
        assert results.irradiance["ball"].shape == (ball.v_res, ball.h_res, 3)
        assert np.any(results.irradiance["ball"] > 0.0)
        assert set(results.angles) == {"floor"}, "Only specular objects carry angle buckets"

    def test_labels_and_hashes(self, config: RenderConfig) -> None:
        results = RenderRunner(config).run(save_data=False)
        label = framebuffer_label("traditional", (0, 0, 0), 0.05, config.options[0])
        assert label == "traditional_x.0_y.0_z.0_density.0.05_dep.2_spp.1"
        assert label in results.framebuffers
        assert set(results.metadata["framebuffer_sha256"]) == set(results.framebuffers)
        assert len(results.metadata["passes"]) == 5

    def test_prebuilt_scene_is_used(self, config: RenderConfig, lit_sphere_scene) -> None:
        runner = RenderRunner(config, scene=lit_sphere_scene)
        assert runner.scene is lit_sphere_scene


# ===================================================================
# RECORDING AND PERSISTENCE
# ===================================================================


class TestRecordingAndSave:
    def test_dumps_are_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        raw = _raw_config()
        raw["output"].update({"dump_pixels": [[1, 2]], "record_primitives": ["ball"]})
        runner = RenderRunner(config_from_dict(raw))
        assert runner.scene.get("ball").recorder_enabled
        with caplog.at_level(logging.INFO):
            runner.run(save_data=False)
        assert "dump eye trace rays of pixel (1, 2)" in caplog.text
        assert "dump light trace rays of object-vertical-horizon (ball, 0, 0)" in caplog.text

    def test_unknown_recorded_primitive(self) -> None:
        raw = _raw_config()
        raw["output"]["record_primitives"] = ["ghost"]
        with pytest.raises(KeyError):
            RenderRunner(config_from_dict(raw))

    def test_save_results(self, config: RenderConfig, tmp_path: Path) -> None:
        RenderRunner(config).run(save_data=True, output_dir=tmp_path)
        assert len(list((tmp_path / "framebuffers").glob("*.npy"))) == 3
        assert (tmp_path / "irradiance" / "ball.npy").exists()
        assert (tmp_path / "angles" / "floor.npy").exists()
        meta = json.loads((tmp_path / "metadata.json").read_text(encoding="utf-8"))
        assert meta["objects"] == ["ball", "floor"]
        assert [p["kind"] for p in meta["passes"]][0] == "light"
