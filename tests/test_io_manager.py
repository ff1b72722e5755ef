"""Tests for saving and loading render results."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from rendering.io_manager import _sanitize_for_json, load_results, save_results


class TestSaveLoad:
    def test_round_trip(self, tmp_path: Path) -> None:
        fb = np.random.default_rng(0).random((3, 4, 3))
        irr = np.ones((2, 5, 3))
        saved = save_results(
            tmp_path,
            framebuffers={"traditional_x.0": fb},
            irradiance={"ball": irr},
            angles={},
            metadata={"total_rays": np.int64(42), "out": tmp_path},
        )
        assert tmp_path / "metadata.json" in saved
        assert not (tmp_path / "angles").exists(), "Empty groups are not written"

        data = load_results(tmp_path)
        np.testing.assert_array_equal(data["framebuffers"]["traditional_x.0"], fb)
        np.testing.assert_array_equal(data["irradiance"]["ball"], irr)
        assert data["angles"] == {}
        assert data["metadata"]["total_rays"] == 42
        assert data["metadata"]["out"] == str(tmp_path)

    def test_missing_directory(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_results(tmp_path / "absent")

    def test_missing_metadata_is_empty(self, tmp_path: Path) -> None:
        (tmp_path / "framebuffers").mkdir()
        np.save(tmp_path / "framebuffers" / "a.npy", np.zeros((1, 1, 3)))
        data = load_results(tmp_path)
        assert data["metadata"] == {}
        assert list(data["framebuffers"]) == ["a"]


class TestSanitize:
    def test_numpy_types(self) -> None:
        out = _sanitize_for_json(
            {"a": np.float32(0.5), "b": np.arange(3), "c": (np.bool_(True), 1), 3: "x"}
        )
        assert out == {"a": 0.5, "b": [0, 1, 2], "c": [True, 1], "3": "x"}
        assert type(out["c"][0]) is bool
