"""Unit tests for the configuration loader."""

import tempfile
from pathlib import Path

import pytest

from tileortho.errors import ConfigurationError
from tileortho.utils.config import load_config, merge_overrides


class TestLoadConfig:
    """Test suite for load_config."""

    def test_none_is_empty(self):
        """Test no configuration file yields an empty mapping."""
        assert load_config(None) == {}

    def test_reads_yaml(self):
        """Test a YAML mapping is parsed."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "run.yaml"
            path.write_text("mode: lidar\nexport:\n  texel_size: 0.01\n", encoding="utf-8")

            config = load_config(str(path))

            assert config == {"mode": "lidar", "export": {"texel_size": 0.01}}

    def test_missing_file(self):
        """Test a missing file is a configuration error."""
        with pytest.raises(ConfigurationError):
            load_config("/nonexistent/run.yaml")

    def test_top_level_must_be_mapping(self):
        """Test a YAML list is rejected."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "run.yaml"
            path.write_text("- a\n- b\n", encoding="utf-8")
            with pytest.raises(ConfigurationError):
                load_config(str(path))

    def test_invalid_yaml(self):
        """Test unparsable YAML is a configuration error."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "run.yaml"
            path.write_text("mode: [unclosed\n", encoding="utf-8")
            with pytest.raises(ConfigurationError):
                load_config(str(path))


class TestMergeOverrides:
    """Test suite for merge_overrides."""

    def test_dotted_keys_and_none(self):
        """Test dotted keys land in their section and None keeps the file value."""
        config = {"mode": "image", "image": {"road_width": 4.0, "imu_height": 2.1}}

        merged = merge_overrides(config, {
            "image.road_width": 3.5,
            "image.imu_height": None,
            "export.texel_size": 0.01,
            "mode": None,
        })

        assert merged["mode"] == "image"
        assert merged["image"] == {"road_width": 3.5, "imu_height": 2.1}
        assert merged["export"] == {"texel_size": 0.01}
        # The input is left untouched
        assert config["image"]["road_width"] == 4.0
