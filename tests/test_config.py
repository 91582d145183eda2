"""Unit tests for YAML config loading."""

from __future__ import annotations

import pytest

from geomap.config import AppConfig, FetchConfig, load_config
from geomap.errors import ConfigurationError


def _write(tmp_path, text):
    path = tmp_path / "geomap.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadConfig:
    def test_empty_file_gives_defaults(self, tmp_path):
        cfg = load_config(_write(tmp_path, ""))
        assert cfg.map == AppConfig().map
        assert cfg.fetch == FetchConfig()
        assert cfg.source_path == (tmp_path / "geomap.yaml").resolve()

    def test_full_file(self, tmp_path):
        cfg = load_config(
            _write(
                tmp_path,
                """
map:
  width: 960
  height: 500
  projection: geoMercator
  projection_config:
    center: [10, 50]
    scale: 300
zoom:
  min_zoom: 1
  max_zoom: 12
  translate_extent: [[0, 0], [960, 500]]
fetch:
  max_retries: 0
  strict_https_only: true
  allowed_protocols: [https]
validation:
  strict_mode: false
  max_array_length: 50
""",
            )
        )
        assert (cfg.map.width, cfg.map.height, cfg.map.projection) == (960, 500, "geoMercator")
        assert cfg.map.projection_config.center == (10, 50)
        assert cfg.map.projection_config.scale == 300
        assert tuple(cfg.zoom.scale_extent) == (1.0, 12.0)
        assert cfg.zoom.translate_extent.is_bounded
        assert cfg.fetch.max_retries == 0
        assert cfg.fetch.strict_https_only is True
        assert cfg.fetch.allowed_protocols == ("https",)
        assert cfg.validation.strict_mode is False
        assert cfg.validation.max_array_length == 50

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    @pytest.mark.parametrize(
        "text",
        [
            "- just\n- a list\n",
            "map:\n  width: 0\n",
            "map:\n  width: wide\n",
            "map:\n  projection_config:\n    scale: -5\n",
            "zoom:\n  min_zoom: 4\n  max_zoom: 2\n",
            "zoom:\n  translate_extent: [1, 2]\n",
            "fetch:\n  allowed_protocols: [ftp]\n",
            "fetch:\n  max_retries: -1\n",
            "validation:\n  strict_mode: maybe\n",
        ],
    )
    def test_invalid_values(self, tmp_path, text):
        with pytest.raises(ConfigurationError):
            load_config(_write(tmp_path, text))
