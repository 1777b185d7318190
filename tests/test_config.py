"""Tests for engine.config -- persistence and validation."""

import json
import os
import tempfile
import unittest
from unittest import mock

from engine.config import (
    DEFAULTS,
    EngineConfig,
    get_config_value,
    load_config,
    save_config,
    set_config_value,
    validate,
)
from engine.errors import ConfigError


class TestConfigDefaults(unittest.TestCase):
    def test_defaults_have_required_keys(self):
        for key in ("ping_count", "ping_timeout", "download_duration", "upload_duration",
                    "download_url", "upload_url", "ping_endpoints", "csv_file", "log_level"):
            self.assertIn(key, DEFAULTS)


class TestLoadSaveConfig(unittest.TestCase):
    def test_load_defaults_when_missing(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "config.json")
            with mock.patch("engine.config._config_path", return_value=path):
                cfg = load_config()
                self.assertEqual(cfg["ping_count"], DEFAULTS["ping_count"])

    def test_save_and_load(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "sub", "config.json")
            with mock.patch("engine.config._config_path", return_value=path):
                save_config({"ping_count": 12})
                cfg = load_config()
                self.assertEqual(cfg["ping_count"], 12)
                self.assertEqual(cfg["upload_duration"], DEFAULTS["upload_duration"])

    def test_corrupt_file_uses_defaults(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "config.json")
            with open(path, "w") as fh:
                fh.write("{broken")
            with mock.patch("engine.config._config_path", return_value=path):
                with self.assertLogs("engine.config", level="WARNING"):
                    self.assertEqual(load_config(), DEFAULTS)

    def test_get_set_value(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "config.json")
            with mock.patch("engine.config._config_path", return_value=path):
                set_config_value("csv_file", "runs.csv")
                self.assertEqual(get_config_value("csv_file"), "runs.csv")
                with open(path) as fh:
                    self.assertEqual(json.load(fh)["csv_file"], "runs.csv")


class TestValidate(unittest.TestCase):
    def _validate(self, **kwargs):
        params = dict(ping_count=8, ping_timeout=3.0, download_duration=10.0, upload_duration=10.0)
        params.update(kwargs)
        validate(**params)

    def test_defaults_valid(self):
        self._validate()

    def test_boundaries(self):
        self._validate(ping_count=1, download_duration=1.0, upload_duration=300.0)
        self._validate(ping_count=100, ping_timeout=0.1)

    def test_out_of_range(self):
        for kwargs in ({"ping_count": 0}, {"ping_count": 101}, {"ping_timeout": 0},
                       {"download_duration": 0.5}, {"upload_duration": 301}):
            with self.subTest(**kwargs):
                with self.assertRaises(ConfigError):
                    self._validate(**kwargs)

    def test_config_error_is_value_error(self):
        with self.assertRaises(ValueError):
            self._validate(ping_count=0)


class TestEngineConfig(unittest.TestCase):
    def test_defaults(self):
        cfg = EngineConfig()
        self.assertEqual(cfg.ping_count, 8)
        self.assertEqual(len(cfg.ping_endpoints), 4)
        self.assertEqual(cfg.ping_endpoints[0].weight, 1.2)

    def test_from_dict(self):
        cfg = EngineConfig.from_dict({
            "ping_count": "5",
            "ping_endpoints": [{"url": "wss://echo.example", "kind": "ws", "weight": 2}],
        })
        self.assertEqual(cfg.ping_count, 5)
        self.assertEqual(cfg.ping_endpoints[0].kind, "ws")

    def test_from_dict_bad_type(self):
        with self.assertRaises(ConfigError):
            EngineConfig.from_dict({"ping_count": "many"})

    def test_from_dict_bad_endpoint(self):
        with self.assertRaises(ConfigError):
            EngineConfig.from_dict({"ping_endpoints": [{"url": "x", "kind": "icmp"}]})

    def test_requires_endpoint(self):
        with self.assertRaises(ConfigError):
            EngineConfig(ping_endpoints=[])

    def test_out_of_range(self):
        with self.assertRaises(ConfigError):
            EngineConfig(download_duration=0)


if __name__ == "__main__":
    unittest.main()
