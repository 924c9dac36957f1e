import json
import tempfile
import unittest
from datetime import date
from pathlib import Path

from sheet_gantt.config import Settings, config_template, load_settings, settings_from_env
from sheet_gantt.errors import ConfigError


class LoadSettingsTests(unittest.TestCase):
    def test_defaults(self):
        settings = load_settings(environ={})
        self.assertEqual(settings, Settings())
        self.assertEqual(settings.buffer_days, 3)
        self.assertTrue(settings.remote_enabled)
        self.assertIsNone(settings.gemini_api_key)

    def test_layer_order_file_env_overrides(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "sheet-gantt.json"
            config_path.write_text(json.dumps({"buffer_days": 5, "title": "From file", "project": "P"}), encoding="utf-8")
            settings = load_settings(
                config_path,
                environ={"SHEET_GANTT_BUFFER_DAYS": "7", "SHEET_GANTT_TODAY": "2024-02-01"},
                buffer_days=1,
            )

        self.assertEqual(settings.buffer_days, 1)
        self.assertEqual(settings.title, "From file")
        self.assertEqual(settings.project, "P")
        self.assertEqual(settings.today, date(2024, 2, 1))
        self.assertEqual(settings.resolved_today(), date(2024, 2, 1))

    def test_none_overrides_are_ignored(self):
        settings = load_settings(environ={"SHEET_GANTT_DAYFIRST": "yes"}, dayfirst=None, title=None)
        self.assertTrue(settings.dayfirst)
        self.assertEqual(settings.title, "Gantt Chart")

    def test_plain_gemini_key_is_a_fallback(self):
        self.assertEqual(settings_from_env({"GEMINI_API_KEY": "abc"})["gemini_api_key"], "abc")
        values = settings_from_env({"GEMINI_API_KEY": "abc", "SHEET_GANTT_GEMINI_API_KEY": "xyz"})
        self.assertEqual(values["gemini_api_key"], "xyz")

    def test_key_is_masked_in_dict(self):
        settings = load_settings(environ={"GEMINI_API_KEY": "secret"})
        self.assertEqual(settings.gemini_api_key, "secret")
        self.assertEqual(settings.as_dict()["gemini_api_key"], "***")

    def test_with_overrides_validates(self):
        settings = Settings().with_overrides(buffer_days="10", remote_enabled="off")
        self.assertEqual(settings.buffer_days, 10)
        self.assertFalse(settings.remote_enabled)
        with self.assertRaises(ConfigError):
            Settings().with_overrides(buffer_days=40)


class InvalidSettingsTests(unittest.TestCase):
    def test_bad_values(self):
        cases = [
            {"SHEET_GANTT_BUFFER_DAYS": "many"},
            {"SHEET_GANTT_BUFFER_DAYS": "-1"},
            {"SHEET_GANTT_BUFFER_DAYS": "32"},
            {"SHEET_GANTT_EMPTY_SPAN_DAYS": "0"},
            {"SHEET_GANTT_REMOTE": "maybe"},
            {"SHEET_GANTT_REMOTE_TIMEOUT": "0"},
            {"SHEET_GANTT_TODAY": "01/02/2024"},
            {"SHEET_GANTT_OUTPUT_FILENAME": "chart.csv"},
        ]
        for environ in cases:
            with self.subTest(environ=environ):
                with self.assertRaises(ConfigError):
                    load_settings(environ=environ)

    def test_unknown_key_in_config_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "config.json"
            config_path.write_text(json.dumps({"colour": "red"}), encoding="utf-8")
            with self.assertRaisesRegex(ConfigError, "Unknown setting"):
                load_settings(config_path, environ={})

    def test_config_file_problems(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            with self.assertRaisesRegex(ConfigError, "not found"):
                load_settings(root / "missing.json", environ={})
            yaml_path = root / "config.yaml"
            yaml_path.write_text("buffer_days: 3\n", encoding="utf-8")
            with self.assertRaisesRegex(ConfigError, ".json"):
                load_settings(yaml_path, environ={})
            broken = root / "broken.json"
            broken.write_text("{not json", encoding="utf-8")
            with self.assertRaisesRegex(ConfigError, "Could not read config"):
                load_settings(broken, environ={})
            listing = root / "list.json"
            listing.write_text("[1, 2]", encoding="utf-8")
            with self.assertRaisesRegex(ConfigError, "JSON object"):
                load_settings(listing, environ={})


class TemplateTests(unittest.TestCase):
    def test_template_loads_back(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "sheet-gantt.json"
            config_path.write_text(config_template(), encoding="utf-8")
            self.assertEqual(load_settings(config_path, environ={}), Settings())


if __name__ == "__main__":
    unittest.main()
