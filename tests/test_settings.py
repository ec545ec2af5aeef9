#!/usr/bin/env python3
"""
Test suite for settings.py
"""

import json
import os
import sys
import tempfile
import unittest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from settings import DEFAULT_OPTIONS, Settings


class TestSettingsDefaults(unittest.TestCase):
    """Test default values and validation."""

    def test_defaults(self):
        settings = Settings()
        self.assertEqual(settings.allowed_attempts, 20)
        self.assertEqual(settings.reset_time, 60)
        self.assertEqual(settings.htaccess_dir, ".")
        self.assertEqual(settings.message_403, "")
        self.assertIsNone(settings.slack_token)
        settings.validate()

    def test_validate_rejects_low_thresholds(self):
        with self.assertRaises(ValueError):
            Settings(allowed_attempts=0).validate()
        with self.assertRaises(ValueError):
            Settings(reset_time=-5).validate()

    def test_validate_rejects_empty_dir(self):
        with self.assertRaises(ValueError):
            Settings(htaccess_dir="  ").validate()

    def test_update_converts_integers(self):
        settings = Settings()
        settings.update(allowed_attempts="5", reset_time=None)
        self.assertEqual(settings.allowed_attempts, 5)
        self.assertEqual(settings.reset_time, 60)

    def test_update_rejects_non_integer(self):
        with self.assertRaises(ValueError):
            Settings().update(reset_time="soon")
        with self.assertRaises(ValueError):
            Settings().update(allowed_attempts=True)

    def test_update_rejects_unknown_option(self):
        with self.assertRaises(ValueError):
            Settings().update(inform_user=True)


class TestSettingsFromEnv(unittest.TestCase):
    """Test environment variable overrides."""

    def test_from_env(self):
        settings = Settings.from_env(
            {
                "BFLP_ALLOWED_ATTEMPTS": "3",
                "BFLP_RESET_TIME": "15",
                "BFLP_HTACCESS_DIR": "/var/www/html",
                "BFLP_403_MESSAGE": "Go away",
                "SLACK_BOT_TOKEN": "xoxb-1",
                "SLACK_CHANNEL": "#security",
                "IPINFO_TOKEN": "abc",
            }
        )
        self.assertEqual(settings.allowed_attempts, 3)
        self.assertEqual(settings.reset_time, 15)
        self.assertEqual(settings.htaccess_dir, "/var/www/html")
        self.assertEqual(settings.message_403, "Go away")
        self.assertEqual(settings.slack_token, "xoxb-1")
        self.assertEqual(settings.slack_channel, "#security")
        self.assertEqual(settings.ipinfo_token, "abc")

    def test_empty_values_are_ignored(self):
        settings = Settings.from_env({"BFLP_HTACCESS_DIR": ""})
        self.assertEqual(settings.htaccess_dir, ".")


class TestSettingsFile(unittest.TestCase):
    """Test loading and saving the options file."""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.temp_dir.name, "bflp_options.json")

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_load_missing_file_returns_defaults(self):
        self.assertEqual(Settings.load(self.path).to_options(), DEFAULT_OPTIONS)

    def test_load_corrupted_json_returns_defaults(self):
        with open(self.path, "w") as f:
            f.write("{invalid json")
        self.assertEqual(Settings.load(self.path).to_options(), DEFAULT_OPTIONS)

    def test_load_invalid_structure_returns_defaults(self):
        with open(self.path, "w") as f:
            json.dump(["not", "a", "dict"], f)
        self.assertEqual(Settings.load(self.path).to_options(), DEFAULT_OPTIONS)

    def test_load_invalid_value_returns_defaults(self):
        with open(self.path, "w") as f:
            json.dump({"reset_time": "soon", "htaccess_dir": "/srv/www"}, f)
        self.assertEqual(Settings.load(self.path).to_options(), DEFAULT_OPTIONS)

    def test_load_ignores_secrets_and_unknown_keys(self):
        with open(self.path, "w") as f:
            json.dump({"reset_time": 10, "slack_token": "xoxb-leak", "inform_user": True}, f)
        settings = Settings.load(self.path)
        self.assertEqual(settings.reset_time, 10)
        self.assertIsNone(settings.slack_token)

    def test_save_and_load(self):
        settings = Settings(allowed_attempts=7, htaccess_dir="/srv/www", slack_token="xoxb-1")
        settings.save(self.path)

        with open(self.path) as f:
            saved = json.load(f)
        self.assertEqual(
            saved,
            {"allowed_attempts": 7, "reset_time": 60, "htaccess_dir": "/srv/www", "message_403": ""},
        )
        self.assertNotIn("slack_token", saved)

        loaded = Settings.load(self.path)
        self.assertEqual(loaded.allowed_attempts, 7)
        self.assertEqual(loaded.htaccess_dir, "/srv/www")
        self.assertFalse(os.path.exists(f"{self.path}.tmp"))

    def test_save_creates_parent_directory(self):
        path = os.path.join(self.temp_dir.name, "conf", "options.json")
        Settings().save(path)
        self.assertTrue(os.path.exists(path))


if __name__ == "__main__":
    unittest.main()
