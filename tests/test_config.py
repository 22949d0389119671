"""Tests for YAML settings loading."""
import os
import unittest
import tempfile
import shutil
from pathlib import Path
from unittest import mock

import yaml

from paylog.config.settings import AppSettings
from paylog.utils.exceptions import ConfigError

BASE_CONFIG = {
    "app": {"name": "PayLog", "version": "1.0.0"},
    "logging": {"level": "DEBUG", "max_file_size_mb": 5, "backup_count": 3, "dir": "logs"},
    "owner": {"id": "owner-1"},
    "storage": {"data_dir": "data", "database_file": "paylog.db"},
    "dedup": {"retention_days": 90},
    "retry": {"max_attempts": 3, "initial_delay_seconds": 1.0, "backoff_factor": 2},
    "sync": {"drain_interval_seconds": 60, "max_concurrent_messages": 4},
    "connectivity": {"host": "8.8.8.8", "port": 53, "timeout_seconds": 3.0},
    "validation": {
        "max_amount": 10000000,
        "max_days_in_past": 90,
        "boundary_warning_days": 5,
        "low_confidence_threshold": 0.5,
    },
    "remote": {"spreadsheet_id": None, "service_account_path": None},
}


class TestAppSettings(unittest.TestCase):
    """Test AppSettings loading and validation."""

    def setUp(self):
        """Set up test fixtures."""
        self.test_dir = Path(tempfile.mkdtemp())

    def tearDown(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def _write(self, config, name="config.yaml") -> Path:
        path = self.test_dir / name
        path.write_text(yaml.safe_dump(config), encoding="utf-8")
        return path

    def test_load_from_path(self):
        settings = AppSettings.load(self._write(BASE_CONFIG))

        self.assertEqual(settings.owner_id, "owner-1")
        self.assertEqual(settings.retry_max_attempts, 3)
        self.assertEqual(settings.database_path, Path("data") / "paylog.db")
        self.assertIsNone(settings.spreadsheet_id)
        self.assertFalse(settings.remote_configured)

    def test_load_from_environment(self):
        path = self._write(BASE_CONFIG, name="env.yaml")
        with mock.patch.dict(os.environ, {"PAYLOG_CONFIG": str(path)}):
            settings = AppSettings.load()
        self.assertEqual(settings.app_name, "PayLog")

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            AppSettings.load(self.test_dir / "absent.yaml")

    def test_missing_section_raises_config_error(self):
        config = dict(BASE_CONFIG)
        del config["retry"]
        with self.assertRaises(ConfigError):
            AppSettings.load(self._write(config))

    def test_validate_valid(self):
        settings = AppSettings.load(self._write(BASE_CONFIG))
        is_valid, message = settings.validate()
        self.assertTrue(is_valid, message)

    def test_validate_empty_owner(self):
        config = dict(BASE_CONFIG, owner={"id": "  "})
        is_valid, message = AppSettings.load(self._write(config)).validate()
        self.assertFalse(is_valid)
        self.assertIn("Owner", message)

    def test_validate_remote_without_credentials(self):
        config = dict(BASE_CONFIG, remote={
            "spreadsheet_id": "sheet-123",
            "service_account_path": str(self.test_dir / "missing.json"),
        })
        is_valid, message = AppSettings.load(self._write(config)).validate()
        self.assertFalse(is_valid)
        self.assertIn("remote store", message)

    def test_validate_remote_with_service_account(self):
        creds = self.test_dir / "creds.json"
        creds.write_text("{}")
        config = dict(BASE_CONFIG, remote={
            "spreadsheet_id": "sheet-123",
            "service_account_path": str(creds),
        })
        settings = AppSettings.load(self._write(config))

        self.assertTrue(settings.remote_configured)
        self.assertTrue(settings.validate()[0])


if __name__ == "__main__":
    unittest.main()
