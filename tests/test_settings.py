import json
import tempfile
import unittest
from pathlib import Path

from s3_folders.settings import AppSettings, SettingsStorage


class SettingsStorageTests(unittest.TestCase):
    def test_load_returns_defaults_when_missing(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "settings.json"
            storage = SettingsStorage(path)

            settings = storage.load()

            self.assertEqual(AppSettings(), settings)

    def test_load_sanitizes_invalid_values(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "settings.json"
            payload = {
                "backend_url": "   ",
                "request_timeout": "nope",
                "transfer_timeout": -5,
                "download_dir": 123,
                "remember_last_folder": "yes",
                "last_folder": None,
            }
            path.write_text(json.dumps(payload), encoding="utf-8")
            storage = SettingsStorage(path)

            settings = storage.load()

            defaults = AppSettings()
            self.assertEqual(defaults.backend_url, settings.backend_url)
            self.assertEqual(defaults.request_timeout, settings.request_timeout)
            self.assertEqual(defaults.transfer_timeout, settings.transfer_timeout)
            self.assertEqual(defaults.download_dir, settings.download_dir)
            self.assertFalse(settings.remember_last_folder)
            self.assertEqual("", settings.last_folder)

    def test_load_returns_defaults_on_invalid_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "settings.json"
            path.write_text("not json", encoding="utf-8")

            self.assertEqual(AppSettings(), SettingsStorage(path).load())

    def test_save_and_load_roundtrip(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "nested" / "settings.json"
            storage = SettingsStorage(path)
            settings = AppSettings(
                backend_url="https://files.example/api",
                request_timeout=5,
                transfer_timeout=600,
                download_dir=tmp,
                remember_last_folder=True,
                last_folder="docs/",
            )

            storage.save(settings)

            self.assertEqual(settings, storage.load())

    def test_save_sanitizes_timeouts(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "settings.json"
            storage = SettingsStorage(path)

            storage.save(AppSettings(request_timeout=0, transfer_timeout=-1))

            saved = json.loads(path.read_text(encoding="utf-8"))
            self.assertEqual(AppSettings.request_timeout, saved["request_timeout"])
            self.assertEqual(AppSettings.transfer_timeout, saved["transfer_timeout"])


if __name__ == "__main__":
    unittest.main()
