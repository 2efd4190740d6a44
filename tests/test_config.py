import unittest

from filerelay import config
from filerelay.config import (
    ClientSettings,
    ConfigurationError,
    load_client_settings,
    load_server_settings,
)


class ServerSettingsTests(unittest.TestCase):
    def test_upload_token_is_required(self):
        for environ in ({}, {"UPLOAD_TOKEN": ""}):
            with self.subTest(environ=environ):
                with self.assertRaises(ConfigurationError):
                    load_server_settings(environ)

    def test_defaults(self):
        settings = load_server_settings({"UPLOAD_TOKEN": "secret"})

        self.assertEqual(settings.upload_token, "secret")
        self.assertEqual(settings.port, 3030)
        self.assertEqual(settings.host, "0.0.0.0")
        self.assertEqual(settings.retention_seconds, 7 * 24 * 3600)
        self.assertIsNone(settings.max_upload_size_bytes)
        self.assertEqual(settings.download_rate_limit, config.DEFAULT_DOWNLOAD_RATE_LIMIT)
        self.assertEqual(settings.log_level, "INFO")
        self.assertIsNone(settings.log_file)

    def test_port_is_parsed(self):
        settings = load_server_settings({"UPLOAD_TOKEN": "secret", "PORT": "8080"})
        self.assertEqual(settings.port, 8080)

    def test_invalid_port_is_fatal(self):
        for raw in ("http", "-1", "70000", "80.5"):
            with self.subTest(port=raw):
                with self.assertRaises(ConfigurationError):
                    load_server_settings({"UPLOAD_TOKEN": "secret", "PORT": raw})

    def test_optional_tunables(self):
        settings = load_server_settings(
            {
                "UPLOAD_TOKEN": "secret",
                "FILERELAY_HOST": "127.0.0.1",
                "FILERELAY_RETENTION_HOURS": "1.5",
                "FILERELAY_MAX_UPLOAD_SIZE_MB": "2",
                "FILERELAY_DOWNLOAD_RATE_LIMIT": "5 per second",
                "LOG_LEVEL": "debug",
                "FILERELAY_LOG_FILE": "/tmp/filerelay.log",
            }
        )

        self.assertEqual(settings.host, "127.0.0.1")
        self.assertEqual(settings.retention_seconds, 1.5 * 3600)
        self.assertEqual(settings.max_upload_size_bytes, 2 * 1024 * 1024)
        self.assertEqual(settings.download_rate_limit, "5 per second")
        self.assertEqual(settings.log_level, "DEBUG")
        self.assertEqual(settings.log_file, "/tmp/filerelay.log")

    def test_bad_tunables_fall_back_with_warning(self):
        for raw in ("soon", "0", "-3", "nan", "inf"):
            with self.subTest(raw=raw):
                with self.assertLogs("filerelay.config", level="WARNING"):
                    settings = load_server_settings(
                        {"UPLOAD_TOKEN": "secret", "FILERELAY_RETENTION_HOURS": raw}
                    )
                self.assertEqual(settings.retention_seconds, 7 * 24 * 3600)

    def test_unknown_log_level_becomes_info(self):
        settings = load_server_settings({"UPLOAD_TOKEN": "secret", "LOG_LEVEL": "chatty"})
        self.assertEqual(settings.log_level, "INFO")


class ClientSettingsTests(unittest.TestCase):
    def test_url_and_token_are_required(self):
        with self.assertRaises(ConfigurationError):
            load_client_settings({"UPLOAD_TOKEN": "secret"})
        with self.assertRaises(ConfigurationError):
            load_client_settings({"URL": "http://relay"})

    def test_loads_client_settings(self):
        settings = load_client_settings(
            {
                "UPLOAD_TOKEN": "secret",
                "URL": "https://relay.example/",
                "FILERELAY_SNIFF_PREFIX_BYTES": "4096",
                "FILERELAY_UPLOAD_TIMEOUT": "12.5",
            }
        )

        self.assertEqual(settings.upload_token, "secret")
        self.assertEqual(settings.sniff_prefix_bytes, 4096)
        self.assertEqual(settings.timeout, 12.5)

    def test_base_url_strips_trailing_slashes(self):
        self.assertEqual(
            ClientSettings(url="https://relay.example/", upload_token="t").base_url,
            "https://relay.example",
        )
        self.assertEqual(
            ClientSettings(url="https://relay.example", upload_token="t").base_url,
            "https://relay.example",
        )

    def test_invalid_sniff_budget_falls_back(self):
        with self.assertLogs("filerelay.config", level="WARNING"):
            settings = load_client_settings(
                {
                    "UPLOAD_TOKEN": "secret",
                    "URL": "http://relay",
                    "FILERELAY_SNIFF_PREFIX_BYTES": "0",
                }
            )
        self.assertEqual(settings.sniff_prefix_bytes, config.DEFAULT_SNIFF_PREFIX_BYTES)


if __name__ == "__main__":
    unittest.main()
