import os
import tempfile
import unittest
from unittest import mock

from ksc_collector.aggregation import SumPolicy
from ksc_collector.config import CONFIG_ENV_VAR, load_settings
from ksc_collector.errors import ConfigError

CLEAN_ENV = {k: v for k, v in os.environ.items() if not k.startswith("KSC_")}


class LoadSettingsTests(unittest.TestCase):

    def setUp(self):
        patcher = mock.patch.dict(os.environ, CLEAN_ENV, clear=True)
        patcher.start()
        self.addCleanup(patcher.stop)
        home = mock.patch("ksc_collector.config.DEFAULT_CONFIG_PATH", new=mock.Mock(is_file=lambda: False))
        home.start()
        self.addCleanup(home.stop)

    def _write(self, text):
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False, encoding="utf-8") as f:
            f.write(text)
            path = f.name
        self.addCleanup(os.remove, path)
        return path

    def test_defaults(self):
        settings = load_settings()
        self.assertEqual(settings.url, "https://127.0.0.1:13299")
        self.assertEqual(settings.sum_policy, SumPolicy.ZERO)
        self.assertEqual(settings.error_code, "")

    def test_file_values(self):
        path = self._write("url: https://ksc:13299/\nuser: zbx\nerror_code: ZBX_NOTSUPPORTED\nsum_policy: skip\n")
        settings = load_settings(path)
        self.assertEqual(settings.url, "https://ksc:13299")
        self.assertEqual(settings.user, "zbx")
        self.assertEqual(settings.error_code, "ZBX_NOTSUPPORTED")
        self.assertEqual(settings.sum_policy, SumPolicy.SKIP)

    def test_env_var_selects_file(self):
        path = self._write("user: from-env-file\n")
        os.environ[CONFIG_ENV_VAR] = path
        self.assertEqual(load_settings().user, "from-env-file")

    def test_environment_overrides_file(self):
        path = self._write("user: file-user\npassword: file-pass\n")
        os.environ["KSC_PASSWORD"] = "env-pass"
        settings = load_settings(path)
        self.assertEqual(settings.user, "file-user")
        self.assertEqual(settings.password, "env-pass")

    def test_explicit_overrides_win(self):
        path = self._write("user: file-user\n")
        os.environ["KSC_USER"] = "env-user"
        self.assertEqual(load_settings(path, user="cli-user").user, "cli-user")

    def test_none_overrides_ignored(self):
        path = self._write("user: file-user\n")
        self.assertEqual(load_settings(path, user=None).user, "file-user")

    def test_password_not_in_repr(self):
        self.assertNotIn("hunter2", repr(load_settings(password="hunter2")))

    def test_unknown_key_rejected(self):
        path = self._write("colour: blue\n")
        with self.assertRaises(ConfigError):
            load_settings(path)

    def test_non_mapping_rejected(self):
        path = self._write("- a\n- b\n")
        with self.assertRaises(ConfigError):
            load_settings(path)

    def test_missing_file(self):
        with self.assertRaises(ConfigError):
            load_settings("/nonexistent/ksc_collector.yaml")

    def test_invalid_timeout(self):
        with self.assertRaises(ConfigError):
            load_settings(timeout=0)


if __name__ == "__main__":
    unittest.main()
