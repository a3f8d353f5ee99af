import os
import shutil
import tempfile
import unittest
from unittest.mock import patch

import toml

from buildforge import config
from buildforge.errors import ConfigurationError, InvalidPropertyError


class TestConfig(unittest.TestCase):

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def _write_config(self, data):
        with open(os.path.join(self.test_dir, config.CONFIG_FILE), "w") as f:
            toml.dump(data, f)

    def test_load_config_missing_returns_empty(self):
        self.assertEqual(config.load_config(self.test_dir), {})

    def test_load_config_malformed(self):
        with open(os.path.join(self.test_dir, config.CONFIG_FILE), "w") as f:
            f.write("[build\nbroken = ")
        with self.assertRaises(ConfigurationError):
            config.load_config(self.test_dir)

    def test_parse_bool_is_strict(self):
        self.assertTrue(config.parse_bool("TRUE", "key"))
        self.assertFalse(config.parse_bool(" false ", "key"))
        self.assertTrue(config.parse_bool(True, "key"))
        for value in ("yes", "1", "on", ""):
            with self.assertRaises(ConfigurationError):
                config.parse_bool(value, "key")

    def test_get_boolean_env(self):
        self.assertIsNone(config.get_boolean_env("ENABLE_DYNAMIC_INSTALL", {}))
        self.assertIsNone(config.get_boolean_env("ENABLE_DYNAMIC_INSTALL", {"ENABLE_DYNAMIC_INSTALL": ""}))
        self.assertTrue(config.get_boolean_env("ENABLE_DYNAMIC_INSTALL", {"ENABLE_DYNAMIC_INSTALL": "True"}))
        with self.assertRaises(ConfigurationError):
            config.get_boolean_env("ENABLE_DYNAMIC_INSTALL", {"ENABLE_DYNAMIC_INSTALL": "maybe"})

    def test_is_subdirectory(self):
        self.assertTrue(config.is_subdirectory("/src/app/out", "/src/app"))
        self.assertFalse(config.is_subdirectory("/src/app", "/src/app"))
        self.assertFalse(config.is_subdirectory("/src/application", "/src/app"))

    def test_defaults(self):
        conf = config.load_build_configuration(self.test_dir, environ={})
        self.assertEqual(conf.source_dir, os.path.abspath(self.test_dir))
        self.assertFalse(conf.enable_dynamic_install)
        self.assertTrue(conf.enable_node_build)
        self.assertTrue(conf.enable_dotnet_build)
        self.assertEqual(conf.tools_dir, config.DEFAULT_TOOLS_DIR)
        self.assertEqual(len(conf.operation_id), 32)
        self.assertEqual(dict(conf.properties), {})

    def test_precedence_cli_then_env_then_file(self):
        self._write_config({"build": {
            "platform_name": "nodejs",
            "pre_build_command": "echo file",
            "post_build_command": "echo file",
            "enable_dynamic_install": False,
            "properties": {"require_build": True, "npm_registry_url": "https://file"},
        }})
        environ = {"PRE_BUILD_COMMAND": "echo env", "POST_BUILD_COMMAND": "echo env",
                   "ENABLE_DYNAMIC_INSTALL": "true"}
        conf = config.load_build_configuration(
            self.test_dir, environ=environ,
            post_build_command="echo cli",
            properties={"npm_registry_url": "https://cli"},
        )
        self.assertEqual(conf.platform_name, "nodejs")
        self.assertEqual(conf.pre_build_command, "echo env")
        self.assertEqual(conf.post_build_command, "echo cli")
        self.assertTrue(conf.enable_dynamic_install)
        self.assertEqual(conf.get_property("require_build"), "true")
        self.assertEqual(conf.get_property("npm_registry_url"), "https://cli")

    def test_invalid_boolean_in_file(self):
        self._write_config({"build": {"enable_multi_platform_build": "sometimes"}})
        with self.assertRaises(ConfigurationError):
            config.load_build_configuration(self.test_dir, environ={})

    @patch("buildforge.config.logger")
    def test_unknown_file_setting_is_ignored(self, mock_logger):
        self._write_config({"build": {"colour": "blue"}})
        conf = config.load_build_configuration(self.test_dir, environ={})
        self.assertFalse(hasattr(conf, "colour"))
        mock_logger.warning.assert_called_once()

    def test_unknown_override_raises(self):
        with self.assertRaises(ConfigurationError):
            config.load_build_configuration(self.test_dir, environ={}, colour="blue")

    def test_configuration_is_read_only(self):
        conf = config.load_build_configuration(self.test_dir, environ={}, properties={"a": "b"})
        with self.assertRaises(Exception):
            conf.destination_dir = "/elsewhere"
        with self.assertRaises(TypeError):
            conf.properties["a"] = "c"

    def test_output_is_sub_dir_of_source_dir(self):
        conf = config.BuildConfiguration(source_dir="/src/app", destination_dir="/src/app/out")
        self.assertTrue(conf.output_is_sub_dir_of_source_dir)
        conf = config.BuildConfiguration(source_dir="/src/app", destination_dir="/out")
        self.assertFalse(conf.output_is_sub_dir_of_source_dir)
        self.assertFalse(config.BuildConfiguration(source_dir="/src/app").output_is_sub_dir_of_source_dir)

    def test_is_property_true(self):
        conf = config.BuildConfiguration(source_dir="/src", properties={
            "empty": "", "yes": "true", "no": "False", "bad": "perhaps",
        })
        self.assertFalse(config.is_property_true(conf, "missing"))
        self.assertTrue(config.is_property_true(conf, "empty", value_is_required=False))
        self.assertFalse(config.is_property_true(conf, "empty"))
        self.assertTrue(config.is_property_true(conf, "yes"))
        self.assertFalse(config.is_property_true(conf, "no"))
        with self.assertRaises(InvalidPropertyError):
            config.is_property_true(conf, "bad")

    def test_parse_properties(self):
        self.assertEqual(
            config.parse_properties(["a=1", "b = two ", "flag"]),
            {"a": "1", "b": "two", "flag": ""},
        )
        with self.assertRaises(ConfigurationError):
            config.parse_properties(["=value"])


if __name__ == "__main__":
    unittest.main()
