import os
import uuid
from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import Mapping, Optional

import toml

from .cli_logger import logger
from .errors import ConfigurationError, InvalidPropertyError

CONFIG_FILE = "buildforge.toml"
INSTALL_DIR = os.path.join(os.path.expanduser("~"), ".buildforge")
DEFAULT_TOOLS_DIR = os.path.join(INSTALL_DIR, "tools")

# Settings that may also come from the environment, keyed by field name.
ENVIRONMENT_VARIABLES = {
    "enable_dynamic_install": "ENABLE_DYNAMIC_INSTALL",
    "enable_multi_platform_build": "ENABLE_MULTIPLATFORM_BUILD",
    "enable_node_build": "ENABLE_NODE_BUILD",
    "enable_dotnet_build": "ENABLE_DOTNET_BUILD",
    "pre_build_command": "PRE_BUILD_COMMAND",
    "post_build_command": "POST_BUILD_COMMAND",
    "custom_run_build_command": "RUN_BUILD_COMMAND",
    "project": "PROJECT",
    "msbuild_configuration": "MSBUILD_CONFIGURATION",
    "tools_dir": "BUILDFORGE_TOOLS_DIR",
}


def load_config(path="."):
    config_path = os.path.join(path, CONFIG_FILE)
    logger.debug(f"Loading configuration from {config_path}")
    if os.path.exists(config_path):
        try:
            with open(config_path, "r") as f:
                return toml.load(f)
        except toml.TomlDecodeError as e:
            raise ConfigurationError(f"Error decoding TOML file at {config_path}: {e}")
        except IOError as e:
            raise ConfigurationError(f"Error reading configuration file at {config_path}: {e}")
    return {}


def parse_bool(value, key):
    """Strictly parse a boolean setting; only 'true' and 'false' are accepted."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text == "true":
        return True
    if text == "false":
        return False
    raise ConfigurationError(
        f"Invalid value '{value}' for '{key}'. Value can either be 'true' or 'false'."
    )


def get_boolean_env(key, environ=None):
    environ = os.environ if environ is None else environ
    value = environ.get(key, "")
    if value == "":
        return None
    return parse_bool(value, key)


def is_subdirectory(path, parent):
    path = os.path.abspath(path)
    parent = os.path.abspath(parent)
    if path == parent:
        return False
    return os.path.commonpath([path, parent]) == parent


@dataclass(frozen=True)
class BuildConfiguration:
    source_dir: str
    destination_dir: Optional[str] = None
    intermediate_dir: Optional[str] = None
    manifest_dir: Optional[str] = None
    enable_dynamic_install: bool = False
    should_package: bool = False
    enable_multi_platform_build: bool = False
    platform_name: Optional[str] = None
    platform_version: Optional[str] = None
    operation_id: str = ""
    pre_build_command: Optional[str] = None
    post_build_command: Optional[str] = None
    custom_run_build_command: Optional[str] = None
    project: Optional[str] = None
    msbuild_configuration: Optional[str] = None
    enable_node_build: bool = True
    enable_dotnet_build: bool = True
    tools_dir: str = DEFAULT_TOOLS_DIR
    properties: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "properties", MappingProxyType(dict(self.properties)))

    @property
    def has_destination_dir(self):
        return bool(self.destination_dir)

    @property
    def output_is_sub_dir_of_source_dir(self):
        return self.has_destination_dir and is_subdirectory(self.destination_dir, self.source_dir)

    def get_property(self, key, default=None):
        return self.properties.get(key, default)


def is_property_true(config, key, value_is_required=True):
    """
    Reads a boolean build property.

    A property that is present with an empty value counts as true unless a
    value is required.
    """
    if key not in config.properties:
        return False
    value = config.properties[key]
    if value is None or str(value).strip() == "":
        return not value_is_required
    try:
        return parse_bool(value, key)
    except ConfigurationError:
        raise InvalidPropertyError(key, value)


def parse_properties(items):
    """Parses 'key=value' strings given on the command line."""
    properties = {}
    for item in items or ():
        key, sep, value = item.partition("=")
        key = key.strip()
        if not key:
            raise ConfigurationError(f"Invalid build property '{item}'. Expected 'key=value'.")
        properties[key] = value.strip() if sep else ""
    return properties


def load_build_configuration(source_dir, environ=None, **overrides):
    """
    Builds the configuration for one build.

    Precedence: explicit overrides (command line), environment variables,
    then the [build] table of buildforge.toml in the source directory.
    """
    environ = os.environ if environ is None else environ
    file_settings = dict(load_config(source_dir).get("build", {}))
    properties = {str(k): "" if v is None else str(v).lower() if isinstance(v, bool) else str(v)
                  for k, v in file_settings.pop("properties", {}).items()}

    known = {f.name: f for f in fields(BuildConfiguration)}
    values = {}
    for key, value in file_settings.items():
        if key not in known or key in ("source_dir", "properties"):
            logger.warning(f"Ignoring unknown setting '{key}' in {CONFIG_FILE}")
            continue
        values[key] = value

    for name, env_key in ENVIRONMENT_VARIABLES.items():
        if known[name].type is bool:
            env_value = get_boolean_env(env_key, environ)
        else:
            env_value = environ.get(env_key) or None
        if env_value is not None:
            values[name] = env_value

    properties.update(overrides.pop("properties", None) or {})
    for key, value in overrides.items():
        if key not in known:
            raise ConfigurationError(f"Unknown build setting '{key}'")
        if value is not None:
            values[key] = value

    for name, value in list(values.items()):
        if known[name].type is bool:
            values[name] = parse_bool(value, name)
        elif value is not None:
            values[name] = str(value)

    if not values.get("operation_id"):
        values["operation_id"] = uuid.uuid4().hex
    return BuildConfiguration(source_dir=os.path.abspath(source_dir), properties=properties, **values)
