"""
The build manifest: a flat key/value file left next to the build output.

The runtime launcher reads it after the build. Readers must ignore keys they
do not know and fall back to their own conventions when the file or a key is
missing.
"""
import os

import toml

from .cli_logger import logger

MANIFEST_FILE_NAME = "buildforge-manifest.toml"

# Global keys
OPERATION_ID = "operation_id"
PLATFORM_NAME = "platform_name"
STARTUP_FILE_NAME = "startup_file_name"

# Node.js keys
NODE_VERSION = "node_version"
NODE_OUTPUT_DIR_PATH = "node_output_dir_path"
NODE_MODULES_FILE = "node_modules_file"
NODE_NPM_REGISTRY_URL = "node_npm_registry_url"

# .NET Core keys
DOTNET_RUNTIME_VERSION = "dotnet_runtime_version"
DOTNET_SDK_VERSION = "dotnet_sdk_version"


def serialize_manifest(manifest):
    """Serializes the manifest, keeping key order; every value becomes a string."""
    return toml.dumps({str(key): "" if value is None else str(value) for key, value in manifest.items()})


def get_manifest_path(directory):
    return os.path.join(directory, MANIFEST_FILE_NAME)


def write_manifest(manifest, directory):
    """Writes the manifest atomically so readers never observe a partial file."""
    os.makedirs(directory, exist_ok=True)
    path = get_manifest_path(directory)
    temp_path = path + ".tmp"
    with open(temp_path, "w") as f:
        f.write(serialize_manifest(manifest))
    os.replace(temp_path, path)
    return path


def read_manifest(directory):
    """Returns the manifest found in a directory, or an empty dict."""
    path = get_manifest_path(directory)
    if not os.path.isfile(path):
        logger.debug(f"No build manifest found at {path}")
        return {}
    try:
        with open(path, "r") as f:
            data = toml.load(f)
    except (toml.TomlDecodeError, IOError) as e:
        logger.warning(f"Ignoring unreadable build manifest at {path}: {e}")
        return {}
    return {key: str(value) for key, value in data.items() if not isinstance(value, dict)}
