import contextlib
import fcntl
import os
import shutil
import tempfile
from collections import namedtuple

from packaging.version import InvalidVersion, Version

from .cli_logger import logger
from .config import DEFAULT_TOOLS_DIR
from .errors import InstallationError
from .script_builder import quote
from .utils import download_and_extract, fetch_published_checksum

# Written inside a toolchain directory only after the toolchain is complete.
SENTINEL_FILE_NAME = ".buildforge-installed"

ToolSource = namedtuple("ToolSource", ["url", "checksum_url", "strip_root", "bin_dir"])

TOOL_SOURCES = {
    "nodejs": ToolSource(
        url="https://nodejs.org/dist/v{version}/node-v{version}-linux-x64.tar.gz",
        checksum_url="https://nodejs.org/dist/v{version}/SHASUMS256.txt",
        strip_root=True,
        bin_dir="bin",
    ),
    "dotnet": ToolSource(
        url="https://dotnetcli.azureedge.net/dotnet/Sdk/{version}/dotnet-sdk-{version}-linux-x64.tar.gz",
        checksum_url=None,
        strip_root=False,
        bin_dir="",
    ),
}


def _get_tool_source(platform):
    source = TOOL_SOURCES.get(platform)
    if source is None:
        raise InstallationError(
            f"Don't know how to install '{platform}'. Known tools: {', '.join(sorted(TOOL_SOURCES))}"
        )
    return source


class PlatformInstaller:
    """Decides on, and performs, on-demand toolchain installation under one tools directory."""

    def __init__(self, tools_dir=DEFAULT_TOOLS_DIR, installer_command="buildforge"):
        self.tools_dir = tools_dir
        self.installer_command = installer_command

    # -------------------- Installed state --------------------

    def get_install_dir(self, platform, version):
        return os.path.join(self.tools_dir, platform, version)

    def is_version_already_installed(self, platform, version):
        return os.path.isfile(os.path.join(self.get_install_dir(platform, version), SENTINEL_FILE_NAME))

    def get_tool_path(self, platform, version):
        source = _get_tool_source(platform)
        install_dir = self.get_install_dir(platform, version)
        return os.path.join(install_dir, source.bin_dir) if source.bin_dir else install_dir

    def list_installed_tools(self):
        installed = {}
        if not os.path.isdir(self.tools_dir):
            return installed
        for platform in sorted(os.listdir(self.tools_dir)):
            platform_dir = os.path.join(self.tools_dir, platform)
            if not os.path.isdir(platform_dir):
                continue
            versions = [v for v in os.listdir(platform_dir) if self.is_version_already_installed(platform, v)]
            if versions:
                installed[platform] = sorted(versions, key=_version_key)
        return installed

    # -------------------- Decision --------------------

    def get_installer_script_snippet(self, platform, version):
        return "\n".join([
            f"echo {quote(f'Installing {platform} version {version}...')}",
            f"{self.installer_command} install-tool {quote(platform)} {quote(version)} "
            f"--tools-dir {quote(self.tools_dir)}",
        ])

    def get_installation_script(self, enable_dynamic_install, platform, version):
        """Returns the snippet installing a toolchain, or None when nothing must be installed."""
        if not enable_dynamic_install:
            logger.debug("Dynamic install not enabled.")
            return None
        if self.is_version_already_installed(platform, version):
            logger.debug(f"{platform} version {version} is already installed. So skipping installing it again.")
            return None
        logger.debug(
            f"{platform} version {version} is not installed. "
            "So generating an installation script snippet for it."
        )
        return self.get_installer_script_snippet(platform, version)

    # -------------------- Installation --------------------

    @contextlib.contextmanager
    def _install_lock(self, platform, version):
        platform_dir = os.path.join(self.tools_dir, platform)
        os.makedirs(platform_dir, exist_ok=True)
        lock_path = os.path.join(platform_dir, f".{version}.lock")
        with open(lock_path, "w") as lock_file:
            fcntl.flock(lock_file, fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file, fcntl.LOCK_UN)

    def _write_sentinel(self, install_dir, version):
        sentinel = os.path.join(install_dir, SENTINEL_FILE_NAME)
        temp_path = sentinel + ".tmp"
        with open(temp_path, "w") as f:
            f.write(f"{version}\n")
        os.replace(temp_path, sentinel)

    def install_tool(self, platform, version, checksum=None):
        """
        Installs a toolchain version and returns its directory.

        The archive is extracted next to the final location and renamed into
        place; the completion sentinel is written last, so a directory
        without a sentinel is an interrupted install and gets replaced.
        """
        source = _get_tool_source(platform)
        target = self.get_install_dir(platform, version)

        with self._install_lock(platform, version):
            if self.is_version_already_installed(platform, version):
                logger.info(f"  - {platform} version {version} is already installed. Skipping.")
                return target

            url = source.url.format(version=version)
            filename = url.split("/")[-1]
            if checksum is None and source.checksum_url:
                checksum = fetch_published_checksum(source.checksum_url.format(version=version), filename)

            logger.info(f"  - Installing {platform} version {version}...")
            staging_dir = tempfile.mkdtemp(prefix=f".{version}-", dir=os.path.dirname(target))
            try:
                extract_dir = os.path.join(staging_dir, "extract")
                download_and_extract(url, extract_dir, filename=filename, checksum=checksum)

                root = extract_dir
                if source.strip_root:
                    entries = os.listdir(extract_dir)
                    if len(entries) == 1 and os.path.isdir(os.path.join(extract_dir, entries[0])):
                        root = os.path.join(extract_dir, entries[0])

                if os.path.exists(target):
                    logger.warning(f"Removing incomplete installation at {target}")
                    shutil.rmtree(target)
                try:
                    os.rename(root, target)
                except OSError as e:
                    raise InstallationError(f"Error moving {platform} {version} into {target}: {e}")
                self._write_sentinel(target, version)
            finally:
                shutil.rmtree(staging_dir, ignore_errors=True)

        logger.success(f"{platform} version {version} installed to {target}")
        return target

    def uninstall_tool(self, platform, version):
        target = self.get_install_dir(platform, version)
        if not os.path.isdir(target):
            logger.warning(f"{platform} version {version} is not installed.")
            return False
        try:
            shutil.rmtree(target)
        except OSError as e:
            logger.error(f"Error removing {target}: {e}")
            return False
        logger.success(f"Uninstalled {platform} version {version}.")
        return True


def _version_key(version):
    try:
        return (0, Version(version))
    except InvalidVersion:
        return (1, version)
