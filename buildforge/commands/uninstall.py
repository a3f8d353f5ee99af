import sys

import click

from ..cli_logger import logger
from ..config import DEFAULT_TOOLS_DIR
from ..installer import PlatformInstaller


@click.command()
@click.argument("platform")
@click.argument("version")
@click.option("--tools-dir", envvar="BUILDFORGE_TOOLS_DIR", default=DEFAULT_TOOLS_DIR, show_default=True,
              help="Directory holding installed toolchains.")
def uninstall(platform, version, tools_dir):
    """Uninstall VERSION of the PLATFORM toolchain, or 'all' of its versions."""
    installer = PlatformInstaller(tools_dir=tools_dir)
    if version.lower() == "all":
        versions = installer.list_installed_tools().get(platform, [])
        if not versions:
            logger.info(f"No {platform} versions installed.")
            return
        logger.info(f"Attempting to uninstall all {platform} versions...")
    else:
        versions = [version]

    all_successful = True
    for v in versions:
        if not installer.uninstall_tool(platform, v):
            all_successful = False

    if not all_successful:
        logger.error("Some tools failed to uninstall. Please check the logs for details.")
        sys.exit(1)
