import click

from ..cli_logger import logger
from ..config import DEFAULT_TOOLS_DIR
from ..installer import PlatformInstaller


@click.command(name="list-tools")
@click.option("--tools-dir", envvar="BUILDFORGE_TOOLS_DIR", default=DEFAULT_TOOLS_DIR, show_default=True,
              help="Directory holding installed toolchains.")
def list_tools(tools_dir):
    """List all installed toolchains."""
    logger.info("Listing installed tools...")
    installed_tools = PlatformInstaller(tools_dir=tools_dir).list_installed_tools()
    if not installed_tools:
        logger.info("No tools installed yet. Run 'buildforge install-tool' to begin.")
        return

    for platform, versions in installed_tools.items():
        logger.info(f"{platform}:")
        for version in versions:
            logger.info(f"  - {version}")
