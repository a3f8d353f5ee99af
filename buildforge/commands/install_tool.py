import click

from ..config import DEFAULT_TOOLS_DIR
from ..decorators import handle_exceptions
from ..installer import PlatformInstaller
from ..versions import SUPPORT_TABLES


@click.command(name="install-tool")
@click.argument("platform")
@click.argument("version")
@click.option("--tools-dir", envvar="BUILDFORGE_TOOLS_DIR", default=DEFAULT_TOOLS_DIR, show_default=True,
              help="Directory holding installed toolchains.")
@click.option("--sha256", "checksum", default=None, help="Expected sha256 of the downloaded archive.")
@handle_exceptions
def install_tool(platform, version, tools_dir, checksum):
    """Install VERSION of the PLATFORM toolchain (e.g. nodejs 20.17.0)."""
    table = SUPPORT_TABLES.get(platform)
    if table is not None and version not in table.all_toolchains():
        click.echo(
            f"Warning: {platform} {version} is not in the list of supported toolchains.", err=True
        )
    PlatformInstaller(tools_dir=tools_dir).install_tool(platform, version, checksum=checksum)
