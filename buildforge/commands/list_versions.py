import click

from ..decorators import handle_exceptions
from ..errors import UnsupportedPlatformError
from ..versions import SUPPORT_TABLES


@click.command(name="list-versions")
@click.argument("platform", required=False)
@handle_exceptions
def list_versions(platform):
    """List the supported runtime versions and their toolchains."""
    if platform and platform not in SUPPORT_TABLES:
        raise UnsupportedPlatformError(platform, sorted(SUPPORT_TABLES))
    names = [platform] if platform else sorted(SUPPORT_TABLES)
    for name in names:
        table = SUPPORT_TABLES[name]
        click.echo(f"{name}:")
        for version in table.supported_versions:
            marker = " (default)" if version == table.default_version else ""
            toolchains = table.toolchains_for(version)
            if toolchains == [version]:
                click.echo(f"  {version}{marker}")
            else:
                click.echo(f"  {version}{marker}: {', '.join(toolchains)}")
