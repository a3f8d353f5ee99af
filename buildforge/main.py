import click
from .commands.build import build
from .commands.build_script import build_script
from .commands.config import config
from .commands.detect import detect
from .commands.install_tool import install_tool
from .commands.list_tools import list_tools
from .commands.list_versions import list_versions
from .commands.log import log
from .commands.manifest import manifest
from .commands.uninstall import uninstall
from .commands.version import version


@click.group()
@click.option("--path", "-p", default=".", help="Path to the project directory.")
@click.pass_context
def cli(ctx, path):
    """buildforge: generate build scripts for Node.js and .NET projects."""
    ctx.obj = {"path": path}

cli.add_command(detect)
cli.add_command(build_script)
cli.add_command(build)
cli.add_command(install_tool)
cli.add_command(list_versions)
cli.add_command(list_tools)
cli.add_command(uninstall)
cli.add_command(manifest)
cli.add_command(config)
cli.add_command(log)
cli.add_command(version)

if __name__ == '__main__':
    cli()
