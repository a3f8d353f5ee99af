import click

from ..builder import BuildScriptGenerator, write_script
from ..cli_logger import logger
from ..decorators import build_options, configuration_from_options, handle_exceptions


@click.command(name="build-script")
@build_options
@click.option("--output", "output_path", default=None, type=click.Path(dir_okay=False),
              help="Write the script to this file instead of stdout.")
@click.pass_context
@handle_exceptions
def build_script(ctx, output_path, **options):
    """Generate the build script for the project at --path."""
    conf = configuration_from_options(ctx, **options)
    generated = BuildScriptGenerator(conf).generate()
    if output_path:
        write_script(generated, output_path)
        logger.success(f"Build script written to {output_path}")
    else:
        click.echo(generated.script, nl=False)
