import click

from ..builder import BuildScriptGenerator
from ..cli_logger import logger
from ..config import load_build_configuration
from ..decorators import handle_exceptions
from ..repository import SourceRepo


@click.command()
@click.option("--resolve/--no-resolve", default=True, help="Also resolve the versions to build with.")
@click.pass_context
@handle_exceptions
def detect(ctx, resolve):
    """Detect the platforms of the project at --path."""
    conf = load_build_configuration(ctx.obj["path"])
    generator = BuildScriptGenerator(conf)
    repo = SourceRepo(conf.source_dir)
    detected = generator.detect_platforms(repo)
    if not detected:
        logger.warning(f"No platform detected in {conf.source_dir}.")
        return
    if len(detected) > 1 and not conf.enable_multi_platform_build:
        logger.warning(
            "More than one platform detected; a build needs 'platform_name' set "
            "or multi-platform builds enabled."
        )

    for platform, detection in detected:
        line = f"{platform.name}"
        if resolve:
            version = platform.resolve_version(repo, conf, detection)
            line += f" {version.runtime_version}"
            if version.toolchain_version != version.runtime_version:
                line += f" (toolchain {version.toolchain_version})"
        elif detection.version:
            line += f" {detection.version}"
        click.echo(line)
        for key, value in sorted(detection.hints.items()):
            if value:
                click.echo(f"  {key}: {value}")
