import os
import stat
import sys
import tempfile
from dataclasses import dataclass, field
from typing import Dict, List

from . import manifest
from . import script_builder as sb
from .cli_logger import logger
from .config import is_subdirectory
from .errors import (
    ConfigurationError,
    NoPlatformDetectedError,
    PlatformConflictError,
    UnsupportedPlatformError,
)
from .installer import PlatformInstaller
from .platforms import BuildContext, DetectionResult, create_platforms, platform_names
from .repository import SourceRepo
from .utils import stream_command


@dataclass
class GeneratedScript:
    script: str
    is_full_script: bool
    build_properties: Dict[str, str] = field(default_factory=dict)
    platforms: List[str] = field(default_factory=list)
    steps: List[sb.ScriptStep] = field(default_factory=list)


def _anchored_relative_path(path, root):
    """'/<relative path>' of a directory nested under root, for rsync excludes."""
    return "/" + os.path.relpath(os.path.abspath(path), os.path.abspath(root)).replace(os.sep, "/")


def _merge_excludes(*groups):
    merged = []
    for group in groups:
        for name in group:
            if name not in merged:
                merged.append(name)
    return merged


class BuildScriptGenerator:
    """
    Turns a source repository and a build configuration into one build script.

    Detection, version resolution and the installation decision all happen
    before any script text is produced, so every failure surfaces as an
    exception instead of a partial script.
    """

    def __init__(self, config, installer=None, platforms=None):
        self.config = config
        self.installer = installer or PlatformInstaller(tools_dir=config.tools_dir)
        self.platforms = platforms if platforms is not None else create_platforms(config, self.installer)

    # -------------------- Detection --------------------

    def detect_platforms(self, repo):
        """Returns [(platform, detection)] for every enabled platform that applies."""
        detected = []
        for platform in self.platforms:
            detection = platform.detect(repo, self.config)
            if detection.applies:
                logger.debug(f"Detected platform {platform.name} (version hint: {detection.version or 'none'})")
                detected.append((platform, detection))
        return detected

    def _select_platforms(self, repo):
        config = self.config
        if config.platform_name:
            platform = next((p for p in self.platforms if p.name == config.platform_name), None)
            if platform is None:
                if config.platform_name in platform_names():
                    raise ConfigurationError(
                        f"Platform '{config.platform_name}' is disabled by the current configuration."
                    )
                raise UnsupportedPlatformError(config.platform_name, platform_names())
            detection = platform.detect(repo, config)
            if not detection.applies:
                # An explicitly requested platform is built even when nothing in the repository points to it.
                detection = DetectionResult(platform.name, True)
            return [(platform, detection)]

        detected = self.detect_platforms(repo)
        if not detected:
            raise NoPlatformDetectedError(repo.root_path)

        names = [platform.name for platform, _ in detected]
        if len(detected) > 1:
            if not config.enable_multi_platform_build:
                raise PlatformConflictError(
                    f"Detected more than one platform: {', '.join(names)}. "
                    "Enable multi-platform builds or set 'platform_name' to pick one.",
                    names,
                )
            refusing = [p.name for p, _ in detected if not p.is_enabled_for_multi_platform_build(config)]
            if refusing:
                raise PlatformConflictError(
                    f"Platform(s) {', '.join(refusing)} cannot be built together with other platforms. "
                    f"Detected: {', '.join(names)}.",
                    names,
                )
        return detected

    # -------------------- Resolution --------------------

    def prepare(self):
        """Detects and resolves; returns (context, selected platforms, tools_to_version)."""
        repo = SourceRepo(self.config.source_dir)
        selected = self._select_platforms(repo)
        context = BuildContext(repo=repo, config=self.config)
        tools_to_version = {}
        for platform, detection in selected:
            context.detections[platform.name] = detection
            resolved = platform.resolve_version(repo, self.config, detection)
            platform.set_version(context, resolved)
            platform.set_required_tools(repo, resolved.toolchain_version, tools_to_version)
            logger.info(
                f"Using {platform.name} {resolved.runtime_version}"
                + (f" (toolchain {resolved.toolchain_version})"
                   if resolved.toolchain_version != resolved.runtime_version else "")
            )
            if not self.config.intermediate_dir and not platform.is_clean_repo(repo):
                logger.warning(
                    f"The source directory contains build artifacts of {platform.name}. "
                    "Consider building from an intermediate directory."
                )
        return context, [platform for platform, _ in selected], tools_to_version

    def get_installation_decisions(self):
        """Maps each selected platform to its installation snippet (None when nothing is installed)."""
        context, platforms, _ = self.prepare()
        return {platform.name: platform.get_installation_script(context) for platform in platforms}

    # -------------------- Composition --------------------

    def generate(self):
        context, platforms, tools_to_version = self.prepare()
        snippets = [(platform, platform.generate_build_script(context)) for platform in platforms]
        names = [platform.name for platform in platforms]

        if len(snippets) == 1 and snippets[0][1].is_full_script:
            snippet = snippets[0][1]
            steps = list(snippet.steps)
            return GeneratedScript(
                script=sb.BuildScript(steps).render(),
                is_full_script=True,
                build_properties=dict(snippet.build_properties),
                platforms=names,
                steps=steps,
            )

        config = self.config
        working_dir = context.working_dir
        script = sb.BuildScript()
        script.add(sb.PREAMBLE, "preamble", sb.preamble_lines())

        if config.output_is_sub_dir_of_source_dir:
            script.add(sb.CLEANUP, "cleanup-destination", sb.cleanup_lines(config.destination_dir))

        if config.intermediate_dir:
            excludes = _merge_excludes(*(
                p.get_directories_to_exclude_from_copy_to_intermediate_dir(context) for p in platforms
            ))
            if config.output_is_sub_dir_of_source_dir:
                excludes.append(_anchored_relative_path(config.destination_dir, config.source_dir))
            script.add(sb.STAGE, "stage-intermediate",
                       sb.stage_lines(config.source_dir, config.intermediate_dir, excludes))
        script.add(sb.STAGE, "enter-working-dir", sb.cd_lines(working_dir))

        for platform, snippet in snippets:
            if snippet.installation_script:
                script.add(sb.INSTALL, f"install-{platform.name}", snippet.installation_script)

        if config.enable_dynamic_install and tools_to_version:
            paths = [self.installer.get_tool_path(tool, version) for tool, version in tools_to_version.items()]
            script.add(sb.TOOLS, "tool-path", sb.tool_path_lines(paths))

        if config.pre_build_command:
            script.add(sb.PRE_BUILD, "pre-build", sb.hook_lines("pre-build", working_dir, config.pre_build_command))

        for _, snippet in snippets:
            script.extend(snippet.steps)

        if config.has_destination_dir and os.path.abspath(config.destination_dir) != os.path.abspath(working_dir):
            excludes = _merge_excludes(*(
                p.get_directories_to_exclude_from_copy_to_build_output_dir(context) for p in platforms
            ))
            if is_subdirectory(config.destination_dir, working_dir):
                excludes.append(_anchored_relative_path(config.destination_dir, working_dir))
            script.add(sb.PUBLISH, "copy-to-destination",
                       sb.copy_to_destination_lines(working_dir, config.destination_dir, excludes))

        if config.post_build_command:
            script.add(sb.POST_BUILD, "post-build", sb.hook_lines("post-build", working_dir, config.post_build_command))

        build_properties = {
            manifest.OPERATION_ID: context.operation_id,
            manifest.PLATFORM_NAME: ",".join(names),
        }
        for _, snippet in snippets:
            build_properties.update(snippet.build_properties)
        script.add(sb.MANIFEST, "write-manifest",
                   sb.manifest_lines(build_properties, context.manifest_dir, manifest.MANIFEST_FILE_NAME))

        return GeneratedScript(
            script=script.render(),
            is_full_script=False,
            build_properties=build_properties,
            platforms=names,
            steps=script.steps,
        )


def write_script(generated, path):
    with open(path, "w") as f:
        f.write(generated.script)
    os.chmod(path, os.stat(path).st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def run_build_script(generated, cwd=None, verbose=False):
    """Writes the script to a temporary file and runs it with bash; returns True on success."""
    fd, script_path = tempfile.mkstemp(prefix="buildforge-", suffix=".sh")
    os.close(fd)
    try:
        write_script(generated, script_path)
        logger.info(f"Running build script for {', '.join(generated.platforms)}...")
        output, process = stream_command(["bash", script_path], cwd=cwd)
        for line in output:
            if verbose:
                sys.stdout.write(line)
            logger.debug(line.rstrip("\n"))
        if process.returncode != 0:
            logger.error(f"Build script failed with exit code {process.returncode}.")
            return False
        return True
    finally:
        os.remove(script_path)
