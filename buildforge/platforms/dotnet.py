import os
import re
import xml.etree.ElementTree as ET

from .. import manifest
from .. import script_builder as sb
from ..cli_logger import logger
from ..config import BuildConfiguration
from ..errors import AmbiguousProjectError, ConfigurationError
from ..utils.version_resolver import (
    RollForwardConstraint,
    resolve_runtime_version,
    resolve_toolchain,
)
from ..versions import DOTNET_VERSIONS
from .base import BuildScriptSnippet, DetectionResult, Platform

PLATFORM_NAME = "dotnet"

PROJECT_FILE_EXTENSIONS = (".csproj", ".fsproj")
WEB_SDK_NAME = "Microsoft.NET.Sdk.Web"
GLOBAL_JSON_FILE_NAME = "global.json"
DEFAULT_MSBUILD_CONFIGURATION = "Release"
DEFAULT_ROLL_FORWARD_POLICY = "latestPatch"

_TARGET_FRAMEWORK_RE = re.compile(r"^(?:netcoreapp|net)(\d+\.\d+)$", re.IGNORECASE)


def _local_name(tag):
    # Old-style project files put every element in the MSBuild namespace.
    return tag.rsplit("}", 1)[-1]


class ProjectFile:
    """A parsed .csproj/.fsproj file."""

    def __init__(self, relative_path, sdk=None, target_framework=None, assembly_name=None):
        self.relative_path = relative_path
        self.sdk = sdk
        self.target_framework = target_framework
        self.assembly_name = assembly_name

    @property
    def is_web_project(self):
        return (self.sdk or "").lower() == WEB_SDK_NAME.lower()

    @property
    def runtime_version(self):
        """'netcoreapp3.1' -> '3.1', 'net8.0' -> '8.0'; None for frameworks we cannot map."""
        if not self.target_framework:
            return None
        match = _TARGET_FRAMEWORK_RE.match(self.target_framework.strip())
        return match.group(1) if match else None

    @property
    def startup_file_name(self):
        stem = os.path.splitext(os.path.basename(self.relative_path))[0]
        return f"{self.assembly_name or stem}.dll"

    @classmethod
    def parse(cls, repo, relative_path):
        content = repo.read_file(*relative_path.split(os.sep))
        try:
            root = ET.fromstring(content)
        except ET.ParseError as e:
            logger.warning(f"Could not parse project file '{relative_path}': {e}")
            return cls(relative_path)

        values = {}
        for element in root.iter():
            name = _local_name(element.tag)
            if name in ("TargetFramework", "TargetFrameworks", "AssemblyName") and name not in values:
                if element.text and element.text.strip():
                    values[name] = element.text.strip()

        target_framework = values.get("TargetFramework")
        if not target_framework and values.get("TargetFrameworks"):
            target_framework = values["TargetFrameworks"].split(";")[0].strip()
        return cls(
            relative_path,
            sdk=root.get("Sdk"),
            target_framework=target_framework,
            assembly_name=values.get("AssemblyName"),
        )


class ProjectFileProvider:
    """
    Finds the project file to build.

    Order: the 'project' setting, a single project file at the root, then a
    single web project anywhere in the tree.
    """

    def get_project_file(self, repo, config):
        if config.project:
            relative_path = os.path.normpath(config.project)
            if not repo.file_exists(*relative_path.split(os.sep)):
                raise ConfigurationError(
                    f"Could not find the project file '{config.project}' given by the 'project' setting."
                )
            logger.debug(f"Using project file '{relative_path}' from the 'project' setting")
            return ProjectFile.parse(repo, relative_path)

        root_projects = self._find_projects(repo, search_subdirectories=False)
        if len(root_projects) > 1:
            raise AmbiguousProjectError(root_projects)
        if root_projects:
            return ProjectFile.parse(repo, root_projects[0])

        web_projects = [
            project for project in (
                ProjectFile.parse(repo, path) for path in self._find_projects(repo, search_subdirectories=True)
            )
            if project.is_web_project
        ]
        if len(web_projects) > 1:
            raise AmbiguousProjectError([p.relative_path for p in web_projects])
        if web_projects:
            return web_projects[0]
        return None

    def _find_projects(self, repo, search_subdirectories):
        found = []
        for extension in PROJECT_FILE_EXTENSIONS:
            found.extend(repo.enumerate_files(
                "*" + extension,
                search_subdirectories=search_subdirectories,
                exclude_dirs=(".git", "node_modules", "bin", "obj"),
            ))
        return sorted(found)


def read_global_json(repo):
    """Returns the SDK constraint pinned by global.json, or None."""
    if not repo.file_exists(GLOBAL_JSON_FILE_NAME):
        return None
    try:
        data = repo.read_json(GLOBAL_JSON_FILE_NAME)
    except (ValueError, IOError, UnicodeDecodeError) as e:
        logger.warning(f"Ignoring malformed {GLOBAL_JSON_FILE_NAME}: {e}")
        return None
    sdk = data.get("sdk") if isinstance(data, dict) else None
    if not isinstance(sdk, dict) or not sdk.get("version"):
        return None
    allow_prerelease = sdk.get("allowPrerelease", True)
    return RollForwardConstraint(
        str(sdk["version"]),
        policy=sdk.get("rollForward") or DEFAULT_ROLL_FORWARD_POLICY,
        allow_prerelease=allow_prerelease is not False,
    )


class DotNetCorePlatform(Platform):
    name = PLATFORM_NAME
    support_table = DOTNET_VERSIONS

    def __init__(self, installer, project_file_provider=None):
        super().__init__(installer)
        self.project_file_provider = project_file_provider or ProjectFileProvider()

    def detect(self, repo, config=None):
        project_file = self._find_project_file(repo, config)
        if project_file is None:
            return DetectionResult.not_applicable(self.name)
        hints = {"project_file": project_file.relative_path}
        if project_file.target_framework:
            hints["target_framework"] = project_file.target_framework
        version = project_file.runtime_version
        if project_file.target_framework and version is None:
            logger.warning(
                f"Could not map target framework '{project_file.target_framework}' "
                "to a .NET runtime version; using the default."
            )
        return DetectionResult(self.name, True, version, hints)

    def _find_project_file(self, repo, config):
        if config is None:
            config = BuildConfiguration(source_dir=repo.root_path)
        return self.project_file_provider.get_project_file(repo, config)

    def resolve_version(self, repo, config, detection):
        requested = None
        if config.platform_name == self.name and config.platform_version:
            requested = config.platform_version
        elif detection is not None:
            requested = detection.version
        runtime_version = resolve_runtime_version(self.support_table, requested)

        constraint = read_global_json(repo)
        if constraint is not None:
            logger.debug(f"SDK constrained by {GLOBAL_JSON_FILE_NAME}: {constraint}")
        resolved = resolve_toolchain(self.support_table, runtime_version, constraint, self.is_installed)
        logger.debug(f"Resolved .NET runtime {resolved.runtime_version} with SDK {resolved.toolchain_version}")
        return resolved

    def generate_build_script(self, context):
        config = context.config
        resolved = context.resolved_versions[self.name]
        project_file = self._find_project_file(context.repo, config)
        if project_file is None:
            raise ConfigurationError(f"No project file found to build in {context.repo.root_path}")

        installation_script = self.get_installation_script(context)
        msbuild_configuration = config.msbuild_configuration or DEFAULT_MSBUILD_CONFIGURATION
        working_dir = context.working_dir
        project_path = os.path.join(working_dir, project_file.relative_path)

        build_properties = {
            manifest.OPERATION_ID: context.operation_id,
            manifest.PLATFORM_NAME: self.name,
            manifest.DOTNET_RUNTIME_VERSION: resolved.runtime_version,
            manifest.DOTNET_SDK_VERSION: resolved.toolchain_version,
            manifest.STARTUP_FILE_NAME: project_file.startup_file_name,
        }

        script = sb.BuildScript()
        script.add(sb.PREAMBLE, "preamble", sb.preamble_lines())
        if config.output_is_sub_dir_of_source_dir:
            script.add(sb.CLEANUP, "cleanup-destination", sb.cleanup_lines(config.destination_dir))
        if config.intermediate_dir:
            script.add(sb.STAGE, "stage-intermediate", sb.stage_lines(
                config.source_dir,
                config.intermediate_dir,
                self.get_directories_to_exclude_from_copy_to_intermediate_dir(context),
            ))
        script.add(sb.STAGE, "enter-working-dir", sb.cd_lines(working_dir))
        if installation_script:
            script.add(sb.INSTALL, "install-dotnet", installation_script)

        tools = [
            "export DOTNET_SKIP_FIRST_TIME_EXPERIENCE=1",
            "export DOTNET_CLI_TELEMETRY_OPTOUT=1",
        ]
        if config.enable_dynamic_install:
            tools.extend(sb.tool_path_lines([self.installer.get_tool_path(self.name, resolved.toolchain_version)]))
        script.add(sb.TOOLS, "dotnet-environment", tools)

        if config.pre_build_command:
            script.add(sb.PRE_BUILD, "pre-build", sb.hook_lines("pre-build", working_dir, config.pre_build_command))

        script.add(sb.RESTORE, "dotnet-restore", (
            *sb.cd_lines(working_dir),
            f"echo {sb.quote('Restoring packages for ' + project_file.relative_path)}",
            f"dotnet restore {sb.quote(project_path)}",
        ))

        if config.has_destination_dir:
            script.add(sb.PUBLISH, "dotnet-publish", (
                f"echo {sb.quote('Publishing to ' + config.destination_dir)}",
                f"dotnet publish {sb.quote(project_path)} -c {sb.quote(msbuild_configuration)} "
                f"-o {sb.quote(config.destination_dir)}",
            ))
        else:
            script.add(sb.BUILD, "dotnet-build", (
                f"echo {sb.quote('Building ' + project_file.relative_path)}",
                f"dotnet build {sb.quote(project_path)} -c {sb.quote(msbuild_configuration)}",
            ))

        if config.post_build_command:
            script.add(sb.POST_BUILD, "post-build", sb.hook_lines("post-build", working_dir, config.post_build_command))

        script.add(sb.MANIFEST, "write-manifest", sb.manifest_lines(
            build_properties, context.manifest_dir, manifest.MANIFEST_FILE_NAME
        ))

        return BuildScriptSnippet(
            steps=script.steps,
            is_full_script=True,
            build_properties=build_properties,
            installation_script=installation_script,
        )

    def is_enabled(self, config):
        return config.enable_dotnet_build

    def is_enabled_for_multi_platform_build(self, config):
        return False

    def get_directories_to_exclude_from_copy_to_intermediate_dir(self, context):
        return ["obj", "bin"]

    def get_directories_to_exclude_from_copy_to_build_output_dir(self, context):
        return ["obj", "bin"]
