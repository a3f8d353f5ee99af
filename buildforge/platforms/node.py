import re
from collections import namedtuple
from dataclasses import dataclass, field
from typing import Dict, Optional

from .. import manifest
from .. import script_builder as sb
from ..cli_logger import logger
from ..config import is_property_true
from ..errors import NoBuildStepError, NoSatisfyingVersionError, UnsupportedVersionError
from ..utils.static_site import is_hugo_app
from ..utils.version_resolver import (
    parse_node_version_request,
    resolve_toolchain,
    select_highest_satisfying,
)
from ..versions import NODE_VERSIONS
from .base import BuildScriptSnippet, DetectionResult, Platform

PLATFORM_NAME = "nodejs"

PACKAGE_JSON_FILE_NAME = "package.json"
YARN_LOCK_FILE_NAME = "yarn.lock"
NPM_LOCK_FILE_NAME = "package-lock.json"
NVMRC_FILE_NAME = ".nvmrc"
NODE_MODULES_DIR_NAME = "node_modules"
NODE_MODULES_ZIP_FILE_NAME = "node_modules.zip"
NODE_MODULES_TAR_GZ_FILE_NAME = "node_modules.tar.gz"
START_FILE_CANDIDATES = ("server.js", "app.js", "index.js", "bin/www")

# Build properties understood by this platform.
REGISTRY_URL_PROPERTY = "npm_registry_url"
COMPRESS_NODE_MODULES_PROPERTY = "compress_node_modules"
PRUNE_DEV_DEPENDENCIES_PROPERTY = "prune_dev_dependencies"
REQUIRE_BUILD_PROPERTY = "require_build"
BUILD_SCRIPT = "build"
AZURE_BUILD_SCRIPT = "build:azure"
ZIP_OPTION = "zip"
TAR_GZ_OPTION = "tar-gz"

# Build tool invocations and the output directory each one produces.
OUTPUT_DIR_CONVENTIONS = (
    ("ng build", "dist"),
    ("gatsby build", "public"),
    ("react-scripts build", "build"),
    ("next build", ".next"),
    ("nuxt build", ".nuxt"),
    ("vue-cli-service build", "dist"),
    ("hexo generate", "public"),
)

PackageManager = namedtuple(
    "PackageManager", ["command", "install_command", "version_command", "production_install_command", "runs_scripts"]
)

NPM = PackageManager("npm", "npm install", "npm --version", "npm prune --production", True)
YARN = PackageManager(
    "yarn", "yarn install --prefer-offline", "yarn --version",
    "yarn install --production --ignore-scripts --prefer-offline", True,
)
HUGO = PackageManager("hugo", "hugo", "hugo version", None, False)


def _string_map(value):
    if not isinstance(value, dict):
        return {}
    return {str(k): v for k, v in value.items() if isinstance(v, str)}


@dataclass(frozen=True)
class PackageJson:
    """The parts of package.json the build looks at."""
    name: Optional[str] = None
    main: Optional[str] = None
    scripts: Dict[str, str] = field(default_factory=dict)
    dependencies: Dict[str, str] = field(default_factory=dict)
    dev_dependencies: Dict[str, str] = field(default_factory=dict)
    engines: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            data = {}
        name = data.get("name")
        main = data.get("main")
        return cls(
            name=name if isinstance(name, str) else None,
            main=main if isinstance(main, str) and main.strip() else None,
            scripts=_string_map(data.get("scripts")),
            dependencies=_string_map(data.get("dependencies")),
            dev_dependencies=_string_map(data.get("devDependencies")),
            engines=_string_map(data.get("engines")),
        )


def read_package_json(repo):
    """
    Returns the parsed package.json, or None when missing or malformed.

    A malformed file is left for the package manager to reject, so the build
    script is still generated.
    """
    if not repo.file_exists(PACKAGE_JSON_FILE_NAME):
        return None
    try:
        return PackageJson.from_dict(repo.read_json(PACKAGE_JSON_FILE_NAME))
    except (ValueError, IOError, UnicodeDecodeError) as e:
        logger.warning(f"Exception caught while trying to deserialize {PACKAGE_JSON_FILE_NAME}: {e}")
        return None


def select_package_manager(repo):
    if repo.file_exists(YARN_LOCK_FILE_NAME):
        return YARN
    if is_hugo_app(repo):
        return HUGO
    return NPM


def get_output_dir_path(package_json):
    if package_json is None:
        return None
    build_command = package_json.scripts.get(BUILD_SCRIPT)
    if not build_command:
        return None
    lowered = build_command.lower()
    for tool_command, output_dir in OUTPUT_DIR_CONVENTIONS:
        if tool_command in lowered:
            return output_dir
    return None


def get_startup_file_name(repo, package_json):
    if package_json is not None:
        if package_json.main:
            return package_json.main
        match = re.match(r"^\s*node\s+(\S+)", package_json.scripts.get("start", ""))
        if match:
            return match.group(1)
    for candidate in START_FILE_CANDIDATES:
        if repo.file_exists(*candidate.split("/")):
            return candidate
    return ""


def get_node_modules_pack_options(config):
    """Returns (command, archive file name), both None when node_modules is not compressed."""
    if COMPRESS_NODE_MODULES_PROPERTY not in config.properties:
        return None, None
    option = (config.properties[COMPRESS_NODE_MODULES_PROPERTY] or "").strip().lower()
    if option in ("", TAR_GZ_OPTION):
        return "tar -zcf", NODE_MODULES_TAR_GZ_FILE_NAME
    if option == ZIP_OPTION:
        return "zip -y -q -r", NODE_MODULES_ZIP_FILE_NAME
    logger.warning(f"Ignoring unknown '{COMPRESS_NODE_MODULES_PROPERTY}' option '{option}'")
    return None, None


class NodePlatformDetector:
    def detect(self, repo, config=None):
        has_package_json = repo.file_exists(PACKAGE_JSON_FILE_NAME)
        is_node_app = (
            has_package_json
            or repo.file_exists(NPM_LOCK_FILE_NAME)
            or repo.file_exists(YARN_LOCK_FILE_NAME)
            or repo.file_exists("server.js")
            or repo.file_exists("app.js")
        )
        is_hugo = is_hugo_app(repo)
        if not (is_node_app or is_hugo):
            logger.debug("Could not find a package.json, lock file or known start file. Not a Node.js app.")
            return DetectionResult.not_applicable(PLATFORM_NAME)

        version = None
        package_json = read_package_json(repo) if has_package_json else None
        if package_json is not None:
            version = package_json.engines.get("node") or None
        hints = {
            "package_manager": select_package_manager(repo).command,
            "static_site_generator": "hugo" if is_hugo else "",
        }
        return DetectionResult(PLATFORM_NAME, True, version, hints)


class NodePlatform(Platform):
    name = PLATFORM_NAME
    support_table = NODE_VERSIONS

    def __init__(self, installer, detector=None):
        super().__init__(installer)
        self.detector = detector or NodePlatformDetector()

    def detect(self, repo, config=None):
        return self.detector.detect(repo)

    def _read_nvmrc(self, repo):
        if not repo.file_exists(NVMRC_FILE_NAME):
            return None
        lines = repo.read_file(NVMRC_FILE_NAME).strip().splitlines()
        return lines[0].strip() if lines else None

    def resolve_version(self, repo, config, detection):
        requested = None
        if config.platform_name == self.name and config.platform_version:
            requested = config.platform_version
        if not requested:
            requested = self._read_nvmrc(repo)
        if not requested and detection is not None:
            requested = detection.version

        runtime_version = self.support_table.default_version
        if requested and self.support_table.is_supported(requested):
            runtime_version = requested
        elif requested:
            try:
                constraint = parse_node_version_request(requested)
            except ValueError:
                raise UnsupportedVersionError(self.name, requested, self.supported_versions)
            if constraint is not None:
                try:
                    runtime_version = select_highest_satisfying(
                        self.supported_versions, constraint, self.is_installed
                    )
                except NoSatisfyingVersionError:
                    raise UnsupportedVersionError(self.name, requested, self.supported_versions)
        logger.debug(f"Resolved Node.js version '{requested or 'default'}' to {runtime_version}")
        return resolve_toolchain(self.support_table, runtime_version)

    def _get_build_commands(self, config, package_json, package_manager):
        """The custom command alone, or 'run build' then 'run build:azure' for the scripts that exist."""
        if config.custom_run_build_command:
            return [config.custom_run_build_command]
        if not package_manager.runs_scripts or package_json is None:
            return []
        commands = []
        if package_json.scripts.get(BUILD_SCRIPT):
            commands.append(f"{package_manager.command} run {BUILD_SCRIPT}")
        # Not run when packaging.
        if package_json.scripts.get(AZURE_BUILD_SCRIPT) and not config.should_package:
            commands.append(f"{package_manager.command} run {AZURE_BUILD_SCRIPT}")
        return commands

    def generate_build_script(self, context):
        config = context.config
        repo = context.repo
        resolved = context.resolved_versions[self.name]
        installation_script = self.get_installation_script(context)

        build_properties = {manifest.NODE_VERSION: resolved.runtime_version}

        package_json = read_package_json(repo)
        package_manager = select_package_manager(repo)
        logger.info(f"Using {package_manager.command}")

        build_commands = self._get_build_commands(config, package_json, package_manager)
        if is_property_true(config, REQUIRE_BUILD_PROPERTY, value_is_required=False) and not build_commands:
            raise NoBuildStepError([
                f"'{BUILD_SCRIPT}' under 'scripts' in {PACKAGE_JSON_FILE_NAME}",
                f"'{AZURE_BUILD_SCRIPT}' under 'scripts' in {PACKAGE_JSON_FILE_NAME}",
                "the 'custom_run_build_command' setting",
                "the RUN_BUILD_COMMAND environment variable",
            ])

        if package_json is not None:
            for label, deps in (("dependencies", package_json.dependencies),
                                ("devDependencies", package_json.dev_dependencies)):
                if deps:
                    specs = ", ".join(f"{name}{spec}" for name, spec in sorted(deps.items()))
                    logger.debug(f"Node.js {resolved.runtime_version} {label}: {specs}")

        compress_command, compressed_file_name = get_node_modules_pack_options(config)
        if compressed_file_name:
            build_properties[manifest.NODE_MODULES_FILE] = compressed_file_name

        output_dir_path = get_output_dir_path(package_json)
        if output_dir_path:
            build_properties[manifest.NODE_OUTPUT_DIR_PATH] = output_dir_path

        registry_url = (config.get_property(REGISTRY_URL_PROPERTY) or "").strip()
        if registry_url:
            build_properties[manifest.NODE_NPM_REGISTRY_URL] = registry_url

        build_properties[manifest.STARTUP_FILE_NAME] = get_startup_file_name(repo, package_json)

        working_dir = context.working_dir
        steps = []

        restore = list(sb.cd_lines(working_dir))
        if registry_url:
            restore.append(f"echo {sb.quote('Adding custom registry ' + registry_url + ' to .npmrc')}")
            registry_line = sb.quote("registry=" + registry_url)
            restore.append(f"grep -qxF {registry_line} .npmrc 2>/dev/null || echo {registry_line} >> .npmrc")
        if package_manager is YARN:
            restore.append('yarn config set cache-folder "$HOME/.cache/yarn"')
        restore.append(f"echo {sb.quote('Using ' + package_manager.command + ' version:')}")
        restore.append(package_manager.version_command)
        restore.append(f"echo {sb.quote('Running ' + package_manager.install_command + '...')}")
        restore.append(package_manager.install_command)
        steps.append(sb.ScriptStep(sb.RESTORE, "node-install-dependencies", tuple(restore)))

        build = []
        for build_command in build_commands:
            build.append(f"echo {sb.quote('Running ' + build_command + '...')}")
            build.append(build_command)
        if config.should_package and package_manager.runs_scripts:
            build.append(f"{package_manager.command} pack")
        if (package_json is not None and package_json.dev_dependencies
                and package_manager.production_install_command
                and is_property_true(config, PRUNE_DEV_DEPENDENCIES_PROPERTY, value_is_required=False)):
            build.append(f"echo {sb.quote('Removing development dependencies...')}")
            build.append(package_manager.production_install_command)
        if build:
            steps.append(sb.ScriptStep(sb.BUILD, "node-build", tuple([*sb.cd_lines(working_dir), *build])))

        if compress_command:
            archive = f"{context.output_dir.rstrip('/')}/{compressed_file_name}"
            steps.append(sb.ScriptStep(sb.COMPRESS, "node-compress-node-modules", (
                f"echo {sb.quote('Compressing ' + NODE_MODULES_DIR_NAME + ' into ' + compressed_file_name)}",
                *sb.cd_lines(working_dir),
                f"mkdir -p {sb.quote(context.output_dir)}",
                f"{compress_command} {sb.quote(archive)} {NODE_MODULES_DIR_NAME}",
            )))

        return BuildScriptSnippet(
            steps=steps,
            is_full_script=False,
            build_properties=build_properties,
            installation_script=installation_script,
        )

    def is_clean_repo(self, repo):
        return not repo.dir_exists(NODE_MODULES_DIR_NAME)

    def is_enabled(self, config):
        return config.enable_node_build

    def is_enabled_for_multi_platform_build(self, config):
        return True

    def get_directories_to_exclude_from_copy_to_build_output_dir(self, context):
        _, compressed_file_name = get_node_modules_pack_options(context.config)
        if compressed_file_name:
            # The archive replaces the root node_modules; nested ones are still copied.
            return ["/" + NODE_MODULES_DIR_NAME]
        return [NODE_MODULES_ZIP_FILE_NAME, NODE_MODULES_TAR_GZ_FILE_NAME]

    def get_directories_to_exclude_from_copy_to_intermediate_dir(self, context):
        return [
            "/" + NODE_MODULES_DIR_NAME,
            NODE_MODULES_ZIP_FILE_NAME,
            NODE_MODULES_TAR_GZ_FILE_NAME,
        ]
