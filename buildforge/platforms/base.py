"""The capability set every supported runtime platform implements."""
import abc
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional

from ..config import BuildConfiguration
from ..repository import SourceRepo
from ..script_builder import BuildScript, ScriptStep
from ..utils.version_resolver import ResolvedVersion


@dataclass(frozen=True)
class DetectionResult:
    platform: str
    applies: bool
    version: Optional[str] = None
    hints: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "hints", MappingProxyType(dict(self.hints)))

    @classmethod
    def not_applicable(cls, platform):
        return cls(platform=platform, applies=False)


@dataclass
class BuildContext:
    """State of one build: the inputs plus what resolution decided."""
    repo: SourceRepo
    config: BuildConfiguration
    detections: Dict[str, DetectionResult] = field(default_factory=dict)
    resolved_versions: Dict[str, ResolvedVersion] = field(default_factory=dict)

    @property
    def operation_id(self):
        return self.config.operation_id

    @property
    def properties(self):
        return self.config.properties

    @property
    def working_dir(self):
        """Where the build runs: the intermediate copy when one is configured."""
        return self.config.intermediate_dir or self.config.source_dir

    @property
    def output_dir(self):
        return self.config.destination_dir or self.working_dir

    @property
    def manifest_dir(self):
        return self.config.manifest_dir or self.output_dir


@dataclass
class BuildScriptSnippet:
    steps: List[ScriptStep] = field(default_factory=list)
    is_full_script: bool = False
    build_properties: Dict[str, str] = field(default_factory=dict)
    installation_script: Optional[str] = None

    @property
    def script(self):
        return BuildScript(self.steps).render()


class Platform(abc.ABC):
    name = None
    support_table = None

    def __init__(self, installer):
        self.installer = installer

    @property
    def supported_versions(self):
        return self.support_table.supported_versions

    @abc.abstractmethod
    def detect(self, repo, config=None) -> DetectionResult:
        """Checks whether the repository targets this platform. Must not raise for 'no'."""

    @abc.abstractmethod
    def resolve_version(self, repo, config, detection) -> ResolvedVersion:
        """Resolves the runtime/toolchain pair to build with."""

    @abc.abstractmethod
    def generate_build_script(self, context) -> BuildScriptSnippet:
        """Produces this platform's part of the build script."""

    @abc.abstractmethod
    def is_enabled(self, config) -> bool:
        pass

    def is_enabled_for_multi_platform_build(self, config):
        return True

    def set_required_tools(self, repo, target_platform_version, tools_to_version):
        if target_platform_version and target_platform_version.strip():
            tools_to_version[self.name] = target_platform_version

    def set_version(self, context, resolved):
        context.resolved_versions[self.name] = resolved

    def get_directories_to_exclude_from_copy_to_intermediate_dir(self, context):
        return []

    def get_directories_to_exclude_from_copy_to_build_output_dir(self, context):
        return []

    def is_clean_repo(self, repo):
        return True

    def is_installed(self, version):
        return self.installer.is_version_already_installed(self.name, version)

    def get_installation_script(self, context):
        resolved = context.resolved_versions[self.name]
        return self.installer.get_installation_script(
            context.config.enable_dynamic_install, self.name, resolved.toolchain_version
        )
