from .base import BuildContext, BuildScriptSnippet, DetectionResult, Platform
from .dotnet import DotNetCorePlatform
from .node import NodePlatform

# Every platform buildforge knows about, in detection order.
PLATFORM_TYPES = (NodePlatform, DotNetCorePlatform)


def create_platforms(config, installer):
    """Instantiates the registered platforms enabled by the configuration."""
    platforms = []
    for platform_type in PLATFORM_TYPES:
        platform = platform_type(installer)
        if platform.is_enabled(config):
            platforms.append(platform)
    return platforms


def platform_names():
    return [platform_type.name for platform_type in PLATFORM_TYPES]
