"""Errors raised while generating a build script.

Every error derives from ``click.ClickException`` so the CLI reports it with
a message and a non-zero exit status instead of a traceback.
"""
import click


class BuildForgeError(click.ClickException):
    """Base class for all generation-time failures."""
    exit_code = 1


class ConfigurationError(BuildForgeError):
    pass


class InvalidPropertyError(ConfigurationError):
    def __init__(self, key, value):
        self.key = key
        self.value = value
        super().__init__(
            f"Invalid value '{value}' for build property '{key}'. "
            "Value can either be 'true' or 'false'."
        )


class NoPlatformDetectedError(BuildForgeError):
    def __init__(self, source_dir):
        self.source_dir = source_dir
        super().__init__(f"Could not detect any platform in the source directory '{source_dir}'.")


class PlatformConflictError(BuildForgeError):
    """More than one platform applies but they cannot be built together."""

    def __init__(self, message, platforms):
        self.platforms = list(platforms)
        super().__init__(message)


class UnsupportedPlatformError(BuildForgeError):
    def __init__(self, platform_name, supported):
        self.platform_name = platform_name
        self.supported = list(supported)
        super().__init__(
            f"Platform '{platform_name}' is not supported. "
            f"Supported platforms are: {', '.join(self.supported)}"
        )


class UnsupportedVersionError(BuildForgeError):
    def __init__(self, platform_name, requested, supported):
        self.platform_name = platform_name
        self.requested = requested
        self.supported = list(supported)
        super().__init__(
            f"Platform '{platform_name}' version '{requested}' is unsupported. "
            f"Supported versions: {', '.join(self.supported)}"
        )


class NoSatisfyingVersionError(BuildForgeError):
    def __init__(self, constraint, available):
        self.constraint = constraint
        self.available = list(available)
        super().__init__(
            f"No version satisfies the requested constraint '{constraint}'. "
            f"Available versions: {', '.join(self.available) or '(none)'}"
        )


class NoBuildStepError(BuildForgeError):
    def __init__(self, checked_locations):
        self.checked_locations = list(checked_locations)
        super().__init__(
            "A build is required but no build command could be found. Checked: "
            + "; ".join(self.checked_locations)
        )


class AmbiguousProjectError(BuildForgeError):
    def __init__(self, candidates):
        self.candidates = list(candidates)
        super().__init__(
            "Found more than one project file to build: "
            f"{', '.join(self.candidates)}. Use the 'project' setting to pick one."
        )


class InstallationError(BuildForgeError):
    pass


class ChecksumMismatchError(InstallationError):
    def __init__(self, file_name, expected, actual):
        self.file_name = file_name
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Checksum mismatch for {file_name}: expected {expected}, got {actual}"
        )
