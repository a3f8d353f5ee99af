"""
Version support tables.

Each platform declares the runtime versions it can build and, for every
runtime version, the toolchain versions able to build it together with the
one used when nothing pins a toolchain.
"""
from packaging.version import Version


class VersionSupportTable:
    def __init__(self, platform, toolchains, default_toolchains, default_version):
        self.platform = platform
        self._toolchains = {runtime: tuple(sdks) for runtime, sdks in toolchains.items()}
        self._default_toolchains = dict(default_toolchains)
        self.default_version = default_version

    @property
    def supported_versions(self):
        return sorted(self._toolchains, key=Version)

    def is_supported(self, runtime_version):
        return runtime_version in self._toolchains

    def toolchains_for(self, runtime_version):
        return list(self._toolchains.get(runtime_version, ()))

    def default_toolchain_for(self, runtime_version):
        return self._default_toolchains[runtime_version]

    def all_toolchains(self):
        seen = set()
        for runtime in self.supported_versions:
            for toolchain in self._toolchains[runtime]:
                seen.add(toolchain)
        return sorted(seen, key=Version)


def _same_version_table(platform, versions, default_version):
    # Runtime and toolchain are the same artifact (e.g. node bundles npm).
    return VersionSupportTable(
        platform,
        {v: (v,) for v in versions},
        {v: v for v in versions},
        default_version,
    )


NODE_VERSIONS = _same_version_table(
    "nodejs",
    [
        "14.21.3",
        "16.20.2",
        "18.17.1",
        "18.20.4",
        "20.11.1",
        "20.17.0",
        "22.9.0",
    ],
    default_version="20.17.0",
)

# runtime version -> SDK versions able to build it; the first listed SDK is the default.
_DOTNET_SDKS = {
    "3.1.32": ("3.1.426",),
    "6.0.33": ("6.0.425", "6.0.133", "6.0.321"),
    "7.0.20": ("7.0.410", "7.0.120", "7.0.317"),
    "8.0.8": ("8.0.400", "8.0.108", "8.0.303"),
    "9.0.0": ("9.0.100",),
}

DOTNET_VERSIONS = VersionSupportTable(
    "dotnet",
    _DOTNET_SDKS,
    {runtime: sdks[0] for runtime, sdks in _DOTNET_SDKS.items()},
    default_version="8.0.8",
)

SUPPORT_TABLES = {
    NODE_VERSIONS.platform: NODE_VERSIONS,
    DOTNET_VERSIONS.platform: DOTNET_VERSIONS,
}
