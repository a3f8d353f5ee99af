import operator
import re
from dataclasses import dataclass
from typing import Optional

from packaging.version import InvalidVersion, Version

from ..errors import ConfigurationError, NoSatisfyingVersionError, UnsupportedVersionError


@dataclass(frozen=True)
class ResolvedVersion:
    runtime_version: str
    toolchain_version: str


# Node.js LTS code names accepted in '.nvmrc' as 'lts/<name>'.
NODE_LTS_CODENAMES = {
    "argon": 4,
    "boron": 6,
    "carbon": 8,
    "dubnium": 10,
    "erbium": 12,
    "fermium": 14,
    "gallium": 16,
    "hydrogen": 18,
    "iron": 20,
    "jod": 22,
}

_WILDCARDS = ("x", "X", "*")
_COMPARATOR_RE = re.compile(
    r"^(?P<op><=|>=|<|>|=|\^|~>?)?v?"
    r"(?P<major>\d+|[xX*])(?:\.(?P<minor>\d+|[xX*]))?(?:\.(?P<patch>\d+|[xX*]))?"
    r"(?:[-+][0-9A-Za-z.+-]*)?$"
)
_HYPHEN_RE = re.compile(r"^(\S+)\s+-\s+(\S+)$")


def _parse_partial(token):
    match = _COMPARATOR_RE.match(token)
    if not match:
        raise ValueError(f"Invalid version range '{token}'")
    parts = []
    for name in ("major", "minor", "patch"):
        value = match.group(name)
        if value is None or value in _WILDCARDS:
            break
        parts.append(int(value))
    return match.group("op") or "", parts


def _version(parts):
    padded = list(parts) + [0] * (3 - len(parts))
    return Version(".".join(str(p) for p in padded))


def _bump(parts):
    """Smallest version above every version matching the partial version."""
    bumped = list(parts[:-1]) + [parts[-1] + 1]
    return _version(bumped)


def _comparators_for(op, parts):
    if not parts:
        if op in ("<", ">"):
            # '<*' and '>*' match nothing.
            return [(operator.lt, Version("0"))]
        return []
    full = len(parts) == 3
    if op in ("", "="):
        if full:
            return [(operator.eq, _version(parts))]
        return [(operator.ge, _version(parts)), (operator.lt, _bump(parts))]
    if op == "^":
        index = next((i for i, p in enumerate(parts) if p != 0), len(parts) - 1)
        return [(operator.ge, _version(parts)), (operator.lt, _bump(parts[:index + 1]))]
    if op in ("~", "~>"):
        upper = parts[:2] if len(parts) > 1 else parts
        return [(operator.ge, _version(parts)), (operator.lt, _bump(upper))]
    if op == ">":
        if full:
            return [(operator.gt, _version(parts))]
        return [(operator.ge, _bump(parts))]
    if op == ">=":
        return [(operator.ge, _version(parts))]
    if op == "<":
        return [(operator.lt, _version(parts))]
    if op == "<=":
        if full:
            return [(operator.le, _version(parts))]
        return [(operator.lt, _bump(parts))]
    raise ValueError(f"Unknown operator '{op}'")


def _parse_comparator_set(text):
    text = text.strip()
    if text in ("", "*", "x", "X", "latest"):
        return []
    hyphen = _HYPHEN_RE.match(text)
    if hyphen:
        _, low = _parse_partial(hyphen.group(1))
        _, high = _parse_partial(hyphen.group(2))
        comparators = _comparators_for(">=", low) if low else []
        if high:
            comparators += _comparators_for("<=", high)
        return comparators
    text = re.sub(r"(<=|>=|<|>|=|\^|~>?)\s+", r"\1", text)
    comparators = []
    for token in text.split():
        op, parts = _parse_partial(token)
        comparators.extend(_comparators_for(op, parts))
    return comparators


class SemverRange:
    """An npm-style semantic version range such as '^18.1.0 || >=20 <21'."""

    def __init__(self, text):
        self.text = text.strip()
        self._alternatives = [_parse_comparator_set(part) for part in self.text.split("||")]

    def contains(self, version):
        try:
            candidate = Version(version)
        except InvalidVersion:
            return False
        return any(
            all(compare(candidate, bound) for compare, bound in comparators)
            for comparators in self._alternatives
        )

    def __str__(self):
        return self.text

    def __repr__(self):
        return f"SemverRange({self.text!r})"


ROLL_FORWARD_POLICIES = (
    "disable",
    "patch",
    "latestPatch",
    "feature",
    "latestFeature",
    "minor",
    "latestMinor",
    "major",
    "latestMajor",
)


class RollForwardConstraint:
    """
    SDK constraint read from a 'global.json' pin file.

    SDK versions encode a feature band in their third component: 8.0.303 is
    band 3, patch 3.
    """

    def __init__(self, version, policy="latestPatch", allow_prerelease=True):
        if policy not in ROLL_FORWARD_POLICIES:
            raise ConfigurationError(
                f"Unknown rollForward policy '{policy}' in global.json. "
                f"Expected one of: {', '.join(ROLL_FORWARD_POLICIES)}"
            )
        try:
            self.requested = Version(version)
        except InvalidVersion:
            raise ConfigurationError(f"Invalid SDK version '{version}' in global.json")
        self.version = version
        self.policy = policy
        self.allow_prerelease = allow_prerelease

    def contains(self, version):
        try:
            candidate = Version(version)
        except InvalidVersion:
            return False
        requested = self.requested
        if candidate == requested:
            return True
        if candidate.is_prerelease and not self.allow_prerelease:
            return False
        if self.policy == "disable" or candidate < requested:
            return False
        if self.policy in ("patch", "latestPatch"):
            return _feature_band(candidate) == _feature_band(requested)
        if self.policy in ("feature", "latestFeature"):
            return (candidate.major, candidate.minor) == (requested.major, requested.minor)
        if self.policy in ("minor", "latestMinor"):
            return candidate.major == requested.major
        return True

    def nearest_band(self, candidates):
        """
        Narrows candidates to the lowest feature band the constraint accepts.

        'feature', 'minor' and 'major' only roll past the requested band when
        it has no SDK, and then only as far as the next band that has one. The
        other policies keep every candidate.
        """
        if self.policy not in ("feature", "minor", "major"):
            return list(candidates)
        accepted = [c for c in candidates if self.contains(c)]
        if not accepted:
            return list(candidates)
        nearest = min(_feature_band(Version(c)) for c in accepted)
        return [c for c in accepted if _feature_band(Version(c)) == nearest]

    def __str__(self):
        return f"{self.version} (rollForward: {self.policy})"


def _feature_band(version):
    return version.major, version.minor, version.micro // 100


def parse_node_version_request(text) -> Optional[SemverRange]:
    """Turns an '.nvmrc' or 'engines.node' value into a range; None means unconstrained."""
    text = (text or "").strip()
    if not text or text in ("node", "stable", "lts/*", "latest"):
        return None
    if text.startswith("lts/"):
        major = NODE_LTS_CODENAMES.get(text[len("lts/"):].lower())
        if major is None:
            raise ValueError(f"Unknown Node.js LTS name '{text}'")
        return SemverRange(str(major))
    return SemverRange(text)


def select_highest_satisfying(candidates, constraint=None, is_installed=None):
    """
    Picks the highest candidate accepted by the constraint.

    Candidates with equal versions are ordered by whether they are already
    installed, so an installed one wins the tie.
    """
    satisfying = [c for c in candidates if constraint is None or constraint.contains(c)]
    if not satisfying:
        available = sorted(candidates, key=_sort_key)
        raise NoSatisfyingVersionError(str(constraint), available)

    def rank(candidate):
        installed = bool(is_installed(candidate)) if is_installed else False
        return (_sort_key(candidate), installed)

    return max(satisfying, key=rank)


def _sort_key(version):
    try:
        return Version(version)
    except InvalidVersion:
        return Version("0")


def resolve_runtime_version(table, requested=None, is_installed=None):
    """Maps a requested runtime version or range onto a supported version."""
    if not requested:
        return table.default_version
    requested = str(requested).strip()
    if table.is_supported(requested):
        return requested
    try:
        constraint = SemverRange(requested)
        return select_highest_satisfying(table.supported_versions, constraint, is_installed)
    except (ValueError, NoSatisfyingVersionError):
        raise UnsupportedVersionError(table.platform, requested, table.supported_versions)


def resolve_toolchain(table, runtime_version, constraint=None, is_installed=None):
    """Pairs a runtime version with the toolchain that builds it."""
    if constraint is None:
        return ResolvedVersion(runtime_version, table.default_toolchain_for(runtime_version))
    candidates = constraint.nearest_band(table.toolchains_for(runtime_version))
    toolchain = select_highest_satisfying(candidates, constraint, is_installed)
    return ResolvedVersion(runtime_version, toolchain)
