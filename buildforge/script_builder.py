"""
Composes build scripts from an ordered list of steps.

Steps are collected in any order and rendered once, sorted by phase, so
platforms and the orchestrator can contribute independently while the final
script keeps a fixed shape.
"""
import shlex
from dataclasses import dataclass
from typing import Tuple

from .manifest import serialize_manifest

# Phases in the order they appear in the rendered script.
PREAMBLE = "preamble"
CLEANUP = "cleanup"
STAGE = "stage"
INSTALL = "install"
TOOLS = "tools"
PRE_BUILD = "pre_build"
RESTORE = "restore"
BUILD = "build"
PUBLISH = "publish"
POST_BUILD = "post_build"
COMPRESS = "compress"
MANIFEST = "manifest"

PHASES = (
    PREAMBLE,
    CLEANUP,
    STAGE,
    INSTALL,
    TOOLS,
    PRE_BUILD,
    RESTORE,
    BUILD,
    PUBLISH,
    POST_BUILD,
    COMPRESS,
    MANIFEST,
)

ALWAYS_EXCLUDED_FROM_STAGING = (".git",)


@dataclass(frozen=True)
class ScriptStep:
    phase: str
    name: str
    lines: Tuple[str, ...]

    def render(self):
        return "\n".join(self.lines)


class BuildScript:
    def __init__(self, steps=()):
        self._steps = []
        for step in steps:
            self.add_step(step)

    def add(self, phase, name, lines):
        if isinstance(lines, str):
            lines = lines.splitlines()
        lines = tuple(lines)
        if not lines:
            return self
        return self.add_step(ScriptStep(phase, name, lines))

    def add_step(self, step):
        if step.phase not in PHASES:
            raise ValueError(f"Unknown script phase '{step.phase}'")
        self._steps.append(step)
        return self

    def extend(self, steps):
        for step in steps:
            self.add_step(step)
        return self

    @property
    def steps(self):
        # sorted() is stable: steps within a phase keep their insertion order.
        return sorted(self._steps, key=lambda step: PHASES.index(step.phase))

    def step_names(self):
        return [step.name for step in self.steps]

    def steps_in(self, phase):
        return [step for step in self.steps if step.phase == phase]

    def render(self):
        return "\n\n".join(step.render() for step in self.steps) + "\n"


def quote(value):
    return shlex.quote(str(value))


def preamble_lines():
    return ("#!/bin/bash", "set -e")


def cleanup_lines(destination_dir):
    """Removes a previous output nested inside the source tree."""
    return (
        f"echo {quote('Removing existing output directory ' + destination_dir)}",
        f"rm -rf {quote(destination_dir)}",
    )


def _rsync_command(source_dir, target_dir, excludes, delete=False):
    parts = ["rsync", "-rcE", "--links"]
    if delete:
        parts.append("--delete")
    parts.extend(f"--exclude {quote(name)}" for name in excludes)
    parts.extend([quote(source_dir.rstrip("/") + "/"), quote(target_dir)])
    return " ".join(parts)


def stage_lines(source_dir, intermediate_dir, excludes):
    """
    Copies the source tree into the intermediate directory.

    Version control metadata is never copied. A name with a leading '/' only
    matches at the root of the tree.
    """
    names = list(ALWAYS_EXCLUDED_FROM_STAGING)
    for name in excludes:
        if name not in names:
            names.append(name)
    return (
        f"echo {quote('Copying files to the intermediate directory ' + intermediate_dir)}",
        f"mkdir -p {quote(intermediate_dir)}",
        _rsync_command(source_dir, intermediate_dir, names, delete=True),
    )


def cd_lines(directory):
    return (f"cd {quote(directory)}",)


def hook_lines(label, source_dir, command):
    return (
        f"echo {quote('Executing ' + label + ' command...')}",
        f"cd {quote(source_dir)}",
        command,
        f"echo {quote('Finished executing ' + label + ' command.')}",
    )


def tool_path_lines(paths):
    return tuple(f'export PATH={quote(path)}:"$PATH"' for path in paths)


def copy_to_destination_lines(source_dir, destination_dir, excludes):
    return (
        f"echo {quote('Copying files to destination directory ' + destination_dir)}",
        f"mkdir -p {quote(destination_dir)}",
        _rsync_command(source_dir, destination_dir, excludes),
    )


def manifest_lines(manifest, manifest_dir, file_name):
    body = serialize_manifest(manifest).rstrip("\n")
    path = f"{manifest_dir.rstrip('/')}/{file_name}"
    lines = [
        f"mkdir -p {quote(manifest_dir)}",
        f"echo {quote('Writing build manifest to ' + path)}",
        f"cat > {quote(path)} <<'BUILDFORGE_MANIFEST_EOF'",
    ]
    if body:
        lines.extend(body.split("\n"))
    lines.append("BUILDFORGE_MANIFEST_EOF")
    return tuple(lines)
