import fnmatch
import json
import os


class SourceRepo:
    """Read-only view over an application's source directory."""

    def __init__(self, root_path):
        self.root_path = os.path.abspath(root_path)

    def _path(self, *parts):
        return os.path.join(self.root_path, *parts)

    def file_exists(self, *parts):
        return os.path.isfile(self._path(*parts))

    def dir_exists(self, *parts):
        return os.path.isdir(self._path(*parts))

    def read_file(self, *parts):
        with open(self._path(*parts), "r", encoding="utf-8") as f:
            return f.read()

    def read_json(self, *parts):
        """Parses a JSON file; raises ValueError for malformed content."""
        return json.loads(self.read_file(*parts))

    def enumerate_files(self, pattern, search_subdirectories=True, exclude_dirs=(".git",)):
        """Yields paths relative to the root, sorted for stable results."""
        matches = []
        for root, dirs, files in os.walk(self.root_path):
            dirs[:] = sorted(d for d in dirs if d not in exclude_dirs)
            for name in files:
                if fnmatch.fnmatch(name, pattern):
                    matches.append(os.path.relpath(os.path.join(root, name), self.root_path))
            if not search_subdirectories:
                break
        return sorted(matches)
