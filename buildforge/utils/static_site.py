import re

HUGO_CONFIG_FILES = (
    "hugo.toml",
    "hugo.yaml",
    "hugo.yml",
    "hugo.json",
    "config.toml",
    "config.yaml",
    "config.yml",
    "config.json",
)
HUGO_SITE_DIRS = ("archetypes", "layouts", "content", "themes")
_BASE_URL_RE = re.compile(r"""^\s*"?baseurl"?\s*[:=]""", re.IGNORECASE | re.MULTILINE)


def is_hugo_app(repo):
    """
    A Hugo site has one of Hugo's config files at the root, and either one of
    Hugo's site directories or a 'baseURL' setting in that config.
    """
    config_files = [name for name in HUGO_CONFIG_FILES if repo.file_exists(name)]
    if not config_files:
        return False
    if config_files[0].startswith("hugo."):
        return True
    if any(repo.dir_exists(name) for name in HUGO_SITE_DIRS):
        return True
    for name in config_files:
        try:
            if _BASE_URL_RE.search(repo.read_file(name)):
                return True
        except (IOError, UnicodeDecodeError):
            continue
    return False
