from .command_executor import stream_command
from .file_manager import (
    download_and_extract,
    download_file,
    extract,
    fetch_published_checksum,
    verify_checksum,
)
from .static_site import is_hugo_app
