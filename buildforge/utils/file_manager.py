import contextlib
import hashlib
import os
import shutil
import tarfile
import zipfile

import requests

from ..cli_logger import logger
from ..errors import ChecksumMismatchError, InstallationError

# -------------------- Helpers: safe paths & extraction --------------------

def _safe_join(base, *paths):
    """Safely join paths, preventing path traversal attacks."""
    base = os.path.abspath(base)
    final = os.path.abspath(os.path.join(base, *paths))
    if not final.startswith(base + os.sep) and final != base:
        raise IOError(f"Unsafe path detected: {final}")
    return final

def _safe_extract_zip(zip_ref: zipfile.ZipFile, dest_dir: str, log_each=False):
    """Safely extract a zip file, preventing zip slip attacks."""
    for member in zip_ref.infolist():
        target_path = _safe_join(dest_dir, member.filename)
        if member.is_dir():
            if log_each:
                logger.step_info(f"creating: {member.filename}", indent=3)
            os.makedirs(target_path, exist_ok=True)
        else:
            os.makedirs(os.path.dirname(target_path), exist_ok=True)
            if log_each:
                logger.step_info(f"extracting: {member.filename}", indent=2)
            with zip_ref.open(member, 'r') as src, open(target_path, 'wb') as out:
                shutil.copyfileobj(src, out)
            # Preserve file permissions
            mode = member.external_attr >> 16
            if mode:
                os.chmod(target_path, mode)

def _safe_extract_tar(tar_ref: tarfile.TarFile, dest_dir: str, log_each=False):
    """Safely extract a tar file, preventing path traversal attacks."""
    for member in tar_ref.getmembers():
        member_path = _safe_join(dest_dir, member.name)
        if member.isdir():
            if log_each:
                logger.step_info(f"creating: {member.name}", indent=3)
            os.makedirs(member_path, exist_ok=True)
            continue
        os.makedirs(os.path.dirname(member_path), exist_ok=True)
        if member.issym():
            # Toolchain archives link executables (e.g. bin/npm); keep links inside the tree.
            _safe_join(os.path.dirname(member_path), member.linkname)
            with contextlib.suppress(FileNotFoundError):
                os.remove(member_path)
            os.symlink(member.linkname, member_path)
            continue
        if log_each:
            logger.step_info(f"extracting: {member.name}", indent=2)
        src = tar_ref.extractfile(member)
        if src is None:
            # could be special file; skip silently
            continue
        with src as src_file:
            with open(member_path, "wb") as out:
                shutil.copyfileobj(src_file, out)
            # Preserve file permissions
            if member.mode:
                os.chmod(member_path, member.mode)


def extract(filepath, dest_dir):
    """Extracts an archive file to a destination directory."""
    os.makedirs(dest_dir, exist_ok=True)
    filename = os.path.basename(filepath)

    try:
        if tarfile.is_tarfile(filepath):
            with tarfile.open(filepath, 'r:*') as tar:
                _safe_extract_tar(tar, dest_dir)
        elif zipfile.is_zipfile(filepath):
            with zipfile.ZipFile(filepath, 'r') as zip_ref:
                _safe_extract_zip(zip_ref, dest_dir)
        else:
            raise InstallationError(f"Unsupported archive type for {filename}.")
    except (zipfile.BadZipFile, tarfile.TarError, IOError) as e:
        raise InstallationError(f"Error extracting {filename}: {e}")

    logger.debug(f"Extracted {filename} to {dest_dir}")
    return dest_dir

# -------------------- Download & verify --------------------

def file_checksum(filepath, algorithm="sha256"):
    digest = hashlib.new(algorithm)
    with open(filepath, "rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def verify_checksum(filepath, expected, algorithm="sha256"):
    actual = file_checksum(filepath, algorithm)
    if actual.lower() != expected.strip().lower():
        raise ChecksumMismatchError(os.path.basename(filepath), expected, actual)
    logger.debug(f"Verified {algorithm} checksum of {os.path.basename(filepath)}")


def download_file(url, dest_dir, filename=None, timeout=60):
    """Download a file; the final name only appears once the transfer completed."""
    os.makedirs(dest_dir, exist_ok=True)
    if filename is None:
        filename = url.split('/')[-1]
    filepath = os.path.join(dest_dir, filename)
    temp_filepath = filepath + ".tmp"

    try:
        with requests.get(url, stream=True, timeout=timeout) as r:
            r.raise_for_status()
            total_size = int(r.headers.get('content-length', 0))

            with open(temp_filepath, 'wb') as f:
                chunks = logger.progress(
                    r.iter_content(chunk_size=1024 * 256),  # 256KB chunks
                    description=f"Downloading {filename}",
                    total=total_size,
                    unit="b"
                )
                for chunk in chunks:
                    if chunk:  # keep-alive chunks may be empty
                        f.write(chunk)

        # Atomic rename
        os.replace(temp_filepath, filepath)
        return filepath

    except requests.exceptions.RequestException as e:
        with contextlib.suppress(OSError):
            if os.path.exists(temp_filepath):
                os.remove(temp_filepath)
        raise InstallationError(f"Error downloading {url}: {e}")


def fetch_published_checksum(checksum_url, filename, timeout=30):
    """Reads a 'SHASUMS'-style listing ('<hash>  <file name>' lines) and returns the hash for a file."""
    try:
        resp = requests.get(checksum_url, timeout=timeout)
        resp.raise_for_status()
    except requests.exceptions.RequestException as e:
        raise InstallationError(f"Error fetching checksums from {checksum_url}: {e}")
    for line in resp.text.splitlines():
        parts = line.split()
        if len(parts) == 2 and parts[1].lstrip("*") == filename:
            return parts[0]
    raise InstallationError(f"No checksum for {filename} listed at {checksum_url}")


def download_and_extract(url, dest_dir, filename=None, checksum=None, algorithm="sha256", timeout=60):
    """Download, verify when a checksum is given, and extract into dest_dir."""
    download_dir = dest_dir + ".download"
    try:
        filepath = download_file(url, download_dir, filename=filename, timeout=timeout)
        if checksum:
            verify_checksum(filepath, checksum, algorithm)
        else:
            logger.warning(f"No checksum available for {os.path.basename(filepath)}; skipping verification.")
        return extract(filepath, dest_dir)
    finally:
        shutil.rmtree(download_dir, ignore_errors=True)
