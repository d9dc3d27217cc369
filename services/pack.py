"""
Challenge pack sanitization.

Uploaded ZIPs are extracted defensively (no symlinks, no absolute or
traversing paths), stripped of macOS junk and flattened when everything sits
in a single top-level directory.
"""

import logging
import os
import posixpath
import shutil
import stat
import uuid
import zipfile

from services.errors import ValidationError

logger = logging.getLogger(__name__)

JUNK_FILES = {'.DS_Store'}
JUNK_DIRS = {'__MACOSX'}
DOCROOT_INDEX_FILES = ('index.html', 'index.php')


def is_symlink_entry(info):
    mode = (info.external_attr >> 16) & 0o170000
    return mode == stat.S_IFLNK


def is_unsafe_path(name):
    """True for absolute, traversing, backslash or drive-qualified entry names"""
    if '\\' in name or ':' in name:
        return True
    if name.startswith('/'):
        return True
    normalized = posixpath.normpath(name)
    if normalized == '..' or normalized.startswith('../') or '/../' in normalized:
        return True
    return False


def extract_zip_safe(zip_path, dest_dir):
    """
    Extract a ZIP archive into dest_dir.

    Raises:
        ValidationError: unreadable archive, symlink entry, or an entry
            that would land outside dest_dir
    """
    os.makedirs(dest_dir, exist_ok=True)
    dest_root = os.path.realpath(dest_dir)

    try:
        archive = zipfile.ZipFile(zip_path)
    except (zipfile.BadZipFile, OSError) as e:
        raise ValidationError(f'Cannot open ZIP archive: {e}')

    with archive:
        for info in archive.infolist():
            name = info.filename
            if is_symlink_entry(info):
                raise ValidationError(f'Symbolic links are not allowed in the ZIP: {name}')
            if is_unsafe_path(name):
                raise ValidationError(f'Invalid path in ZIP: {name}')

            target = os.path.realpath(os.path.join(dest_root, *name.split('/')))
            if not target.startswith(dest_root + os.sep):
                raise ValidationError(f'ZIP entry escapes the extraction directory: {name}')

            if name.endswith('/'):
                os.makedirs(target, exist_ok=True)
                continue

            os.makedirs(os.path.dirname(target), exist_ok=True)
            with archive.open(info) as source, open(target, 'wb') as out:
                shutil.copyfileobj(source, out)


def remove_junk_entries(root):
    """Recursively delete .DS_Store files and __MACOSX directories"""
    with os.scandir(root) as it:
        entries = list(it)
    for entry in entries:
        if entry.name in JUNK_FILES and not entry.is_dir(follow_symlinks=False):
            os.remove(entry.path)
        elif entry.name in JUNK_DIRS and entry.is_dir(follow_symlinks=False):
            shutil.rmtree(entry.path)
        elif entry.is_dir(follow_symlinks=False):
            remove_junk_entries(entry.path)


def flatten_single_top_dir(root):
    """Hoist the contents of a lone top-level directory into root"""
    entries = [
        name for name in os.listdir(root)
        if name not in JUNK_FILES and name not in JUNK_DIRS
    ]
    if len(entries) != 1:
        return False
    inner_dir = os.path.join(root, entries[0])
    if not os.path.isdir(inner_dir) or os.path.islink(inner_dir):
        return False

    # Move aside first so a child named like the wrapper cannot clash
    holding = os.path.join(root, f'.flatten-{uuid.uuid4().hex}')
    os.rename(inner_dir, holding)
    for name in os.listdir(holding):
        os.rename(os.path.join(holding, name), os.path.join(root, name))
    os.rmdir(holding)
    return True


def normalize_extracted_pack(root):
    remove_junk_entries(root)
    if flatten_single_top_dir(root):
        logger.debug(f"Flattened single top-level directory in {root}")
    remove_junk_entries(root)


def assert_docroot_index(root):
    """PHP packs are served as a docroot and need an index page at the top"""
    if not any(os.path.isfile(os.path.join(root, name)) for name in DOCROOT_INDEX_FILES):
        raise ValidationError('index.html or index.php is required at the pack root')
