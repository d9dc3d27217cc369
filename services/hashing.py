"""
Content hashing for challenge file trees.

The hash covers every regular file as (relative POSIX path, NUL, content),
fed in path order, so the same tree always yields the same value no matter
how the directory was walked. There is no length prefix; the format is
kept because exported manifests carry this hash.
"""

import hashlib
import os

HASH_PREFIX = 'sha256:'
CHUNK_SIZE = 4096


def list_files(root):
    """Relative POSIX paths of all regular files below root (unordered)"""
    files = []
    for dirpath, dirnames, filenames in os.walk(root):
        for name in filenames:
            full_path = os.path.join(dirpath, name)
            if os.path.islink(full_path) or not os.path.isfile(full_path):
                continue
            rel_path = os.path.relpath(full_path, root)
            files.append(rel_path.replace(os.sep, '/'))
    return files


def hash_entries(entries):
    """
    Hash an iterable of (relative_path, content_bytes) pairs.

    Entries are sorted by path first, so traversal order does not matter.
    """
    sha256_hash = hashlib.sha256()
    for rel_path, content in sorted(entries, key=lambda entry: entry[0]):
        sha256_hash.update(rel_path.encode('utf-8'))
        sha256_hash.update(b'\0')
        sha256_hash.update(content)
    return f"{HASH_PREFIX}{sha256_hash.hexdigest()}"


def hash_directory(root):
    """Hash a directory tree; file contents are streamed in chunks"""
    sha256_hash = hashlib.sha256()
    for rel_path in sorted(list_files(root)):
        sha256_hash.update(rel_path.encode('utf-8'))
        sha256_hash.update(b'\0')
        with open(os.path.join(root, *rel_path.split('/')), 'rb') as f:
            for byte_block in iter(lambda: f.read(CHUNK_SIZE), b''):
                sha256_hash.update(byte_block)
    return f"{HASH_PREFIX}{sha256_hash.hexdigest()}"
