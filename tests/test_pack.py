"""Tests for safe ZIP extraction and pack normalization."""

import os
import stat
import zipfile

import pytest

from services.errors import ValidationError
from services.pack import (
    assert_docroot_index,
    extract_zip_safe,
    is_unsafe_path,
    normalize_extracted_pack,
)
from tests.conftest import write_tree


def listing(root):
    found = []
    for dirpath, dirnames, filenames in os.walk(root):
        for name in filenames:
            found.append(os.path.relpath(os.path.join(dirpath, name), root).replace(os.sep, '/'))
    return sorted(found)


# ============================================================================
# extract_zip_safe
# ============================================================================


class TestExtractZipSafe:
    @pytest.mark.light
    @pytest.mark.parametrize("name", [
        '/etc/passwd',
        '../escape.txt',
        'a/../../escape.txt',
        'a\\b.txt',
        'C:/windows.txt',
    ])
    def test_unsafe_names(self, name):
        assert is_unsafe_path(name) is True

    @pytest.mark.light
    @pytest.mark.parametrize("name", ['index.php', 'a/b/c.txt', 'dir/', 'a/./b.txt'])
    def test_safe_names(self, name):
        assert is_unsafe_path(name) is False

    @pytest.mark.medium
    def test_extracts_nested_files(self, tmp_path, zip_file):
        path = zip_file({'index.php': '<?php', 'assets/': '', 'assets/app.js': 'js'})
        dest = tmp_path / 'out'
        extract_zip_safe(path, str(dest))
        assert listing(str(dest)) == ['assets/app.js', 'index.php']

    @pytest.mark.medium
    def test_rejects_traversal(self, tmp_path, zip_file):
        path = zip_file({'../evil.txt': 'x'})
        with pytest.raises(ValidationError):
            extract_zip_safe(path, str(tmp_path / 'out'))
        assert not os.path.exists(tmp_path / 'evil.txt')

    @pytest.mark.medium
    def test_rejects_symlink_entries(self, tmp_path):
        path = tmp_path / 'link.zip'
        info = zipfile.ZipInfo('link')
        info.external_attr = (stat.S_IFLNK | 0o777) << 16
        with zipfile.ZipFile(path, 'w') as archive:
            archive.writestr(info, '/etc/passwd')

        with pytest.raises(ValidationError):
            extract_zip_safe(str(path), str(tmp_path / 'out'))

    @pytest.mark.medium
    def test_rejects_non_zip(self, tmp_path):
        path = tmp_path / 'not.zip'
        path.write_text('plain text')
        with pytest.raises(ValidationError):
            extract_zip_safe(str(path), str(tmp_path / 'out'))


# ============================================================================
# normalize_extracted_pack / assert_docroot_index
# ============================================================================


class TestNormalize:
    @pytest.mark.medium
    def test_flattens_single_top_level_directory(self, tmp_path):
        write_tree(str(tmp_path), {'site/index.php': 'x', 'site/inc/db.php': 'y'})
        normalize_extracted_pack(str(tmp_path))
        assert listing(str(tmp_path)) == ['inc/db.php', 'index.php']

    @pytest.mark.medium
    def test_junk_is_removed_before_flattening(self, tmp_path):
        write_tree(str(tmp_path), {
            'site/index.php': 'x',
            'site/.DS_Store': 'junk',
            '__MACOSX/site/._index.php': 'junk',
            '.DS_Store': 'junk',
        })
        normalize_extracted_pack(str(tmp_path))
        assert listing(str(tmp_path)) == ['index.php']

    @pytest.mark.medium
    def test_wrapper_with_child_of_same_name(self, tmp_path):
        write_tree(str(tmp_path), {'app/app/main.py': 'x', 'app/index.html': 'y'})
        normalize_extracted_pack(str(tmp_path))
        assert listing(str(tmp_path)) == ['app/main.py', 'index.html']

    @pytest.mark.medium
    def test_multiple_top_level_entries_are_kept(self, tmp_path):
        write_tree(str(tmp_path), {'index.php': 'x', 'lib/a.php': 'y'})
        normalize_extracted_pack(str(tmp_path))
        assert listing(str(tmp_path)) == ['index.php', 'lib/a.php']

    @pytest.mark.medium
    def test_docroot_index_required(self, tmp_path):
        write_tree(str(tmp_path), {'lib/a.php': 'y'})
        with pytest.raises(ValidationError):
            assert_docroot_index(str(tmp_path))

        write_tree(str(tmp_path), {'index.html': 'x'})
        assert_docroot_index(str(tmp_path))
