"""Tests for workspace materialization and per-instance MySQL secrets."""

import json
import os
from types import SimpleNamespace

import pytest

from services.errors import LauncherError, NotFoundError
from services.workspace import SECRETS_FILENAME, Workspace, load_mysql_secrets, mysql_settings
from tests.conftest import write_tree


def make_settings(**overrides):
    values = {
        'mysql_root_password': 'rootpw',
        'mysql_database': 'ctf',
        'mysql_user': 'app',
        'mysql_password': 'apppw',
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def read_secrets(workdir):
    with open(os.path.join(workdir, SECRETS_FILENAME)) as f:
        return json.load(f)


# ============================================================================
# Secrets precedence
# ============================================================================


class TestMysqlSecrets:
    @pytest.mark.light
    def test_root_user_mirrors_root_password_from_settings(self):
        secrets = mysql_settings(make_settings(mysql_user='root', mysql_password='ignored'))
        assert secrets['mysql_password'] == 'rootpw'

    @pytest.mark.medium
    def test_first_load_writes_settings_values(self, tmp_path):
        secrets = load_mysql_secrets(str(tmp_path), make_settings())
        assert secrets == {
            'mysql_root_password': 'rootpw',
            'mysql_database': 'ctf',
            'mysql_user': 'app',
            'mysql_password': 'apppw',
        }
        assert read_secrets(str(tmp_path)) == secrets

    @pytest.mark.medium
    def test_stored_values_win_over_changed_settings(self, tmp_path):
        load_mysql_secrets(str(tmp_path), make_settings())
        secrets = load_mysql_secrets(
            str(tmp_path), make_settings(mysql_root_password='new', mysql_password='newapp')
        )
        assert secrets['mysql_root_password'] == 'rootpw'
        assert secrets['mysql_password'] == 'apppw'

    @pytest.mark.medium
    def test_missing_keys_fall_back_to_settings(self, tmp_path):
        with open(tmp_path / SECRETS_FILENAME, 'w') as f:
            json.dump({'mysql_root_password': 'stored', 'mysql_database': ''}, f)

        secrets = load_mysql_secrets(str(tmp_path), make_settings())
        assert secrets['mysql_root_password'] == 'stored'
        assert secrets['mysql_database'] == 'ctf'
        assert secrets['mysql_user'] == 'app'
        assert read_secrets(str(tmp_path)) == secrets

    @pytest.mark.medium
    def test_stored_root_user_always_mirrors_root_password(self, tmp_path):
        with open(tmp_path / SECRETS_FILENAME, 'w') as f:
            json.dump({
                'mysql_root_password': 'stored',
                'mysql_database': 'ctf',
                'mysql_user': 'root',
                'mysql_password': 'stale',
            }, f)

        secrets = load_mysql_secrets(str(tmp_path), make_settings())
        assert secrets['mysql_password'] == 'stored'

    @pytest.mark.medium
    def test_loading_twice_is_stable(self, tmp_path):
        first = load_mysql_secrets(str(tmp_path), make_settings(mysql_user='root'))
        second = load_mysql_secrets(str(tmp_path), make_settings(mysql_user='root'))
        assert first == second
        assert second['mysql_password'] == second['mysql_root_password']

    @pytest.mark.medium
    def test_corrupt_secrets_file_is_reported(self, tmp_path):
        (tmp_path / SECRETS_FILENAME).write_text('{not json')
        with pytest.raises(LauncherError):
            load_mysql_secrets(str(tmp_path), make_settings())


# ============================================================================
# Workspace
# ============================================================================


class TestWorkspace:
    @pytest.mark.medium
    def test_materialize_copies_files(self, tmp_path):
        source = tmp_path / 'source'
        write_tree(str(source), {'index.php': 'x', 'db/init.sql': 'CREATE TABLE t (id int);'})

        workspace = Workspace(str(tmp_path / 'work'))
        workspace.materialize(str(source))

        assert os.path.isfile(os.path.join(workspace.pack_dir, 'index.php'))
        assert workspace.has_db_seed()
        assert not os.path.islink(workspace.pack_dir)

    @pytest.mark.medium
    def test_exists_requires_pack_and_compose_file(self, tmp_path):
        source = tmp_path / 'source'
        write_tree(str(source), {'index.php': 'x'})
        workspace = Workspace(str(tmp_path / 'work'))
        workspace.materialize(str(source))

        assert workspace.exists() is False
        write_tree(workspace.compose_dir, {'docker-compose.yml': 'services: {}'})
        assert workspace.exists() is True

    @pytest.mark.medium
    def test_materialize_missing_source(self, tmp_path):
        workspace = Workspace(str(tmp_path / 'work'))
        with pytest.raises(NotFoundError):
            workspace.materialize(str(tmp_path / 'missing'))

    @pytest.mark.medium
    def test_remove(self, tmp_path):
        workspace = Workspace(str(tmp_path / 'work'))
        assert workspace.remove() is False
        write_tree(workspace.pack_dir, {'a.txt': 'a'})
        assert workspace.remove() is True
        assert not os.path.exists(workspace.workdir)
