"""Tests for compose descriptor rendering."""

import os

import pytest

from services.descriptors import (
    COMPOSE_FILENAME,
    DB_SEED_MOUNT,
    DOCKERFILE_FILENAME,
    render,
    write_compose_files,
)
from services.errors import TemplateRenderError, ValidationError


def mysql_params(**overrides):
    params = {
        'runtime': 'php',
        'runtime_version': '8.2',
        'host_port': 43005,
        'db_type': 'mysql',
        'db_root_password': 'rootpw',
        'db_database': 'ctf',
        'db_user': 'root',
        'db_password': 'ignored',
        'db_init_exists': False,
    }
    params.update(overrides)
    return params


def render_into(tmp_path, params):
    write_compose_files(str(tmp_path), params)
    with open(tmp_path / COMPOSE_FILENAME) as f:
        compose = f.read()
    with open(tmp_path / DOCKERFILE_FILENAME) as f:
        dockerfile = f.read()
    return compose, dockerfile


# ============================================================================
# render
# ============================================================================


class TestRender:
    @pytest.mark.light
    def test_substitutes_tokens(self):
        assert render('port {{HOST_PORT}}', {'HOST_PORT': 1}, ('HOST_PORT',)) == 'port 1'

    @pytest.mark.light
    def test_missing_required_key(self):
        with pytest.raises(TemplateRenderError):
            render('port {{HOST_PORT}}', {}, ('HOST_PORT',))

    @pytest.mark.light
    def test_leftover_token(self):
        with pytest.raises(TemplateRenderError) as exc:
            render('{{HOST_PORT}} {{UNKNOWN}}', {'HOST_PORT': 1}, ('HOST_PORT',))
        assert 'UNKNOWN' in exc.value.message


# ============================================================================
# write_compose_files
# ============================================================================


class TestWriteComposeFiles:
    @pytest.mark.medium
    def test_php_without_database(self, tmp_path):
        compose, dockerfile = render_into(tmp_path, {
            'runtime': 'php', 'runtime_version': '8.2', 'host_port': 43000, 'db_type': 'none',
        })

        assert '"43000:80"' in compose
        assert 'db:' not in compose
        assert 'depends_on' not in compose
        assert 'MYSQL_' not in compose
        assert dockerfile.startswith('FROM php:8.2-apache')

    @pytest.mark.medium
    def test_flask_maps_container_port_8000(self, tmp_path):
        compose, dockerfile = render_into(tmp_path, {
            'runtime': 'flask', 'runtime_version': '3.12', 'host_port': 43001, 'db_type': 'none',
        })

        assert '"43001:8000"' in compose
        assert 'FROM python:3.12-slim' in dockerfile

    @pytest.mark.medium
    def test_mysql_with_root_user(self, tmp_path):
        compose, _ = render_into(tmp_path, mysql_params())

        assert '  db:' in compose
        assert 'image: mysql:8' in compose
        assert 'MYSQL_ROOT_PASSWORD: rootpw' in compose
        assert 'MYSQL_PASSWORD: rootpw' in compose
        assert 'ignored' not in compose
        assert '- db' in compose
        assert '../mysql-data:/var/lib/mysql' in compose
        assert DB_SEED_MOUNT not in compose

    @pytest.mark.medium
    def test_mysql_with_app_user(self, tmp_path):
        compose, _ = render_into(tmp_path, mysql_params(db_user='app', db_password='apppw'))

        assert 'MYSQL_USER: app' in compose
        assert 'MYSQL_PASSWORD: apppw' in compose
        assert 'MYSQL_ROOT_PASSWORD: rootpw' in compose

    @pytest.mark.medium
    def test_seed_mount_only_with_init_sql(self, tmp_path):
        compose, _ = render_into(tmp_path, mysql_params(db_init_exists=True))
        assert DB_SEED_MOUNT in compose

    @pytest.mark.medium
    def test_no_tokens_left_in_output(self, tmp_path):
        compose, dockerfile = render_into(tmp_path, mysql_params(db_init_exists=True))
        assert '{{' not in compose
        assert '{{' not in dockerfile

    @pytest.mark.light
    def test_unknown_runtime(self, tmp_path):
        with pytest.raises(ValidationError):
            write_compose_files(str(tmp_path), {
                'runtime': 'node', 'runtime_version': '20', 'host_port': 1, 'db_type': 'none',
            })
        assert not os.path.exists(tmp_path / COMPOSE_FILENAME)

    @pytest.mark.light
    def test_unknown_db_type(self, tmp_path):
        with pytest.raises(ValidationError):
            write_compose_files(str(tmp_path), {
                'runtime': 'php', 'runtime_version': '8.2', 'host_port': 1, 'db_type': 'postgres',
            })
