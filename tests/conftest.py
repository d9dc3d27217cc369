"""Test configuration and shared fixtures.

Every app fixture runs on its own temporary DATA_DIR with a file-backed
SQLite store. The container engine and the port probe are replaced with
in-memory fakes on the global instance manager.
"""
import io
import json
import os
import uuid
import zipfile

import pytest

from app import create_app
from models import db
from models.challenge import Challenge
from services.compose import ComposeResult
from services.hashing import hash_directory
from services.instance_manager import instance_manager
from services.storage import storage


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeRuntime:
    """Records compose calls; results can be set per action."""

    def __init__(self):
        self.calls = []
        self.results = {}

    def set_result(self, action, code=0, stdout='', stderr=''):
        self.results[action] = ComposeResult(code, stdout, stderr)

    def fail(self, action, stderr='engine failure'):
        self.set_result(action, code=1, stderr=stderr)

    def _call(self, action, compose_file, project, cwd, **extra):
        self.calls.append({'action': action, 'compose_file': compose_file,
                           'project': project, 'cwd': cwd, **extra})
        return self.results.get(action, ComposeResult(0, '', ''))

    def up(self, compose_file, project, cwd):
        return self._call('up', compose_file, project, cwd)

    def down(self, compose_file, project, cwd):
        return self._call('down', compose_file, project, cwd)

    def logs(self, compose_file, project, cwd, tail):
        return self._call('logs', compose_file, project, cwd, tail=tail)

    def actions(self):
        return [call['action'] for call in self.calls]


class FakeProbe:
    """Port probe reporting every port free except the ones in ``busy``."""

    def __init__(self, busy=()):
        self.busy = set(busy)
        self.probed = []

    def __call__(self, port):
        self.probed.append(port)
        return port not in self.busy


# ---------------------------------------------------------------------------
# Shared Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_runtime():
    return FakeRuntime()


@pytest.fixture
def fake_probe():
    return FakeProbe()


@pytest.fixture
def app(tmp_path, fake_runtime, fake_probe):
    """Application on a temporary DATA_DIR, with an app context pushed."""
    data_dir = tmp_path / 'data'
    app = create_app('testing', test_config={
        'DATA_DIR': str(data_dir),
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'db.sqlite'}",
        'WEB_ORIGIN': 'http://localhost:3000',
    })
    instance_manager.runtime = fake_runtime
    instance_manager.port_probe = fake_probe
    instance_manager.summary_concurrency = 4

    with app.app_context():
        yield app
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


def write_tree(root, files):
    """Write {relative posix path: str|bytes} below root."""
    for rel_path, content in files.items():
        full_path = os.path.join(root, *rel_path.split('/'))
        os.makedirs(os.path.dirname(full_path), exist_ok=True)
        mode = 'wb' if isinstance(content, bytes) else 'w'
        with open(full_path, mode) as f:
            f.write(content)


@pytest.fixture
def make_challenge(app):
    """Insert a challenge with its file tree already in storage."""

    def factory(name='demo', runtime='php', runtime_version='8.2', db_type='none', files=None):
        challenge_id = str(uuid.uuid4())
        challenge_dir = storage.resolve_challenge_dir(challenge_id)
        files_dir = os.path.join(challenge_dir, 'files')
        write_tree(files_dir, files or {'index.php': '<?php echo "hi";'})

        challenge = Challenge(
            id=challenge_id,
            name=name,
            runtime=runtime,
            runtime_version=runtime_version,
            db_type=db_type,
            files_hash=hash_directory(files_dir),
            storage_path=challenge_dir,
        )
        db.session.add(challenge)
        db.session.commit()
        return challenge

    return factory


def build_zip(files):
    """ZIP archive bytes from {name: str|bytes}; names ending in / are directories."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w') as archive:
        for name, content in files.items():
            if name.endswith('/'):
                archive.writestr(zipfile.ZipInfo(name), b'')
            else:
                archive.writestr(name, content)
    return buffer.getvalue()


@pytest.fixture
def zip_file(tmp_path):
    """Write a ZIP built from a file mapping into tmp_path and return its path."""

    def factory(files, name='pack.zip'):
        path = tmp_path / name
        path.write_bytes(build_zip(files))
        return str(path)

    return factory


def metadata_json(**overrides):
    metadata = {'name': 'demo', 'runtime': 'php', 'runtime_version': '8.2', 'db_type': 'none'}
    metadata.update(overrides)
    return json.dumps(metadata)
