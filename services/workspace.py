"""
Per-instance workspace materialization.

Layout of a workdir::

    <workdirs>/<instance id>/
        pack/                      deep copy of the challenge files
        compose/docker-compose.yml rendered descriptors
        compose/Dockerfile
        secrets.json               MySQL credentials baked into this instance
        mysql-data/                database volume (created by the engine)
"""

import json
import logging
import os
import shutil

from services.descriptors import COMPOSE_FILENAME
from services.errors import LauncherError, NotFoundError

logger = logging.getLogger(__name__)

SECRETS_FILENAME = 'secrets.json'
SECRET_KEYS = ('mysql_root_password', 'mysql_database', 'mysql_user', 'mysql_password')


def mysql_settings(settings):
    """MySQL credentials as derived from global Settings"""
    return {
        'mysql_root_password': settings.mysql_root_password,
        'mysql_database': settings.mysql_database,
        'mysql_user': settings.mysql_user,
        'mysql_password': (
            settings.mysql_root_password if settings.mysql_user == 'root'
            else settings.mysql_password
        ),
    }


def read_secrets_file(workdir):
    """Stored secrets for a workdir, or None when no file was written yet"""
    secrets_path = os.path.join(workdir, SECRETS_FILENAME)
    if not os.path.isfile(secrets_path):
        return None
    with open(secrets_path, 'r', encoding='utf-8') as f:
        try:
            data = json.load(f)
        except ValueError as e:
            raise LauncherError(f'Corrupt secrets file {secrets_path}: {e}')
    if not isinstance(data, dict):
        raise LauncherError(f'Corrupt secrets file {secrets_path}: expected an object')
    return data


def write_secrets_file(workdir, secrets):
    os.makedirs(workdir, exist_ok=True)
    with open(os.path.join(workdir, SECRETS_FILENAME), 'w', encoding='utf-8') as f:
        json.dump(secrets, f, indent=2)


def load_mysql_secrets(workdir, settings):
    """
    Resolve the credentials an instance must use.

    Values already stored for the workdir win over current Settings, since
    they are baked into an existing database volume. Missing keys fall back
    to Settings. A ``root`` app user always gets the root password. The
    merged result is written back, so calling this again is a no-op.
    """
    base = mysql_settings(settings)
    from_file = read_secrets_file(workdir) or {}

    secrets = {}
    for key in SECRET_KEYS:
        value = from_file.get(key)
        secrets[key] = value if value else base[key]

    if secrets['mysql_user'] == 'root':
        secrets['mysql_password'] = secrets['mysql_root_password']

    write_secrets_file(workdir, secrets)
    return secrets


class Workspace:
    """Paths and filesystem operations of one instance workdir"""

    def __init__(self, workdir):
        self.workdir = workdir

    @classmethod
    def for_instance(cls, storage, instance_id):
        return cls(storage.resolve_workdir(instance_id))

    @property
    def pack_dir(self):
        return os.path.join(self.workdir, 'pack')

    @property
    def compose_dir(self):
        return os.path.join(self.workdir, 'compose')

    @property
    def compose_file(self):
        return os.path.join(self.compose_dir, COMPOSE_FILENAME)

    @property
    def db_seed_file(self):
        return os.path.join(self.pack_dir, 'db', 'init.sql')

    def exists(self):
        """A workspace is usable only with both the pack copy and the compose file"""
        return os.path.isdir(self.pack_dir) and os.path.isfile(self.compose_file)

    def has_db_seed(self):
        return os.path.isfile(self.db_seed_file)

    def materialize(self, source_dir):
        """Copy the challenge files into pack/ (full copy, never a link)"""
        if not os.path.isdir(source_dir):
            raise NotFoundError(f'Challenge files not found: {source_dir}')

        os.makedirs(self.workdir, exist_ok=True)
        if os.path.exists(self.pack_dir):
            shutil.rmtree(self.pack_dir)
        shutil.copytree(source_dir, self.pack_dir)
        logger.info(f"Materialized workspace {self.workdir}")

    def load_mysql_secrets(self, settings):
        return load_mysql_secrets(self.workdir, settings)

    def remove(self):
        if not os.path.exists(self.workdir):
            return False
        shutil.rmtree(self.workdir)
        logger.info(f"Removed workspace {self.workdir}")
        return True
