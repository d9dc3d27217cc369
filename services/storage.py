import os
import shutil
import uuid
import logging

logger = logging.getLogger(__name__)


class StorageService:
    """Service for laying out the launcher's on-disk storage"""

    SUBDIRS = ['challenges', 'workdirs', 'tmp', 'exports']

    def __init__(self, base_dir=None):
        self.base_dir = None
        if base_dir:
            self.configure(base_dir)

    def init_app(self, app):
        """Initialize storage with Flask app"""
        self.configure(app.config['DATA_DIR'])

    def configure(self, base_dir):
        """Point the service at base_dir and create the directory layout"""
        self.base_dir = os.path.abspath(base_dir)
        os.makedirs(self.base_dir, exist_ok=True)
        for subdir in self.SUBDIRS:
            os.makedirs(os.path.join(self.storage_dir, subdir), exist_ok=True)

    @property
    def storage_dir(self):
        return os.path.join(self.base_dir, 'storage')

    @property
    def challenges_dir(self):
        return os.path.join(self.storage_dir, 'challenges')

    @property
    def workdirs_dir(self):
        return os.path.join(self.storage_dir, 'workdirs')

    @property
    def tmp_dir(self):
        return os.path.join(self.storage_dir, 'tmp')

    @property
    def exports_dir(self):
        return os.path.join(self.storage_dir, 'exports')

    def resolve_challenge_dir(self, challenge_id):
        return os.path.join(self.challenges_dir, challenge_id)

    def resolve_workdir(self, instance_id):
        return os.path.join(self.workdirs_dir, instance_id)

    def remove_tree(self, path):
        """Delete a directory tree if present; returns True when something was removed"""
        if not os.path.exists(path):
            return False
        shutil.rmtree(path)
        return True

    def export_path(self, challenge_id):
        """Unique archive path so concurrent exports never share a file"""
        return os.path.join(self.exports_dir, f"{challenge_id}-{uuid.uuid4().hex}.zip")

    def remove_exports(self, challenge_id):
        """Delete leftover export archives of a challenge"""
        if not os.path.isdir(self.exports_dir):
            return 0
        removed = 0
        for name in os.listdir(self.exports_dir):
            if name.startswith(f"{challenge_id}-") and name.endswith('.zip'):
                os.remove(os.path.join(self.exports_dir, name))
                removed += 1
        return removed

    def list_workdirs(self):
        """Instance ids that currently have a workdir on disk"""
        if not os.path.isdir(self.workdirs_dir):
            return []
        return sorted(
            name for name in os.listdir(self.workdirs_dir)
            if os.path.isdir(os.path.join(self.workdirs_dir, name))
        )


# Global storage service instance
storage = StorageService()
