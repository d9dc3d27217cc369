"""
Challenge Instance Orchestration Service
Manages the lifecycle (start/resume, stop, delete, logs) of challenge instances
"""

import logging
import threading
import uuid

from sqlalchemy.exc import IntegrityError

from models import db
from models.challenge import Challenge
from models.instance import ChallengeInstance, compose_project_for
from models.settings import Settings
from services.compose import ComposeRunner
from services.descriptors import write_compose_files
from services.errors import ConflictError, NotFoundError, RuntimeEngineError
from services.ports import (
    DEFAULT_PROBE_HOST,
    DEFAULT_SUMMARY_CONCURRENCY,
    find_available_port,
    get_port_summary,
    is_port_available,
)
from services.workspace import Workspace

logger = logging.getLogger(__name__)


class InstanceManager:
    """Orchestrates challenge instances through the compose engine"""

    def __init__(self, storage=None, runtime=None, port_probe=None,
                 summary_concurrency=DEFAULT_SUMMARY_CONCURRENCY):
        self.storage = storage
        self.runtime = runtime or ComposeRunner()
        self.port_probe = port_probe or is_port_available
        self.summary_concurrency = summary_concurrency
        self._locks = {}
        self._locks_guard = threading.Lock()

    def init_app(self, app, storage):
        """Wire the manager to the app's storage and engine settings"""
        self.storage = storage
        self.runtime = ComposeRunner(app.config.get('COMPOSE_COMMAND', 'docker compose'))
        probe_host = app.config.get('PORT_PROBE_HOST', DEFAULT_PROBE_HOST)
        self.port_probe = lambda port: is_port_available(port, host=probe_host)
        self.summary_concurrency = app.config.get(
            'PORT_SUMMARY_CONCURRENCY', DEFAULT_SUMMARY_CONCURRENCY
        )

    def _challenge_lock(self, challenge_id):
        """Lock serializing lifecycle operations of one challenge"""
        with self._locks_guard:
            lock = self._locks.get(challenge_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[challenge_id] = lock
        return lock

    def _workspace(self, instance_id):
        return Workspace.for_instance(self.storage, instance_id)

    @staticmethod
    def _get_challenge(challenge_id):
        challenge = db.session.get(Challenge, challenge_id)
        if not challenge:
            raise NotFoundError('Challenge not found')
        return challenge

    @staticmethod
    def _get_instance(instance_id):
        instance = db.session.get(ChallengeInstance, instance_id)
        if not instance:
            raise NotFoundError('Instance not found')
        return instance

    # ------------------------------------------------------------------
    # Start / resume
    # ------------------------------------------------------------------

    def start_instance(self, challenge_id):
        """
        Start a challenge, resuming its existing instance when possible

        Args:
            challenge_id: Challenge ID

        Returns:
            ChallengeInstance: the running instance

        Raises:
            NotFoundError: unknown challenge
            ConflictError: the challenge's instance is already running
            PortsExhaustedError: no free host port
            RuntimeEngineError: compose up failed (a fresh instance is still
                recorded with status 'error')
        """
        self._get_challenge(challenge_id)

        with self._challenge_lock(challenge_id):
            # Another request may have committed while we waited for the lock
            db.session.expire_all()
            challenge = self._get_challenge(challenge_id)
            settings = Settings.get_config()

            existing = ChallengeInstance.for_challenge(challenge_id)
            if existing:
                if existing.is_running():
                    raise ConflictError('Instance is already running')

                workspace = self._workspace(existing.id)
                if workspace.exists():
                    return self._resume(challenge, existing, workspace, settings)

                logger.warning(
                    f"Workspace for instance {existing.id} is missing, "
                    f"discarding stale record and starting fresh"
                )
                self._purge_orphan(existing, workspace)

            return self._start_fresh(challenge, settings)

    def _resume(self, challenge, instance, workspace, settings):
        """Bring a stopped/errored instance back up from its existing workspace"""
        reserved = ChallengeInstance.reserved_ports(exclude_id=instance.id)
        host_port = instance.host_port

        if host_port in reserved or not self.port_probe(host_port):
            host_port = find_available_port(settings.port_ranges, reserved, self.port_probe)
            logger.info(
                f"Port {instance.host_port} of instance {instance.id} is taken, "
                f"reassigning to {host_port}"
            )

        self._render(challenge, workspace, host_port, settings)

        result = self.runtime.up(workspace.compose_file, instance.compose_project, workspace.workdir)
        if not result.ok:
            raise RuntimeEngineError(
                result.stderr or 'Failed to start instance',
                stderr=result.stderr,
            )

        instance.status = 'running'
        instance.host_port = host_port
        db.session.commit()

        logger.info(f"Resumed instance {instance.id} for challenge {challenge.id} on port {host_port}")
        return instance

    def _start_fresh(self, challenge, settings):
        """Allocate a port, materialize a new workspace and bring it up"""
        reserved = ChallengeInstance.reserved_ports()
        host_port = find_available_port(settings.port_ranges, reserved, self.port_probe)

        instance_id = str(uuid.uuid4())
        workspace = self._workspace(instance_id)
        try:
            workspace.materialize(challenge.files_dir)
            self._render(challenge, workspace, host_port, settings)
        except Exception:
            workspace.remove()
            raise

        compose_project = compose_project_for(instance_id)
        result = self.runtime.up(workspace.compose_file, compose_project, workspace.workdir)

        instance = ChallengeInstance(
            id=instance_id,
            challenge_id=challenge.id,
            status='running' if result.ok else 'error',
            host_port=host_port,
            container_port=challenge.container_port,
            compose_project=compose_project,
        )
        db.session.add(instance)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            logger.error(f"Duplicate instance for challenge {challenge.id}, rolling back {instance_id}")
            if result.ok:
                self.runtime.down(workspace.compose_file, compose_project, workspace.workdir)
            workspace.remove()
            raise ConflictError('Challenge already has an instance')

        if not result.ok:
            logger.error(f"Instance {instance_id} failed to start: {result.stderr.strip()[:500]}")
            raise RuntimeEngineError(
                result.stderr or 'Failed to start instance',
                stderr=result.stderr,
                instance=instance,
            )

        logger.info(f"Started instance {instance_id} for challenge {challenge.id} on port {host_port}")
        return instance

    def _render(self, challenge, workspace, host_port, settings):
        secrets = None
        if challenge.db_type == 'mysql':
            secrets = workspace.load_mysql_secrets(settings)

        write_compose_files(workspace.compose_dir, {
            'runtime': challenge.runtime,
            'runtime_version': challenge.runtime_version,
            'host_port': host_port,
            'db_type': challenge.db_type,
            'db_root_password': secrets['mysql_root_password'] if secrets else None,
            'db_database': secrets['mysql_database'] if secrets else None,
            'db_user': secrets['mysql_user'] if secrets else None,
            'db_password': secrets['mysql_password'] if secrets else None,
            'db_init_exists': workspace.has_db_seed(),
        })

    def _purge_orphan(self, instance, workspace):
        db.session.delete(instance)
        db.session.commit()
        self._remove_workspace(workspace)

    # ------------------------------------------------------------------
    # Stop / delete / logs
    # ------------------------------------------------------------------

    def _compose_down(self, instance):
        workspace = self._workspace(instance.id)
        result = self.runtime.down(workspace.compose_file, instance.compose_project, workspace.workdir)
        if not result.ok:
            raise RuntimeEngineError(result.stderr or 'Failed to stop instance', stderr=result.stderr)

    def _remove_workspace(self, workspace):
        try:
            workspace.remove()
        except OSError as e:
            logger.error(f"Failed to remove workspace {workspace.workdir}: {e}")

    def stop_instance(self, instance_id):
        """Stop a running (or failed) instance; status changes only if compose down succeeds"""
        instance = self._get_instance(instance_id)

        with self._challenge_lock(instance.challenge_id):
            db.session.expire_all()
            instance = self._get_instance(instance_id)
            if instance.status == 'stopped':
                raise ConflictError('Instance is already stopped')

            self._compose_down(instance)
            instance.status = 'stopped'
            db.session.commit()

        logger.info(f"Stopped instance {instance_id}")
        return instance

    def delete_instance(self, instance_id):
        """
        Delete an instance record and its workspace

        A running instance is stopped first; if that fails nothing is deleted.
        """
        instance = self._get_instance(instance_id)

        with self._challenge_lock(instance.challenge_id):
            db.session.expire_all()
            instance = self._get_instance(instance_id)
            self._teardown(instance)
            db.session.delete(instance)
            db.session.commit()
            self._remove_workspace(self._workspace(instance_id))

        logger.info(f"Deleted instance {instance_id}")

    def _teardown(self, instance):
        """Stop an instance ahead of deletion"""
        if instance.is_running():
            self._compose_down(instance)
            return

        if instance.status == 'error' and self._workspace(instance.id).exists():
            # Services that did come up during a failed start
            try:
                self._compose_down(instance)
            except RuntimeEngineError as e:
                logger.warning(f"Cleanup of failed instance {instance.id} reported: {e.message}")

    def get_logs(self, instance_id, tail):
        """Fetch the last ``tail`` log lines of an instance"""
        instance = self._get_instance(instance_id)
        workspace = self._workspace(instance.id)
        result = self.runtime.logs(workspace.compose_file, instance.compose_project, workspace.workdir, tail)
        if not result.ok:
            raise RuntimeEngineError(result.stderr or 'Failed to fetch logs', stderr=result.stderr)
        return result.stdout

    # ------------------------------------------------------------------
    # Challenge removal and reporting
    # ------------------------------------------------------------------

    def delete_challenge(self, challenge_id):
        """
        Delete a challenge with its instances and stored files

        Every running instance is stopped first; the first failure aborts
        the whole deletion with nothing removed.
        """
        self._get_challenge(challenge_id)

        with self._challenge_lock(challenge_id):
            db.session.expire_all()
            challenge = self._get_challenge(challenge_id)
            instances = challenge.instances.all()

            for instance in instances:
                self._teardown(instance)

            for instance in instances:
                db.session.delete(instance)
            storage_path = challenge.storage_path
            db.session.delete(challenge)
            db.session.commit()

            for instance in instances:
                self._remove_workspace(self._workspace(instance.id))
            try:
                self.storage.remove_tree(storage_path)
                self.storage.remove_exports(challenge_id)
            except OSError as e:
                logger.error(f"Failed to remove challenge storage {storage_path}: {e}")

        with self._locks_guard:
            self._locks.pop(challenge_id, None)

        logger.info(f"Deleted challenge {challenge_id} ({len(instances)} instance(s))")

    def port_summary(self):
        """Free/total host ports over the configured ranges"""
        settings = Settings.get_config()
        return get_port_summary(
            settings.port_ranges,
            ChallengeInstance.reserved_ports(),
            self.port_probe,
            self.summary_concurrency,
        )


# Global instance manager
instance_manager = InstanceManager()
