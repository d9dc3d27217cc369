"""
Challenge registration, import and export.

Turns uploaded ZIPs into canonical challenge file trees under
``<storage>/challenges/<id>/files`` and records them in the store.
"""

import hashlib
import json
import logging
import os
import shutil
import uuid
import zipfile

from models import db
from models.challenge import Challenge
from services.errors import ValidationError
from services.hashing import hash_directory
from services.pack import assert_docroot_index, extract_zip_safe, normalize_extracted_pack
from services.validators import validate_challenge_metadata

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = 'manifest.json'
MANIFEST_SCHEMA_VERSION = 1


def save_upload(file, tmp_dir):
    """
    Save an uploaded ZIP into the tmp directory

    Args:
        file: FileStorage object from request.files

    Returns:
        tuple (path, sha256 hash of the upload)
    """
    if not file or not file.filename:
        raise ValidationError('A ZIP file is required')

    os.makedirs(tmp_dir, exist_ok=True)
    filepath = os.path.join(tmp_dir, f"{uuid.uuid4()}.zip")
    file.save(filepath)

    sha256_hash = hashlib.sha256()
    with open(filepath, 'rb') as f:
        for byte_block in iter(lambda: f.read(4096), b''):
            sha256_hash.update(byte_block)
    return filepath, f"sha256:{sha256_hash.hexdigest()}"


def parse_metadata(raw):
    """Metadata form field (JSON text) as a dict, or None when absent"""
    if raw is None or raw == '':
        return None
    if isinstance(raw, dict):
        return raw
    try:
        data = json.loads(raw)
    except ValueError:
        raise ValidationError('metadata is not valid JSON')
    if not isinstance(data, dict):
        raise ValidationError('metadata must be a JSON object')
    return data


def _discard(path):
    try:
        if os.path.isdir(path):
            shutil.rmtree(path)
        elif os.path.exists(path):
            os.remove(path)
    except OSError as e:
        logger.warning(f"Could not remove {path}: {e}")


def _create_challenge(storage, fields, source_dir, files_hash=None):
    """Copy a sanitized tree into storage and insert the challenge row"""
    challenge_id = str(uuid.uuid4())
    challenge_dir = storage.resolve_challenge_dir(challenge_id)
    files_dir = os.path.join(challenge_dir, 'files')

    try:
        shutil.copytree(source_dir, files_dir)
        challenge = Challenge(
            id=challenge_id,
            name=fields['name'],
            runtime=fields['runtime'],
            runtime_version=fields['runtime_version'],
            db_type=fields['db_type'],
            files_hash=files_hash or hash_directory(files_dir),
            storage_path=challenge_dir,
        )
        db.session.add(challenge)
        db.session.commit()
    except Exception:
        db.session.rollback()
        _discard(challenge_dir)
        raise

    logger.info(f"Registered challenge {challenge_id} ({fields['name']}, {fields['runtime']}/{fields['db_type']})")
    return challenge


def register_challenge(storage, zip_path, metadata):
    """
    Register a challenge from an uploaded pack ZIP

    Args:
        storage: StorageService
        zip_path: path of the saved upload (removed afterwards)
        metadata: dict with name, runtime, runtime_version, db_type

    Returns:
        Challenge
    """
    work_dir = os.path.join(storage.tmp_dir, str(uuid.uuid4()))
    try:
        fields = validate_challenge_metadata(metadata)
        extract_zip_safe(zip_path, work_dir)
        normalize_extracted_pack(work_dir)
        if fields['runtime'] == 'php':
            assert_docroot_index(work_dir)
        return _create_challenge(storage, fields, work_dir)
    finally:
        _discard(work_dir)
        _discard(zip_path)


def _read_manifest(root):
    manifest_path = os.path.join(root, MANIFEST_FILENAME)
    if not os.path.isfile(manifest_path):
        return None
    with open(manifest_path, 'r', encoding='utf-8') as f:
        try:
            manifest = json.load(f)
        except ValueError:
            raise ValidationError('manifest.json is not valid JSON')
    if not isinstance(manifest, dict) \
            or not isinstance(manifest.get('challenge'), dict) \
            or not isinstance(manifest.get('files'), dict):
        raise ValidationError('manifest.json is invalid')
    if manifest.get('schema_version') != MANIFEST_SCHEMA_VERSION:
        raise ValidationError(f"Unsupported manifest schema_version: {manifest.get('schema_version')}")
    return manifest


def import_challenge(storage, zip_path, metadata=None):
    """
    Register a challenge from an exported pack

    An embedded manifest.json takes precedence over form metadata. Packs
    without a manifest are treated like a plain upload.
    """
    work_dir = os.path.join(storage.tmp_dir, str(uuid.uuid4()))
    try:
        extract_zip_safe(zip_path, work_dir)
        manifest = _read_manifest(work_dir)

        source = dict(metadata or {})
        if manifest:
            source.update({
                key: value for key, value in manifest['challenge'].items()
                if value is not None
            })
        fields = validate_challenge_metadata(source)

        files_dir = os.path.join(work_dir, 'files')
        if not os.path.isdir(files_dir):
            files_dir = work_dir
            if manifest:
                os.remove(os.path.join(work_dir, MANIFEST_FILENAME))

        normalize_extracted_pack(files_dir)
        if fields['runtime'] == 'php':
            assert_docroot_index(files_dir)

        files_hash = manifest['files'].get('hash') if manifest else None
        return _create_challenge(storage, fields, files_dir, files_hash=files_hash)
    finally:
        _discard(work_dir)
        _discard(zip_path)


def export_challenge(storage, challenge):
    """
    Write ``manifest.json`` + ``files/`` of a challenge into a ZIP

    Returns:
        path of the archive in the exports directory
    """
    os.makedirs(storage.exports_dir, exist_ok=True)
    archive_path = storage.export_path(challenge.id)
    files_dir = challenge.files_dir

    with zipfile.ZipFile(archive_path, 'w', compression=zipfile.ZIP_DEFLATED, compresslevel=9) as archive:
        archive.writestr(MANIFEST_FILENAME, json.dumps(challenge.to_manifest(), indent=2))
        for dirpath, dirnames, filenames in os.walk(files_dir):
            dirnames.sort()
            for name in sorted(filenames):
                full_path = os.path.join(dirpath, name)
                rel_path = os.path.relpath(full_path, files_dir).replace(os.sep, '/')
                archive.write(full_path, f"files/{rel_path}")

    logger.info(f"Exported challenge {challenge.id} to {archive_path}")
    return archive_path
