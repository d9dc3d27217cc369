"""
Challenge Routes
Registration, listing, deletion, import and export of challenge packs
"""

import os
import re

from flask import Blueprint, after_this_request, current_app, jsonify, request, send_file
from models import db
from models.challenge import Challenge
from models.settings import Settings
from services.challenge_registry import (
    export_challenge,
    import_challenge,
    parse_metadata,
    register_challenge,
    save_upload,
)
from services.errors import NotFoundError
from services.instance_manager import instance_manager
from services.storage import storage

challenges_bp = Blueprint('challenges', __name__)


def get_challenge_or_404(challenge_id):
    challenge = db.session.get(Challenge, challenge_id)
    if not challenge:
        raise NotFoundError('Challenge not found')
    return challenge


def export_filename(challenge):
    """Download name for an exported pack"""
    slug = re.sub(r'[^A-Za-z0-9._-]+', '-', challenge.name).strip('-') or challenge.id
    return f"{slug}.zip"


@challenges_bp.route('/challenges', methods=['GET'])
def list_challenges():
    """List all registered challenges"""
    challenges = Challenge.list_all()
    return jsonify({
        'success': True,
        'challenges': [challenge.to_dict() for challenge in challenges]
    }), 200


@challenges_bp.route('/challenges', methods=['POST'])
def create_challenge():
    """Register a challenge from a multipart upload (zip + metadata)"""
    metadata = parse_metadata(request.form.get('metadata'))
    zip_path, upload_hash = save_upload(request.files.get('zip'), storage.tmp_dir)
    current_app.logger.info(f"Received challenge upload {upload_hash}")

    challenge = register_challenge(storage, zip_path, metadata)
    return jsonify({
        'success': True,
        'challenge': challenge.to_dict()
    }), 201


@challenges_bp.route('/challenges/<challenge_id>', methods=['GET'])
def get_challenge(challenge_id):
    """Challenge details with its instances"""
    challenge = get_challenge_or_404(challenge_id)
    settings = Settings.get_config()
    return jsonify({
        'success': True,
        'challenge': challenge.to_dict(),
        'instances': [instance.to_dict(settings) for instance in challenge.instances.all()]
    }), 200


@challenges_bp.route('/challenges/<challenge_id>', methods=['DELETE'])
def delete_challenge(challenge_id):
    """Delete a challenge, stopping and removing its instances first"""
    instance_manager.delete_challenge(challenge_id)
    current_app.logger.info(f"Challenge {challenge_id} deleted")
    return jsonify({'success': True}), 200


@challenges_bp.route('/challenges/<challenge_id>/export', methods=['POST'])
def export_challenge_pack(challenge_id):
    """Download manifest.json + files/ as a ZIP"""
    challenge = get_challenge_or_404(challenge_id)
    archive_path = export_challenge(storage, challenge)

    @after_this_request
    def remove_archive(response):
        # send_file already holds the archive open
        try:
            os.remove(archive_path)
        except OSError as e:
            current_app.logger.warning(f"Could not remove export {archive_path}: {e}")
        return response

    return send_file(
        archive_path,
        as_attachment=True,
        download_name=export_filename(challenge),
        mimetype='application/zip'
    )


@challenges_bp.route('/import', methods=['POST'])
def import_challenge_pack():
    """Register a challenge from an exported pack (or a plain pack with metadata)"""
    metadata = parse_metadata(request.form.get('metadata'))
    zip_path, upload_hash = save_upload(request.files.get('zip'), storage.tmp_dir)
    current_app.logger.info(f"Received challenge import {upload_hash}")

    challenge = import_challenge(storage, zip_path, metadata)
    return jsonify({
        'success': True,
        'challenge': challenge.to_dict()
    }), 201
