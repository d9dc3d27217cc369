"""
Instance Routes
Endpoints for starting, stopping, deleting and inspecting challenge instances
"""

from flask import Blueprint, current_app, jsonify, request
from models.settings import Settings
from services.errors import ValidationError
from services.instance_manager import instance_manager
from services.validators import parse_tail

instances_bp = Blueprint('instances', __name__, url_prefix='/instances')


@instances_bp.route('', methods=['POST'])
def start_instance():
    """Start (or resume) the instance of a challenge"""
    data = request.get_json(silent=True) or {}
    challenge_id = data.get('challenge_id')

    if not challenge_id:
        raise ValidationError('Missing challenge_id')

    instance = instance_manager.start_instance(str(challenge_id))
    settings = Settings.get_config()
    return jsonify({
        'success': True,
        'instance': instance.to_dict(settings)
    }), 200


@instances_bp.route('/<instance_id>/stop', methods=['POST'])
def stop_instance(instance_id):
    """Stop a running instance"""
    instance = instance_manager.stop_instance(instance_id)
    settings = Settings.get_config()
    return jsonify({
        'success': True,
        'instance': instance.to_dict(settings)
    }), 200


@instances_bp.route('/<instance_id>', methods=['DELETE'])
def delete_instance(instance_id):
    """Delete an instance and its workspace"""
    instance_manager.delete_instance(instance_id)
    current_app.logger.info(f"Instance {instance_id} deleted")
    return jsonify({'success': True}), 200


@instances_bp.route('/<instance_id>/logs', methods=['GET'])
def get_logs(instance_id):
    """Recent log output of an instance"""
    tail = parse_tail(
        request.args.get('tail'),
        default=current_app.config.get('DEFAULT_LOG_TAIL', 200),
        maximum=current_app.config.get('MAX_LOG_TAIL', 10000)
    )
    logs = instance_manager.get_logs(instance_id, tail)
    return jsonify({
        'success': True,
        'tail': tail,
        'logs': logs
    }), 200
