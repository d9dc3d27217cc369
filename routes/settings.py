"""
Settings Routes
Launcher settings and host port availability
"""

from flask import Blueprint, current_app, jsonify, request
from models.settings import Settings
from services.errors import ValidationError
from services.instance_manager import instance_manager

settings_bp = Blueprint('settings', __name__)


@settings_bp.route('/settings', methods=['GET'])
def get_settings():
    """Current launcher settings"""
    settings = Settings.get_config()
    return jsonify({
        'success': True,
        'settings': settings.to_dict()
    }), 200


@settings_bp.route('/settings', methods=['PUT'])
def update_settings():
    """Replace port ranges, public host and MySQL credentials"""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('A JSON object is required')

    settings = Settings.get_config()
    settings.apply_update(data)
    current_app.logger.info(f"Settings updated: ports={settings.port_ranges_json}")

    return jsonify({
        'success': True,
        'settings': settings.to_dict()
    }), 200


@settings_bp.route('/ports/summary', methods=['GET'])
def ports_summary():
    """Free/total host ports across the configured ranges"""
    summary = instance_manager.port_summary()
    return jsonify({
        'success': True,
        **summary
    }), 200
