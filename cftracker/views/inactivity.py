from flask import Blueprint, jsonify
from flask_login import login_required

from cftracker.services.inactivity_service import InactivityService

inactivity_bp = Blueprint('inactivity', __name__, url_prefix='/api/inactivity')


@inactivity_bp.route('/check', methods=['POST'])
@login_required
def check():
    result = InactivityService().check_and_notify()
    return jsonify({'success': True, 'message': 'Inactivity check completed', **result})


@inactivity_bp.route('/stats')
@login_required
def stats():
    return jsonify(InactivityService().get_stats())
