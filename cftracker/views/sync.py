"""Sync blueprint: batch run, schedule control and test-mode diagnostics."""
import logging

from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required

from cftracker.services.mail_service import mail_configured
from cftracker.services.sync_service import SyncTarget, get_sync_service
from cftracker.tasks.scheduler import InvalidScheduleError, get_scheduler

logger = logging.getLogger(__name__)

sync_bp = Blueprint('sync', __name__, url_prefix='/api/sync')


@sync_bp.route('/run', methods=['POST'])
@login_required
def run_now():
    """Run the batch synchronously, or report that one is already running."""
    result = get_scheduler(current_app).run_once()
    if result.get('skipped'):
        return jsonify(result), 409
    if not result['success']:
        return jsonify(result), 500
    return jsonify(result)


@sync_bp.route('/status')
@login_required
def status():
    return jsonify(get_scheduler(current_app).status())


@sync_bp.route('/schedule', methods=['POST'])
@login_required
def update_schedule():
    data = request.get_json(silent=True) or request.form
    schedule = (data.get('schedule') or '').strip()
    if not schedule:
        return jsonify({'success': False, 'message': 'Schedule is required'}), 400

    try:
        schedule = get_scheduler(current_app).update_schedule(schedule)
    except InvalidScheduleError as e:
        logger.warning(f"Rejected schedule update: {e}")
        return jsonify({'success': False, 'message': str(e)}), 400
    return jsonify({'success': True, 'message': 'Cron schedule updated', 'schedule': schedule})


@sync_bp.route('/test/<handle>')
@login_required
def test_handle(handle):
    """Fetch a handle's data in test mode; nothing is saved."""
    handle = handle.strip()
    if not handle:
        return jsonify({'error': 'Codeforces handle is required'}), 400

    logger.info(f"Testing Codeforces data fetch for handle: {handle}")
    outcome = get_sync_service().sync(SyncTarget.ephemeral(handle), test_mode=True)
    if not outcome.success:
        return jsonify({
            'success': False,
            'error': outcome.error,
            'details': 'Failed to fetch Codeforces data. See server logs for details.',
        }), 502
    payload = outcome.to_dict()
    payload['message'] = 'Successfully fetched data from Codeforces'
    return jsonify(payload)


@sync_bp.route('/config')
@login_required
def config_check():
    """Report which integrations are configured, without revealing values."""
    config = current_app.config
    return jsonify({
        'api_key_configured': bool(config.get('CODEFORCES_API_KEY')),
        'api_secret_configured': bool(config.get('CODEFORCES_API_SECRET')),
        'mail_configured': mail_configured(),
    })
