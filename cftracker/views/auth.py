from flask import Blueprint, jsonify, request
from flask_login import login_user, logout_user, login_required, current_user
from flask_wtf.csrf import generate_csrf

from cftracker.models import User

auth_bp = Blueprint('auth', __name__, url_prefix='/auth')


def _credentials():
    data = request.get_json(silent=True) or request.form
    return data.get('username', '').strip(), data.get('password', '')


@auth_bp.route('/login', methods=['POST'])
def login():
    username, password = _credentials()
    if not username or not password:
        return jsonify({'error': 'Username and password are required'}), 400
    user = User.query.filter_by(username=username).first()
    if user and user.check_password(password):
        login_user(user, remember=True)
        return jsonify({'success': True, 'user': user.to_dict()})
    return jsonify({'error': 'Invalid username or password'}), 401


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({'success': True})


@auth_bp.route('/me')
@login_required
def me():
    return jsonify(current_user.to_dict())


# JSON clients echo this back in the X-CSRFToken header
@auth_bp.route('/csrf-token')
def csrf_token():
    return jsonify({'csrf_token': generate_csrf()})
