import secrets
from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import create_access_token, set_access_cookies, unset_jwt_cookies

auth_bp = Blueprint('auth', __name__, url_prefix='/auth')

@auth_bp.route('/login', methods=['POST'])
def login():
    """Examiner login: a shared password yields a JWT access cookie."""
    body = request.get_json(silent=True) or {}
    password = body.get('password') or request.form.get('password') or ''
    expected = current_app.config['EXAMINER_PASSWORD']
    if not secrets.compare_digest(password.encode('utf-8'), expected.encode('utf-8')):
        return jsonify({'error': 'invalid_credentials'}), 401

    access_token = create_access_token(identity="examiner")
    response = jsonify({'ok': True})
    set_access_cookies(response, access_token)
    return response

@auth_bp.route('/logout', methods=['POST'])
def logout():
    response = jsonify({'ok': True})
    unset_jwt_cookies(response)
    return response
