import functools

from flask import Blueprint, current_app, g, jsonify, request, session

from clinic_records.adapters.sqlite.auth_repo import UserRepository
from clinic_records.adapters.sqlite.core import get_store
from clinic_records.services.auth_service import AuthService


bp = Blueprint("auth", __name__, url_prefix="/auth")


def _service() -> AuthService:
    return AuthService(UserRepository(get_store()), current_app.config.get('BCRYPT_ROUNDS', 12))


def _credentials():
    data = request.get_json(silent=True) or request.form
    return data.get("username", ""), data.get("password", "")


@bp.route("/login", methods=("POST",))
def login():
    username, password = _credentials()
    user = _service().login(username, password)
    if user is None:
        return jsonify({'success': False, 'error': 'Invalid username or password'}), 401

    session.clear()
    session["user_id"] = user.id
    return jsonify({'success': True, 'user': {'id': user.id, 'username': user.username}})


@bp.route("/logout", methods=("POST",))
def logout():
    session.clear()
    return jsonify({'success': True})


@bp.route("/register", methods=("POST",))
def register():
    username, password = _credentials()
    user_id = _service().register_user(username, password)
    if user_id < 0:
        return jsonify({'success': False, 'error': f'Username {username} already exists'}), 409
    return jsonify({'success': True, 'id': user_id}), 201


def login_required(view):
    @functools.wraps(view)
    def wrapped_view(**kwargs):
        if g.user is None:
            return jsonify({'success': False, 'error': 'Login required'}), 401

        return view(**kwargs)

    return wrapped_view
