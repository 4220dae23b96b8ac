from flask import Blueprint, current_app, g, jsonify

from clinic_records.adapters.sqlite.core import STORE_EXTENSION_KEY

bp = Blueprint('dashboard', __name__)


@bp.route('/')
def index():
    return jsonify({
        'app': 'clinic-records',
        'user': g.user.username if g.user else None,
    })


@bp.route('/health')
def health():
    """Store health check; reports a closed store instead of failing."""
    store = current_app.extensions.get(STORE_EXTENSION_KEY)
    if store is None:
        return jsonify({'open': False}), 503
    status = store.health_check()
    return jsonify(status), (200 if status['open'] else 503)
