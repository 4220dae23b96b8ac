from dataclasses import asdict

from flask import Blueprint, jsonify, request

from clinic_records.adapters.sqlite.core import get_store
from clinic_records.adapters.sqlite.payments_repo import PaymentRepository
from clinic_records.api.auth import login_required
from clinic_records.api.visits import payment_from_json
from clinic_records.common.errors import NotFoundError

bp = Blueprint('payments', __name__, url_prefix='/payments')


@bp.route('', methods=['GET'])
@login_required
def list_payments():
    return jsonify([asdict(p) for p in PaymentRepository(get_store()).get_all()])


@bp.route('/<int:payment_id>', methods=['PUT'])
@login_required
def update_payment(payment_id):
    repo = PaymentRepository(get_store())
    current = repo.get_by_id(payment_id)
    if current is None:
        raise NotFoundError('Payment', payment_id)

    data = request.get_json(silent=True) or {}
    payment = payment_from_json(data, visit_id=data.get('visit_id') or current.visit_id, payment_id=payment_id)
    success = repo.update(payment)
    return jsonify({'success': success}), (200 if success else 404)


@bp.route('/<int:payment_id>', methods=['DELETE'])
@login_required
def delete_payment(payment_id):
    visit_id = request.args.get('visit_id', type=int)
    success = PaymentRepository(get_store()).delete(payment_id, visit_id)
    return jsonify({'success': success}), (200 if success else 404)
