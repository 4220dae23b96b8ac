from dataclasses import asdict

from flask import Blueprint, jsonify, request

from clinic_records.adapters.sqlite.core import get_store
from clinic_records.adapters.sqlite.payments_repo import PaymentRepository
from clinic_records.adapters.sqlite.visits_repo import VisitRepository
from clinic_records.api.auth import login_required
from clinic_records.common.errors import ValidationError
from clinic_records.common.utils import now_iso
from clinic_records.domain.payments import Payment
from clinic_records.domain.visits import PAYMENT_MODES, PROCEDURES, Visit

bp = Blueprint('visits', __name__, url_prefix='/visits')


def _number(data: dict, key: str, default=0.0) -> float:
    value = data.get(key, default)
    try:
        return float(value if value not in (None, '') else default)
    except (TypeError, ValueError):
        raise ValidationError(f'{key} must be a number', field=key)


def visit_from_json(data: dict, visit_id=None) -> Visit:
    return Visit(
        id=visit_id,
        patient_id=data.get('patient_id'),
        procedure_done=data.get('procedure_done'),
        date_of_visit=data.get('date_of_visit') or now_iso(),
        mode_of_payment=data.get('mode_of_payment'),
        total_cost=_number(data, 'total_cost'),
        comments=data.get('comments') or '',
        first_name=data.get('first_name'),
        last_name=data.get('last_name'),
    )


def payment_from_json(data: dict, visit_id=None, payment_id=None) -> Payment:
    return Payment(
        id=payment_id,
        visit_id=visit_id if visit_id is not None else data.get('visit_id'),
        amount=_number(data, 'amount'),
        payment_date=data.get('payment_date') or now_iso(),
        payment_method=data.get('payment_method') or 'Cash',
        notes=data.get('notes') or '',
        first_name=data.get('first_name'),
        last_name=data.get('last_name'),
    )


@bp.route('/options', methods=['GET'])
def options():
    return jsonify({'procedures': list(PROCEDURES), 'modes_of_payment': list(PAYMENT_MODES)})


@bp.route('', methods=['GET'])
@login_required
def list_visits():
    return jsonify([asdict(v) for v in VisitRepository(get_store()).get_all()])


@bp.route('', methods=['POST'])
@login_required
def create_visit():
    """Create a visit; an ``initial_payment`` object with a positive amount is recorded with it atomically."""
    data = request.get_json(silent=True) or {}
    visit = visit_from_json(data)
    initial = data.get('initial_payment')
    repo = VisitRepository(get_store())

    if initial:
        payment = payment_from_json(initial)
        payment.payment_date = initial.get('payment_date') or visit.date_of_visit
        visit_id = repo.add_with_initial_payment(visit, payment)
    else:
        visit_id = repo.add(visit)
    return jsonify({'success': True, 'id': visit_id, 'visit': asdict(visit)}), 201


@bp.route('/<int:visit_id>', methods=['GET'])
@login_required
def get_visit(visit_id):
    return jsonify(asdict(VisitRepository(get_store()).get(visit_id)))


@bp.route('/<int:visit_id>', methods=['PUT'])
@login_required
def update_visit(visit_id):
    repo = VisitRepository(get_store())
    data = request.get_json(silent=True) or {}
    visit = visit_from_json(data, visit_id)
    if visit.patient_id is None:
        visit.patient_id = repo.get(visit_id).patient_id
    success = repo.update(visit)
    return jsonify({'success': success}), (200 if success else 404)


@bp.route('/<int:visit_id>', methods=['DELETE'])
@login_required
def delete_visit(visit_id):
    success = VisitRepository(get_store()).delete(visit_id)
    return jsonify({'success': success}), (200 if success else 404)


@bp.route('/<int:visit_id>/payments', methods=['GET'])
@login_required
def visit_payments(visit_id):
    return jsonify([asdict(p) for p in PaymentRepository(get_store()).get_by_visit(visit_id)])


@bp.route('/<int:visit_id>/payments', methods=['POST'])
@login_required
def add_payment(visit_id):
    payment = payment_from_json(request.get_json(silent=True) or {}, visit_id=visit_id)
    payment_id = PaymentRepository(get_store()).add(payment)
    return jsonify({'success': True, 'id': payment_id}), 201


@bp.route('/<int:visit_id>/payments', methods=['DELETE'])
@login_required
def delete_visit_payments(visit_id):
    removed = PaymentRepository(get_store()).delete_all_for_visit(visit_id)
    return jsonify({'success': True, 'deleted': removed})
