from dataclasses import asdict

from flask import Blueprint, current_app, jsonify, request

from clinic_records.adapters.sqlite.core import get_store
from clinic_records.adapters.sqlite.patients_repo import PatientRepository
from clinic_records.adapters.sqlite.payments_repo import PaymentRepository
from clinic_records.adapters.sqlite.visits_repo import VisitRepository
from clinic_records.api.auth import login_required
from clinic_records.common.errors import ValidationError
from clinic_records.common.validators import validate_mobile_number
from clinic_records.domain.patients import Patient

bp = Blueprint('patients', __name__, url_prefix='/patients')

_OPTIONAL_FIELDS = ('occupation', 'company', 'hmo', 'hmo_number', 'valid_id', 'id_number')


def patient_from_json(data: dict, patient_id=None) -> Patient:
    phone = (data.get('contact_number') or '').strip()
    if phone and not validate_mobile_number(phone):
        raise ValidationError('contact_number must be 11 digits and start with 09', field='contact_number')

    return Patient(
        id=patient_id,
        first_name=(data.get('first_name') or '').strip(),
        last_name=(data.get('last_name') or '').strip(),
        gender=data.get('gender'),
        birthday=data.get('birthday'),
        contact_number=phone,
        **{name: (data.get(name) or '').strip() for name in _OPTIONAL_FIELDS},
    )


@bp.route('', methods=['GET'])
@login_required
def list_patients():
    """All patients, a search (``q``), or one page of either (``page``, ``page_size``)."""
    repo = PatientRepository(get_store())
    term = request.args.get('q', '')
    page = request.args.get('page', type=int)

    if page is None:
        patients = repo.search(term) if term.strip() else repo.get_all()
        return jsonify([asdict(p) for p in patients])

    page_size = request.args.get('page_size', current_app.config['PAGE_SIZE'], type=int)
    if page_size < 1:
        raise ValidationError('page_size must be positive', field='page_size')
    items = repo.get_page(page, page_size, term)
    return jsonify({
        'items': [asdict(p) for p in items],
        'total': repo.count(term),
        'page': page,
        'page_size': page_size,
    })


@bp.route('', methods=['POST'])
@login_required
def create_patient():
    patient = patient_from_json(request.get_json(silent=True) or {})
    patient_id = PatientRepository(get_store()).add(patient)
    return jsonify({'success': True, 'id': patient_id}), 201


@bp.route('/<int:patient_id>', methods=['GET'])
@login_required
def get_patient(patient_id):
    return jsonify(asdict(PatientRepository(get_store()).get(patient_id)))


@bp.route('/<int:patient_id>', methods=['PUT'])
@login_required
def update_patient(patient_id):
    patient = patient_from_json(request.get_json(silent=True) or {}, patient_id)
    success = PatientRepository(get_store()).update(patient)
    return jsonify({'success': success}), (200 if success else 404)


@bp.route('/<int:patient_id>', methods=['DELETE'])
@login_required
def delete_patient(patient_id):
    success = PatientRepository(get_store()).delete(patient_id)
    return jsonify({'success': success}), (200 if success else 404)


@bp.route('/<int:patient_id>/visits', methods=['GET'])
@login_required
def patient_visits(patient_id):
    visits = VisitRepository(get_store()).get_by_patient(patient_id)
    return jsonify([asdict(v) for v in visits])


@bp.route('/<int:patient_id>/payments', methods=['DELETE'])
@login_required
def delete_patient_payments(patient_id):
    removed = PaymentRepository(get_store()).delete_all_for_patient(patient_id)
    return jsonify({'success': True, 'deleted': removed})
