import pytest

from clinic_records.adapters.sqlite.payments_repo import PaymentRepository
from clinic_records.common.errors import NotFoundError, ValidationError
from clinic_records.domain.payments import Payment
from clinic_records.domain.visits import ONE_TIME_PAYMENT, Visit


def _visit(patient_id, **overrides):
    fields = dict(id=None, patient_id=patient_id, procedure_done='Consultation',
                  date_of_visit='2025-02-01T10:00:00.000Z', mode_of_payment=ONE_TIME_PAYMENT,
                  total_cost=1000)
    fields.update(overrides)
    return Visit(**fields)


def test_add_starts_with_full_balance_and_copies_names(visits, make_patient):
    patient = make_patient()
    visit = _visit(patient.id, total_paid=999, balance=1)
    visit_id = visits.add(visit)
    assert visit_id > 0

    stored = visits.get(visit_id)
    assert stored.total_paid == 0
    assert stored.balance == 1000
    assert (stored.first_name, stored.last_name) == ('Ana', 'Cruz')


def test_add_requires_existing_patient(visits, store):
    with pytest.raises(NotFoundError):
        visits.add(_visit(777))
    assert store.scalar("SELECT COUNT(*) FROM visits") == 0


@pytest.mark.parametrize('overrides, field', [
    ({'procedure_done': 'Haircut'}, 'procedure_done'),
    ({'mode_of_payment': 'Cash'}, 'mode_of_payment'),
    ({'date_of_visit': 'yesterday'}, 'date_of_visit'),
    ({'total_cost': -5}, 'total_cost'),
    ({'total_cost': float('nan')}, 'total_cost'),
    ({'total_cost': float('inf')}, 'total_cost'),
])
def test_add_validates_fields(visits, make_patient, overrides, field):
    patient = make_patient()
    with pytest.raises(ValidationError) as exc:
        visits.add(_visit(patient.id, **overrides))
    assert exc.value.field == field


def test_get_by_patient_orders_by_date_descending(visits, make_patient, make_visit):
    patient = make_patient()
    older = make_visit(patient, date_of_visit='2024-05-01T08:00:00.000Z')
    newer = make_visit(patient, date_of_visit='2025-05-01T08:00:00.000Z')
    make_visit()  # another patient

    assert [v.id for v in visits.get_by_patient(patient.id)] == [newer.id, older.id]
    assert len(visits.get_all()) == 3


def test_update_recomputes_balance_from_payments(visits, make_visit, make_payment):
    visit = make_visit(total_cost=1000)
    make_payment(visit, 300)

    visit.total_cost = 1500
    visit.total_paid = 0
    visit.balance = 0
    visit.comments = 'Added crown'
    assert visits.update(visit) is True

    stored = visits.get(visit.id)
    assert stored.comments == 'Added crown'
    assert stored.total_paid == 300
    assert stored.balance == 1200


def test_update_unknown_visit_returns_false(visits, make_patient):
    patient = make_patient()
    assert visits.update(_visit(patient.id, id=4242)) is False


def test_delete_removes_payments_first(visits, store, make_visit, make_payment):
    visit = make_visit()
    make_payment(visit, 100)
    make_payment(visit, 200)

    assert visits.delete(visit.id) is True
    assert visits.get_by_id(visit.id) is None
    assert store.scalar("SELECT COUNT(*) FROM payments WHERE visitId = ?", (visit.id,)) == 0
    assert visits.delete(visit.id) is False


def test_add_with_initial_payment(visits, payments, make_patient):
    patient = make_patient()
    visit = _visit(patient.id, total_cost=2500)
    payment = Payment(id=None, visit_id=None, amount=1000, payment_method='Cash')

    visit_id = visits.add_with_initial_payment(visit, payment)

    stored = visits.get(visit_id)
    assert stored.total_paid == 1000
    assert stored.balance == 1500
    recorded = payments.get_by_visit(visit_id)
    assert len(recorded) == 1
    assert recorded[0].payment_date == visit.date_of_visit
    assert recorded[0].last_name == 'Cruz'


@pytest.mark.parametrize('payment', [None, Payment(id=None, visit_id=None, amount=0)])
def test_add_with_initial_payment_skips_empty_payment(visits, payments, make_patient, payment):
    patient = make_patient()
    visit_id = visits.add_with_initial_payment(_visit(patient.id), payment)

    assert payments.get_by_visit(visit_id) == []
    assert visits.get(visit_id).balance == 1000


def test_add_with_initial_payment_is_atomic(visits, store, make_patient, monkeypatch):
    patient = make_patient()

    def broken_insert(self, payment, visit):
        raise RuntimeError('payment insert failed')

    monkeypatch.setattr(PaymentRepository, '_insert', broken_insert)
    with pytest.raises(RuntimeError):
        visits.add_with_initial_payment(
            _visit(patient.id), Payment(id=None, visit_id=None, amount=10, payment_method='Cash')
        )

    assert store.scalar("SELECT COUNT(*) FROM visits") == 0
    assert store.scalar("SELECT COUNT(*) FROM payments") == 0
