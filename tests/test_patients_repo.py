import sqlite3

import pytest

from clinic_records.common.errors import NotFoundError, ValidationError
from clinic_records.domain.patients import Patient


def test_add_assigns_id_and_created_at(patients, make_patient):
    patient = make_patient(hmo='Maxicare', hmo_number='MX-1')
    assert patient.id > 0

    stored = patients.get(patient.id)
    assert stored.full_name == 'Ana Cruz'
    assert stored.hmo_number == 'MX-1'
    assert stored.occupation == ''
    assert stored.created_at > 0


@pytest.mark.parametrize('field', ['first_name', 'last_name', 'gender', 'birthday', 'contact_number'])
def test_add_rejects_missing_required_field(patients, store, field):
    values = dict(id=None, first_name='Ana', last_name='Cruz', gender='F',
                  birthday='1990-01-01', contact_number='09170000000')
    values[field] = '  '
    with pytest.raises(ValidationError) as exc:
        patients.add(Patient(**values))
    assert exc.value.field == field
    assert store.scalar("SELECT COUNT(*) FROM patients") == 0


def test_add_rejects_malformed_birthday(patients):
    with pytest.raises(ValidationError):
        patients.add(Patient(id=None, first_name='Ana', last_name='Cruz', gender='F',
                             birthday='01/01/1990', contact_number='09170000000'))


def test_get_missing_patient(patients):
    assert patients.get_by_id(404) is None
    with pytest.raises(NotFoundError):
        patients.get(404)


def test_get_all_newest_first(patients, make_patient):
    first = make_patient(first_name='First')
    second = make_patient(first_name='Second')
    assert [p.id for p in patients.get_all()] == [second.id, first.id]


def test_search_matches_names_and_hmo_number_case_insensitively(patients, make_patient):
    ana = make_patient(first_name='Ana', last_name='Cruz', hmo_number='HMO-778')
    ben = make_patient(first_name='Ben', last_name='Anderson')
    make_patient(first_name='Carl', last_name='Diaz')

    assert {p.id for p in patients.search('an')} == {ana.id, ben.id}
    assert [p.id for p in patients.search('CRUZ')] == [ana.id]
    assert [p.id for p in patients.search('hmo-77')] == [ana.id]
    assert patients.search('zzz') == []
    assert len(patients.search('  ')) == 3


def test_paginated_search_and_counts(patients, make_patient):
    for last_name in ['Delta', 'Alpha', 'Charlie', 'Bravo', 'Echo']:
        make_patient(last_name=last_name)
    make_patient(first_name='Zed', last_name='Zulu')

    page0 = patients.get_page(0, 2)
    page1 = patients.get_page(1, 2)
    assert [p.last_name for p in page0] == ['Alpha', 'Bravo']
    assert [p.last_name for p in page1] == ['Charlie', 'Delta']
    assert patients.count() == 6

    assert [p.last_name for p in patients.get_page(0, 10, 'ana')] == ['Alpha', 'Bravo', 'Charlie', 'Delta', 'Echo']
    assert patients.count('zed') == 1
    assert patients.get_page(5, 10) == []


def test_update_by_id(patients, make_patient):
    patient = make_patient()
    patient.occupation = 'Dentist'
    patient.contact_number = '09181111111'
    assert patients.update(patient) is True

    stored = patients.get(patient.id)
    assert stored.occupation == 'Dentist'
    assert stored.contact_number == '09181111111'


def test_update_unknown_patient_returns_false(patients):
    ghost = Patient(id=999, first_name='No', last_name='Body', gender='M',
                    birthday='1990-01-01', contact_number='09170000000')
    assert patients.update(ghost) is False


def test_update_refreshes_name_copies(patients, visits, payments, make_patient, make_visit, make_payment):
    patient = make_patient()
    visit = make_visit(patient)
    payment = make_payment(visit, 100)

    patient.last_name = 'Santos'
    assert patients.update(patient)

    assert visits.get(visit.id).last_name == 'Santos'
    assert payments.get_by_id(payment.id).last_name == 'Santos'


def test_delete_cascades_to_visits_and_payments(patients, store, make_patient, make_visit, make_payment):
    patient = make_patient()
    other = make_patient(first_name='Ben')
    for _ in range(2):
        visit = make_visit(patient)
        make_payment(visit, 100)
        make_payment(visit, 200)
    other_visit = make_visit(other)
    make_payment(other_visit, 50)

    assert patients.delete(patient.id) is True

    assert patients.get_by_id(patient.id) is None
    assert store.scalar("SELECT COUNT(*) FROM visits WHERE patientId = ?", (patient.id,)) == 0
    assert store.scalar("SELECT COUNT(*) FROM payments WHERE visitId NOT IN (SELECT id FROM visits)") == 0
    assert store.scalar("SELECT COUNT(*) FROM payments WHERE visitId = ?", (other_visit.id,)) == 1


def test_delete_unknown_patient_returns_false(patients):
    assert patients.delete(12345) is False


def test_delete_is_all_or_nothing(patients, store, make_patient, make_visit, make_payment, monkeypatch):
    patient = make_patient()
    visit = make_visit(patient)
    make_payment(visit, 100)

    real_run = store.run

    def failing_run(sql, params=()):
        if sql.startswith('DELETE FROM patients'):
            raise sqlite3.OperationalError('disk I/O error')
        return real_run(sql, params)

    monkeypatch.setattr(store, 'run', failing_run)
    with pytest.raises(sqlite3.OperationalError):
        patients.delete(patient.id)
    monkeypatch.undo()

    assert patients.get_by_id(patient.id) is not None
    assert store.scalar("SELECT COUNT(*) FROM visits WHERE patientId = ?", (patient.id,)) == 1
    assert store.scalar("SELECT COUNT(*) FROM payments WHERE visitId = ?", (visit.id,)) == 1


def test_search_treats_wildcards_literally(patients, make_patient):
    plain = make_patient(first_name='Ana', hmo_number='MX-1')
    coded = make_patient(first_name='Ben', hmo_number='HMO_50%')

    assert [p.id for p in patients.search('%')] == [coded.id]
    assert [p.id for p in patients.search('_')] == [coded.id]
    assert [p.id for p in patients.search('o_5')] == [coded.id]
    assert patients.search('x_1') == []
    assert patients.count('%') == 1
    assert plain.id not in {p.id for p in patients.get_page(0, 10, '%')}
