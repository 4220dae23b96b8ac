from typing import List, Optional

from clinic_records.adapters.sqlite.core import StorageEngine
from clinic_records.adapters.sqlite.payments_repo import (
    delete_payments_for_visits,
    visit_ids_for_patient,
)
from clinic_records.common.errors import NotFoundError
from clinic_records.common.utils import now_millis
from clinic_records.common.validators import validate_patient
from clinic_records.domain.patients import Patient

# LIKE is case-insensitive for ASCII in sqlite; lower() keeps it explicit.
_SEARCH_WHERE = (
    "lower(firstName) LIKE ? ESCAPE '\\' OR lower(lastName) LIKE ? ESCAPE '\\' "
    "OR lower(IFNULL(hmoNumber, '')) LIKE ? ESCAPE '\\'"
)


def _escape_like(term: str) -> str:
    return term.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


def _search_params(term: str):
    like = f"%{_escape_like(term.strip().lower())}%"
    return like, like, like


class PatientRepository:
    def __init__(self, store: StorageEngine):
        self.store = store

    def add(self, patient: Patient) -> int:
        validate_patient(patient)
        created_at = now_millis()
        result = self.store.run(
            '''INSERT INTO patients (
                firstName, lastName, gender, birthday, contactNumber, occupation,
                company, hmo, hmoNumber, validId, idNumber, createdAt
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)''',
            (patient.first_name, patient.last_name, patient.gender, patient.birthday,
             patient.contact_number, patient.occupation or '', patient.company or '',
             patient.hmo or '', patient.hmo_number or '', patient.valid_id or '',
             patient.id_number or '', created_at)
        )
        patient.id = result.last_id
        patient.created_at = created_at
        return result.last_id

    def get_by_id(self, patient_id: int) -> Optional[Patient]:
        row = self.store.query_one('SELECT * FROM patients WHERE id = ?', (patient_id,))
        return self._map_row(row) if row else None

    def get(self, patient_id: int) -> Patient:
        patient = self.get_by_id(patient_id)
        if patient is None:
            raise NotFoundError('Patient', patient_id)
        return patient

    def get_all(self) -> List[Patient]:
        rows = self.store.query('SELECT * FROM patients ORDER BY createdAt DESC, id DESC')
        return [self._map_row(row) for row in rows]

    def search(self, term: str) -> List[Patient]:
        if not term or not term.strip():
            return self.get_all()
        rows = self.store.query(
            f'SELECT * FROM patients WHERE {_SEARCH_WHERE} ORDER BY createdAt DESC, id DESC',
            _search_params(term)
        )
        return [self._map_row(row) for row in rows]

    def get_page(self, page: int, page_size: int, term: Optional[str] = None) -> List[Patient]:
        """One page of patients ordered by last name, first name. ``page`` is zero-based."""
        offset = max(page, 0) * page_size
        if term and term.strip():
            rows = self.store.query(
                f'''SELECT * FROM patients WHERE {_SEARCH_WHERE}
                    ORDER BY lastName, firstName, id LIMIT ? OFFSET ?''',
                (*_search_params(term), page_size, offset)
            )
        else:
            rows = self.store.query(
                'SELECT * FROM patients ORDER BY lastName, firstName, id LIMIT ? OFFSET ?',
                (page_size, offset)
            )
        return [self._map_row(row) for row in rows]

    def count(self, term: Optional[str] = None) -> int:
        if term and term.strip():
            return self.store.scalar(
                f'SELECT COUNT(*) FROM patients WHERE {_SEARCH_WHERE}', _search_params(term)
            )
        return self.store.scalar('SELECT COUNT(*) FROM patients')

    def update(self, patient: Patient) -> bool:
        """Full update by id. Name copies on the patient's visits and payments follow the new name."""
        validate_patient(patient)

        def work():
            result = self.store.run(
                '''UPDATE patients SET
                    firstName = ?, lastName = ?, gender = ?, birthday = ?, contactNumber = ?,
                    occupation = ?, company = ?, hmo = ?, hmoNumber = ?,
                    validId = ?, idNumber = ?
                   WHERE id = ?''',
                (patient.first_name, patient.last_name, patient.gender, patient.birthday,
                 patient.contact_number, patient.occupation or '', patient.company or '',
                 patient.hmo or '', patient.hmo_number or '', patient.valid_id or '',
                 patient.id_number or '', patient.id)
            )
            if result.changes != 1:
                return False
            self.store.run(
                'UPDATE visits SET firstName = ?, lastName = ? WHERE patientId = ?',
                (patient.first_name, patient.last_name, patient.id)
            )
            self.store.run(
                '''UPDATE payments SET firstName = ?, lastName = ?
                   WHERE visitId IN (SELECT id FROM visits WHERE patientId = ?)''',
                (patient.first_name, patient.last_name, patient.id)
            )
            return True

        return self.store.transaction(work)

    def delete(self, patient_id: int) -> bool:
        """Delete a patient with all of their visits and payments, atomically."""
        def work():
            visit_ids = visit_ids_for_patient(self.store, patient_id)
            delete_payments_for_visits(self.store, visit_ids)
            self.store.run('DELETE FROM visits WHERE patientId = ?', (patient_id,))
            result = self.store.run('DELETE FROM patients WHERE id = ?', (patient_id,))
            return result.changes >= 1

        return self.store.transaction(work)

    def _map_row(self, row) -> Patient:
        return Patient(
            id=row['id'],
            first_name=row['firstName'],
            last_name=row['lastName'],
            gender=row['gender'],
            birthday=row['birthday'],
            contact_number=row['contactNumber'],
            occupation=row['occupation'] or '',
            company=row['company'] or '',
            hmo=row['hmo'] or '',
            hmo_number=row['hmoNumber'] or '',
            valid_id=row['validId'] or '',
            id_number=row['idNumber'] or '',
            created_at=row['createdAt'],
        )
