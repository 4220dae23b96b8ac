from typing import List, Optional

from clinic_records.adapters.sqlite.core import StorageEngine
from clinic_records.adapters.sqlite.payments_repo import (
    PaymentRepository,
    delete_payments_for_visits,
    recalculate_balance,
)
from clinic_records.common.errors import NotFoundError
from clinic_records.common.utils import to_float
from clinic_records.common.validators import validate_payment, validate_visit
from clinic_records.domain.payments import Payment
from clinic_records.domain.visits import Visit


class VisitRepository:
    def __init__(self, store: StorageEngine):
        self.store = store

    def add(self, visit: Visit) -> int:
        validate_visit(visit)
        return self.store.transaction(lambda: self._insert(visit))

    def add_with_initial_payment(self, visit: Visit, payment: Optional[Payment] = None) -> int:
        """Create a visit and, when ``payment`` has a positive amount, its first payment.

        Both rows are written in one transaction so a visit never exists
        without the payment the caller recorded for it.
        """
        validate_visit(visit)
        take_payment = payment is not None and to_float(payment.amount) > 0
        if take_payment:
            payment.payment_date = payment.payment_date or visit.date_of_visit
            validate_payment(payment, require_visit=False)

        def work():
            visit_id = self._insert(visit)
            if take_payment:
                row = self.store.query_one(
                    'SELECT id, firstName, lastName FROM visits WHERE id = ?', (visit_id,)
                )
                PaymentRepository(self.store)._insert(payment, row)
                visit.balance = recalculate_balance(self.store, visit_id)
                visit.total_paid = visit.total_cost - visit.balance
            return visit_id

        return self.store.transaction(work)

    def _insert(self, visit: Visit) -> int:
        """Insert inside an open transaction. Totals start from totalCost, never from the caller."""
        patient = self.store.query_one(
            'SELECT id, firstName, lastName FROM patients WHERE id = ?', (visit.patient_id,)
        )
        if patient is None:
            raise NotFoundError('Patient', visit.patient_id)

        total_cost = float(visit.total_cost)
        first_name = visit.first_name or patient['firstName']
        last_name = visit.last_name or patient['lastName']
        result = self.store.run(
            '''INSERT INTO visits (
                patientId, firstName, lastName, procedureDone, comments, dateOfVisit,
                modeOfPayment, totalCost, totalPaid, balance
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)''',
            (
                visit.patient_id,
                first_name,
                last_name,
                visit.procedure_done,
                visit.comments or '',
                visit.date_of_visit,
                visit.mode_of_payment,
                total_cost,
                0.0,
                total_cost,
            )
        )
        visit.id = result.last_id
        visit.first_name, visit.last_name = first_name, last_name
        visit.total_cost, visit.total_paid, visit.balance = total_cost, 0.0, total_cost
        return result.last_id

    def get_by_id(self, visit_id: int) -> Optional[Visit]:
        row = self.store.query_one('SELECT * FROM visits WHERE id = ?', (visit_id,))
        return self._map_row(row) if row else None

    def get(self, visit_id: int) -> Visit:
        visit = self.get_by_id(visit_id)
        if visit is None:
            raise NotFoundError('Visit', visit_id)
        return visit

    def get_by_patient(self, patient_id: int) -> List[Visit]:
        rows = self.store.query(
            'SELECT * FROM visits WHERE patientId = ? ORDER BY dateOfVisit DESC, id DESC',
            (patient_id,)
        )
        return [self._map_row(row) for row in rows]

    def get_all(self) -> List[Visit]:
        rows = self.store.query('SELECT * FROM visits ORDER BY dateOfVisit DESC, id DESC')
        return [self._map_row(row) for row in rows]

    def update(self, visit: Visit) -> bool:
        """Update a visit by id. totalPaid/balance are recomputed from payments, not taken from ``visit``."""
        validate_visit(visit)

        def work():
            result = self.store.run(
                '''UPDATE visits SET
                    firstName = COALESCE(?, firstName), lastName = COALESCE(?, lastName),
                    procedureDone = ?, comments = ?, dateOfVisit = ?,
                    modeOfPayment = ?, totalCost = ?
                   WHERE id = ?''',
                (
                    visit.first_name,
                    visit.last_name,
                    visit.procedure_done,
                    visit.comments or '',
                    visit.date_of_visit,
                    visit.mode_of_payment,
                    float(visit.total_cost),
                    visit.id,
                )
            )
            if result.changes != 1:
                return False
            recalculate_balance(self.store, visit.id)
            return True

        return self.store.transaction(work)

    def delete(self, visit_id: int) -> bool:
        def work():
            delete_payments_for_visits(self.store, [visit_id])
            result = self.store.run('DELETE FROM visits WHERE id = ?', (visit_id,))
            return result.changes >= 1

        return self.store.transaction(work)

    def _map_row(self, row) -> Visit:
        return Visit(
            id=row['id'],
            patient_id=row['patientId'],
            procedure_done=row['procedureDone'],
            date_of_visit=row['dateOfVisit'],
            mode_of_payment=row['modeOfPayment'],
            total_cost=to_float(row['totalCost']),
            total_paid=to_float(row['totalPaid']),
            balance=to_float(row['balance']),
            comments=row['comments'] or '',
            first_name=row['firstName'],
            last_name=row['lastName'],
        )
