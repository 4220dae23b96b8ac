from typing import Iterable, List, Optional

from clinic_records.adapters.sqlite.core import StorageEngine
from clinic_records.common.errors import NotFoundError
from clinic_records.common.utils import now_millis, to_float
from clinic_records.common.validators import validate_payment
from clinic_records.domain.payments import Payment


# ---- cascade helpers (shared by patient, visit and payment deletes) ----

def visit_ids_for_patient(store: StorageEngine, patient_id: int) -> List[int]:
    rows = store.query('SELECT id FROM visits WHERE patientId = ?', (patient_id,))
    return [r['id'] for r in rows]


def delete_payments_for_visits(store: StorageEngine, visit_ids: Iterable[int]) -> int:
    """Delete every payment of the given visits; returns the number of rows removed."""
    removed = 0
    for visit_id in visit_ids:
        removed += store.run('DELETE FROM payments WHERE visitId = ?', (visit_id,)).changes
    return removed


def recalculate_balance(store: StorageEngine, visit_id: int) -> Optional[float]:
    """Recompute a visit's totalPaid and balance from its payments.

    Must run inside the caller's transaction. Returns the new balance, or
    None when the visit does not exist.
    """
    rows = store.query('SELECT amount FROM payments WHERE visitId = ?', (visit_id,))
    total_paid = 0.0
    for row in rows:
        total_paid += to_float(row['amount'])

    visit = store.query_one('SELECT totalCost FROM visits WHERE id = ?', (visit_id,))
    if visit is None:
        return None

    balance = to_float(visit['totalCost']) - total_paid
    store.run(
        'UPDATE visits SET totalPaid = ?, balance = ? WHERE id = ?',
        (total_paid, balance, visit_id),
    )
    return balance


class PaymentRepository:
    """Payments of a visit. Every mutation recomputes the visit balance in the same transaction."""

    def __init__(self, store: StorageEngine):
        self.store = store

    def add(self, payment: Payment) -> int:
        validate_payment(payment)

        def work():
            visit = self.store.query_one(
                'SELECT id, firstName, lastName FROM visits WHERE id = ?', (payment.visit_id,)
            )
            if visit is None:
                raise NotFoundError('Visit', payment.visit_id)
            payment_id = self._insert(payment, visit)
            recalculate_balance(self.store, payment.visit_id)
            return payment_id

        return self.store.transaction(work)

    def _insert(self, payment: Payment, visit: dict) -> int:
        """Insert inside an open transaction; names default to the visit's copy."""
        created_at = now_millis()
        result = self.store.run(
            '''INSERT INTO payments (
                visitId, firstName, lastName, amount, paymentDate, paymentMethod, notes, createdAt
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)''',
            (
                visit['id'],
                payment.first_name or visit.get('firstName'),
                payment.last_name or visit.get('lastName'),
                float(payment.amount),
                payment.payment_date,
                payment.payment_method,
                payment.notes or '',
                created_at,
            )
        )
        payment.id = result.last_id
        payment.visit_id = visit['id']
        payment.created_at = created_at
        return result.last_id

    def update(self, payment: Payment) -> bool:
        validate_payment(payment)

        def work():
            current = self.store.query_one(
                'SELECT visitId, firstName, lastName FROM payments WHERE id = ?', (payment.id,)
            )
            if current is None:
                return False
            if payment.visit_id != current['visitId']:
                target = self.store.query_one('SELECT id FROM visits WHERE id = ?', (payment.visit_id,))
                if target is None:
                    raise NotFoundError('Visit', payment.visit_id)
            result = self.store.run(
                '''UPDATE payments SET
                    visitId = ?, firstName = ?, lastName = ?, amount = ?,
                    paymentDate = ?, paymentMethod = ?, notes = ?
                   WHERE id = ?''',
                (
                    payment.visit_id,
                    payment.first_name or current['firstName'],
                    payment.last_name or current['lastName'],
                    float(payment.amount),
                    payment.payment_date,
                    payment.payment_method,
                    payment.notes or '',
                    payment.id,
                )
            )
            if result.changes != 1:
                return False
            recalculate_balance(self.store, payment.visit_id)
            if payment.visit_id != current['visitId']:
                recalculate_balance(self.store, current['visitId'])
            return True

        return self.store.transaction(work)

    def delete(self, payment_id: int, visit_id: Optional[int] = None) -> bool:
        def work():
            current = self.store.query_one('SELECT visitId FROM payments WHERE id = ?', (payment_id,))
            if current is None:
                return False
            result = self.store.run('DELETE FROM payments WHERE id = ?', (payment_id,))
            if result.changes < 1:
                return False
            # The stored parent wins over the caller's visit_id
            recalculate_balance(self.store, current['visitId'])
            if visit_id is not None and visit_id != current['visitId']:
                recalculate_balance(self.store, visit_id)
            return True

        return self.store.transaction(work)

    def get_by_id(self, payment_id: int) -> Optional[Payment]:
        row = self.store.query_one('SELECT * FROM payments WHERE id = ?', (payment_id,))
        return self._map_row(row) if row else None

    def get_by_visit(self, visit_id: int) -> List[Payment]:
        rows = self.store.query(
            'SELECT * FROM payments WHERE visitId = ? ORDER BY paymentDate ASC, createdAt ASC, id ASC',
            (visit_id,)
        )
        return [self._map_row(row) for row in rows]

    def get_all(self) -> List[Payment]:
        rows = self.store.query('SELECT * FROM payments ORDER BY paymentDate DESC, createdAt DESC')
        return [self._map_row(row) for row in rows]

    def get_total_paid(self, visit_id: int) -> float:
        return sum((p.amount for p in self.get_by_visit(visit_id)), 0.0)

    def delete_all_for_visit(self, visit_id: int) -> int:
        def work():
            removed = delete_payments_for_visits(self.store, [visit_id])
            recalculate_balance(self.store, visit_id)
            return removed

        return self.store.transaction(work)

    def delete_all_for_patient(self, patient_id: int) -> int:
        def work():
            visit_ids = visit_ids_for_patient(self.store, patient_id)
            removed = delete_payments_for_visits(self.store, visit_ids)
            for visit_id in visit_ids:
                recalculate_balance(self.store, visit_id)
            return removed

        return self.store.transaction(work)

    def _map_row(self, row) -> Payment:
        return Payment(
            id=row['id'],
            visit_id=row['visitId'],
            amount=to_float(row['amount']),
            payment_date=row['paymentDate'],
            payment_method=row['paymentMethod'],
            notes=row['notes'] or '',
            first_name=row['firstName'],
            last_name=row['lastName'],
            created_at=row['createdAt'],
        )
