from dataclasses import dataclass
from typing import Optional

PROCEDURES = (
    'Consultation',
    'Oral Prophylaxis',
    'Restoration',
    'Extraction',
    'Odontectomy',
    'Deep Scaling',
    'Frenectomy',
    'Root Canal Treatment',
    'Orthodontic Treatment',
    'Implant',
    'Bonegrafting',
    'Build up',
    'Denture',
    'Fixed Bridge',
    'Jacket Crown',
    'Veneers',
)

ONE_TIME_PAYMENT = 'One-time Payment'
INSTALLMENT = 'Installment'
PAYMENT_MODES = (ONE_TIME_PAYMENT, INSTALLMENT)


@dataclass
class Visit:
    id: Optional[int]
    patient_id: int
    procedure_done: str
    date_of_visit: str
    mode_of_payment: str
    total_cost: float = 0.0
    total_paid: float = 0.0  # cache of sum(payments.amount)
    balance: float = 0.0
    comments: str = ''
    # Copy of the patient's name at the time of the visit
    first_name: Optional[str] = None
    last_name: Optional[str] = None
