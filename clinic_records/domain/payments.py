from dataclasses import dataclass
from typing import Optional


@dataclass
class Payment:
    id: Optional[int]
    visit_id: int
    amount: float
    payment_date: Optional[str] = None
    payment_method: str = 'Cash'
    notes: str = ''
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    created_at: Optional[int] = None
