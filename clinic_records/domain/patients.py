from dataclasses import dataclass
from typing import Optional


@dataclass
class Patient:
    id: Optional[int]
    first_name: str
    last_name: str
    gender: Optional[str] = None
    birthday: Optional[str] = None
    contact_number: Optional[str] = None
    occupation: str = ''
    company: str = ''
    hmo: str = ''
    hmo_number: str = ''
    valid_id: str = ''
    id_number: str = ''
    created_at: Optional[int] = None  # epoch milliseconds

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"
