"""Field validation for patient, visit and payment writes."""

import math

from clinic_records.common.errors import ValidationError
from clinic_records.common.utils import parse_date, parse_datetime
from clinic_records.domain.visits import PAYMENT_MODES, PROCEDURES


def validate_mobile_number(phone: str) -> bool:
    """
    Validate a local mobile number.

    The number must be 11 digits and start with 09.

    Examples:
        >>> validate_mobile_number('09170000000')
        True
        >>> validate_mobile_number('9170000000')
        False
        >>> validate_mobile_number('02112345678')
        False
    """
    if not phone or len(phone) != 11:
        return False

    if not phone.isdigit():
        return False

    return phone.startswith('09')


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def require(obj, *fields: str) -> None:
    for field in fields:
        if _is_blank(getattr(obj, field, None)):
            raise ValidationError(f"{field} is required", field=field)


def validate_patient(patient) -> None:
    require(patient, 'first_name', 'last_name', 'gender', 'birthday', 'contact_number')
    if parse_date(patient.birthday) is None:
        raise ValidationError("birthday must be a YYYY-MM-DD date", field='birthday')


def validate_visit(visit) -> None:
    require(visit, 'patient_id', 'procedure_done', 'mode_of_payment', 'date_of_visit')
    if visit.procedure_done not in PROCEDURES:
        raise ValidationError(f"unknown procedure: {visit.procedure_done}", field='procedure_done')
    if visit.mode_of_payment not in PAYMENT_MODES:
        raise ValidationError(
            f"mode_of_payment must be one of {', '.join(PAYMENT_MODES)}", field='mode_of_payment'
        )
    if parse_datetime(visit.date_of_visit) is None:
        raise ValidationError("date_of_visit must be an ISO datetime", field='date_of_visit')
    try:
        cost = float(visit.total_cost)
    except (TypeError, ValueError):
        raise ValidationError("total_cost must be a number", field='total_cost')
    if not math.isfinite(cost):
        raise ValidationError("total_cost must be a finite number", field='total_cost')
    if cost < 0:
        raise ValidationError("total_cost cannot be negative", field='total_cost')


def validate_payment(payment, require_visit: bool = True) -> None:
    if require_visit:
        require(payment, 'visit_id')
    require(payment, 'payment_date', 'payment_method')
    try:
        amount = float(payment.amount)
    except (TypeError, ValueError):
        raise ValidationError("amount must be a number", field='amount')
    if not math.isfinite(amount):
        raise ValidationError("amount must be a finite number", field='amount')
    if amount <= 0:
        raise ValidationError("amount must be greater than zero", field='amount')
