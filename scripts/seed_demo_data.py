import sys
from pathlib import Path

# Add project root to path
current_dir = Path(__file__).parent.parent
sys.path.append(str(current_dir))

from clinic_records.adapters.sqlite.auth_repo import UserRepository
from clinic_records.adapters.sqlite.core import get_store
from clinic_records.adapters.sqlite.patients_repo import PatientRepository
from clinic_records.adapters.sqlite.visits_repo import VisitRepository
from clinic_records.app import create_app
from clinic_records.domain.patients import Patient
from clinic_records.domain.payments import Payment
from clinic_records.domain.visits import INSTALLMENT, ONE_TIME_PAYMENT, Visit
from clinic_records.services.auth_service import AuthService


def seed():
    app = create_app({'AUTO_BACKUP': False})
    with app.app_context():
        store = get_store()
        auth = AuthService(UserRepository(store), app.config['BCRYPT_ROUNDS'])
        patients = PatientRepository(store)
        visits = VisitRepository(store)

        # 1. Users
        print("Creating users...")
        auth.register_user("reception1", "rec123")

        # 2. Patients
        print("Adding patients...")
        ana = Patient(id=None, first_name="Ana", last_name="Cruz", gender="F",
                      birthday="1990-01-01", contact_number="09170000000",
                      hmo="Maxicare", hmo_number="MX-1001")
        ben = Patient(id=None, first_name="Ben", last_name="Reyes", gender="M",
                      birthday="1985-06-15", contact_number="09181234567",
                      occupation="Engineer", company="Acme")
        patients.add(ana)
        patients.add(ben)

        # 3. Visits with first payments
        print("Adding visits...")
        visits.add_with_initial_payment(
            Visit(id=None, patient_id=ana.id, procedure_done="Root Canal Treatment",
                  date_of_visit="2025-01-10T09:00:00.000Z", mode_of_payment=INSTALLMENT,
                  total_cost=8000),
            Payment(id=None, visit_id=None, amount=3000, payment_method="Cash"),
        )
        visits.add_with_initial_payment(
            Visit(id=None, patient_id=ben.id, procedure_done="Oral Prophylaxis",
                  date_of_visit="2025-01-12T14:30:00.000Z", mode_of_payment=ONE_TIME_PAYMENT,
                  total_cost=1500),
            Payment(id=None, visit_id=None, amount=1500, payment_method="Cash"),
        )

        print("Seeding completed successfully.")


if __name__ == "__main__":
    seed()
