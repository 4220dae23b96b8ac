import pytest

from clinic_records.adapters.sqlite.core import STORE_EXTENSION_KEY, StorageEngine
from clinic_records.adapters.sqlite.patients_repo import PatientRepository
from clinic_records.adapters.sqlite.payments_repo import PaymentRepository
from clinic_records.adapters.sqlite.visits_repo import VisitRepository
from clinic_records.app import create_app
from clinic_records.config.settings import TestConfig
from clinic_records.domain.patients import Patient
from clinic_records.domain.payments import Payment
from clinic_records.domain.visits import INSTALLMENT, Visit


@pytest.fixture
def store(tmp_path):
    engine = StorageEngine(str(tmp_path / 'records.db'), bcrypt_rounds=4)
    engine.open()
    yield engine
    engine.close()


@pytest.fixture
def patients(store):
    return PatientRepository(store)


@pytest.fixture
def visits(store):
    return VisitRepository(store)


@pytest.fixture
def payments(store):
    return PaymentRepository(store)


@pytest.fixture
def make_patient(patients):
    def factory(**overrides):
        fields = dict(
            id=None, first_name='Ana', last_name='Cruz', gender='F',
            birthday='1990-01-01', contact_number='09170000000',
        )
        fields.update(overrides)
        patient = Patient(**fields)
        patients.add(patient)
        return patient
    return factory


@pytest.fixture
def make_visit(visits, make_patient):
    def factory(patient=None, **overrides):
        patient = patient or make_patient()
        fields = dict(
            id=None, patient_id=patient.id, procedure_done='Extraction',
            date_of_visit='2025-01-10T09:00:00.000Z', mode_of_payment=INSTALLMENT,
            total_cost=1000,
        )
        fields.update(overrides)
        visit = Visit(**fields)
        visits.add(visit)
        return visit
    return factory


@pytest.fixture
def make_payment(payments):
    def factory(visit, amount, **overrides):
        fields = dict(
            id=None, visit_id=visit.id, amount=amount,
            payment_date='2025-01-10', payment_method='Cash',
        )
        fields.update(overrides)
        payment = Payment(**fields)
        payments.add(payment)
        return payment
    return factory


@pytest.fixture
def app(tmp_path):
    class Settings(TestConfig):
        DATABASE_PATH = str(tmp_path / 'app.db')
        BACKUP_FOLDER = str(tmp_path / 'backups')

    app = create_app(Settings)
    yield app
    app.extensions[STORE_EXTENSION_KEY].close()


@pytest.fixture
def anonymous_client(app):
    return app.test_client()


@pytest.fixture
def client(app):
    client = app.test_client()
    response = client.post('/auth/login', json={'username': 'admin', 'password': '1234'})
    assert response.status_code == 200
    return client
