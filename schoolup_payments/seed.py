"""Demo school ledger: Lusaka Excellence Private School."""
from datetime import date
from decimal import Decimal

from schoolup_payments.core.store import InMemoryLedgerStore
from schoolup_payments.domain.models import (
    FeeStructure,
    PaymentAccount,
    SchoolSettings,
    Student,
    User,
    UserRole,
)

SCHOOL_SETTINGS = SchoolSettings(
    name="Lusaka Excellence Private School",
    current_term=1,
    contact_phone="+260 977 123456",
    payment_accounts=[
        PaymentAccount(
            id="acc-1",
            provider="MTN MoMo",
            account_name="Lusaka Excellence Ltd",
            account_number="556677",
            type="MOBILE_MONEY",
        ),
        PaymentAccount(
            id="acc-2",
            provider="Airtel Money",
            account_name="Lusaka Excellence Ltd",
            account_number="112233",
            type="MOBILE_MONEY",
        ),
        PaymentAccount(
            id="acc-3",
            provider="ZANACO",
            account_name="Lusaka Excellence Primary",
            account_number="1234567890123",
            type="BANK",
        ),
    ],
)

USERS = [
    User(
        id="admin-1",
        email="admin@schoolup.zm",
        name="Dr. Mwamba Chiluba",
        role=UserRole.ADMIN,
        phone_number="+260971000001",
    ),
    User(
        id="teacher-1",
        email="mulenga@schoolup.zm",
        name="Mrs. Mary Mulenga",
        role=UserRole.TEACHER,
        phone_number="+260971000002",
    ),
    User(
        id="parent-1",
        email="banda@schoolup.zm",
        name="Mr. Kelvin Banda",
        role=UserRole.PARENT,
        phone_number="+260971000003",
    ),
]

STUDENTS = [
    Student(
        id="std-1",
        name="Chipo Banda",
        grade="Grade 7",
        parent_id="parent-1",
        teacher_id="teacher-1",
        gender="Female",
        dob=date(2012, 5, 14),
    ),
    Student(
        id="std-2",
        name="Tiza Banda",
        grade="Grade 4",
        parent_id="parent-1",
        teacher_id="teacher-1",
        gender="Male",
        dob=date(2015, 11, 20),
    ),
]

FEE_STRUCTURES = [
    FeeStructure(
        id="fee-1", grade="Grade 7", term=1, amount=Decimal("2500"), description="Tuition + Lab Fees"
    ),
    FeeStructure(
        id="fee-2", grade="Grade 4", term=1, amount=Decimal("1800"), description="Tuition Fees"
    ),
]


def build_demo_store() -> InMemoryLedgerStore:
    """A fresh ledger with the demo school's reference data and no payments."""
    return InMemoryLedgerStore(
        school_settings=SCHOOL_SETTINGS,
        students=STUDENTS,
        users=USERS,
        fee_structures=FEE_STRUCTURES,
    )
