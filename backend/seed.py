# Demo seed data - sample patients loaded when DEMO_MODE=true
from typing import List

from models import PatientRecord
from registry import PatientStore

SAMPLE_PATIENTS = [
    {
        "hn": "HN000001",
        "fullName": "นายสมชาย ใจดี",
        "gender": "male",
        "nickname": "ชาย",
        "phone": "081-234-5678",
        "age": 45,
    },
    {
        "hn": "HN000002",
        "fullName": "นางสาวสมหญิง รักเรียน",
        "gender": "female",
        "phone": "021-234-567",
        "age": 29,
    },
    {
        "hn": "HN000003",
        "fullName": "Mr. John Doe",
        "gender": "male",
        "nickname": "Johnny",
        "age": 52,
    },
]


def seed_data(store: PatientStore) -> List[PatientRecord]:
    """Reset the store to the sample patients. HN000001 ends up oldest, HN000003 newest."""
    return store.replace_all([PatientRecord(**fields) for fields in SAMPLE_PATIENTS])
