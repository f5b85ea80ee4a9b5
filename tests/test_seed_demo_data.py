"""The demo seed runs through the public services and leaves a consistent project."""

import importlib.util
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from app.services import payment_service, progress_service

SEED_PATH = Path(__file__).resolve().parent.parent / "scripts" / "seed_demo_data.py"


@pytest.fixture()
def seed_module():
    spec = importlib.util.spec_from_file_location("seed_demo_data", SEED_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_seed_demo(seed_module):
    project, users = seed_module.seed_demo(today=date.today())
    concept, schematic, development = project.phases[:3]

    assert concept.status == "approved"
    assert schematic.status == "in_progress"
    assert development.early_access_status == "accessible"

    assert schematic.actual_hours == Decimal("34.50")
    mei = progress_service.breakdown(schematic.id, users[2].id)
    assert mei["hours_logged"] == "10.00"
    assert mei["actual_progress"] == "15.00"

    summary = payment_service.phase_payment_summary(schematic.id)
    assert summary["payment_status"] == "partially_paid"
    assert summary["remaining_amount"] == "9000.00"
