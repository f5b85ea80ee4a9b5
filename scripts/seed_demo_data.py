#!/usr/bin/env python3
"""
Phase Progress Engine — Demo Seed.

Creates a small design office and one running project so every endpoint has
something to show:
  - 1 supervisor, 3 engineers
  - "Harbour View Residences" with the six default phases
  - Concept Design approved, Schematic Design in progress with logged hours,
    one manual override and a partial payment
  - Early access granted on Design Development

Usage:
    python scripts/seed_demo_data.py              # Reset DB + seed
    python scripts/seed_demo_data.py --no-reset   # Seed on top of existing data
    python scripts/seed_demo_data.py --tokens     # Also print bearer tokens
"""

import argparse
import sys
from datetime import date, timedelta

sys.path.insert(0, ".")

from app import create_app
from app.auth import Principal
from app.models import db
from app.models.auth import User
from app.services import payment_service, phase_lifecycle, progress_service, project_service, work_log_service
from app.services.jwt_service import generate_access_token

USERS = [
    ("selin@example.com", "Selin Aydın", "supervisor", "Design Manager"),
    ("omar@example.com", "Omar Haddad", "engineer", "Architect"),
    ("mei@example.com", "Mei Tanaka", "engineer", "Structural Engineer"),
    ("lucas@example.com", "Lucas Moreau", "engineer", "MEP Engineer"),
]

# (engineer index, days ago, hours, description)
SCHEMATIC_LOGS = [
    (1, 9, 6, "Massing options"),
    (1, 8, 7.5, "Floor plate layouts"),
    (2, 8, 4, "Structural grid study"),
    (2, 5, 6, "Core wall sizing"),
    (3, 4, 3, "Riser locations"),
    (1, 2, 8, "Facade studies"),
]


def seed_users():
    users = []
    for email, name, role, job in USERS:
        u = User(email=email, name=name, role=role, job_description=job)
        db.session.add(u)
        users.append(u)
    db.session.commit()
    return users


def seed_demo(today=None):
    """Seed the demo office. Returns ``(project, users)``."""
    today = today or date.today()
    users = seed_users()
    sup = Principal(user_id=users[0].id, role="supervisor")

    project = project_service.create_project(
        "Harbour View Residences",
        sup,
        start_date=today - timedelta(weeks=3),
        client_name="Harbour Developments",
        location="Izmir",
        phases=[
            {"name": "Concept Design", "planned_weeks": 2, "predicted_hours": 60},
            {"name": "Schematic Design", "planned_weeks": 3, "predicted_hours": 120},
            {"name": "Design Development", "planned_weeks": 4, "predicted_hours": 200},
            {"name": "Licensing", "planned_weeks": 3, "predicted_hours": 40},
            {"name": "Working Drawings", "planned_weeks": 6, "predicted_hours": 320},
            {"name": "BOQ & Tender", "planned_weeks": 2, "predicted_hours": 60},
        ],
    )
    concept, schematic, development = project.phases[:3]

    for step in (phase_lifecycle.start_phase, phase_lifecycle.submit_phase, phase_lifecycle.approve_phase):
        step(concept.id, sup, today=today - timedelta(days=12))
    phase_lifecycle.start_phase(schematic.id, sup, today=today - timedelta(days=10))

    for idx, days_ago, hours, description in SCHEMATIC_LOGS:
        engineer = users[idx]
        work_log_service.record_hours(
            schematic.id, engineer.id, today - timedelta(days=days_ago), hours, description,
            principal=Principal(user_id=engineer.id, role="engineer"), today=today,
        )
    progress_service.set_engineer_progress(
        schematic.id, users[2].id, 15, "Structural scheme agreed with client ahead of plan", sup,
    )

    payment_service.set_payment_terms(
        schematic.id, sup, total_amount="18000", payment_deadline=today + timedelta(days=30),
        payment_notes="50% on start, 50% on approval",
    )
    payment_service.record_payment(
        schematic.id, sup, amount="9000", payment_date=today - timedelta(days=10),
        payment_type="advance", payment_method="bank_transfer",
    )

    phase_lifecycle.grant_early_access(development.id, sup, "Client signed off the structural scheme")
    return project, users


def main():
    parser = argparse.ArgumentParser(description="Phase Progress Engine demo seed")
    parser.add_argument("--no-reset", action="store_true", help="Don't clear existing data")
    parser.add_argument("--tokens", action="store_true", help="Print a bearer token per demo user")
    args = parser.parse_args()

    app = create_app()
    print(f"  DB: {app.config['SQLALCHEMY_DATABASE_URI']}\n")

    with app.app_context():
        if not args.no_reset:
            db.drop_all()
            db.create_all()
            print("  Database reset complete\n")

        project, users = seed_demo()
        print(f"  Project {project.id}: {project.name}")
        for p in project.phases:
            print(f"    {p.phase_order}. {p.name:.<28} {p.status:<12} {p.actual_progress}%")
        if args.tokens:
            print()
            for u in users:
                print(f"  {u.role:<11} {u.email:<22} {generate_access_token(u.id, u.role)}")


if __name__ == "__main__":
    main()
