"""Seed database with a demo production chain and its first KPI."""
from kpi_planning.database import SessionLocal
from kpi_planning.models import ProductionChain, ProductionChainStep
from kpi_planning.auth import Actor
from kpi_planning.use_cases.kpi_records import create_kpi_use_case
from datetime import date
import uuid

DEMO_ADMIN = Actor(
    id=uuid.UUID('00000000-0000-0000-0000-000000000101'),
    role='admin',
    name='Demo Admin',
)


def _skip_notification(_payload) -> None:
    return None


def seed():
    """Seed database with demo data."""
    db = SessionLocal()

    try:
        chain = ProductionChain(
            id=uuid.UUID('00000000-0000-0000-0000-000000000001'),
            name="Demo video chain",
            status="active",
        )
        db.add(chain)
        db.flush()

        for order, title in enumerate(["Script", "Shooting", "Editing", "Publishing"], start=1):
            db.add(ProductionChainStep(chain_id=chain.id, step_order=order, title=title))
        db.commit()

        today = date.today()
        kpi = create_kpi_use_case(
            db=db,
            chain_id=chain.id,
            payload={"target_value": 40, "unit_label": "videos", "year": today.year, "month": today.month},
            actor=DEMO_ADMIN,
            notifier=_skip_notification,
        )

        print("✅ Database seeded successfully!")
        print(f"\nDemo chain: {chain.name} ({chain.id})")
        print(f"Demo KPI: {kpi.target_value} {kpi.unit_label} over {len(kpi.weeks or [])} week(s)")

    except Exception as e:
        db.rollback()
        print(f"❌ Error seeding database: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed()
