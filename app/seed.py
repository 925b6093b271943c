from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db.session import session_scope
from app.models.unit_inventory import InventoryUnit
from app.services.user_service import UserService

# state_key -> (state_name, {area_key: (area_name, lat, long)})
CATALOG = {
    "karnataka": (
        "Karnataka",
        {
            "whitefield": ("Whitefield", 12.9698, 77.7500),
            "indiranagar": ("Indiranagar", 12.9784, 77.6408),
        },
    ),
    "maharashtra": (
        "Maharashtra",
        {
            "bandra": ("Bandra", 19.0596, 72.8295),
        },
    ),
}

SLOTS_PER_AREA = 25


def seed_inventory(db: Session, slots_per_area: int = SLOTS_PER_AREA) -> int:
    """Insert missing slots only; existing rows are left untouched."""
    existing = set(db.execute(select(InventoryUnit.unit_id)).scalars().all())
    created = 0

    for state_key, (state_name, areas) in CATALOG.items():
        for area_key, (area_name, lat, lng) in areas.items():
            for slot in range(1, slots_per_area + 1):
                unit_id = f"{state_key}_{area_key}_{slot:03d}"
                if unit_id in existing:
                    continue
                db.add(
                    InventoryUnit(
                        unit_id=unit_id,
                        state_key=state_key,
                        state_name=state_name,
                        area_key=area_key,
                        area_name=area_name,
                        slot_number=slot,
                        # small per-slot offset so plots don't stack on one pin
                        latitude=round(lat + slot * 0.0001, 6),
                        longitude=round(lng + slot * 0.0001, 6),
                    )
                )
                created += 1

    db.commit()
    return created


def seed():
    with session_scope() as db:
        created = seed_inventory(db)
        print(f"seeded {created} inventory unit(s)")

        users = UserService()
        if users.get_by_email(db, email="admin@worldtile.example.com") is None:
            users.register(db, name="WorldTile Admin", email="admin@worldtile.example.com", password="change-me-now")
            users.grant_admin(db, email="admin@worldtile.example.com")
        if users.get_by_email(db, email="demo@worldtile.example.com") is None:
            users.register(db, name="Demo Buyer", email="demo@worldtile.example.com", password="demo-password")


if __name__ == "__main__":
    seed()
