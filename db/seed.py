# Insert Default Factory Zones
import logging

from sqlalchemy import func
from sqlmodel import Session, select

from models.zone import Zone

logger = logging.getLogger(__name__)

DEFAULT_ZONES = [
    Zone(
        id=1,
        name="TSA Garment Factory - Main",
        address="Industrial Area, Kathmandu, Nepal",
        latitude=27.7172,
        longitude=85.3240,
        radius_meters=500.0,
        active=True,
    ),
    Zone(
        id=2,
        name="TSA Garment Factory - Branch",
        address="Patan Industrial Area, Nepal",
        latitude=27.7100,
        longitude=85.3300,
        radius_meters=300.0,
        active=True,
    ),
    Zone(
        id=3,
        name="TSA Warehouse",
        address="Bhaktapur Industrial Zone, Nepal",
        latitude=27.7050,
        longitude=85.3350,
        radius_meters=200.0,
        active=False,  # Can be activated/deactivated
    ),
]


def seed_default_zones(session: Session) -> int:
    """Install the default zones into an empty table. Returns how many were added."""
    existing = session.exec(select(func.count()).select_from(Zone)).one()
    if existing:
        logger.info(f"{existing} zone(s) already configured, skipping seed")
        return 0

    for zone in DEFAULT_ZONES:
        session.add(Zone.model_validate(zone))
    session.commit()
    logger.info(f"Seeded {len(DEFAULT_ZONES)} default zones")
    return len(DEFAULT_ZONES)


if __name__ == "__main__":
    from db.session import engine

    logging.basicConfig(level=logging.INFO)
    with Session(engine) as session:
        seed_default_zones(session)
