import logging
import threading
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from core.exceptions import AuditWriteError, LastZoneError, ZoneLimitReached, ZoneNotFound
from models.zone import Zone

logger = logging.getLogger(__name__)

# Single writer for every mutation that can change the active-zone count.
# Shared by all registries in the process so concurrent requests serialize.
# It does not reach across processes: with several workers, run zone admin
# against one worker or add row locking before relying on it.
_REGISTRY_WRITE_LOCK = threading.Lock()

UPDATABLE_FIELDS = {"name", "address", "latitude", "longitude", "radius_meters", "active"}
# Only address may be cleared
NULLABLE_FIELDS = {"address"}


class ZoneRegistry:
    """
    Configured factory zones.

    Guarantees that at least one zone stays active: a toggle or update that
    would deactivate the last active zone is reverted, and the sole remaining
    zone can never be deleted.
    """

    def __init__(
        self,
        session: Session,
        max_zones: int = 3,
        write_lock: Optional[threading.Lock] = None,
    ):
        self.session = session
        self.max_zones = max_zones
        self._lock = write_lock or _REGISTRY_WRITE_LOCK

    # --- Reads ---

    def list_zones(self) -> list[Zone]:
        return list(self.session.exec(select(Zone).order_by(Zone.id)).all())

    def list_active_zones(self) -> list[Zone]:
        statement = select(Zone).where(Zone.active == True).order_by(Zone.id)  # noqa: E712
        return list(self.session.exec(statement).all())

    def get_zone(self, zone_id: int) -> Zone:
        zone = self.session.get(Zone, zone_id)
        if not zone:
            raise ZoneNotFound(zone_id)
        return zone

    # --- Mutations ---

    def add_zone(
        self,
        name: str,
        latitude: float,
        longitude: float,
        radius_meters: float,
        address: Optional[str] = None,
        active: bool = True,
    ) -> Zone:
        with self._lock:
            zone_count = self.session.exec(select(func.count()).select_from(Zone)).one()
            if zone_count >= self.max_zones:
                raise ZoneLimitReached(self.max_zones)

            max_id = self.session.exec(select(func.max(Zone.id))).one()
            zone = Zone(
                id=(max_id or 0) + 1,
                name=name,
                address=address,
                latitude=latitude,
                longitude=longitude,
                radius_meters=radius_meters,
                active=active,
            )
            self.session.add(zone)
            self.session.flush()

            # A brand new inactive zone cannot be the only zone
            if not zone.active and self._active_count() == 0:
                zone.active = True
                logger.info(f"Zone {zone.id} forced active: no other active zones exist")

            self.session.commit()
            self.session.refresh(zone)

        logger.info(f"Added zone {zone.id} '{zone.name}' (radius {zone.radius_meters}m, active={zone.active})")
        return zone

    def update_zone(self, zone_id: int, patch: dict[str, Any]) -> Zone:
        unknown = set(patch) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update zone fields: {', '.join(sorted(unknown))}")
        cleared = sorted(k for k, v in patch.items() if v is None and k not in NULLABLE_FIELDS)
        if cleared:
            raise ValueError(f"Zone fields cannot be null: {', '.join(cleared)}")

        with self._lock:
            zone = self.get_zone(zone_id)
            try:
                for key, value in patch.items():
                    setattr(zone, key, value)
                self.session.add(zone)
                self.session.flush()

                if not zone.active and self._active_count() == 0:
                    zone.active = True
                    logger.warning(f"Zone {zone_id} kept active: it is the last active zone")

                self.session.commit()
                self.session.refresh(zone)
            except SQLAlchemyError as e:
                self.session.rollback()
                logger.exception(f"Failed to update zone {zone_id}")
                raise AuditWriteError("zone update", e) from e

        logger.info(f"Updated zone {zone_id}: {sorted(patch)}")
        return zone

    def toggle_zone(self, zone_id: int) -> Zone:
        with self._lock:
            zone = self.get_zone(zone_id)
            zone.active = not zone.active
            self.session.add(zone)
            self.session.flush()

            # Self-heal: turning off the last active zone is silently reverted
            if self._active_count() == 0:
                zone.active = True
                logger.warning(f"Toggle of zone {zone_id} reverted: it is the last active zone")

            self.session.commit()
            self.session.refresh(zone)

        logger.info(f"Zone {zone_id} is now {'active' if zone.active else 'inactive'}")
        return zone

    def delete_zone(self, zone_id: int) -> Zone:
        with self._lock:
            zone = self.get_zone(zone_id)

            zone_count = self.session.exec(select(func.count()).select_from(Zone)).one()
            if zone_count <= 1:
                raise LastZoneError(zone_id)

            deleted = Zone.model_validate(zone)
            self.session.delete(zone)
            self.session.flush()

            if self._active_count() == 0:
                replacement = self.session.exec(select(Zone).order_by(Zone.id)).first()
                replacement.active = True
                self.session.add(replacement)
                logger.warning(
                    f"Deleted zone {zone_id} was the last active zone; reactivated zone {replacement.id}"
                )

            self.session.commit()

        logger.info(f"Deleted zone {zone_id} '{deleted.name}'")
        return deleted

    def _active_count(self) -> int:
        statement = select(func.count()).select_from(Zone).where(Zone.active == True)  # noqa: E712
        return self.session.exec(statement).one()
