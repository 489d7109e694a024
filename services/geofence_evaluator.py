from typing import Iterable

from models.location import MAX_DISTANCE, LocationSample, Verdict, ZoneDistance
from models.zone import Zone
from utils.geofence import haversine_dist

DEFAULT_MIN_ACCURACY_M = 100


def evaluate(
    sample: LocationSample,
    zones: Iterable[Zone],
    min_accuracy: float = DEFAULT_MIN_ACCURACY_M,
) -> Verdict:
    """
    Check a location sample against the active zones.

    Zones are visited in id order and the first zone whose radius contains
    the sample wins, even if a later zone is closer. When nothing matches the
    verdict reports the nearest zone and its radius so the caller can explain
    how far off the user is.

    Accuracy is advisory only: an inaccurate sample inside a radius is still
    valid, it just carries is_accurate=False for the approver to see.
    """
    active = sorted((z for z in zones if z.active), key=lambda z: z.id)
    is_accurate = sample.accuracy_meters <= min_accuracy

    if not active:
        return Verdict(
            is_valid=False,
            distance_meters=MAX_DISTANCE,
            nearest_zone_id=None,
            allowed_radius=0,
            is_accurate=is_accurate,
            considered_zone_count=0,
        )

    distances = [
        (zone, haversine_dist(sample.latitude, sample.longitude, zone.latitude, zone.longitude))
        for zone in active
    ]
    zone_distances = [
        ZoneDistance(zone_id=zone.id, name=zone.name, distance_meters=round(distance))
        for zone, distance in distances
    ]

    nearest: Zone | None = None
    min_distance = float("inf")
    for zone, distance in distances:
        if distance < min_distance:
            nearest, min_distance = zone, distance

        if distance <= zone.radius_meters:
            return Verdict(
                is_valid=True,
                distance_meters=round(distance),
                nearest_zone_id=zone.id,
                nearest_zone_name=zone.name,
                allowed_radius=round(zone.radius_meters),
                is_accurate=is_accurate,
                considered_zone_count=len(active),
                zone_distances=zone_distances,
            )

    return Verdict(
        is_valid=False,
        distance_meters=round(min_distance),
        nearest_zone_id=nearest.id,
        nearest_zone_name=nearest.name,
        allowed_radius=round(nearest.radius_meters),
        is_accurate=is_accurate,
        considered_zone_count=len(active),
        zone_distances=zone_distances,
    )
