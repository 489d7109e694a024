from conftest import MAIN_LAT, MAIN_LNG, sample_at
from models.location import Actor
from models.zone import Zone
from services.attempt_logger import AttemptLogger
from services.geofence_evaluator import evaluate
from services.location_stats import compute_stats

ZONES = [Zone(id=1, name="Main", latitude=MAIN_LAT, longitude=MAIN_LNG, radius_meters=500)]


def log_attempt(logger, actor_id, lat, lng=MAIN_LNG):
    sample = sample_at(lat, lng)
    return logger.record(Actor(actor_id=actor_id, actor_name=actor_id), sample, evaluate(sample, ZONES))


def test_empty_window_returns_zeros(session, clock):
    stats = compute_stats(session, window_days=30, clock=clock)

    assert stats.total_attempts == 0
    assert stats.valid_attempts == 0
    assert stats.invalid_attempts == 0
    assert stats.unique_actors == 0
    assert stats.average_distance_meters == 0
    assert stats.recent_violations == []


def test_counts_and_average(session, clock):
    logger = AttemptLogger(session, clock=clock)
    valid = log_attempt(logger, "op-1", MAIN_LAT)
    clock.advance(minutes=1)
    far = log_attempt(logger, "op-2", MAIN_LAT + 0.02)
    clock.advance(minutes=1)
    farther = log_attempt(logger, "op-2", MAIN_LAT + 0.03)

    stats = compute_stats(session, window_days=30, clock=clock)

    assert stats.total_attempts == 3
    assert stats.valid_attempts == 1
    assert stats.invalid_attempts == 2
    assert stats.unique_actors == 2
    expected = round((valid.distance_meters + far.distance_meters + farther.distance_meters) / 3)
    assert stats.average_distance_meters == expected
    # Newest first
    assert [v.id for v in stats.recent_violations] == [farther.id, far.id]
    assert [log.id for log in stats.latest_logs] == [farther.id, far.id, valid.id]


def test_window_excludes_old_attempts(session, clock):
    logger = AttemptLogger(session, clock=clock)
    log_attempt(logger, "op-old", MAIN_LAT + 0.02)
    clock.advance(days=10)
    log_attempt(logger, "op-new", MAIN_LAT)

    stats = compute_stats(session, window_days=7, clock=clock)
    assert stats.total_attempts == 1
    assert stats.unique_actors == 1
    assert stats.invalid_attempts == 0


def test_recent_violations_are_capped(session, clock):
    logger = AttemptLogger(session, clock=clock)
    for i in range(15):
        log_attempt(logger, f"op-{i}", MAIN_LAT + 0.02)
        clock.advance(seconds=30)

    stats = compute_stats(session, window_days=30, recent_violations_limit=10, clock=clock)
    assert stats.invalid_attempts == 15
    assert len(stats.recent_violations) == 10
