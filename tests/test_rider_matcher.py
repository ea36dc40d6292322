# tests/test_rider_matcher.py
from datetime import timedelta

from fakes import NOW, make_rider
from services.rider_matcher import active_since, is_eligible, rank_riders, select_nearest_rider

PICKUP = (6.5000, 3.3500)
CUTOFF = active_since(NOW, 120)

# roughly 5, 2 and 8 km north of the pickup point
KM_PER_DEG_LAT = 111.195


def rider_at_km(rider_id, km, **kwargs):
    return make_rider(rider_id, lat=PICKUP[0] + km / KM_PER_DEG_LAT, lng=PICKUP[1], **kwargs)


def test_active_since_is_window_before_now():
    assert active_since(NOW, 120) == NOW - timedelta(minutes=2)


def test_nearest_rider_is_selected():
    riders = [rider_at_km("R5", 5), rider_at_km("R2", 2), rider_at_km("R8", 8)]

    chosen = select_nearest_rider(riders, *PICKUP, cutoff=CUTOFF)

    assert chosen.rider.id == "R2"
    assert abs(chosen.distance_km - 2.0) < 0.01


def test_ranking_orders_by_distance():
    riders = [rider_at_km("R5", 5), rider_at_km("R2", 2), rider_at_km("R8", 8)]

    ranked = rank_riders(riders, *PICKUP, cutoff=CUTOFF)

    assert [c.rider.id for c in ranked] == ["R2", "R5", "R8"]


def test_empty_pool_selects_nobody():
    assert select_nearest_rider([], *PICKUP, cutoff=CUTOFF) is None


def test_ineligible_riders_are_skipped():
    riders = [
        rider_at_km("busy", 0.1, available=False),
        rider_at_km("stale", 0.2, seen_seconds_ago=121),
        make_rider("no-lat", lat=None),
        make_rider("no-lng", lng=None),
        rider_at_km("ok", 4),
    ]

    chosen = select_nearest_rider(riders, *PICKUP, cutoff=CUTOFF)

    assert chosen.rider.id == "ok"


def test_rider_without_last_seen_is_not_eligible():
    rider = make_rider("R1")
    rider.last_seen_at = None
    assert not is_eligible(rider, CUTOFF)


def test_equidistant_riders_keep_input_order():
    riders = [rider_at_km("first", 3), rider_at_km("second", 3)]

    chosen = select_nearest_rider(riders, *PICKUP, cutoff=CUTOFF)

    assert chosen.rider.id == "first"


def test_excluded_rider_is_never_selected():
    riders = [rider_at_km("R1", 1), rider_at_km("R2", 2)]

    chosen = select_nearest_rider(riders, *PICKUP, cutoff=CUTOFF, exclude_rider_id="R1")

    assert chosen.rider.id == "R2"


def test_rider_with_nan_position_is_dropped():
    riders = [make_rider("nan", lat=float("nan")), rider_at_km("R2", 2)]

    ranked = rank_riders(riders, *PICKUP, cutoff=CUTOFF)

    assert [c.rider.id for c in ranked] == ["R2"]


def test_rider_on_the_far_side_of_the_globe_is_ranked_last():
    pickup = (0.08, 0.0)
    riders = [make_rider("FAR", lat=-0.08, lng=180.0), make_rider("NEAR", lat=0.09, lng=0.0)]

    ranked = rank_riders(riders, *pickup, cutoff=CUTOFF)

    assert [c.rider.id for c in ranked] == ["NEAR", "FAR"]
    assert ranked[1].distance_km > 20000
