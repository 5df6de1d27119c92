from datetime import datetime, timedelta, timezone

from cleancity.models import ReportStatus, SpamReason
from cleancity.services import abuse
from cleancity.services.abuse import check_cooldown, check_duplicate, check_spam, seconds_until_midnight

DEVICE = "device-abc"


def _fill_today(add_report, clock, count, device_id=DEVICE):
    # Spread earlier today, far apart so neither cooldown nor duplicate checks fire
    start = clock() - timedelta(hours=count + 1)
    for i in range(count):
        add_report(device_id=device_id, created_at=start + timedelta(hours=i), latitude=10.0 + i, longitude=20.0)


def test_no_prior_reports_passes(ctx):
    result = check_spam(ctx, DEVICE, 12.97, 77.59)
    assert result.is_spam is False
    assert result.reason is None
    assert result.retry_after_seconds is None


def test_ninth_report_of_the_day_is_allowed(ctx, add_report, clock):
    _fill_today(add_report, clock, 9)
    assert check_spam(ctx, DEVICE, 0.0, 0.0).is_spam is False


def test_tenth_report_of_the_day_hits_daily_limit(ctx, add_report, clock):
    _fill_today(add_report, clock, 10)
    result = check_spam(ctx, DEVICE, 0.0, 0.0)
    assert result.is_spam is True
    assert result.reason == SpamReason.DAILY_LIMIT
    # clock is at 12:00 UTC
    assert result.retry_after_seconds == 12 * 3600


def test_reports_from_yesterday_do_not_count(ctx, add_report, clock):
    yesterday = clock() - timedelta(days=1)
    for i in range(10):
        add_report(device_id=DEVICE, created_at=yesterday + timedelta(minutes=10 * i), latitude=10.0 + i)
    assert check_spam(ctx, DEVICE, 0.0, 0.0).is_spam is False


def test_daily_limit_takes_priority_over_cooldown(ctx, add_report, clock):
    _fill_today(add_report, clock, 9)
    add_report(device_id=DEVICE, created_at=clock() - timedelta(seconds=30), latitude=50.0)
    assert check_spam(ctx, DEVICE, 0.0, 0.0).reason == SpamReason.DAILY_LIMIT


def test_cooldown_active_at_299_seconds(ctx, add_report, clock):
    add_report(device_id=DEVICE, created_at=clock() - timedelta(seconds=299))
    result = check_spam(ctx, DEVICE, 0.0, 0.0)
    assert result.is_spam is True
    assert result.reason == SpamReason.COOLDOWN
    assert result.retry_after_seconds == 1


def test_cooldown_over_at_300_seconds(ctx, add_report, clock):
    add_report(device_id=DEVICE, created_at=clock() - timedelta(seconds=300))
    assert check_cooldown(ctx, DEVICE) == (False, None)
    assert check_spam(ctx, DEVICE, 0.0, 0.0).is_spam is False


def test_cooldown_wait_is_rounded_up(ctx, add_report, clock):
    add_report(device_id=DEVICE, created_at=clock() - timedelta(seconds=100, milliseconds=500))
    assert check_cooldown(ctx, DEVICE) == (True, 200)


def test_duplicate_within_radius(ctx, add_report, clock, origin, north_of):
    lat, lng = origin
    add_report(device_id="someone-else", created_at=clock() - timedelta(hours=1))
    result = check_spam(ctx, DEVICE, north_of(lat, 49.99), lng)
    assert result.is_spam is True
    assert result.reason == SpamReason.DUPLICATE
    assert result.retry_after_seconds is None


def test_duplicate_just_outside_radius(ctx, add_report, clock, origin, north_of):
    lat, lng = origin
    add_report(device_id="someone-else", created_at=clock() - timedelta(hours=1))
    assert check_duplicate(ctx, north_of(lat, 50.01), lng) is False


def test_duplicate_ignores_reports_older_than_window(ctx, add_report, clock, origin):
    lat, lng = origin
    add_report(device_id="someone-else", created_at=clock() - timedelta(hours=24, minutes=1))
    assert check_duplicate(ctx, lat, lng) is False


def test_duplicate_ignores_reports_no_longer_open(ctx, add_report, clock, origin):
    lat, lng = origin
    add_report(device_id="someone-else", created_at=clock() - timedelta(hours=1), status=ReportStatus.ASSIGNED)
    assert check_duplicate(ctx, lat, lng) is False


def test_seconds_until_midnight():
    now = datetime(2026, 3, 10, 23, 59, 30, tzinfo=timezone.utc)
    assert seconds_until_midnight(now, "UTC") == 30


def test_seconds_until_midnight_uses_local_calendar_day():
    # 20:00 UTC is 01:30 the next day in India
    now = datetime(2026, 3, 10, 20, 0, 0, tzinfo=timezone.utc)
    assert seconds_until_midnight(now, "Asia/Kolkata") == (22 * 3600 + 30 * 60)


def test_duplicate_exactly_at_radius(ctx, add_report, clock, origin, monkeypatch):
    lat, lng = origin
    add_report(device_id="someone-else", created_at=clock() - timedelta(hours=1))
    monkeypatch.setattr(abuse, "calculate_distance_meters", lambda *args: 50.0)
    assert check_duplicate(ctx, lat, lng) is True
    monkeypatch.setattr(abuse, "calculate_distance_meters", lambda *args: 50.000001)
    assert check_duplicate(ctx, lat, lng) is False
