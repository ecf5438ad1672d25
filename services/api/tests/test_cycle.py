import pytest
from datetime import date, timedelta

from lunaplan.planner.cycle import calculate_phase, forecast_phases, phase_for_day, week_start_for


@pytest.mark.parametrize("day,phase,energy,remaining", [
    (1, "menstrual", "low", 5),
    (5, "menstrual", "low", 1),
    (6, "follicular", "building", 8),
    (13, "follicular", "building", 1),
    (14, "ovulatory", "high", 3),
    (16, "ovulatory", "high", 1),
    (17, "luteal", "declining", 12),
    (28, "luteal", "declining", 1),
])
def test_phase_boundaries(day, phase, energy, remaining):
    current = phase_for_day(day, cycle_length=28, period_length=5)
    assert current.phase == phase
    assert current.energy_level == energy
    assert current.days_remaining_in_phase == remaining
    assert current.day_in_cycle == day


def test_ten_days_after_period_is_follicular():
    today = date(2026, 10, 18)
    current = calculate_phase(today - timedelta(days=10), today, cycle_length=28, period_length=5)

    assert current.day_in_cycle == 11
    assert current.phase == "follicular"
    assert current.energy_level == "building"
    assert current.days_remaining_in_phase == 3


def test_cycle_wraps_around():
    today = date(2026, 10, 18)
    # 28 days later is day 1 of the next cycle
    current = calculate_phase(today - timedelta(days=28), today, cycle_length=28, period_length=5)
    assert current.day_in_cycle == 1
    assert current.phase == "menstrual"


def test_no_last_period_is_unknown():
    current = calculate_phase(None, date(2026, 10, 18))
    assert current.phase == "unknown"
    assert current.day_in_cycle == 0
    assert current.energy_level == "moderate"
    assert current.days_remaining_in_phase == 0


def test_short_period_length_moves_follicular_start():
    current = phase_for_day(4, cycle_length=28, period_length=3)
    assert current.phase == "follicular"
    assert current.days_remaining_in_phase == 10


def test_forecast_uses_period_length():
    start = date(2026, 10, 18)
    forecast = forecast_phases(start, start, cycle_length=28, period_length=3)

    assert len(forecast) == 7
    assert [d.date for d in forecast] == [start + timedelta(days=i) for i in range(7)]
    assert [d.phase for d in forecast[:4]] == ["menstrual", "menstrual", "menstrual", "follicular"]


def test_forecast_without_history_is_all_unknown():
    forecast = forecast_phases(None, date(2026, 10, 18))
    assert {d.phase for d in forecast} == {"unknown"}


def test_week_start_is_sunday():
    sunday = date(2026, 10, 18)
    assert week_start_for(sunday) == sunday
    assert week_start_for(date(2026, 10, 21)) == sunday
    assert week_start_for(date(2026, 10, 24)) == sunday
    assert week_start_for(date(2026, 10, 25)) == date(2026, 10, 25)


def test_week_start_configurable():
    # Monday weeks
    assert week_start_for(date(2026, 10, 18), start_weekday=0) == date(2026, 10, 12)
