"""Cycle-phase math.

Phase boundaries follow fixed day thresholds: menstrual through the period
length, follicular through day 13, ovulatory through day 16, luteal to the end
of the cycle. The same function backs the current-phase snapshot, the 7-day
forecast injected into generation requests and the week-start rule.
"""
from datetime import date, timedelta
from typing import Optional

from ..schemas import CurrentPhase, PhaseForecastDay
from ..settings import settings

DEFAULT_CYCLE_LENGTH = 28
DEFAULT_PERIOD_LENGTH = 5
FOLLICULAR_END_DAY = 13
OVULATORY_END_DAY = 16

UNKNOWN_PHASE = CurrentPhase(
    phase="unknown",
    day_in_cycle=0,
    energy_level="moderate",
    days_remaining_in_phase=0,
)


def phase_for_day(day_in_cycle: int, cycle_length: int, period_length: int) -> CurrentPhase:
    """Map a 1-indexed cycle day to its phase, energy and days left in the phase."""
    if day_in_cycle <= period_length:
        phase, energy, phase_end = "menstrual", "low", period_length
    elif day_in_cycle <= FOLLICULAR_END_DAY:
        phase, energy, phase_end = "follicular", "building", FOLLICULAR_END_DAY
    elif day_in_cycle <= OVULATORY_END_DAY:
        phase, energy, phase_end = "ovulatory", "high", OVULATORY_END_DAY
    else:
        phase, energy, phase_end = "luteal", "declining", cycle_length

    return CurrentPhase(
        phase=phase,
        day_in_cycle=day_in_cycle,
        energy_level=energy,
        days_remaining_in_phase=phase_end - day_in_cycle + 1,
    )


def calculate_phase(
    last_period_date: Optional[date],
    today: date,
    cycle_length: Optional[int] = None,
    period_length: Optional[int] = None,
) -> CurrentPhase:
    """Current phase for `today`. No last period date -> conservative unknown phase."""
    if last_period_date is None:
        return UNKNOWN_PHASE.model_copy()

    cycle_length = cycle_length or DEFAULT_CYCLE_LENGTH
    period_length = period_length or DEFAULT_PERIOD_LENGTH

    days_since = (today - last_period_date).days
    # Python's modulo keeps a future-dated last period inside [1, L]
    day_in_cycle = (days_since % cycle_length) + 1
    return phase_for_day(day_in_cycle, cycle_length, period_length)


def forecast_phases(
    last_period_date: Optional[date],
    start: date,
    cycle_length: Optional[int] = None,
    period_length: Optional[int] = None,
    days: int = 7,
) -> list[PhaseForecastDay]:
    forecast = []
    for offset in range(days):
        day = start + timedelta(days=offset)
        current = calculate_phase(last_period_date, day, cycle_length, period_length)
        forecast.append(PhaseForecastDay(
            date=day,
            phase=current.phase,
            energy_level=current.energy_level,
            day_in_cycle=current.day_in_cycle,
        ))
    return forecast


def week_start_for(day: date, start_weekday: Optional[int] = None) -> date:
    """Most recent week start at or before `day`. The single canonical rule for plan weeks."""
    start_weekday = settings.week_start_weekday if start_weekday is None else start_weekday
    return day - timedelta(days=(day.weekday() - start_weekday) % 7)
