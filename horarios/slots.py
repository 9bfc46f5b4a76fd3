"""
Construcción de la grilla de periodos a partir de la jornada laboral.

Cada día se divide en periodos de ``period_duration`` minutos separados por
``break_duration``. El periodo que pisaría el almuerzo se reemplaza por un
periodo de almuerzo (no asignable) y la jornada continúa al terminar éste.
Los tramos de laboratorio son corridas contiguas de periodos lectivos que no
cruzan el almuerzo.
"""
from dataclasses import dataclass, replace
from typing import List, Optional, Tuple

from .config import WorkingHours
from .exceptions import ConfigurationError

DAY_SHORT_MAP = {
    "mon": "Monday",
    "tue": "Tuesday",
    "wed": "Wednesday",
    "thu": "Thursday",
    "fri": "Friday",
    "sat": "Saturday",
    "sun": "Sunday",
}

NOON = 12 * 60


def normalize_day(value: str) -> str:
    key = str(value).strip().lower()
    return DAY_SHORT_MAP.get(key[:3], str(value).strip().capitalize())


def parse_time_to_minutes(value: str) -> int:
    try:
        hours, minutes = str(value).strip().split(":")[:2]
        total = int(hours) * 60 + int(minutes)
    except ValueError as exc:
        raise ConfigurationError(f"Hora inválida: {value!r}") from exc
    if not 0 <= total <= 24 * 60:
        raise ConfigurationError(f"Hora fuera de rango: {value!r}")
    return total


def minutes_to_time(value: int) -> str:
    return f"{value // 60:02d}:{value % 60:02d}"


@dataclass(frozen=True)
class Period:
    index: int
    start: int   # minutos desde medianoche
    end: int
    is_lunch: bool = False


@dataclass(frozen=True)
class DayGrid:
    name: str
    periods: Tuple[Period, ...]

    @property
    def key(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class SlotGrid:
    days: Tuple[DayGrid, ...]
    slot_minutes: int
    lab_span_length: int
    lab_spans: Tuple[Tuple[int, int], ...]
    lunch_start: Optional[int] = None

    @property
    def n_days(self) -> int:
        return len(self.days)

    @property
    def n_periods(self) -> int:
        return max(len(d.periods) for d in self.days)

    def teaching_indices(self, day: int) -> List[int]:
        return [p.index for p in self.days[day].periods if not p.is_lunch]

    def is_contiguous(self, day: int, start: int, length: int) -> bool:
        periods = self.days[day].periods
        if length <= 0 or start < 0 or start + length > len(periods):
            return False
        return not any(p.is_lunch for p in periods[start:start + length])

    def spans(self, length: int) -> List[Tuple[int, int]]:
        """Todos los (día, periodo inicial) con ``length`` periodos lectivos seguidos."""
        return [
            (d, s)
            for d in range(self.n_days)
            for s in range(len(self.days[d].periods))
            if self.is_contiguous(d, s, length)
        ]

    def span_times(self, day: int, start: int, length: int) -> Tuple[int, int]:
        periods = self.days[day].periods
        last = min(start + length, len(periods)) - 1
        return periods[start].start, periods[last].end

    def is_afternoon(self, day: int, start: int) -> bool:
        boundary = self.lunch_start if self.lunch_start is not None else NOON
        return self.days[day].periods[start].start >= boundary

    def hours_to_periods(self, hours: float) -> int:
        return max(1, int(hours * 60 // self.slot_minutes))

    def day_index(self, name: str) -> Optional[int]:
        target = normalize_day(name)
        for i, d in enumerate(self.days):
            if d.name == target:
                return i
        return None


def _build_periods(
    start: int,
    end: int,
    period: int,
    gap: int,
    max_periods: int,
    lunch: Optional[Tuple[int, int]],
) -> List[Period]:
    periods: List[Period] = []
    cursor = start
    teaching = 0
    lunch_done = lunch is None
    while teaching < max_periods and cursor + period <= end:
        stop = cursor + period
        if not lunch_done and cursor < lunch[1] and stop > lunch[0]:
            periods.append(Period(len(periods), max(cursor, lunch[0]), lunch[1], is_lunch=True))
            cursor = lunch[1]
            lunch_done = True
            continue
        periods.append(Period(len(periods), cursor, stop))
        teaching += 1
        cursor = stop + gap
    while periods and periods[-1].is_lunch:
        periods.pop()
    return periods


def build_slot_grid(wh: WorkingHours) -> SlotGrid:
    start = parse_time_to_minutes(wh.start_time)
    end = parse_time_to_minutes(wh.end_time)
    if end <= start:
        raise ConfigurationError(
            "La hora de fin debe ser posterior a la de inicio",
            {"start_time": wh.start_time, "end_time": wh.end_time},
        )
    period = int(wh.period_duration)
    gap = int(wh.break_duration)
    if period <= 0 or gap < 0:
        raise ConfigurationError(
            "Duraciones de periodo/descanso inválidas",
            {"period_duration": wh.period_duration, "break_duration": wh.break_duration},
        )

    lunch = None
    if wh.lunch_break_start and wh.lunch_break_end:
        lunch = (parse_time_to_minutes(wh.lunch_break_start), parse_time_to_minutes(wh.lunch_break_end))
        if lunch[1] <= lunch[0]:
            raise ConfigurationError("El almuerzo debe terminar después de empezar")

    names: List[str] = []
    for raw in wh.working_days or []:
        name = normalize_day(raw)
        if name not in names:
            names.append(name)
    if not names:
        raise ConfigurationError("No hay días laborables configurados")

    periods = _build_periods(start, end, period, gap, int(wh.max_periods_per_day), lunch)
    if not any(not p.is_lunch for p in periods):
        raise ConfigurationError(
            "La jornada no admite ningún periodo lectivo",
            {"start_time": wh.start_time, "end_time": wh.end_time, "period_duration": period},
        )

    slot_minutes = period + gap
    lab_len = max(1, int(round(int(wh.lab_period_duration) / slot_minutes)))
    days = tuple(DayGrid(name=n, periods=tuple(periods)) for n in names)
    grid = SlotGrid(
        days=days,
        slot_minutes=slot_minutes,
        lab_span_length=lab_len,
        lab_spans=(),
        lunch_start=lunch[0] if lunch else None,
    )
    return replace(grid, lab_spans=tuple(grid.spans(lab_len)))
