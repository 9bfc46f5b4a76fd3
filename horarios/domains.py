# horarios/domains.py
import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

from .config import ConstraintRules, GeneralPolicies
from .exceptions import ConfigurationError, InsufficientDataError
from .model import (
    PRACTICAL,
    SESSION_TYPES,
    THEORY,
    Classroom,
    Course,
    SessionInstance,
    Teacher,
)
from .slots import SlotGrid, normalize_day, parse_time_to_minutes

logger = logging.getLogger(__name__)

FULL_DAY: Tuple[int, int] = (0, 24 * 60)

_TYPE_ALIASES = {
    "lab": PRACTICAL,
    "laboratory": PRACTICAL,
    "practice": PRACTICAL,
    "lecture": THEORY,
}


def normalize_session_type(value: str) -> str:
    key = str(value).strip().lower()
    key = _TYPE_ALIASES.get(key, key)
    if key not in SESSION_TYPES:
        logger.warning("Tipo de sesión desconocido %r; se trata como teoría", value)
        return THEORY
    return key


@dataclass(frozen=True)
class SessionDomain:
    teacher_ids: List[str]
    primary_ids: FrozenSet[str]
    room_ids: List[str]
    starts: List[Tuple[int, int]]
    # (día, inicio) donde cada docente está disponible para todo el tramo
    starts_by_teacher: Dict[str, List[Tuple[int, int]]] = field(default_factory=dict)
    degraded: bool = False

    @property
    def feasible_teachers(self) -> List[str]:
        return [t for t in self.teacher_ids if self.starts_by_teacher.get(t)]


@dataclass(frozen=True)
class Problem:
    """Entrada congelada de una corrida: grilla, sesiones y sus dominios."""
    grid: SlotGrid
    sessions: List[SessionInstance]
    domains: List[SessionDomain]
    teachers: Dict[str, Teacher]
    rooms: Dict[str, Classroom]
    courses: Dict[str, Course]
    windows: Dict[str, List[Optional[Tuple[int, int]]]]
    policies: GeneralPolicies
    rules: ConstraintRules
    teacher_index: Dict[str, int]
    room_index: Dict[str, int]
    course_index: Dict[str, int]

    def is_available(self, teacher_id: str, day: int, start: int, length: int) -> bool:
        return is_window_available(self.windows, self.grid, teacher_id, day, start, length)

    def can_teach_alone(self, course_id: str, teacher_id: str) -> bool:
        for et in self.courses[course_id].eligible_teachers:
            if et.teacher_id == teacher_id:
                return et.can_teach_alone
        return True


def build_session_instances(courses: Sequence[Course]) -> List[SessionInstance]:
    sessions: List[SessionInstance] = []
    for course in courses:
        for spec in course.sessions:
            per_week = int(spec.per_week)
            if per_week <= 0:
                continue
            for occ in range(1, per_week + 1):
                sessions.append(
                    SessionInstance(
                        index=len(sessions),
                        course_id=course.id,
                        session_type=normalize_session_type(spec.type),
                        occurrence=occ,
                        occurrences=per_week,
                        length=max(1, int(spec.duration)),
                        enrolled=int(course.enrolled_students),
                    )
                )
    return sessions


def teacher_windows(
    teachers: Sequence[Teacher], grid: SlotGrid
) -> Dict[str, List[Optional[Tuple[int, int]]]]:
    """Ventana (inicio, fin) en minutos por docente y día; None = no disponible."""
    windows: Dict[str, List[Optional[Tuple[int, int]]]] = {}
    for t in teachers:
        if not t.availability:
            windows[t.id] = [FULL_DAY] * grid.n_days
            continue
        per_day: List[Optional[Tuple[int, int]]] = []
        # "Monday", "mon" y "monday" apuntan al mismo día
        by_day = {normalize_day(k).lower(): v for k, v in t.availability.items()}
        for day in grid.days:
            slot = by_day.get(day.key)
            if slot is None or not slot.available:
                per_day.append(None)
                continue
            start = parse_time_to_minutes(slot.start_time) if slot.start_time else FULL_DAY[0]
            end = parse_time_to_minutes(slot.end_time) if slot.end_time else FULL_DAY[1]
            per_day.append((start, end))
        windows[t.id] = per_day
    return windows


def is_window_available(
    windows: Dict[str, List[Optional[Tuple[int, int]]]],
    grid: SlotGrid,
    teacher_id: str,
    day: int,
    start: int,
    length: int,
) -> bool:
    per_day = windows.get(teacher_id)
    if per_day is None or per_day[day] is None:
        return False
    begin, end = grid.span_times(day, start, length)
    w_start, w_end = per_day[day]
    return w_start <= begin and end <= w_end


def _room_candidates(
    session: SessionInstance, rooms: Sequence[Classroom], buffer_pct: float
) -> Tuple[List[str], bool]:
    """Aulas compatibles, de mejor a peor nivel. El bool indica aula degradada."""
    kind_ok = [r for r in rooms if r.is_lab == session.is_lab]
    wanted = session.enrolled * (1.0 + float(buffer_pct) / 100.0)
    tiers = [
        [r for r in kind_ok if r.capacity >= wanted],
        [r for r in kind_ok if r.capacity >= session.enrolled],
    ]
    if not session.is_lab:
        # teoría en laboratorio no es una violación dura
        tiers.append([r for r in rooms if r.is_lab and r.capacity >= session.enrolled])
    for tier in tiers:
        if tier:
            return [r.id for r in tier], False
    pool = kind_ok or list(rooms)
    largest = max(r.capacity for r in pool)
    return [r.id for r in pool if r.capacity == largest], True


def _teacher_candidates(
    course: Course, teachers: Sequence[Teacher]
) -> Tuple[List[str], FrozenSet[str], bool]:
    known = {t.id for t in teachers}
    eligible = [et for et in course.eligible_teachers if et.teacher_id in known]
    if eligible:
        ids = list(dict.fromkeys(et.teacher_id for et in eligible))
        primary = frozenset(et.teacher_id for et in eligible if et.is_primary)
        return ids, primary, False
    subjects = {course.id, course.name}
    fallback = [
        t.id for t in teachers
        if t.department == course.department and subjects.intersection(t.subjects)
    ]
    fallback = fallback or [t.id for t in teachers if t.department == course.department]
    fallback = fallback or [t.id for t in teachers]
    return fallback, frozenset(), True


def build_session_domains(
    sessions: Sequence[SessionInstance],
    courses: Dict[str, Course],
    teachers: Sequence[Teacher],
    rooms: Sequence[Classroom],
    grid: SlotGrid,
    windows: Dict[str, List[Optional[Tuple[int, int]]]],
    policies: GeneralPolicies,
) -> List[SessionDomain]:
    domains: List[SessionDomain] = []
    spans_cache: Dict[int, List[Tuple[int, int]]] = {}

    for sess in sessions:
        course = courses[sess.course_id]
        teacher_ids, primary, teacher_fallback = _teacher_candidates(course, teachers)
        room_ids, room_fallback = _room_candidates(sess, rooms, policies.min_room_capacity_buffer)

        if sess.length not in spans_cache:
            if sess.length == grid.lab_span_length:
                spans_cache[sess.length] = list(grid.lab_spans)
            else:
                spans_cache[sess.length] = grid.spans(sess.length)
        starts = spans_cache[sess.length]
        span_fallback = not starts
        if span_fallback:
            # ningún tramo contiguo alcanza: se permite cruzar el almuerzo
            starts = [
                (d, s)
                for d in range(grid.n_days)
                for s in range(len(grid.days[d].periods) - sess.length + 1)
            ]

        by_teacher = {
            tid: [
                (d, s) for d, s in starts
                if is_window_available(windows, grid, tid, d, s, sess.length)
            ]
            for tid in teacher_ids
        }
        degraded = teacher_fallback or room_fallback or span_fallback
        if degraded:
            logger.warning(
                "Sesión %s sin opción totalmente compatible (docente=%s aula=%s tramo=%s)",
                sess.label, teacher_fallback, room_fallback, span_fallback,
            )
        domains.append(
            SessionDomain(
                teacher_ids=teacher_ids,
                primary_ids=primary,
                room_ids=room_ids,
                starts=starts,
                starts_by_teacher=by_teacher,
                degraded=degraded,
            )
        )
    return domains


def build_problem(
    teachers: Sequence[Teacher],
    classrooms: Sequence[Classroom],
    courses: Sequence[Course],
    grid: SlotGrid,
    policies: GeneralPolicies,
    rules: ConstraintRules,
) -> Problem:
    rooms = [r for r in classrooms if r.is_available]
    if not teachers or not rooms or not courses:
        raise InsufficientDataError(
            "Se requieren docentes, aulas disponibles y cursos",
            {"teachers": len(teachers), "classrooms": len(rooms), "courses": len(courses)},
        )

    sessions = build_session_instances(courses)
    if not sessions:
        raise InsufficientDataError("Ningún curso requiere sesiones semanales")

    longest_day = grid.n_periods
    too_long = [s.label for s in sessions if s.length > longest_day]
    if too_long:
        raise ConfigurationError(
            "Hay sesiones más largas que la jornada",
            {"sessions": too_long, "periods_per_day": longest_day},
        )

    for course in courses:
        if course.enrolled_students > policies.max_students_per_class:
            logger.warning(
                "Curso %s con %d estudiantes supera el máximo por clase (%d)",
                course.id, course.enrolled_students, policies.max_students_per_class,
            )

    course_map = {c.id: c for c in courses}
    windows = teacher_windows(teachers, grid)
    domains = build_session_domains(sessions, course_map, teachers, rooms, grid, windows, policies)

    teacher_map = {t.id: t for t in teachers}
    room_map = {r.id: r for r in rooms}
    return Problem(
        grid=grid,
        sessions=sessions,
        domains=domains,
        teachers=teacher_map,
        rooms=room_map,
        courses=course_map,
        windows=windows,
        policies=policies,
        rules=rules,
        teacher_index={tid: i for i, tid in enumerate(teacher_map)},
        room_index={rid: i for i, rid in enumerate(room_map)},
        course_index={cid: i for i, cid in enumerate(course_map)},
    )
