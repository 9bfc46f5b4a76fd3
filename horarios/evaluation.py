# horarios/evaluation.py
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import DefaultDict, Dict, Iterable, List, Mapping, Tuple

import numpy as np

from .config import GOAL_TERMS, SOFT_TERMS, Settings
from .domains import Problem
from .model import Assignment, Schedule

logger = logging.getLogger(__name__)

HARD_TERMS = (
    "teacher_conflict",
    "room_conflict",
    "capacity",
    "teacher_unavailable",
    "room_type",
)

# Tolerancia (puntos porcentuales) alrededor de la utilización preferida.
UTILIZATION_TOLERANCE = 20.0


@dataclass
class EvaluationResult:
    fitness: float
    hard: int
    soft: float
    hard_breakdown: Dict[str, int]
    soft_breakdown: Dict[str, float]
    teacher_hours: Dict[str, int]
    violations: List[str] = field(default_factory=list)


def resolve_term_weights(goals: Iterable[str], goal_weights: Mapping[str, float]) -> Dict[str, float]:
    """Peso de cada término blando según los objetivos activos.

    Cada objetivo activo pesa 1.0 salvo que ``goal_weights`` diga otra cosa;
    los términos de objetivos ausentes quedan en 0.
    """
    weights = {term: 0.0 for term in SOFT_TERMS}
    for goal in goals:
        name = str(goal).strip()
        weight = float(goal_weights.get(name, 1.0))
        if name in GOAL_TERMS:
            for term in GOAL_TERMS[name]:
                weights[term] = max(weights[term], weight)
        elif name in weights:
            weights[name] = max(weights[name], weight)
        else:
            logger.warning("Objetivo de optimización desconocido: %r", goal)
    return weights


def _term_enabled(term: str, problem: Problem) -> bool:
    pol, rules = problem.policies, problem.rules
    gates = {
        "max_consecutive_hours": pol.max_consecutive_hours > 0,
        "min_break": pol.min_break_between_sessions > 0,
        "max_daily_hours": True,
        "room_utilization": pol.preferred_classroom_utilization > 0,
        "morning_labs": bool(rules.prefer_morning_labs),
        "first_last_period": bool(pol.avoid_first_last_period),
        "friday_afternoon": bool(rules.avoid_friday_afternoon),
        "workload_balance": bool(rules.balance_workload),
        "teacher_continuity": bool(rules.maintain_teacher_continuity),
        "max_subjects_per_day": rules.max_subjects_per_day > 0,
        "back_to_back_labs": not pol.allow_back_to_back_labs,
        "lab_assistant": bool(pol.require_lab_assistant),
        "teacher_preference": bool(pol.prioritize_teacher_preferences),
    }
    return gates.get(term, False)


def _run_lengths(row: np.ndarray) -> List[int]:
    runs: List[int] = []
    current = 0
    for busy in row:
        if busy:
            current += 1
        elif current:
            runs.append(current)
            current = 0
    if current:
        runs.append(current)
    return runs


def _adjacent_pairs(items: List[Assignment]) -> Iterable[Tuple[Assignment, Assignment]]:
    ordered = sorted(items, key=lambda a: a.start)
    return zip(ordered, ordered[1:])


class FitnessEvaluator:
    """Puntúa horarios: ``W_hard * duras + W_soft * Σ blandas`` (menor es mejor)."""

    def __init__(self, problem: Problem, settings: Settings):
        self.problem = problem
        self.hard_weight = float(settings.hard_weight)
        self.soft_weight = float(settings.soft_weight)
        weights = resolve_term_weights(settings.optimization_goals, settings.goal_weights or {})
        self.term_weights = {
            term: w for term, w in weights.items() if w > 0 and _term_enabled(term, problem)
        }
        grid = problem.grid
        self.shape = (grid.n_days, grid.n_periods)
        self.consecutive_limit = grid.hours_to_periods(problem.policies.max_consecutive_hours)
        self.daily_limit = grid.hours_to_periods(
            min(problem.policies.max_daily_hours, problem.policies.max_teaching_hours_per_day)
        )
        self.friday = grid.day_index("Friday")
        # días en que cada docente tiene ventana; el balance solo mira esos
        self.available_days = np.array(
            [[w is not None for w in problem.windows[tid]] for tid in problem.teachers],
            dtype=bool,
        )

    def evaluate(self, schedule: Schedule) -> EvaluationResult:
        result = self.compute(schedule)
        schedule.fitness = result.fitness
        schedule.hard = result.hard
        schedule.soft = result.soft
        return result

    def compute(self, schedule: Schedule) -> EvaluationResult:
        problem = self.problem
        grid = problem.grid
        n_days, n_periods = self.shape

        # Matrices [entidad][día][periodo]
        teach = np.zeros((len(problem.teachers), n_days, n_periods), dtype=int)
        rooms = np.zeros((len(problem.rooms), n_days, n_periods), dtype=int)

        hard = dict.fromkeys(HARD_TERMS, 0)
        violations: List[str] = []

        for a in schedule.assignments:
            sess = problem.sessions[a.session]
            room = problem.rooms[a.room_id]
            end = min(a.start + a.length, n_periods)
            teach[problem.teacher_index[a.teacher_id], a.day, a.start:end] += 1
            rooms[problem.room_index[a.room_id], a.day, a.start:end] += 1

            if room.capacity < sess.enrolled:
                hard["capacity"] += 1
                violations.append(
                    f"Capacidad: {sess.label} ({sess.enrolled}) en aula {room.id} ({room.capacity})"
                )
            if not problem.is_available(a.teacher_id, a.day, a.start, a.length):
                hard["teacher_unavailable"] += 1
                violations.append(
                    f"Docente {a.teacher_id} no disponible para {sess.label} "
                    f"el {grid.days[a.day].name} periodo {a.start}"
                )
            if sess.is_lab and not room.is_lab:
                hard["room_type"] += 1
                violations.append(f"Práctica {sess.label} en aula no laboratorio {room.id}")

        hard["teacher_conflict"] = int(np.clip(teach - 1, 0, None).sum())
        hard["room_conflict"] = int(np.clip(rooms - 1, 0, None).sum())
        teacher_ids = list(problem.teachers.keys())
        room_ids = list(problem.rooms.keys())
        for t, d, p in np.argwhere(teach > 1):
            violations.append(
                f"Choque docente {teacher_ids[t]} el {grid.days[d].name} periodo {p}: {teach[t, d, p]} sesiones"
            )
        for r, d, p in np.argwhere(rooms > 1):
            violations.append(
                f"Choque aula {room_ids[r]} el {grid.days[d].name} periodo {p}: {rooms[r, d, p]} sesiones"
            )

        load = teach.sum(axis=2)
        soft_raw = self._soft_penalties(schedule, teach, load) if self.term_weights else {}
        soft = float(sum(self.term_weights[t] * v for t, v in soft_raw.items()))
        hard_total = int(sum(hard.values()))
        fitness = self.hard_weight * hard_total + self.soft_weight * soft

        return EvaluationResult(
            fitness=fitness,
            hard=hard_total,
            soft=soft,
            hard_breakdown=hard,
            soft_breakdown=soft_raw,
            teacher_hours={tid: int(load[i].sum()) for i, tid in enumerate(teacher_ids) if load[i].any()},
            violations=violations,
        )

    def _soft_penalties(self, schedule: Schedule, teach: np.ndarray, load: np.ndarray) -> Dict[str, float]:
        problem = self.problem
        grid = problem.grid
        pol = problem.policies
        active = self.term_weights
        out: Dict[str, float] = {term: 0.0 for term in active}

        by_teacher_day: DefaultDict[Tuple[str, int], List[Assignment]] = defaultdict(list)
        by_room_day: DefaultDict[Tuple[str, int], List[Assignment]] = defaultdict(list)
        by_course_day: DefaultDict[Tuple[str, int], List[Assignment]] = defaultdict(list)
        for a in schedule.assignments:
            by_teacher_day[(a.teacher_id, a.day)].append(a)
            by_room_day[(a.room_id, a.day)].append(a)
            by_course_day[(problem.sessions[a.session].course_id, a.day)].append(a)

        if "max_consecutive_hours" in out:
            busy = teach > 0
            for t, d in zip(*np.nonzero(busy.any(axis=2))):
                for run in _run_lengths(busy[t, d]):
                    out["max_consecutive_hours"] += max(0, run - self.consecutive_limit)

        if "max_daily_hours" in out:
            out["max_daily_hours"] = float(np.clip(load - self.daily_limit, 0, None).sum())

        if "workload_balance" in out:
            for i in np.flatnonzero(load.sum(axis=1) > 0):
                days = self.available_days[i]
                row = load[i][days] if days.any() else load[i]
                out["workload_balance"] += float(np.std(row))

        if "min_break" in out:
            for items in by_teacher_day.values():
                for a, b in _adjacent_pairs(items):
                    if a.overlaps(b):
                        continue
                    _, a_end = grid.span_times(a.day, a.start, a.length)
                    b_start, _ = grid.span_times(b.day, b.start, b.length)
                    if b_start - a_end < pol.min_break_between_sessions:
                        out["min_break"] += 1

        if "teacher_continuity" in out:
            for items in by_course_day.values():
                for a, b in _adjacent_pairs(items):
                    if b.start == a.start + a.length and a.teacher_id != b.teacher_id:
                        out["teacher_continuity"] += 1

        if "back_to_back_labs" in out:
            for groups in (by_teacher_day, by_room_day):
                for items in groups.values():
                    labs = [a for a in items if problem.sessions[a.session].is_lab]
                    for a, b in _adjacent_pairs(labs):
                        if b.start == a.start + a.length:
                            out["back_to_back_labs"] += 1

        if "max_subjects_per_day" in out:
            per_day: DefaultDict[int, set] = defaultdict(set)
            for course_id, day in by_course_day:
                per_day[day].add(course_id)
            limit = problem.rules.max_subjects_per_day
            out["max_subjects_per_day"] = float(sum(max(0, len(c) - limit) for c in per_day.values()))

        for a in schedule.assignments:
            sess = problem.sessions[a.session]
            dom = problem.domains[a.session]
            if "room_utilization" in out:
                capacity = problem.rooms[a.room_id].capacity
                utilization = 100.0 * sess.enrolled / capacity if capacity > 0 else 100.0
                deviation = abs(utilization - float(pol.preferred_classroom_utilization))
                out["room_utilization"] += max(0.0, deviation - UTILIZATION_TOLERANCE) / 100.0
            afternoon = grid.is_afternoon(a.day, a.start)
            if "morning_labs" in out and sess.is_lab and afternoon:
                out["morning_labs"] += 1
            if "friday_afternoon" in out and a.day == self.friday and afternoon:
                out["friday_afternoon"] += 1
            if "first_last_period" in out:
                teaching = grid.teaching_indices(a.day)
                if a.start == teaching[0] or a.start + a.length - 1 >= teaching[-1]:
                    out["first_last_period"] += 1
            if "lab_assistant" in out and sess.is_lab:
                if not problem.can_teach_alone(sess.course_id, a.teacher_id):
                    out["lab_assistant"] += 1
            if "teacher_preference" in out and dom.primary_ids and a.teacher_id not in dom.primary_ids:
                out["teacher_preference"] += 1

        return out
