"""
Punto de entrada del motor: ``optimize(...)``.

Valida la entrada, arma la grilla y los dominios, corre el algoritmo genético
y construye el ``RunResult`` con el mejor horario y sus métricas. La
infactibilidad no es una excepción: se informa con ``success=False`` y un
``reason`` legible.
"""
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from .config import ConstraintRules, GeneralPolicies, Settings, WorkingHours
from .domains import Problem, build_problem
from .exceptions import InsufficientDataError
from .ga import EvolutionOutcome, GeneticSolver, StopReason
from .model import Assignment, Classroom, Course, Teacher
from .progress import ProgressCallback, ProgressReporter
from .slots import build_slot_grid, minutes_to_time

logger = logging.getLogger(__name__)


@dataclass
class RunMetrics:
    generations_run: int
    best_fitness: float
    hard_violation_count: int
    soft_penalty_total: float
    duration_ms: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generationsRun": self.generations_run,
            "bestFitness": self.best_fitness,
            "hardViolationCount": self.hard_violation_count,
            "softPenaltyTotal": self.soft_penalty_total,
            "durationMs": self.duration_ms,
        }


@dataclass
class RunResult:
    success: bool
    reason: Optional[str]
    schedule: List[Assignment]
    metrics: RunMetrics
    timetable: List[Dict[str, Any]] = field(default_factory=list)
    history: List[Dict[str, Any]] = field(default_factory=list)
    violations: List[str] = field(default_factory=list)
    hard_breakdown: Dict[str, int] = field(default_factory=dict)
    soft_breakdown: Dict[str, float] = field(default_factory=dict)
    stop_reason: Optional[str] = None
    cancelled: bool = False
    problem: Optional[Problem] = field(default=None, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "reason": self.reason,
            "schedule": [dict(row) for row in self.timetable],
            "metrics": self.metrics.to_dict(),
        }


def describe_schedule(assignments: Sequence[Assignment], problem: Problem) -> List[Dict[str, Any]]:
    grid = problem.grid
    rows: List[Dict[str, Any]] = []
    for a in assignments:
        sess = problem.sessions[a.session]
        begin, end = grid.span_times(a.day, a.start, a.length)
        rows.append(
            {
                "courseId": sess.course_id,
                "sessionType": sess.session_type,
                "occurrence": sess.occurrence,
                "day": grid.days[a.day].name,
                "startPeriod": a.start,
                "length": a.length,
                "startTime": minutes_to_time(begin),
                "endTime": minutes_to_time(end),
                "classroomId": a.room_id,
                "teacherId": a.teacher_id,
            }
        )
    return rows


def _failure_reason(outcome: EvolutionOutcome) -> str:
    detail = ", ".join(f"{k}={v}" for k, v in outcome.result.hard_breakdown.items() if v)
    if outcome.stop_reason == StopReason.STAGNATION:
        lead = f"no conflict-free schedule found: search stagnated after {outcome.generations_run} generations"
    else:
        lead = "no conflict-free schedule found within generation budget"
    return f"{lead}; {outcome.result.hard} unresolved hard-constraint conflicts ({detail})"


def _build_reason(success: bool, outcome: EvolutionOutcome) -> Optional[str]:
    notes: List[str] = []
    if not success:
        notes.append(_failure_reason(outcome))
    if outcome.stop_reason == StopReason.CANCELLED:
        notes.append(f"run cancelled at generation {outcome.generations_run}; returning best schedule found so far")
    elif outcome.stop_reason == StopReason.DEADLINE:
        notes.append(f"deadline reached at generation {outcome.generations_run}; returning best schedule found so far")
    return "; ".join(notes) or None


def optimize(
    teachers: Sequence[Teacher],
    classrooms: Sequence[Classroom],
    courses: Sequence[Course],
    settings: Union[Settings, Mapping[str, Any], None] = None,
    on_progress: Optional[ProgressCallback] = None,
    *,
    working_hours: Union[WorkingHours, Mapping[str, Any], None] = None,
    policies: Union[GeneralPolicies, Mapping[str, Any], None] = None,
    rules: Union[ConstraintRules, Mapping[str, Any], None] = None,
    cancel_event: Optional[threading.Event] = None,
) -> RunResult:
    started = time.perf_counter()
    settings = Settings.from_dict(settings).validate()
    if not teachers or not classrooms or not courses:
        raise InsufficientDataError(
            "Se requieren docentes, aulas y cursos",
            {"teachers": len(teachers or []), "classrooms": len(classrooms or []), "courses": len(courses or [])},
        )

    grid = build_slot_grid(WorkingHours.from_dict(working_hours))
    problem = build_problem(
        teachers,
        classrooms,
        courses,
        grid,
        GeneralPolicies.from_dict(policies),
        ConstraintRules.from_dict(rules),
    )
    logger.info(
        "Iniciando AG: %d sesiones, %d docentes, %d aulas, %d días x %d periodos, población=%d generaciones=%d",
        len(problem.sessions), len(problem.teachers), len(problem.rooms),
        grid.n_days, grid.n_periods, settings.population_size, settings.max_generations,
    )

    deadline = None
    if settings.deadline_seconds is not None:
        deadline = time.monotonic() + float(settings.deadline_seconds)

    with ProgressReporter(
        on_progress, settings.async_progress, settings.progress_close_timeout
    ) as reporter:
        solver = GeneticSolver(
            problem,
            settings,
            reporter=reporter,
            cancel_event=cancel_event,
            deadline=deadline,
        )
        outcome = solver.evolve()

    best = outcome.best
    success = outcome.result.hard == 0
    metrics = RunMetrics(
        generations_run=outcome.generations_run,
        best_fitness=float(outcome.result.fitness),
        hard_violation_count=int(outcome.result.hard),
        soft_penalty_total=float(outcome.result.soft),
        duration_ms=int((time.perf_counter() - started) * 1000),
    )
    result = RunResult(
        success=success,
        reason=_build_reason(success, outcome),
        schedule=list(best.assignments),
        metrics=metrics,
        timetable=describe_schedule(best.assignments, problem),
        history=outcome.history,
        violations=outcome.result.violations,
        hard_breakdown=outcome.result.hard_breakdown,
        soft_breakdown=outcome.result.soft_breakdown,
        stop_reason=outcome.stop_reason.value,
        cancelled=outcome.stop_reason in (StopReason.CANCELLED, StopReason.DEADLINE),
        problem=problem,
    )
    if not success:
        logger.warning("Horario con conflictos: %s", result.reason)
    return result
