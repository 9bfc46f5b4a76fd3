import logging
import random
from dataclasses import replace
from typing import Dict, List, Sequence

import numpy as np

from .domains import Problem
from .encoding import decode, encode
from .initial_population import (
    choose_room,
    choose_start_for_teacher,
    choose_teacher_for_span,
    place_session,
)
from .model import Assignment, Schedule

logger = logging.getLogger(__name__)

MUTATION_TARGETS = ("slot", "room", "teacher")


def tournament_select(population: Sequence[Schedule], tournament_size: int, rng: random.Random) -> Schedule:
    """Toma una muestra uniforme y devuelve el de menor fitness."""
    k = max(1, min(tournament_size, len(population)))
    contenders = rng.sample(range(len(population)), k)
    return population[min(contenders, key=lambda i: population[i].rank_key())]


def _is_valid(problem: Problem, idx: int, a: Assignment) -> bool:
    grid = problem.grid
    return (
        a.session == idx
        and a.length == problem.sessions[idx].length
        and a.room_id in problem.rooms
        and a.teacher_id in problem.teachers
        and 0 <= a.day < grid.n_days
        and 0 <= a.start
        and a.start + a.length <= len(grid.days[a.day].periods)
    )


def repair_schedule(schedule: Schedule, problem: Problem, rng: random.Random) -> Schedule:
    """Garantiza una asignación válida por sesión.

    Las sesiones faltantes, duplicadas o fuera de la grilla se vuelven a
    ubicar con la misma rutina de la población inicial.
    """
    n = len(problem.sessions)
    kept: Dict[int, Assignment] = {}
    for a in schedule.assignments:
        if 0 <= a.session < n and a.session not in kept and _is_valid(problem, a.session, a):
            kept[a.session] = a
    if len(kept) == n and len(schedule.assignments) == n:
        return schedule
    logger.debug("Reparando %d sesiones", n - len(kept))
    genes: List[Assignment] = [
        kept[i] if i in kept else place_session(problem, i, rng) for i in range(n)
    ]
    return Schedule(genes)


def course_crossover(p1: Schedule, p2: Schedule, problem: Problem, rng: random.Random) -> Schedule:
    """Cruce por partición de cursos: los cursos sorteados vienen de ``p2``."""
    from_second = {cid for cid in problem.course_index if rng.random() < 0.5}
    mask = np.array([s.course_id in from_second for s in problem.sessions], dtype=bool)
    genes = np.where(mask[:, None], encode(p2, problem), encode(p1, problem))
    return repair_schedule(decode(genes, problem), problem, rng)


def mutate(schedule: Schedule, problem: Problem, mutation_rate: float, rng: random.Random) -> Schedule:
    """Re-sortea tramo, aula o docente de cada gen con probabilidad ``mutation_rate``.

    Devuelve un horario nuevo; si ningún gen cambió devuelve el mismo objeto.
    """
    genes = list(schedule.assignments)
    changed = False
    for i, a in enumerate(genes):
        if rng.random() >= mutation_rate:
            continue
        target = rng.choice(MUTATION_TARGETS)
        if target == "slot":
            day, start = choose_start_for_teacher(problem, i, a.teacher_id, rng)
            genes[i] = replace(a, day=day, start=start)
        elif target == "room":
            genes[i] = replace(a, room_id=choose_room(problem, i, rng))
        else:
            genes[i] = replace(a, teacher_id=choose_teacher_for_span(problem, i, a.day, a.start, rng))
        changed = True
    if not changed:
        return schedule
    return Schedule(genes)
