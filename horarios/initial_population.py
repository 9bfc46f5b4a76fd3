# horarios/initial_population.py
import random
from typing import List, Tuple

from .domains import Problem
from .model import Assignment, Schedule


def choose_start_for_teacher(
    problem: Problem, idx: int, teacher_id: str, rng: random.Random
) -> Tuple[int, int]:
    dom = problem.domains[idx]
    return rng.choice(dom.starts_by_teacher.get(teacher_id) or dom.starts)


def choose_teacher_for_span(
    problem: Problem, idx: int, day: int, start: int, rng: random.Random
) -> str:
    dom = problem.domains[idx]
    length = problem.sessions[idx].length
    available = [t for t in dom.teacher_ids if problem.is_available(t, day, start, length)]
    return rng.choice(available or dom.teacher_ids)


def choose_room(problem: Problem, idx: int, rng: random.Random) -> str:
    return rng.choice(problem.domains[idx].room_ids)


def place_session(problem: Problem, idx: int, rng: random.Random) -> Assignment:
    """Ubica una sesión en un tramo, aula y docente compatibles.

    Si ningún docente elegible está disponible en algún tramo, se usa la
    opción menos mala: un tramo cualquiera con un docente elegible.
    """
    sess = problem.sessions[idx]
    dom = problem.domains[idx]
    feasible = dom.feasible_teachers
    if feasible:
        teacher_id = rng.choice(feasible)
        day, start = rng.choice(dom.starts_by_teacher[teacher_id])
    else:
        day, start = rng.choice(dom.starts)
        teacher_id = rng.choice(dom.teacher_ids)
    return Assignment(
        session=idx,
        day=day,
        start=start,
        length=sess.length,
        room_id=choose_room(problem, idx, rng),
        teacher_id=teacher_id,
    )


def build_random_schedule(problem: Problem, rng: random.Random) -> Schedule:
    return Schedule([place_session(problem, i, rng) for i in range(len(problem.sessions))])


def build_initial_population(problem: Problem, pop_size: int, rng: random.Random) -> List[Schedule]:
    return [build_random_schedule(problem, rng) for _ in range(pop_size)]
