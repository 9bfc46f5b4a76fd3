"""
Codifica y decodifica el cromosoma.

Genotipo matricial (una fila por sesión, en orden de sesión):
Día | Inicio | Largo | Aula | Docente
con aula y docente como índices enteros del problema. Es la forma que usa la
evaluación vectorizada y el cruce. Para inspección se ofrece además la
representación en bits de cada gen, con anchos derivados del problema.
"""
from dataclasses import dataclass
from typing import List, Sequence

import numpy as np

from .domains import Problem
from .model import Assignment, Schedule

DAY, START, LENGTH, ROOM, TEACHER = range(5)
N_COLUMNS = 5


def encode(schedule: Schedule, problem: Problem) -> np.ndarray:
    rows = np.zeros((len(schedule.assignments), N_COLUMNS), dtype=np.int64)
    for i, a in enumerate(schedule.assignments):
        rows[i] = (
            a.day,
            a.start,
            a.length,
            problem.room_index[a.room_id],
            problem.teacher_index[a.teacher_id],
        )
    return rows


def decode(matrix: np.ndarray, problem: Problem) -> Schedule:
    room_ids = list(problem.rooms.keys())
    teacher_ids = list(problem.teachers.keys())
    assignments: List[Assignment] = []
    for idx, row in enumerate(matrix):
        assignments.append(
            Assignment(
                session=idx,
                day=int(row[DAY]),
                start=int(row[START]),
                length=int(row[LENGTH]),
                room_id=room_ids[int(row[ROOM])],
                teacher_id=teacher_ids[int(row[TEACHER])],
            )
        )
    return Schedule(assignments)


def _bits_for(n_values: int) -> int:
    return max(1, int(n_values - 1).bit_length())


def _to_bin(val: int, bits: int) -> str:
    return format(max(0, int(val)), f"0{bits}b")


@dataclass(frozen=True)
class BitWidths:
    day: int
    start: int
    length: int
    room: int
    teacher: int

    @classmethod
    def for_problem(cls, problem: Problem) -> "BitWidths":
        longest = max(s.length for s in problem.sessions)
        return cls(
            day=_bits_for(problem.grid.n_days),
            start=_bits_for(problem.grid.n_periods),
            length=_bits_for(longest + 1),
            room=_bits_for(len(problem.rooms)),
            teacher=_bits_for(len(problem.teachers)),
        )

    @property
    def total(self) -> int:
        return self.day + self.start + self.length + self.room + self.teacher


@dataclass(frozen=True)
class ChromosomeBits:
    day_bits: str
    start_bits: str
    length_bits: str
    room_bits: str
    teacher_bits: str

    def as_string(self) -> str:
        return (
            f"{self.day_bits}{self.start_bits}{self.length_bits}"
            f"{self.room_bits}{self.teacher_bits}"
        )


def row_to_bits(row: Sequence[int], widths: BitWidths) -> ChromosomeBits:
    return ChromosomeBits(
        day_bits=_to_bin(row[DAY], widths.day),
        start_bits=_to_bin(row[START], widths.start),
        length_bits=_to_bin(row[LENGTH], widths.length),
        room_bits=_to_bin(row[ROOM], widths.room),
        teacher_bits=_to_bin(row[TEACHER], widths.teacher),
    )


def bits_to_row(bits: str, widths: BitWidths) -> List[int]:
    clean = bits.replace(" ", "")
    if len(clean) != widths.total:
        raise ValueError(f"El gen debe tener {widths.total} bits")
    out: List[int] = []
    pos = 0
    for width in (widths.day, widths.start, widths.length, widths.room, widths.teacher):
        out.append(int(clean[pos:pos + width], 2))
        pos += width
    return out
