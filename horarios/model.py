# horarios/model.py
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

DayIdx = int
PeriodIdx = int

THEORY = "theory"
PRACTICAL = "practical"
TUTORIAL = "tutorial"
SESSION_TYPES = (THEORY, PRACTICAL, TUTORIAL)

LECTURE = "lecture"
LAB = "lab"


@dataclass(frozen=True)
class DayAvailability:
    available: bool = True
    start_time: Optional[str] = None   # "HH:MM"; None = inicio de jornada
    end_time: Optional[str] = None


@dataclass(frozen=True)
class Teacher:
    id: str
    name: str = ""
    department: str = ""
    subjects: Tuple[str, ...] = ()
    # clave: día ("monday", "Monday" o "mon"); vacío = disponible toda la jornada
    availability: Dict[str, DayAvailability] = field(default_factory=dict)


@dataclass(frozen=True)
class Classroom:
    id: str
    capacity: int
    kind: str = LECTURE       # "lecture" | "lab"
    status: str = "available"

    @property
    def is_lab(self) -> bool:
        return self.kind == LAB

    @property
    def is_available(self) -> bool:
        return self.status == "available"


@dataclass(frozen=True)
class SessionSpec:
    type: str             # "theory" | "practical" | "tutorial"
    per_week: int
    duration: int = 1     # en periodos


@dataclass(frozen=True)
class EligibleTeacher:
    teacher_id: str
    is_primary: bool = False
    can_teach_alone: bool = True


@dataclass(frozen=True)
class Course:
    id: str
    name: str = ""
    department: str = ""
    sessions: Tuple[SessionSpec, ...] = ()
    enrolled_students: int = 0
    eligible_teachers: Tuple[EligibleTeacher, ...] = ()


@dataclass(frozen=True)
class SessionInstance:
    # Unidad de asignación: "curso C, teoría, ocurrencia 2 de 3"
    index: int
    course_id: str
    session_type: str
    occurrence: int
    occurrences: int
    length: int
    enrolled: int

    @property
    def is_lab(self) -> bool:
        return self.session_type == PRACTICAL

    @property
    def label(self) -> str:
        return f"{self.course_id} {self.session_type} {self.occurrence}/{self.occurrences}"


@dataclass(frozen=True)
class Assignment:
    # Un "gen" = una sesión ubicada en (día, periodo inicial, largo, aula, docente)
    session: int
    day: DayIdx
    start: PeriodIdx
    length: int
    room_id: str
    teacher_id: str

    @property
    def periods(self) -> range:
        return range(self.start, self.start + self.length)

    def overlaps(self, other: "Assignment") -> bool:
        return (
            self.day == other.day
            and self.start < other.start + other.length
            and other.start < self.start + self.length
        )


@dataclass
class Schedule:
    """Cromosoma: una asignación por instancia de sesión, en orden de sesión."""
    assignments: List[Assignment]
    fitness: Optional[float] = None
    hard: int = 0
    soft: float = 0.0

    def __len__(self) -> int:
        return len(self.assignments)

    @property
    def evaluated(self) -> bool:
        return self.fitness is not None

    def rank_key(self) -> Tuple[float, int, float]:
        # Menor es mejor; empates por duras y luego blandas.
        return (
            self.fitness if self.fitness is not None else float("inf"),
            self.hard,
            self.soft,
        )

    def copy(self) -> "Schedule":
        return Schedule(list(self.assignments))
