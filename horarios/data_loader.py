# horarios/data_loader.py
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Tuple

import pandas as pd

from .exceptions import InsufficientDataError
from .model import (
    Classroom,
    Course,
    DayAvailability,
    EligibleTeacher,
    SessionSpec,
    Teacher,
)

REQUIRED_FILES = (
    "teachers.csv",
    "classrooms.csv",
    "courses.csv",
    "course_sessions.csv",
    "course_teachers.csv",
)


@dataclass(frozen=True)
class DataBundle:
    teachers: pd.DataFrame
    availability: pd.DataFrame
    classrooms: pd.DataFrame
    courses: pd.DataFrame
    course_sessions: pd.DataFrame
    course_teachers: pd.DataFrame


def _read(path: Path) -> pd.DataFrame:
    # los identificadores siempre como texto
    return pd.read_csv(path, dtype={"id": str, "teacher_id": str, "course_id": str})


def load_data(data_dir: str) -> DataBundle:
    base = Path(data_dir)
    missing = [name for name in REQUIRED_FILES if not (base / name).exists()]
    if missing:
        raise InsufficientDataError(f"Faltan archivos de datos en {base}", {"missing": missing})

    availability_path = base / "availability.csv"
    availability = (
        _read(availability_path)
        if availability_path.exists()
        else pd.DataFrame(columns=["teacher_id", "day", "available", "start_time", "end_time"])
    )
    return DataBundle(
        teachers=_read(base / "teachers.csv"),
        availability=availability,
        classrooms=_read(base / "classrooms.csv"),
        courses=_read(base / "courses.csv"),
        course_sessions=_read(base / "course_sessions.csv"),
        course_teachers=_read(base / "course_teachers.csv"),
    )


def _as_bool(value: Any, default: bool) -> bool:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "si", "sí", "y")
    return bool(value)


def _as_text(value: Any) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    return str(value).strip()


def build_entities(bundle: DataBundle) -> Tuple[List[Teacher], List[Classroom], List[Course]]:
    """Convierte las tablas en entidades inmutables del modelo."""
    teachers_df = bundle.teachers
    if "status" in teachers_df.columns:
        teachers_df = teachers_df[teachers_df["status"].fillna("active").str.lower() == "active"]

    availability: Dict[str, Dict[str, DayAvailability]] = {}
    for r in bundle.availability.itertuples(index=False):
        day = _as_text(r.day).lower()
        availability.setdefault(_as_text(r.teacher_id), {})[day] = DayAvailability(
            available=_as_bool(getattr(r, "available", True), True),
            start_time=_as_text(getattr(r, "start_time", "")) or None,
            end_time=_as_text(getattr(r, "end_time", "")) or None,
        )

    teachers = [
        Teacher(
            id=_as_text(r.id),
            name=_as_text(getattr(r, "name", "")),
            department=_as_text(getattr(r, "department", "")),
            subjects=tuple(s.strip() for s in _as_text(getattr(r, "subjects", "")).split(";") if s.strip()),
            availability=availability.get(_as_text(r.id), {}),
        )
        for r in teachers_df.itertuples(index=False)
    ]

    classrooms = [
        Classroom(
            id=_as_text(r.id),
            capacity=int(r.capacity),
            kind=_as_text(getattr(r, "kind", "lecture")).lower() or "lecture",
            status=_as_text(getattr(r, "status", "available")).lower() or "available",
        )
        for r in bundle.classrooms.itertuples(index=False)
    ]

    sessions: Dict[str, List[SessionSpec]] = {}
    for r in bundle.course_sessions.itertuples(index=False):
        sessions.setdefault(_as_text(r.course_id), []).append(
            SessionSpec(type=_as_text(r.type), per_week=int(r.per_week), duration=int(r.duration))
        )

    eligible: Dict[str, List[EligibleTeacher]] = {}
    for r in bundle.course_teachers.itertuples(index=False):
        eligible.setdefault(_as_text(r.course_id), []).append(
            EligibleTeacher(
                teacher_id=_as_text(r.teacher_id),
                is_primary=_as_bool(getattr(r, "is_primary", False), False),
                can_teach_alone=_as_bool(getattr(r, "can_teach_alone", True), True),
            )
        )

    courses = [
        Course(
            id=_as_text(r.id),
            name=_as_text(getattr(r, "name", "")),
            department=_as_text(getattr(r, "department", "")),
            sessions=tuple(sessions.get(_as_text(r.id), [])),
            enrolled_students=int(r.enrolled_students),
            eligible_teachers=tuple(eligible.get(_as_text(r.id), [])),
        )
        for r in bundle.courses.itertuples(index=False)
    ]
    return teachers, classrooms, courses
