"""
Configuración del motor de horarios.

Parámetros del algoritmo genético (``Settings``), jornada laboral
(``WorkingHours``), políticas generales y reglas de restricciones. Todas son
dataclasses con valores por defecto documentados; se construyen desde
diccionarios con claves snake_case o camelCase e ignoran claves desconocidas.
Incluye un cargador desde YAML (o JSON) para dejar la ejecución reproducible.
"""
import json
import logging
import re
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


# Objetivos blandos: cada objetivo activa un grupo de términos de penalización.
GOAL_TERMS: Dict[str, List[str]] = {
    "minimize_conflicts": [],  # las restricciones duras siempre aplican
    "teacher_workload": [
        "max_consecutive_hours",
        "min_break",
        "max_daily_hours",
        "workload_balance",
    ],
    "room_utilization": ["room_utilization"],
    "time_preferences": ["morning_labs", "first_last_period", "friday_afternoon"],
    "teacher_satisfaction": ["teacher_continuity", "teacher_preference", "lab_assistant"],
    "student_experience": ["max_subjects_per_day", "back_to_back_labs"],
}

SOFT_TERMS: List[str] = [term for terms in GOAL_TERMS.values() for term in terms]

DEFAULT_GOALS: List[str] = list(GOAL_TERMS.keys())

SUPPORTED_ALGORITHMS = ("genetic",)

DEFAULT_WORKING_DAYS: List[str] = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday"]

# Claves heredadas del formulario web sin efecto en el motor.
LEGACY_KEYS = frozenset(
    {
        "allow_split_sessions",
        "allow_overlapping_labs",
        "prioritize_core_before",
        "group_similar_subjects",
        "prioritize_popular_slots",
        "min_gap_between_exams",
        "early_morning_start",
        "evening_end_time",
    }
)

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def to_snake_case(key: str) -> str:
    return _CAMEL_RE.sub("_", str(key)).lower()


def _merge(cls, data: Optional[Mapping[str, Any]]):
    """Construye ``cls`` sobre sus defaults; las claves desconocidas se ignoran."""
    if data is None:
        return cls()
    if isinstance(data, cls):
        return data
    if not isinstance(data, Mapping):
        raise ConfigurationError(
            f"{cls.__name__} debe ser un mapeo, no {type(data).__name__}"
        )
    merged = asdict(cls())
    for key, value in data.items():
        name = to_snake_case(key)
        if name in merged:
            merged[name] = value
        elif name in LEGACY_KEYS:
            logger.debug("Clave heredada %r ignorada en %s", key, cls.__name__)
        else:
            logger.warning("Clave desconocida %r ignorada en %s", key, cls.__name__)
    return cls(**merged)


@dataclass(frozen=True)
class Settings:
    # Algoritmo genético
    algorithm: str = "genetic"
    population_size: int = 50
    max_generations: int = 100
    crossover_rate: float = 0.8
    mutation_rate: float = 0.1
    optimization_goals: List[str] = field(default_factory=lambda: list(DEFAULT_GOALS))
    goal_weights: Dict[str, float] = field(default_factory=dict)
    elite_size: int = 1
    tournament_size: int = 3
    max_stagnation: Optional[int] = None
    target_soft_penalty: float = 0.0
    seed: Optional[int] = None

    # Pesos del fitness
    hard_weight: float = 1000.0
    soft_weight: float = 1.0

    # Ejecución
    workers: Optional[int] = None
    async_progress: bool = False
    progress_close_timeout: Optional[float] = None  # segundos; None = esperar toda la cola
    deadline_seconds: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Settings":
        return _merge(cls, data)

    def validate(self) -> "Settings":
        if self.algorithm not in SUPPORTED_ALGORITHMS:
            raise ConfigurationError(
                f"Algoritmo no soportado: {self.algorithm!r}",
                {"supported": list(SUPPORTED_ALGORITHMS)},
            )
        if int(self.population_size) < 1:
            raise ConfigurationError("populationSize debe ser >= 1")
        if int(self.max_generations) < 0:
            raise ConfigurationError("maxGenerations no puede ser negativo")
        for name in ("crossover_rate", "mutation_rate"):
            value = float(getattr(self, name))
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} debe estar en [0, 1]", {name: value})
        if int(self.tournament_size) < 1:
            raise ConfigurationError("tournament_size debe ser >= 1")
        if int(self.elite_size) < 0:
            raise ConfigurationError("elite_size no puede ser negativo")
        if self.max_stagnation is not None and int(self.max_stagnation) < 1:
            raise ConfigurationError("max_stagnation debe ser >= 1 o None")
        if self.workers is not None and int(self.workers) < 1:
            raise ConfigurationError("workers debe ser >= 1 o None")
        if self.progress_close_timeout is not None and float(self.progress_close_timeout) < 0:
            raise ConfigurationError("progress_close_timeout no puede ser negativo")
        if isinstance(self.optimization_goals, str):
            raise ConfigurationError("optimizationGoals debe ser una lista de nombres")
        return self


@dataclass(frozen=True)
class WorkingHours:
    start_time: str = "09:00"
    end_time: str = "17:00"
    lunch_break_start: Optional[str] = "12:30"
    lunch_break_end: Optional[str] = "13:30"
    period_duration: int = 50      # minutos
    break_duration: int = 10       # minutos entre periodos
    lab_period_duration: int = 120  # minutos
    working_days: List[str] = field(default_factory=lambda: list(DEFAULT_WORKING_DAYS))
    max_periods_per_day: int = 8

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "WorkingHours":
        return _merge(cls, data)


@dataclass(frozen=True)
class GeneralPolicies:
    max_consecutive_hours: int = 3
    max_daily_hours: int = 8
    min_break_between_sessions: int = 15  # minutos
    max_teaching_hours_per_day: int = 6
    preferred_classroom_utilization: float = 80.0  # %
    allow_back_to_back_labs: bool = False
    prioritize_teacher_preferences: bool = True
    max_students_per_class: int = 60
    min_room_capacity_buffer: float = 10.0  # % de asientos libres deseados
    avoid_first_last_period: bool = False
    require_lab_assistant: bool = True

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "GeneralPolicies":
        return _merge(cls, data)


@dataclass(frozen=True)
class ConstraintRules:
    max_subjects_per_day: int = 6
    prefer_morning_labs: bool = True
    avoid_friday_afternoon: bool = True
    balance_workload: bool = True
    maintain_teacher_continuity: bool = True

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ConstraintRules":
        return _merge(cls, data)


@dataclass(frozen=True)
class RunConfig:
    settings: Settings = field(default_factory=Settings)
    working_hours: WorkingHours = field(default_factory=WorkingHours)
    policies: GeneralPolicies = field(default_factory=GeneralPolicies)
    rules: ConstraintRules = field(default_factory=ConstraintRules)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RunConfig":
        sections = {to_snake_case(k): v for k, v in data.items()}
        return cls(
            settings=Settings.from_dict(sections.get("settings")),
            working_hours=WorkingHours.from_dict(sections.get("working_hours")),
            policies=GeneralPolicies.from_dict(sections.get("general_policies")),
            rules=ConstraintRules.from_dict(sections.get("constraint_rules")),
        )


def _load_yaml_or_json(path: Path) -> Any:
    if not path.exists():
        logger.info("No existe %s; se usan los valores por defecto", path)
        return {}
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            return json.loads(text) if text.strip() else {}
        return yaml.safe_load(text) or {}
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"No se pudo leer {path}: {exc}") from exc


def load_config(path: str = "config.yaml") -> RunConfig:
    data = _load_yaml_or_json(Path(path))
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} debe contener un objeto mapeo")
    return RunConfig.from_dict(data)
