"""
Excepciones del motor de horarios.

Solo los errores fatales de entrada son excepciones; la infactibilidad se
reporta en ``RunResult.success`` / ``RunResult.reason``.
"""
from typing import Any, Dict, Optional


class SchedulerError(Exception):
    """Clase base de los errores del motor."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(SchedulerError):
    """Configuración de jornada o parámetros del AG inválidos."""


class InsufficientDataError(SchedulerError):
    """Faltan docentes, aulas o cursos para poder generar un horario."""
