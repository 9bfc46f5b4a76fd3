import logging
import os
import random
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import nullcontext
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .config import Settings
from .domains import Problem
from .evaluation import EvaluationResult, FitnessEvaluator
from .initial_population import build_initial_population
from .model import Schedule
from .operators import course_crossover, mutate, tournament_select
from .progress import ProgressReporter

logger = logging.getLogger(__name__)


class EnginePhase(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    EVALUATING = "evaluating"
    EVOLVING = "evolving"
    TERMINATED = "terminated"


class StopReason(str, Enum):
    MAX_GENERATIONS = "max_generations"
    TARGET_REACHED = "target_reached"
    STAGNATION = "stagnation"
    CANCELLED = "cancelled"
    DEADLINE = "deadline"


@dataclass
class EvolutionOutcome:
    best: Schedule
    result: EvaluationResult
    generations_run: int
    stop_reason: StopReason
    history: List[Dict] = field(default_factory=list)


class GeneticSolver:
    def __init__(
        self,
        problem: Problem,
        settings: Settings,
        rng: Optional[random.Random] = None,
        reporter: Optional[ProgressReporter] = None,
        cancel_event: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
    ):
        self.problem = problem
        self.settings = settings
        self.rng = rng or random.Random(settings.seed)
        self.reporter = reporter or ProgressReporter(None)
        self.cancel_event = cancel_event
        self.deadline = deadline  # instante de time.monotonic()
        self.evaluator = FitnessEvaluator(problem, settings)
        self.phase = EnginePhase.IDLE
        self.history: List[Dict] = []

    def initial_population(self) -> List[Schedule]:
        self.phase = EnginePhase.INITIALIZING
        return build_initial_population(self.problem, int(self.settings.population_size), self.rng)

    def evaluate_population(self, population: List[Schedule], executor=None) -> None:
        self.phase = EnginePhase.EVALUATING
        pending = list({id(s): s for s in population if not s.evaluated}.values())
        if executor is None:
            for ind in pending:
                self.evaluator.evaluate(ind)
        else:
            # map espera a que terminen todas las evaluaciones
            list(executor.map(self.evaluator.evaluate, pending))

    def next_generation(self, ranked: List[Schedule]) -> List[Schedule]:
        """Elitismo + selección por torneo, cruce y mutación."""
        self.phase = EnginePhase.EVOLVING
        cfg = self.settings
        size = int(cfg.population_size)
        # con un solo individuo no hay élite: la mutación siempre actúa
        n_elite = min(int(cfg.elite_size), size - 1, len(ranked))
        new_pop: List[Schedule] = list(ranked[:n_elite])
        can_cross = len(ranked) > 1

        while len(new_pop) < size:
            p1 = tournament_select(ranked, int(cfg.tournament_size), self.rng)
            if can_cross and self.rng.random() < cfg.crossover_rate:
                p2 = tournament_select(ranked, int(cfg.tournament_size), self.rng)
                child = course_crossover(p1, p2, self.problem, self.rng)
            else:
                child = p1
            child = mutate(child, self.problem, cfg.mutation_rate, self.rng)
            if child is p1:
                child = Schedule(list(p1.assignments), p1.fitness, p1.hard, p1.soft)
            new_pop.append(child)
        return new_pop

    def _stop_reason(self, generation: int, best: Schedule, stagnation: int) -> Optional[StopReason]:
        cfg = self.settings
        if generation >= int(cfg.max_generations):
            return StopReason.MAX_GENERATIONS
        if best.hard == 0 and best.soft <= cfg.target_soft_penalty:
            return StopReason.TARGET_REACHED
        if cfg.max_stagnation is not None and stagnation >= int(cfg.max_stagnation):
            return StopReason.STAGNATION
        if self.cancel_event is not None and self.cancel_event.is_set():
            return StopReason.CANCELLED
        if self.deadline is not None and time.monotonic() >= self.deadline:
            return StopReason.DEADLINE
        return None

    def evolve(self, population: Optional[List[Schedule]] = None) -> EvolutionOutcome:
        if population is None:
            population = self.initial_population()
        max_gen = int(self.settings.max_generations)
        workers = self.settings.workers or os.cpu_count() or 1
        pool = ThreadPoolExecutor(max_workers=workers) if workers > 1 else nullcontext()

        best: Optional[Schedule] = None
        stagnation = 0
        generation = 0
        with pool as executor:
            while True:
                self.evaluate_population(population, executor)
                ranked = sorted(population, key=lambda s: s.rank_key())
                leader = ranked[0]
                if best is None or leader.rank_key() < best.rank_key():
                    best = leader
                    stagnation = 0
                else:
                    stagnation += 1

                avg = sum(s.fitness for s in ranked) / len(ranked)
                self.history.append(
                    {
                        "generation": generation,
                        "best_fitness": best.fitness,
                        "generation_best": leader.fitness,
                        "avg_fitness": avg,
                        "best_hard": best.hard,
                        "best_soft": best.soft,
                    }
                )
                logger.debug(
                    "Gen %d: mejor=%.3f (duras=%d blandas=%.3f) promedio=%.3f",
                    generation, best.fitness, best.hard, best.soft, avg,
                )
                percent = 100.0 * generation / max_gen if max_gen else 100.0
                self.reporter.report(percent, EnginePhase.EVALUATING.value, generation, best.fitness)

                stop = self._stop_reason(generation, best, stagnation)
                if stop is not None:
                    break
                population = self.next_generation(ranked)
                generation += 1

        self.phase = EnginePhase.TERMINATED
        logger.info(
            "AG terminado en la generación %d (%s): fitness=%.3f duras=%d",
            generation, stop.value, best.fitness, best.hard,
        )
        return EvolutionOutcome(
            best=best,
            result=self.evaluator.compute(best),
            generations_run=generation,
            stop_reason=stop,
            history=self.history,
        )
