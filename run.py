import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

import pandas as pd

from horarios.config import load_config
from horarios.data_loader import build_entities, load_data
from horarios.encoding import BitWidths, encode, row_to_bits
from horarios.engine import RunResult, optimize
from horarios.exceptions import SchedulerError
from horarios.model import Schedule


def print_progress(progress, phase, generation, fitness):
    fit = f"{fitness:.3f}" if fitness is not None else "N/A"
    print(f"PROGRESO: {progress:5.1f}% - {phase} (Gen: {generation}, Fitness: {fit})")


def print_chromosome_representation(result: RunResult, limit: int = 20):
    problem = result.problem
    widths = BitWidths.for_problem(problem)
    rows = encode(Schedule(result.schedule), problem)
    print("\n" + "=" * 80)
    print("REPRESENTACIÓN DE CROMOSOMA - ETIQUETA + BITS")
    print(
        f"BITS: Día({widths.day}) Inicio({widths.start}) Largo({widths.length}) "
        f"Aula({widths.room}) Docente({widths.teacher})"
    )
    print("=" * 80)
    for i, row in enumerate(rows):
        if i >= limit:
            break
        etiqueta = problem.sessions[i].label
        print(f"{etiqueta:<28} {row_to_bits(row, widths).as_string()}")
    print("=" * 80 + "\n")


def export_outputs(result: RunResult, out_dir: Path):
    out_dir.mkdir(parents=True, exist_ok=True)
    pd.DataFrame(result.timetable).to_csv(out_dir / "schedule.csv", index=False)
    conflicts = pd.DataFrame(
        [{"tipo": name, "valor": value} for name, value in result.hard_breakdown.items()]
        + [{"tipo": f"blanda_{name}", "valor": value} for name, value in result.soft_breakdown.items()]
    )
    conflicts.to_csv(out_dir / "conflicts.csv", index=False)
    if result.history:
        pd.DataFrame(result.history).to_csv(out_dir / "history.csv", index=False)
    metrics = dict(result.metrics.to_dict(), success=result.success, reason=result.reason or "")
    pd.DataFrame([metrics]).to_csv(out_dir / "metrics.csv", index=False)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Ejecución end-to-end del AG de horarios")
    parser.add_argument("--config", default="config.yaml", help="Ruta al archivo de configuración")
    parser.add_argument("--data_dir", default="data", help="Directorio con los CSV de entrada")
    parser.add_argument("--out_dir", default="outputs", help="Directorio de salida")
    parser.add_argument("--department", default=None, help="Filtra los cursos por departamento")
    parser.add_argument("--seed", type=int, default=None, help="Semilla (sobrescribe la del config)")
    parser.add_argument("--log-level", default="INFO", help="Nivel de logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        cfg = load_config(args.config)
        settings = cfg.settings if args.seed is None else replace(cfg.settings, seed=args.seed)

        print("Cargando datos...")
        teachers, classrooms, courses = build_entities(load_data(args.data_dir))
        if args.department:
            courses = [c for c in courses if c.department == args.department]
        print(f"Datos: {len(teachers)} docentes, {len(classrooms)} aulas, {len(courses)} cursos")
        print(f"Generaciones: {settings.max_generations} | Población: {settings.population_size}")

        result = optimize(
            teachers,
            classrooms,
            courses,
            settings,
            print_progress,
            working_hours=cfg.working_hours,
            policies=cfg.policies,
            rules=cfg.rules,
        )
    except SchedulerError as exc:
        print(f"Error: {exc.message} {exc.details or ''}", file=sys.stderr)
        return 2

    m = result.metrics
    print("\n--- MEJOR SOLUCIÓN ---")
    print(
        f"Éxito: {result.success} | Fitness: {m.best_fitness:.3f} | Duras: {m.hard_violation_count} "
        f"| Blandas: {m.soft_penalty_total:.3f} | Tiempo: {m.duration_ms} ms | Generaciones: {m.generations_run}"
    )
    if result.reason:
        print(f"Motivo: {result.reason}")
    for line in result.violations[:20]:
        print(f"  - {line}")
    print_chromosome_representation(result)

    out_dir = Path(args.out_dir)
    export_outputs(result, out_dir)
    print(f"Se guardaron resultados en {out_dir}/schedule.csv y {out_dir}/metrics.csv")
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
