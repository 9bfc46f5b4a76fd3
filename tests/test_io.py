import tempfile
import textwrap
import unittest
from pathlib import Path

import pandas as pd

import run
from horarios.config import Settings, load_config
from horarios.data_loader import build_entities, load_data
from horarios.exceptions import ConfigurationError, InsufficientDataError

DATA_DIR = Path(__file__).resolve().parent.parent / "data"


class ConfigTests(unittest.TestCase):
    def test_camel_case_and_unknown_keys(self):
        settings = Settings.from_dict({"populationSize": 12, "mutation_rate": 0.3, "colorTheme": "dark"})
        self.assertEqual(settings.population_size, 12)
        self.assertEqual(settings.mutation_rate, 0.3)
        self.assertEqual(settings.max_generations, 100)

    def test_unknown_keys_warn_and_legacy_keys_do_not(self):
        with self.assertLogs("horarios.config", level="DEBUG") as logs:
            Settings.from_dict({"colorTheme": "dark", "allowSplitSessions": True})
        warnings = [r.getMessage() for r in logs.records if r.levelname == "WARNING"]
        debugs = [r.getMessage() for r in logs.records if r.levelname == "DEBUG"]
        self.assertTrue(any("colorTheme" in m for m in warnings))
        self.assertTrue(any("allowSplitSessions" in m for m in debugs))
        self.assertFalse(any("allowSplitSessions" in m for m in warnings))

    def test_missing_file_uses_defaults(self):
        cfg = load_config("no/existe/config.yaml")
        self.assertEqual(cfg.settings, Settings())
        self.assertEqual(cfg.working_hours.period_duration, 50)

    def test_yaml_sections(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.yaml"
            path.write_text(
                textwrap.dedent(
                    """
                    settings:
                      maxGenerations: 7
                      optimizationGoals: [teacher_workload]
                    working_hours:
                      periodDuration: 60
                    constraint_rules:
                      preferMorningLabs: false
                    """
                ),
                encoding="utf-8",
            )
            cfg = load_config(str(path))
        self.assertEqual(cfg.settings.max_generations, 7)
        self.assertEqual(cfg.settings.optimization_goals, ["teacher_workload"])
        self.assertEqual(cfg.working_hours.period_duration, 60)
        self.assertFalse(cfg.rules.prefer_morning_labs)

    def test_broken_yaml(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.yaml"
            path.write_text("settings: [1, 2\n", encoding="utf-8")
            with self.assertRaises(ConfigurationError):
                load_config(str(path))


class DataLoaderTests(unittest.TestCase):
    def test_sample_data(self):
        teachers, classrooms, courses = build_entities(load_data(str(DATA_DIR)))
        by_id = {t.id: t for t in teachers}
        self.assertIn("T01", by_id)
        self.assertFalse(by_id["T01"].availability["friday"].available)
        self.assertEqual(by_id["T02"].availability, {})
        self.assertIn("L201", {c.id for c in classrooms})
        ml = next(c for c in courses if c.id == "ML101")
        self.assertEqual(sum(s.per_week for s in ml.sessions), 4)
        self.assertTrue(any(et.is_primary for et in ml.eligible_teachers))

    def test_missing_files(self):
        with tempfile.TemporaryDirectory() as tmp:
            pd.DataFrame({"id": ["T1"]}).to_csv(Path(tmp) / "teachers.csv", index=False)
            with self.assertRaises(InsufficientDataError) as ctx:
                load_data(tmp)
        self.assertIn("classrooms.csv", ctx.exception.details["missing"])


class RunScriptTests(unittest.TestCase):
    def test_end_to_end(self):
        with tempfile.TemporaryDirectory() as tmp:
            cfg = Path(tmp) / "config.yaml"
            cfg.write_text("settings:\n  populationSize: 8\n  maxGenerations: 5\n  seed: 1\n", encoding="utf-8")
            out_dir = Path(tmp) / "out"
            code = run.main(
                ["--config", str(cfg), "--data_dir", str(DATA_DIR), "--out_dir", str(out_dir)]
            )
            self.assertIn(code, (0, 1))
            schedule = pd.read_csv(out_dir / "schedule.csv")
            metrics = pd.read_csv(out_dir / "metrics.csv")
        self.assertEqual(len(schedule), 12)
        self.assertLessEqual(int(metrics.loc[0, "generationsRun"]), 5)

    def test_bad_data_dir_exits_with_error(self):
        with tempfile.TemporaryDirectory() as tmp:
            code = run.main(["--config", str(Path(tmp) / "none.yaml"), "--data_dir", tmp, "--out_dir", tmp])
        self.assertEqual(code, 2)


if __name__ == "__main__":
    unittest.main()
