from __future__ import annotations

import io
import json
import os
import subprocess
import sys
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from datetime import date
from pathlib import Path
from unittest import mock

from openpyxl import Workbook

from sheet_gantt import __version__
from sheet_gantt.cli import (
    EXIT_COMMAND_ERROR,
    EXIT_EXPORT_FAILED,
    EXIT_PARSE_FAILED,
    EXIT_SUCCESS,
    main,
)
from sheet_gantt.errors import ExportIOError

ROOT = Path(__file__).resolve().parents[1]
CLI = [sys.executable, "-m", "sheet_gantt.cli"]
FIXED_STAMP = "20260301T010203Z"
FIXED_TODAY = "2024-01-05"


def run_cli(*args: str, cwd: Path = ROOT, env: dict[str, str] | None = None) -> subprocess.CompletedProcess[str]:
    merged_env = dict(os.environ)
    for key in ("GEMINI_API_KEY", "SHEET_GANTT_GEMINI_API_KEY"):
        merged_env.pop(key, None)
    merged_env["SHEET_GANTT_OUTPUT_STAMP"] = FIXED_STAMP
    merged_env["SHEET_GANTT_TODAY"] = FIXED_TODAY
    merged_env["SHEET_GANTT_REMOTE"] = "0"
    merged_env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(ROOT), merged_env.get("PYTHONPATH")]))
    if env:
        merged_env.update(env)
    return subprocess.run(
        [*CLI, *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        env=merged_env,
    )


def write_plan(path: Path) -> Path:
    wb = Workbook()
    ws = wb.active
    ws.append(["Owner", "Task Description", "Start Date", "End Date"])
    ws.append(["Ana", "Design", date(2024, 1, 1), date(2024, 1, 1)])
    ws.append(["Ben", "Build", "2024-01-02", "01/10/2024"])
    wb.save(path)
    return path


class SheetGanttCliTests(unittest.TestCase):
    def test_version(self):
        proc = run_cli("version")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertEqual(proc.stdout.strip(), __version__)

    def test_columns_json_suggests_selection(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            plan = write_plan(Path(tmpdir) / "plan.xlsx")
            proc = run_cli("columns", str(plan), "--json")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        payload = json.loads(proc.stdout)
        self.assertEqual(payload["contract"]["name"], "sheet_gantt.columns")
        self.assertEqual(payload["row_count"], 2)
        self.assertEqual(payload["selection"], {
            "description": "Task Description",
            "start_date": "Start Date",
            "end_date": "End Date",
        })

    def test_columns_human_output_goes_to_stderr(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            plan = write_plan(Path(tmpdir) / "plan.xlsx")
            proc = run_cli("columns", str(plan))
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertEqual(proc.stdout, "")
        self.assertIn("Start date: Start Date", proc.stderr)

    def test_tasks_json_normalizes_rows(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            plan = write_plan(Path(tmpdir) / "plan.xlsx")
            proc = run_cli("tasks", str(plan), "--json")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        payload = json.loads(proc.stdout)
        self.assertEqual(payload["tasks"], [
            {"id": "0", "name": "Design", "start": "2024-01-01", "end": "2024-01-01", "duration_days": 1},
            {"id": "1", "name": "Build", "start": "2024-01-02", "end": "2024-01-10", "duration_days": 9},
        ])
        self.assertEqual(payload["run_summary"]["metrics"]["order_corrections"], 0)

    def test_tasks_column_override_and_dayfirst(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            plan = write_plan(Path(tmpdir) / "plan.xlsx")
            proc = run_cli("tasks", str(plan), "--json", "--description", "Owner", "--dayfirst")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        tasks = json.loads(proc.stdout)["tasks"]
        self.assertEqual(tasks[0]["name"], "Ana")
        self.assertEqual(tasks[1]["end"], "2024-10-01")

    def test_unknown_override_column_returns_exit_1(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            plan = write_plan(Path(tmpdir) / "plan.xlsx")
            proc = run_cli("tasks", str(plan), "--start", "Nope")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("Column 'Nope' not found", proc.stderr)

    def test_export_to_explicit_path(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            plan = write_plan(Path(tmpdir) / "plan.xlsx")
            output = Path(tmpdir) / "chart.xlsx"
            proc = run_cli("export", str(plan), "-o", str(output), "--title", "Roadmap", "--json")
            self.assertEqual(proc.returncode, 0, proc.stderr)
            self.assertTrue(output.exists())
        payload = json.loads(proc.stdout)
        self.assertEqual(payload["contract"]["name"], "sheet_gantt.export_summary")
        self.assertEqual(payload["run_summary"]["output_file"], str(output))
        self.assertEqual(payload["settings"]["title"], "Roadmap")
        self.assertEqual(payload["run_summary"]["metrics"]["tasks_out"], 2)

    def test_export_default_output_directory(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            workdir = Path(tmpdir)
            plan = write_plan(workdir / "plan.xlsx")
            proc = run_cli("export", str(plan), cwd=workdir)
            self.assertEqual(proc.returncode, 0, proc.stderr)
            expected = workdir / "sheet-gantt-output" / f"plan-{FIXED_STAMP}" / "gantt_chart.xlsx"
            self.assertTrue(expected.exists())
            self.assertIn("Gantt workbook:", proc.stderr)

    def test_export_refuses_to_overwrite_without_force(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            plan = write_plan(Path(tmpdir) / "plan.xlsx")
            output = Path(tmpdir) / "chart.xlsx"
            output.write_bytes(b"keep me")
            proc = run_cli("export", str(plan), "-o", str(output))
            self.assertEqual(proc.returncode, 1)
            self.assertEqual(output.read_bytes(), b"keep me")
            proc = run_cli("export", str(plan), "-o", str(output), "--force")
            self.assertEqual(proc.returncode, 0, proc.stderr)

    def test_unreadable_input_returns_exit_2(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            broken = Path(tmpdir) / "broken.xlsx"
            broken.write_bytes(b"not a workbook")
            proc = run_cli("tasks", str(broken))
        self.assertEqual(proc.returncode, 2)
        self.assertIn("not a readable spreadsheet", proc.stderr)

    def test_missing_input_returns_exit_1(self):
        proc = run_cli("tasks", "does-not-exist.xlsx")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("File not found", proc.stderr)

    def test_invalid_buffer_returns_exit_1(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            plan = write_plan(Path(tmpdir) / "plan.xlsx")
            proc = run_cli("export", str(plan), "-o", str(Path(tmpdir) / "c.xlsx"), "--buffer-days", "99")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("buffer_days", proc.stderr)

    def test_bad_arguments_return_exit_1(self):
        proc = run_cli("export")
        self.assertEqual(proc.returncode, 1)

    def test_config_init_refuses_overwrite(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "sheet-gantt.json"
            first = run_cli("config", "init", "--path", str(config_path))
            self.assertEqual(first.returncode, 0, first.stderr)
            self.assertEqual(json.loads(config_path.read_text())["buffer_days"], 3)
            second = run_cli("config", "init", "--path", str(config_path))
            self.assertEqual(second.returncode, 1)
            self.assertIn("Refusing to overwrite", second.stderr)

    def test_config_file_is_applied(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            plan = write_plan(Path(tmpdir) / "plan.xlsx")
            config_path = Path(tmpdir) / "sheet-gantt.json"
            config_path.write_text(json.dumps({"dayfirst": True}), encoding="utf-8")
            proc = run_cli("tasks", str(plan), "--json", "--config", str(config_path))
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertEqual(json.loads(proc.stdout)["tasks"][1]["end"], "2024-10-01")


class SheetGanttCliInProcessTests(unittest.TestCase):
    def run_main(self, *args: str) -> tuple[int, str, str]:
        stdout, stderr = io.StringIO(), io.StringIO()
        env = {"SHEET_GANTT_TODAY": FIXED_TODAY, "SHEET_GANTT_REMOTE": "0", "SHEET_GANTT_OUTPUT_STAMP": FIXED_STAMP}
        with mock.patch.dict(os.environ, env), redirect_stdout(stdout), redirect_stderr(stderr):
            code = main(list(args))
        return code, stdout.getvalue(), stderr.getvalue()

    def test_export_failure_returns_exit_3(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            plan = write_plan(Path(tmpdir) / "plan.xlsx")
            with mock.patch("sheet_gantt.cli.export_tasks", side_effect=ExportIOError("disk full")):
                code, _, stderr = self.run_main("export", str(plan), "-o", str(Path(tmpdir) / "c.xlsx"))
        self.assertEqual(code, EXIT_EXPORT_FAILED)
        self.assertIn("disk full", stderr)

    def test_non_xlsx_output_is_rejected(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            plan = write_plan(Path(tmpdir) / "plan.xlsx")
            code, _, stderr = self.run_main("export", str(plan), "-o", str(Path(tmpdir) / "chart.csv"))
        self.assertEqual(code, EXIT_COMMAND_ERROR)
        self.assertIn(".xlsx", stderr)

    def test_header_only_sheet_is_a_parse_failure(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "empty.xlsx"
            wb = Workbook()
            wb.active.append(["Task", "Start", "End"])
            wb.save(path)
            code, stdout, _ = self.run_main("tasks", str(path), "--json")
        self.assertEqual(code, EXIT_PARSE_FAILED)
        self.assertEqual(stdout, "")

    def test_tasks_human_output(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            plan = write_plan(Path(tmpdir) / "plan.xlsx")
            code, stdout, stderr = self.run_main("tasks", str(plan))
        self.assertEqual(code, EXIT_SUCCESS)
        self.assertEqual(stdout, "")
        self.assertIn("2024-01-02 -> 2024-01-10  (9d)  Build", stderr)


if __name__ == "__main__":
    unittest.main()
