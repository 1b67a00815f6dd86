from unittest.mock import MagicMock

import pytest

from vimmarch.config.models import UserSelection
from vimmarch.pipeline import RunResult, RunState
from vimmarch.report import UNAVAILABLE, Fact, ReportGenerator
from vimmarch.utils.executor import CommandResult

# ======= Execute with: pytest tests/test_report.py ========

OUTPUTS = {
    "hostnamectl": CommandResult("hostnamectl", 0, " Static hostname: archbox\n"),
    "lspci": CommandResult("lspci", 0, "00:02.0 Host bridge: Intel\n01:00.0 VGA compatible controller: AMD Navi 31\n"),
    "free": CommandResult("free -h", 127, "free: command not found"),
}


@pytest.fixture
def app(settings):
    app = MagicMock()
    app.settings = settings
    app.executor.run.side_effect = lambda description, command, quiet=False: OUTPUTS.get(
        command[0], CommandResult(" ".join(command), 0, "")
    )
    return app


@pytest.fixture
def chosen():
    return UserSelection.from_mapping({"cpu": "amd", "gpu": "amd", "laptop": "no", "steps": ["office", "coding"]})


def test_facts_are_collected_quietly(app, chosen):
    ReportGenerator(app).generate(None, chosen)

    for call in app.executor.run.call_args_list:
        assert call[1]["quiet"] is True


def test_report_contents(app, chosen):
    run_result = RunResult(errors=2, warnings=3, failed_tasks=["gaming"])
    run_result.finish(RunState.COMPLETED)

    text = ReportGenerator(app).generate(run_result, chosen)

    assert text.startswith("# Arch Linux Setup Report")
    assert "Static hostname: archbox" in text
    assert "VGA compatible controller: AMD Navi 31" in text
    assert "Host bridge" not in text
    assert "Errors: 2" in text
    assert "Warnings: 3" in text
    assert "Failed tasks: gaming" in text
    assert "Steps: coding, office" in text


def test_failed_fact_is_unavailable(app, chosen):
    text = ReportGenerator(app).generate(None, chosen)
    memory_section = text.split("## Memory Information\n", 1)[1]
    assert memory_section.startswith(UNAVAILABLE)


def test_empty_filtered_fact_is_unavailable(app):
    generator = ReportGenerator(app, facts=[])
    fact = Fact("Mount Points", ["mount"], lambda lines: [line for line in lines if line.startswith("/")])
    assert generator.collect(fact) == UNAVAILABLE


def test_report_file_is_written(app, chosen, settings):
    generator = ReportGenerator(app)
    text = generator.generate(None, chosen)

    assert generator.written
    assert settings.report_file.read_text(encoding="utf-8") == text


def test_write_failure_still_returns_text(app, chosen, settings):
    settings.home.joinpath("Desktop").write_text("not a directory", encoding="utf-8")
    generator = ReportGenerator(app)

    text = generator.generate(None, chosen)

    assert text.startswith("# Arch Linux Setup Report")
    assert not generator.written
    app.logger.warning.assert_called_once()
