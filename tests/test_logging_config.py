"""Test logging setup, contextual fields and stage timing.

Tests for autoart.utils.logging_config and autoart.utils.profiler:
    - setup_logging is idempotent (no duplicated records)
    - JSON records carry context fields
    - push_context / pop_context
    - Human format includes the context block
    - Unknown log level rejected
    - timer() reports to a sink; StageTimings accumulates per stage

Run:
    pytest tests/test_logging_config.py -v
"""

import json
import logging
import logging.handlers

import pytest

from autoart.utils import logging_config, profiler


@pytest.fixture(autouse=True)
def clean_context():
    logging_config.pop_context()
    yield
    logging_config.pop_context()
    for handler in list(logging_config._installed_handlers):
        logging.getLogger().removeHandler(handler)
        handler.close()
    logging_config._installed_handlers.clear()


def test_logging_idempotency(tmp_path):
    log_path = tmp_path / "run.log"
    for _ in range(2):
        logging_config.setup_logging(
            log_level="INFO",
            log_file=str(log_path),
            json=True,
            to_stderr=False,
            context={"run": "test"},
        )
    logger = logging_config.get_logger("autoart.test")
    logger.info("hello")

    lines = log_path.read_text().strip().splitlines()
    assert len(lines) == 1
    rec = json.loads(lines[0])
    assert rec["msg"] == "hello"
    assert rec["run"] == "test"
    assert rec["lvl"] == "INFO"


def test_push_and_pop_context():
    logging_config.push_context(layer="FF0000", stage="paths")
    assert logging_config.current_context() == {"layer": "FF0000", "stage": "paths"}
    logging_config.pop_context(["stage"])
    assert logging_config.current_context() == {"layer": "FF0000"}
    logging_config.pop_context()
    assert logging_config.current_context() == {}


def test_human_format_includes_context():
    formatter = logging_config.ContextFormatter("human", use_color=False)
    record = logging.LogRecord("autoart", logging.WARNING, __file__, 1, "Chunked %d", (3,), None)
    logging_config.push_context(layer="00FF00")
    line = formatter.format(record)
    assert "WARNING" in line
    assert "layer=00FF00" in line
    assert line.endswith("Chunked 3")


def test_unknown_format_mode():
    with pytest.raises(ValueError):
        logging_config.ContextFormatter("xml")


def test_unknown_log_level():
    with pytest.raises(ValueError):
        logging_config.setup_logging(log_level="LOUD", to_stderr=False)


def test_rotating_file_handler(tmp_path):
    handlers = logging_config.setup_logging(
        log_file=str(tmp_path / "logs" / "r.log"),
        to_stderr=False,
        rotate={"max_bytes": 1024, "backup_count": 1},
    )
    assert len(handlers) == 1
    assert isinstance(handlers[0], logging.handlers.RotatingFileHandler)


def test_profiler_timer_sink():
    seen = []
    with profiler.timer("quantize", sink=lambda n, t: seen.append((n, t))):
        sum(range(1000))
    assert len(seen) == 1
    assert seen[0][0] == "quantize" and seen[0][1] >= 0.0


def test_profiler_timer_logs_without_sink(caplog):
    with caplog.at_level(logging.DEBUG, logger="autoart.utils.profiler"):
        with profiler.timer("layers"):
            pass
    assert "layers:" in caplog.text


def test_stage_timings_accumulate():
    timings = profiler.StageTimings()
    timings.add("paths", 0.5)
    timings.add("paths", 0.25)
    timings.add("optimize", 1.0)
    assert timings.total("paths") == pytest.approx(0.75)
    assert timings.count("paths") == 2
    assert timings.total("missing") == 0.0
    assert set(timings.as_dict()) == {"paths", "optimize"}
    assert "paths=0.750s" in repr(timings)
