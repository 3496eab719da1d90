import pytest
from loguru import logger

from app.core.logger import setup_logger


@pytest.fixture
def restore_logger():
    yield
    setup_logger()


def test_file_sink_writes_tagged_lines(tmp_path, restore_logger):
    log_file = tmp_path / "logs" / "engine.log"

    setup_logger(level="INFO", log_file=str(log_file), service="worker")
    logger.info("Plan job claimed", job_id="job-1")
    logger.debug("Below the configured level")
    logger.complete()

    lines = log_file.read_text().splitlines()
    assert any("Logger initialized" in line for line in lines)
    [claimed] = [line for line in lines if "Plan job claimed" in line]
    assert "| worker |" in claimed
    assert "job-1" in claimed
    assert not any("Below the configured level" in line for line in lines)


def test_console_only_without_log_file(tmp_path, restore_logger):
    setup_logger(level="DEBUG")
    logger.debug("Console only")

    assert list(tmp_path.iterdir()) == []
