import json

from loguru import logger

from app.core.logger import setup_logger


def test_file_sink_writes_structured_lines(tmp_path):
    log_file = tmp_path / "logs" / "app.log"

    setup_logger(level="DEBUG", log_file=str(log_file))
    logger.info("[AGENT_WEBHOOK] test line", agent_type="data")
    logger.complete()

    lines = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]
    record = next(line["record"] for line in lines if "test line" in line["record"]["message"])
    assert record["extra"]["agent_type"] == "data"
    assert record["level"]["name"] == "INFO"
    logger.remove()
