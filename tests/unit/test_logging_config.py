"""
Unit tests for log formatting and agent loggers.
"""

import json
import logging
import sys

from leadflow.logging_config import JSONFormatter, TextFormatter, get_agent_logger


def _record(msg="Signal recorded", **extra):
    record = logging.LogRecord("leadflow.intent.signals", logging.INFO, __file__, 10,
                               msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestFormatters:

    def test_json_includes_context(self):
        line = JSONFormatter().format(_record(subscriber_id="sub_1", attempt=2))
        entry = json.loads(line)
        assert entry["message"] == "Signal recorded"
        assert entry["logger"] == "leadflow.intent.signals"
        assert entry["subscriber_id"] == "sub_1"
        assert entry["attempt"] == 2
        assert entry["timestamp"].endswith("Z")
        assert "queue_id" not in entry

    def test_json_exception(self):
        try:
            raise ValueError("bad row")
        except ValueError:
            record = _record()
            record.exc_info = sys.exc_info()
        entry = json.loads(JSONFormatter().format(record))
        assert entry["exception"]["type"] == "ValueError"
        assert "bad row" in entry["exception"]["traceback"]

    def test_text_appends_context(self):
        line = TextFormatter().format(_record(agent_name="EmailQueueManager"))
        assert line.endswith("Signal recorded (agent_name=EmailQueueManager)")

    def test_text_without_context(self):
        line = TextFormatter().format(_record())
        assert line.endswith("INFO: Signal recorded")


class TestAgentLogger:

    def test_stamps_agent_name(self, caplog):
        logger = get_agent_logger("OfferPathwayAgent")
        with caplog.at_level(logging.INFO, logger="leadflow.agents"):
            logger.info("Computed", extra={"subscriber_id": "sub_9"})
        record = caplog.records[-1]
        assert record.name == "leadflow.agents.OfferPathwayAgent"
        assert record.agent_name == "OfferPathwayAgent"
        assert record.subscriber_id == "sub_9"
