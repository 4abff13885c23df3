import sys, os
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from utils.error_tracker import ErrorTracker
from utils.logger import Logger


def test_report_logs_traceback_with_context():
    messages = []
    logger = Logger.get_logger("tests.error_tracker")
    sink = logger.add(lambda msg: messages.append(msg.record["message"]), level="ERROR")
    try:
        try:
            raise RuntimeError("listener failure")
        except RuntimeError as e:
            ErrorTracker.report(e, logger, "Angle change listener failed")
    finally:
        logger.remove(sink)
    assert len(messages) == 1
    assert messages[0].startswith("Angle change listener failed: listener failure")
    assert "Traceback" in messages[0]
