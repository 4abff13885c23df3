import sys, os
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from utils.logger import Logger, ThrottledLogger


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def capture():
    records = []
    logger = Logger.get_logger("tests.logger")
    sink = logger.add(lambda msg: records.append(msg.record["message"]), level="DEBUG")
    return logger, records, sink


def test_throttled_logger_limits_repeats():
    logger, records, sink = capture()
    clock = FakeClock()
    throttled = ThrottledLogger(logger, period=5.0, clock=clock)
    try:
        assert throttled.info("Calibration disabled")
        clock.now = 4.9
        assert not throttled.info("Calibration disabled")
        assert throttled.warning("Other message")
        clock.now = 5.0
        assert throttled.info("Calibration disabled")
    finally:
        logger.remove(sink)
    assert records == ["Calibration disabled", "Other message", "Calibration disabled"]


def test_throttled_logger_reset():
    logger, records, sink = capture()
    throttled = ThrottledLogger(logger, period=60.0, clock=FakeClock())
    try:
        throttled.info("message", key="k")
        throttled.reset()
        assert throttled.info("message again", key="k")
    finally:
        logger.remove(sink)
    assert records == ["message", "message again"]


def test_log_file_follows_configuration(tmp_path):
    try:
        Logger.configure(log_dir=tmp_path, to_file=True)
        log_file = Logger.get_log_file()
        assert log_file is not None
        assert log_file.parent == tmp_path
        Logger.configure(to_file=False)
        assert Logger.get_log_file() is None
    finally:
        Logger.configure()
