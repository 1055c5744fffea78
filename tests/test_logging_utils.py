import io
import logging

from alice_oracle import logging_utils
from alice_oracle.jsonutil import loads
from alice_oracle.logging_utils import (
    JsonFormatter,
    configure_runtime_logging,
    setup_console_logging,
    warn_once_per,
)


def test_warn_once_per_throttles(caplog):
    log = logging.getLogger("alice_oracle.tests.throttle")
    with caplog.at_level(logging.WARNING, logger=log.name):
        assert warn_once_per(1.0, "upstream", "no data from %s", "dexscreener", logger=log)
        assert not warn_once_per(1.0, "upstream", "no data from %s", "dexscreener", logger=log)
        assert warn_once_per(1.0, "other", "no data from %s", "noaa", logger=log)
    assert caplog.text.count("no data from") == 2


def test_json_formatter_emits_extras():
    record = logging.LogRecord("alice_oracle.scan", logging.INFO, __file__, 10, "scan %d", (3,), None)
    record.candidates = 12
    payload = loads(JsonFormatter().format(record))
    assert payload["msg"] == "scan 3"
    assert payload["level"] == "INFO"
    assert payload["candidates"] == 12
    assert payload["ts"].endswith("Z")


def test_runtime_logging_writes_file(tmp_path):
    target = tmp_path / "logs" / "oracle.log"
    root = logging.getLogger()
    before = list(root.handlers)
    try:
        path = configure_runtime_logging(level="DEBUG", console=False, logfile=target)
        assert path == target.resolve()
        logging.getLogger("alice_oracle.tests").info("hello file")
        for handler in root.handlers:
            handler.flush()
        assert "hello file" in target.read_text(encoding="utf-8")
    finally:
        for handler in list(root.handlers):
            if handler not in before:
                root.removeHandler(handler)
                handler.close()
        root.setLevel(logging.WARNING)


def test_runtime_log_default_location():
    assert logging_utils.RUNTIME_LOG.name == "oracle.log"


def test_console_handler_targets_stderr_by_default(capsys):
    root = logging.getLogger()
    before, level = list(root.handlers), root.level
    try:
        configure_runtime_logging(level="INFO", console=True)
        logging.getLogger("alice_oracle.tests").info("to the console")
        captured = capsys.readouterr()
        assert "to the console" in captured.err
        assert captured.out == ""
    finally:
        for handler in list(root.handlers):
            if handler not in before:
                root.removeHandler(handler)
        root.setLevel(level)


def test_console_handler_follows_requested_stream():
    buf = io.StringIO()
    root = logging.getLogger()
    before, level = list(root.handlers), root.level
    try:
        first = setup_console_logging(stream=io.StringIO())
        handler = setup_console_logging(stream=buf)
        assert handler is not first
        assert first not in root.handlers
        logging.getLogger("alice_oracle.tests").warning("routed")
        assert "routed" in buf.getvalue()
    finally:
        for handler in list(root.handlers):
            if handler not in before:
                root.removeHandler(handler)
        root.setLevel(level)
