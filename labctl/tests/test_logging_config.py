from __future__ import annotations

import json
import logging

import labctl.logging_config as logging_config


def _record() -> logging.LogRecord:
    record = logging.LogRecord(
        name="labctl.orchestrator",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg="hello %s",
        args=("world",),
        exc_info=None,
    )
    record.batch = {"boot_order": 1}
    return record


def test_json_formatter_payload() -> None:
    formatter = logging_config.LabJSONFormatter(operation_id="op-123456789")
    payload = json.loads(formatter.format(_record()))

    assert payload["service"] == "labctl"
    assert payload["message"] == "hello world"
    assert payload["level"] == "INFO"
    assert payload["operation_id"] == "op-123456789"
    assert payload["extra"] == {"batch": {"boot_order": 1}}


def test_text_formatter_truncates_tag() -> None:
    formatter = logging_config.LabTextFormatter(operation_id="op-123456789")
    message = formatter.format(_record())

    assert "[op-12345]" in message
    assert "hello world" in message


def test_setup_logging_json(monkeypatch) -> None:
    monkeypatch.setattr(logging_config.settings, "log_level", "DEBUG")
    monkeypatch.setattr(logging_config.settings, "log_format", "json")
    root = logging.getLogger()
    original_level = root.level

    try:
        logging_config.setup_logging()
        logging_config.setup_logging()

        ours = [h for h in root.handlers if getattr(h, "_labctl_handler", False)]
        assert len(ours) == 1
        assert isinstance(ours[0].formatter, logging_config.LabJSONFormatter)
        assert root.level == logging.DEBUG
    finally:
        for handler in [h for h in root.handlers if getattr(h, "_labctl_handler", False)]:
            root.removeHandler(handler)
        root.setLevel(original_level)
