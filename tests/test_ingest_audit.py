import asyncio
import json
import logging

from conftest import FakeSource, text_file
from drivechat.errors import DocumentSourceError
from drivechat.ingest.pipeline import IngestionPipeline
from drivechat.logging_config import AUDIT_LOGGER_NAME, MinimalJSONFormatter, configure_logging


def test_ingest_writes_audit_log(tmp_path, settings, store, tracker, index_builder):
    audit_path = tmp_path / "logs" / "ingest_audit.log"
    configure_logging("INFO", audit_log_path=audit_path)
    source = FakeSource(
        [
            (text_file("a"), b"Audit log content for elevator 123456789"),
            (text_file("b"), DocumentSourceError("403 Forbidden", status_code=403)),
        ]
    )
    pipeline = IngestionPipeline(settings, store, tracker, source=source, index_builder=index_builder)

    try:
        outcome = asyncio.run(pipeline.run("audit-session"))
    finally:
        for handler in logging.getLogger(AUDIT_LOGGER_NAME).handlers:
            handler.flush()

    assert outcome.status == "ready"
    entries = [json.loads(line) for line in audit_path.read_text(encoding="utf-8").splitlines()]
    by_file = {entry["filename"]: entry for entry in entries}
    assert by_file["a.txt"]["session_id"] == "audit-session"
    assert by_file["a.txt"]["chunks"] >= 1
    assert "timestamp" in by_file["a.txt"]
    assert by_file["b.txt"]["chunks"] == 0
    assert "403 Forbidden" in by_file["b.txt"]["error"]

    for handler in list(logging.getLogger(AUDIT_LOGGER_NAME).handlers):
        logging.getLogger(AUDIT_LOGGER_NAME).removeHandler(handler)
        handler.close()


def test_json_formatter_merges_dict_messages_and_extras():
    record = logging.LogRecord("drivechat.test", logging.INFO, __file__, 1, {"step": "x"}, None, None)
    record.session_id = "s1"

    payload = json.loads(MinimalJSONFormatter().format(record))

    assert payload["step"] == "x"
    assert payload["session_id"] == "s1"
    assert payload["level"] == "INFO"
    assert payload["module"] == "drivechat.test"
