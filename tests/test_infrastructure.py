import json
import logging
import pytest
from datetime import date
from sqlalchemy.exc import IntegrityError

from ems.core.logging import CustomJsonFormatter, request_id_var, setup_logging
from ems.models.attendance import Attendance, AttendanceStatus

def _format(message):
    formatter = CustomJsonFormatter("%(timestamp) %(level) %(name) %(message)")
    record = logging.LogRecord("ems.test", logging.WARNING, __file__, 1, message, None, None)
    return json.loads(formatter.format(record))

def test_log_lines_carry_service_context():
    line = _format("Balance debited")
    assert line["message"] == "Balance debited"
    assert line["level"] == "WARNING"
    assert line["name"] == "ems.test"
    assert line["service"] == "EMS Backend"
    assert line["environment"] == "testing"
    assert line["timestamp"]
    assert "request_id" not in line

def test_log_lines_carry_request_id():
    token = request_id_var.set("trace-42")
    try:
        line = _format("Leave approved")
    finally:
        request_id_var.reset(token)
    assert line["request_id"] == "trace-42"

def test_setup_logging_installs_one_handler():
    setup_logging()
    setup_logging()
    ours = [h for h in logging.getLogger().handlers if isinstance(h.formatter, CustomJsonFormatter)]
    assert len(ours) == 1

def test_sqlite_enforces_foreign_keys(db_session):
    db_session.add(Attendance(user_id=999, date=date(2024, 4, 1), status=AttendanceStatus.PRESENT.value))
    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()
    assert db_session.query(Attendance).count() == 0
