"""JSON log lines, context fields and logger setup."""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import UUID

import pytest

from recurrence_kernel.domain.types import Frequency
from recurrence_kernel.exceptions import VersionOrderingError
from recurrence_kernel.logging_config import (
    LogContext,
    configure_logging,
    get_logger,
    reset_logging,
)

RID = UUID("6f1c2b1e-0000-4000-8000-000000000001")


@pytest.fixture(autouse=True)
def _isolated_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


@pytest.fixture
def sink():
    """Route kernel logs into memory and return a reader for the parsed lines."""
    buffer = StringIO()
    configure_logging(stream=buffer, level=logging.DEBUG)
    return lambda: [json.loads(line) for line in buffer.getvalue().splitlines()]


log = get_logger("services.test")


class TestStructuredFormatter:
    def test_base_fields(self, sink):
        log.info("generation_started")

        (entry,) = sink()
        assert entry["level"] == "INFO"
        assert entry["message"] == "generation_started"
        assert entry["logger"] == "recurrence_kernel.services.test"
        assert entry["ts"].endswith("+00:00")

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (RID, str(RID)),
            (Decimal("400.00"), "400.00"),
            (date(2025, 7, 1), "2025-07-01"),
            (Frequency.MONTHLY, "MONTHLY"),
            ({"b", "a"}, ["a", "b"]),
            (6, 6),
        ],
    )
    def test_extra_values_serialized(self, sink, value, expected):
        log.info("occurrences_created", extra={"detail": value})
        assert sink()[0]["detail"] == expected

    def test_context_merged_into_every_line(self, sink):
        LogContext.set(correlation_id="job-7", recurrence_id=RID)
        log.info("window_computed")
        log.warning("batch_failed")

        for entry in sink():
            assert entry["correlation_id"] == "job-7"
            assert entry["recurrence_id"] == str(RID)

    def test_extra_does_not_override_context(self, sink):
        LogContext.set(recurrence_id="from-context")
        log.info("x", extra={"recurrence_id": "from-extra"})
        assert sink()[0]["recurrence_id"] == "from-context"

    def test_absent_context_leaves_no_keys(self, sink):
        log.info("bare")
        assert set(sink()[0]) == {"ts", "level", "logger", "message"}

    def test_kernel_error_attributes(self, sink):
        try:
            raise VersionOrderingError("r-1", date(2025, 3, 1), date(2025, 4, 1))
        except VersionOrderingError:
            log.exception("version_rejected")

        entry = sink()[0]
        assert entry["exc_type"] == "VersionOrderingError"
        assert entry["exc_code"] == "VERSION_ORDERING"
        assert entry["exc_recurrence_id"] == "r-1"
        assert entry["exc_previous_effective_from"] == "2025-04-01"
        assert "Traceback" in entry["traceback"]

    def test_plain_error_has_no_code(self, sink):
        try:
            {}["missing"]
        except KeyError:
            log.error("lookup_failed", exc_info=True)

        entry = sink()[0]
        assert entry["exc_type"] == "KeyError"
        assert "exc_code" not in entry


class TestLogContext:
    def test_set_accumulates(self):
        LogContext.set(user_id="u")
        LogContext.set(actor_id="a")
        assert LogContext.get_all() == {"user_id": "u", "actor_id": "a"}

    def test_values_stored_as_text(self):
        LogContext.set(recurrence_id=RID)
        assert LogContext.get_all()["recurrence_id"] == str(RID)

    def test_none_is_skipped(self):
        LogContext.set(company_id=None)
        assert LogContext.get_all() == {}

    @pytest.mark.parametrize("name", ["event_id", "tenant"])
    def test_unknown_field_raises(self, name):
        with pytest.raises(KeyError, match=name):
            LogContext.set(**{name: "x"})
        with pytest.raises(KeyError):
            LogContext.bind(**{name: "x"})

    def test_get_all_is_a_copy(self):
        LogContext.set(user_id="u")
        LogContext.get_all()["user_id"] = "changed"
        assert LogContext.get_all()["user_id"] == "u"

    def test_bind_is_scoped(self):
        LogContext.set(recurrence_id="outer")
        with LogContext.bind(recurrence_id="inner", actor_id="a"):
            assert LogContext.get_all() == {"recurrence_id": "inner", "actor_id": "a"}
        assert LogContext.get_all() == {"recurrence_id": "outer"}

    def test_bind_restores_after_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(user_id="u"):
                raise RuntimeError
        assert LogContext.get_all() == {}

    def test_clear(self):
        LogContext.set(correlation_id="c", user_id="u")
        LogContext.clear()
        assert LogContext.get_all() == {}


class TestConfigureLogging:
    def test_first_call_wins(self):
        first, second = logging.NullHandler(), logging.NullHandler()
        configure_logging(handler=first)
        configure_logging(handler=second)
        assert logging.getLogger("recurrence_kernel").handlers == [first]

    def test_default_level_drops_debug(self):
        buffer = StringIO()
        configure_logging(stream=buffer)
        log.debug("noise")
        log.info("signal")
        lines = buffer.getvalue().splitlines()
        assert [json.loads(line)["message"] for line in lines] == ["signal"]

    def test_nested_logger_names(self, sink):
        get_logger("db.engine").debug("engine_initialized")
        assert sink()[0]["logger"] == "recurrence_kernel.db.engine"

    def test_reset_detaches_handlers(self):
        configure_logging(handler=logging.NullHandler())
        reset_logging()
        root = logging.getLogger("recurrence_kernel")
        assert root.handlers == []
        assert root.propagate is True
