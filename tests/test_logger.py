"""
Test contesto richiesta e eventi JSON del logger.
"""
import json
import logging

from core.logger import _request_context, RequestContext, get_request_context, log_json, set_request_context


class TestRequestContext:
    """Test set_request_context"""

    def setup_method(self):
        self.token = _request_context.set(RequestContext())

    def teardown_method(self):
        _request_context.reset(self.token)

    def test_generates_correlation_id(self):
        """Correlation id generato se assente"""
        correlation_id = set_request_context(user_id="user-1")
        assert correlation_id
        assert get_request_context().user_id == "user-1"

    def test_keeps_existing_correlation_id(self):
        """Il correlation id del middleware resta quando si imposta l'utente"""
        set_request_context(correlation_id="corr-1")
        assert set_request_context(user_id="user-2") == "corr-1"
        assert get_request_context() == RequestContext(user_id="user-2", correlation_id="corr-1")


class TestLogJson:
    """Test log_json"""

    def setup_method(self):
        self.token = _request_context.set(RequestContext(user_id="user-1", correlation_id="corr-1"))

    def teardown_method(self):
        _request_context.reset(self.token)

    def test_event_is_json(self, caplog):
        with caplog.at_level(logging.INFO, logger="importer.events"):
            log_json("info", "File parsato", stage="csv_parse", rows_total=3, ext=None)

        event = json.loads(caplog.records[-1].getMessage())
        assert event["message"] == "File parsato"
        assert event["level"] == "INFO"
        assert event["stage"] == "csv_parse"
        assert event["rows_total"] == 3
        assert event["correlation_id"] == "corr-1"
        assert "ext" not in event

    def test_unknown_level_falls_back_to_info(self, caplog):
        with caplog.at_level(logging.INFO, logger="importer.events"):
            log_json("verbose", "evento")
        assert caplog.records[-1].levelno == logging.INFO
