import logging

from sitejo import main
from sitejo.core.config import Settings
from sitejo.core.logging import (
    TicketContextFilter,
    _parse_headers,
    configure_logging,
    init_tracer,
    transition_fields,
)
from sitejo.tickets.state import TicketAction, TicketStatus


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("MAX_UPLOAD_BYTES", "2048")
    monkeypatch.setenv("TICKETS_PER_PAGE", "25")
    settings = Settings()
    assert settings.max_upload_bytes == 2048
    assert settings.tickets_per_page == 25
    assert settings.access_token_ttl_seconds == 604800


def test_bootstrap_admin_requires_credentials():
    assert not Settings().bootstrap_admin_configured
    configured = Settings(
        bootstrap_admin_email="admin@sitejo.com",
        bootstrap_admin_nim_nip="ADMIN001",
        bootstrap_admin_password="password123",
    )
    assert configured.bootstrap_admin_configured


def test_configure_logging_sets_level():
    logger = configure_logging(Settings(log_level="debug"))
    assert logger.name == "sitejo"
    assert logger.level == logging.DEBUG
    configure_logging(Settings())


def test_parse_headers():
    assert _parse_headers(None) == {}
    assert _parse_headers("api-key=abc, x-tenant = sitejo,broken") == {"api-key": "abc", "x-tenant": "sitejo"}


def test_tracer_disabled_by_default():
    assert init_tracer(Settings(otel_enabled=False)) is None


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("sitejo.tickets.service", logging.INFO, __file__, 1, "Ticket transition", None, None)
    record.__dict__.update(extra)
    return record


def test_transition_fields_render_as_ticket_context():
    fields = transition_fields("t-1", TicketAction.APPROVE, TicketStatus.IN_REVIEW, TicketStatus.APPROVED, "u-9")
    assert fields == {
        "ticket_id": "t-1",
        "ticket_action": "approve",
        "old_status": "in_review",
        "new_status": "approved",
        "actor_id": "u-9",
    }

    record = _record(**transition_fields("t-1", TicketAction.CREATE, new_status=TicketStatus.PENDING))
    assert TicketContextFilter().filter(record) is True
    assert record.ticket_context == " ticket_id=t-1 ticket_action=create new_status=pending"


def test_records_without_ticket_fields_still_format():
    record = _record()
    TicketContextFilter().filter(record)
    formatter = logging.Formatter(Settings().log_format)
    assert formatter.format(record).endswith("sitejo.tickets.service Ticket transition")


def test_run_serves_the_app_with_uvicorn(monkeypatch):
    calls = []
    monkeypatch.setattr(main.uvicorn, "run", lambda target, **kwargs: calls.append((target, kwargs)))
    monkeypatch.setattr(main, "get_settings", lambda: Settings(api_host="0.0.0.0", api_port=9000))

    main.run()

    assert calls == [("sitejo.main:app", {"host": "0.0.0.0", "port": 9000, "log_config": None})]
