import app


def test_flash_message_is_shown_once_on_the_next_run(monkeypatch) -> None:
    state = {}
    shown = []
    monkeypatch.setattr(app.st, "session_state", state)
    monkeypatch.setattr(app.st, "warning", lambda message: shown.append(message))

    app._flash("warning", "Enrichment failed (2/4)")
    assert shown == []

    app._show_flash()
    app._show_flash()
    assert shown == ["Enrichment failed (2/4)"]
    assert "flash" not in state
