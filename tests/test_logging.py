from grid_audit.logging import add_component


def test_package_events_carry_component():
    event = add_component(None, "info", {"event": "jurist_done", "logger": "grid_audit.jurist"})

    assert event["component"] == "jurist"


def test_foreign_events_are_left_alone():
    event = add_component(None, "info", {"event": "started", "logger": "uvicorn.error"})

    assert "component" not in event
