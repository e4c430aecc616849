"""Test that the project setup is working correctly."""

import contract_event_tracker


def test_version() -> None:
    """Test that version is defined."""
    assert contract_event_tracker.__version__ == "0.1.0"


def test_import_modules() -> None:
    """Test that all submodules can be imported."""
    from contract_event_tracker import alerter
    from contract_event_tracker import detector
    from contract_event_tracker import filtering
    from contract_event_tracker import ingestor
    from contract_event_tracker import monitor
    from contract_event_tracker import pipeline
    from contract_event_tracker import storage

    assert alerter is not None
    assert detector is not None
    assert filtering is not None
    assert ingestor is not None
    assert monitor is not None
    assert pipeline is not None
    assert storage is not None
