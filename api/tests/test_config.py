import pytest
from pydantic import ValidationError

from crowdprice.core.config import Settings


def test_duplicate_window_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        Settings(duplicate_window_hours=0)
    with pytest.raises(ValidationError):
        Settings(duplicate_window_hours=-3)


def test_duplicate_window_is_read_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CP_DUPLICATE_WINDOW_HOURS", "6")

    assert Settings().duplicate_window_hours == 6


def test_invalid_window_in_environment_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CP_DUPLICATE_WINDOW_HOURS", "0")

    with pytest.raises(ValidationError):
        Settings()
