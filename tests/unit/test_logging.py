"""Unit tests for the femtologging helpers."""

from __future__ import annotations

import pytest

from gensync.logging import (
    configure_logging,
    format_log_message,
    log_debug,
    log_error,
    log_exception,
    log_info,
    log_warning,
    normalize_log_level,
)


class _FakeLogger:
    """Collects log calls for assertions."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, object | None, bool]] = []

    def log(
        self,
        level: str,
        message: str,
        /,
        *,
        exc_info: object | None = None,
        stack_info: bool = False,
    ) -> str:
        self.calls.append((level, message, exc_info, stack_info))
        return message


@pytest.mark.parametrize(
    ("raw", "expected_level", "expected_invalid"),
    [
        ("warning", "WARNING", False),
        ("  debug ", "DEBUG", False),
        (None, "INFO", True),
        ("", "INFO", True),
        ("verbose", "INFO", True),
    ],
)
def test_normalize_log_level(
    raw: str | None,
    expected_level: str,
    expected_invalid: bool,  # noqa: FBT001
) -> None:
    """Known levels are upper-cased; anything else falls back to INFO."""
    level, invalid = normalize_log_level(raw)
    assert level == expected_level
    assert invalid is expected_invalid


def test_format_log_message_without_args_keeps_percent_signs() -> None:
    """A template without args is returned untouched."""
    assert format_log_message("100% done") == "100% done"


def test_format_log_message_interpolates() -> None:
    """Percent formatting produces the expected message."""
    assert format_log_message("synced %s (%d rows)", "projects", 3) == (
        "synced projects (3 rows)"
    )


@pytest.mark.parametrize(
    ("helper", "level"),
    [
        (log_debug, "DEBUG"),
        (log_info, "INFO"),
        (log_warning, "WARNING"),
        (log_error, "ERROR"),
    ],
)
def test_level_helpers_format_and_pass_level(helper: object, level: str) -> None:
    """Each helper emits its level with a pre-formatted message."""
    logger = _FakeLogger()

    helper(logger, "table %s", "domains")  # type: ignore[operator]

    assert logger.calls == [(level, "table domains", None, False)]


def test_log_warning_forwards_exc_info() -> None:
    """exc_info is passed through to the logger."""
    logger = _FakeLogger()
    exc = ValueError("boom")

    log_warning(logger, "warning: %s", "oops", exc_info=exc)

    assert logger.calls == [("WARNING", "warning: oops", exc, False)]


def test_log_exception_passes_exc_info() -> None:
    """log_exception logs at ERROR with the exception attached."""
    logger = _FakeLogger()
    exc = RuntimeError("feed died")

    log_exception(logger, "run failed", exc)

    assert logger.calls == [("ERROR", "run failed", exc, False)]


@pytest.mark.parametrize(
    ("raw", "expected_level", "expected_invalid"),
    [("DEBUG", "DEBUG", False), ("nope", "INFO", True)],
)
def test_configure_logging(
    monkeypatch: pytest.MonkeyPatch,
    raw: str,
    expected_level: str,
    expected_invalid: bool,  # noqa: FBT001
) -> None:
    """configure_logging applies the normalised level without forcing."""
    captured: dict[str, object] = {}

    def fake_basic_config(**kwargs: object) -> None:
        captured.update(kwargs)

    monkeypatch.setattr("gensync.logging.basicConfig", fake_basic_config)

    level, invalid = configure_logging(raw)

    assert level == expected_level
    assert invalid is expected_invalid
    assert captured == {"level": expected_level, "force": False}
