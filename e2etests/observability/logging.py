"""Run logging for e2etests, built on loguru.

The package logger stays disabled until a runner calls ``setup_logging``.
Modules bind ``component`` at import time; sequences additionally bind
``sequence`` and ``cluster_id`` so every line of a run can be traced back to
the cluster it acted on:

    12:04:31.207 INFO     abc12 update      Next version bundle is 4.3.0

Example:
    ids = setup_logging(LogConfig(level="DEBUG", directory=Path("logs")))
    try:
        await sequence.run()
    finally:
        teardown_logging(ids)
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

from loguru import logger

type Level = Literal["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR"]

PACKAGE = "e2etests"


def _origin(extra: dict[str, Any]) -> str:
    """``sequence`` when a sequence is running, else the emitting component."""
    return str(extra.get("sequence") or extra.get("component") or "-")


def _console_line(record: Any) -> str:
    extra = record["extra"]
    cluster = _escape(str(extra.get("cluster_id", "")))
    origin = _escape(_origin(extra))
    return (
        "<dim>{time:HH:mm:ss.SSS}</dim> <level>{level: <8}</level> "
        f"<cyan>{cluster: <8}</cyan> <magenta>{origin: <10}</magenta> "
        "<level>{message}</level>\n{exception}"
    )


def _file_line(record: Any) -> str:
    extra = record["extra"]
    context = " ".join(f"{k}={v}" for k, v in sorted(extra.items()))
    return (
        "{time:YYYY-MM-DDTHH:mm:ss.SSSZZ} {level: <8} {name}:{line} "
        + _escape(context)
        + " | {message}\n{exception}"
    )


def _escape(text: str) -> str:
    return text.replace("{", "{{").replace("}", "}}").replace("<", r"\<")


@dataclass(frozen=True, slots=True)
class LogConfig:
    """Sinks for one test run.

    Args:
        level: Console threshold. The file sink always records DEBUG.
        directory: Where run logs go, one file per run. ``None`` disables them.
        console: Log to stderr.
        json: Write the run file as JSON lines for CI log ingestion.
        keep: Run logs kept in ``directory``.
    """

    level: Level = "INFO"
    directory: Path | None = Path(".e2etests/logs")
    console: bool = True
    json: bool = False
    keep: int = 10


def setup_logging(config: LogConfig) -> list[int]:
    """Replace all loguru sinks with the run's sinks. Returns their IDs."""
    logger.remove()
    logger.enable(PACKAGE)
    ids: list[int] = []

    if config.console:
        ids.append(logger.add(sys.stderr, level=config.level, format=_console_line, filter=PACKAGE))

    if config.directory is not None:
        config.directory.mkdir(parents=True, exist_ok=True)
        ids.append(logger.add(
            config.directory / "run-{time:YYYYMMDD-HHmmss}.log",
            level="DEBUG",
            format="{message}" if config.json else _file_line,
            serialize=config.json,
            retention=config.keep,
            diagnose=False,
        ))

    return ids


def teardown_logging(ids: list[int]) -> None:
    for sink_id in ids:
        logger.remove(sink_id)
    logger.disable(PACKAGE)
