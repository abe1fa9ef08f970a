import logging
import sys
from pathlib import Path
from typing import Optional, Union

# our own modules log under these names (flat layout, no package prefix)
APP_LOGGERS = ("main", "auth", "oauth", "errors", "client", "task_store", "uploads", "__main__")


class _ThirdPartyNoiseFilter(logging.Filter):
    """Keep app logs; let libraries through only at WARNING and above."""

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name.split(".", 1)[0]
        if name in APP_LOGGERS:
            return True
        # passlib complains about bcrypt's version attribute on every start
        if record.name.startswith("passlib"):
            return record.levelno >= logging.ERROR
        return record.levelno >= logging.WARNING


def setup_logging(level: Union[int, str] = logging.INFO, log_file: Optional[Union[str, Path]] = None):
    """Configure the root logger once, at startup."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)

    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = logging.StreamHandler(sys.stderr)
    ch.setFormatter(fmt)
    ch.addFilter(_ThirdPartyNoiseFilter())
    root.addHandler(ch)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(log_file), encoding="utf-8")
        fh.setFormatter(fmt)
        root.addHandler(fh)

    logging.captureWarnings(True)
