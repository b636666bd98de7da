"""
Unified logging configuration for the sync service
Provides the application logger hierarchy, rotating file output and the
JSON-lines audit files (skipped faults, development payloads, raw rows)
"""
import json
import logging
import logging.handlers
import sys
import traceback
from datetime import datetime, date
from decimal import Decimal
from pathlib import Path
from typing import Optional, Dict, Any

ROOT_LOGGER_NAME = "alarmsync"
AUDIT_LOGGER_NAME = "alarmsync.audit"


class SyncLogFormatter(logging.Formatter):
    """
    Formatter for service logs, optionally colored for console output
    """

    colors = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[32m',     # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',    # Red
        'CRITICAL': '\033[35m', # Magenta
        'RESET': '\033[0m'
    }

    def __init__(self, use_colors: bool = False):
        self.use_colors = use_colors
        super().__init__('%(asctime)s | %(name)s | %(levelname)s | %(message)s', datefmt='%Y-%m-%d %H:%M:%S')

    def format(self, record):
        formatted = super().format(record)
        if self.use_colors:
            level_color = self.colors.get(record.levelname, '')
            return f"{level_color}{formatted}{self.colors['RESET']}"
        return formatted


def _json_default(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return str(value)


class AuditFileHandler(logging.Handler):
    """
    Appends one JSON object per record to a per-kind, per-day file:
    <log_dir>/<prefix>_YYYY-MM-DD.log
    """

    def __init__(self, log_dir: Path):
        super().__init__()
        self.log_dir = Path(log_dir)

    def emit(self, record):
        try:
            prefix = getattr(record, "audit_file", "audit")
            payload = getattr(record, "payload", {})
            line = json.dumps({"timestamp": datetime.now().isoformat(), **payload}, default=_json_default)
            filename = self.log_dir / f"{prefix}_{date.today().isoformat()}.log"
            self.log_dir.mkdir(parents=True, exist_ok=True)
            with open(filename, "a", encoding="utf-8") as f:
                f.write(line + "\n")
        except Exception:
            self.handleError(record)


class SyncLogger:
    """
    Logger manager for the sync service
    """

    def __init__(self):
        self.configured = False
        self.log_dir: Optional[Path] = None

    def setup(self, log_level: str = "INFO", log_dir: Optional[str] = None, log_to_console: bool = True) -> logging.Logger:
        """
        Attach handlers to the service root logger. Safe to call more than once.

        Args:
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for rotating and audit files, None for console only
            log_to_console: Whether to log to stdout
        """
        root = logging.getLogger(ROOT_LOGGER_NAME)
        root.setLevel(getattr(logging, log_level.upper(), logging.INFO))
        root.handlers.clear()
        root.propagate = False

        if log_to_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(SyncLogFormatter(use_colors=True))
            root.addHandler(console_handler)

        audit = logging.getLogger(AUDIT_LOGGER_NAME)
        audit.handlers.clear()
        audit.propagate = False
        audit.setLevel(logging.INFO)

        if log_dir:
            self.log_dir = Path(log_dir)
            self.log_dir.mkdir(parents=True, exist_ok=True)
            root.addHandler(self._create_file_handler("combined.log", logging.DEBUG))
            root.addHandler(self._create_file_handler("error.log", logging.ERROR))
            audit.addHandler(AuditFileHandler(self.log_dir))

        self.configured = True
        return root

    def _create_file_handler(self, filename: str, level: int) -> logging.Handler:
        """Create rotating file handler (10MB max, keep 5 backups)"""
        handler = logging.handlers.RotatingFileHandler(
            self.log_dir / filename,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding='utf-8'
        )
        handler.setLevel(level)
        handler.setFormatter(SyncLogFormatter())
        return handler

    def get_logger(self, name: str) -> logging.Logger:
        if not name.startswith(ROOT_LOGGER_NAME):
            name = f"{ROOT_LOGGER_NAME}.{name}"
        return logging.getLogger(name)

    def log_exception(self, logger: logging.Logger, exception: Exception, context: str = ""):
        """
        Log exception with full traceback and context
        """
        logger.error(f"Exception occurred: {context}")
        logger.error(f"Exception type: {type(exception).__name__}")
        logger.error(f"Exception message: {exception}")
        logger.error(f"Full traceback:\n{traceback.format_exc()}")

    def audit(self, audit_file: str, payload: Dict[str, Any]):
        logging.getLogger(AUDIT_LOGGER_NAME).info(
            audit_file, extra={"audit_file": audit_file, "payload": payload}
        )


# Global logger manager instance
_logger_manager = None


def get_logger_manager() -> SyncLogger:
    """Get global logger manager instance"""
    global _logger_manager
    if _logger_manager is None:
        _logger_manager = SyncLogger()
    return _logger_manager


def setup_logging(log_level: str = "INFO", log_dir: Optional[str] = None) -> logging.Logger:
    return get_logger_manager().setup(log_level=log_level, log_dir=log_dir)


def get_logger(name: str) -> logging.Logger:
    return get_logger_manager().get_logger(name)


def log_exception(logger: logging.Logger, exception: Exception, context: str = ""):
    get_logger_manager().log_exception(logger, exception, context)


def log_skipped(payload: Dict[str, Any]):
    """Record a suppressed fault (active complaint already exists)"""
    get_logger_manager().audit("skipped_faults", payload)


def log_development_data(payload: Dict[str, Any]):
    """Record the payload that would have been persisted in dry-run/dev mode"""
    get_logger_manager().audit("dev_payloads", {"payload": payload})


def log_raw_data(kind: str, row: Dict[str, Any]):
    """Record a raw source row in development mode"""
    get_logger_manager().audit(f"data_extracted_{kind}", row)
