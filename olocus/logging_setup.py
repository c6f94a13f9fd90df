"""
Olocus - Logging System
=========================
Sistema logging strutturato JSON per audit e debugging.

Security Level: HIGH
Last Updated: 2026-10-19
Version: 1.0.0

Features:
- Logging JSON strutturato
- Rotation automatica
- Context enrichment
- Performance tracking
- Audit trail (blocchi accettati, reorg, negoziazioni)

I moduli core ottengono solo logger di categoria (get_logger); gli handler
sono installati dal caller con setup_logging().
"""

import logging
import logging.handlers
import json
import sys
import time
import traceback
from pathlib import Path
from typing import Optional, Dict, Any
from datetime import datetime, timezone


def _utc(created: float) -> datetime:
    return datetime.fromtimestamp(created, tz=timezone.utc)


# ============================================================================
# JSON FORMATTER
# ============================================================================

class JSONFormatter(logging.Formatter):
    """
    Formatter per log in formato JSON.

    Output structure:
    {
        "timestamp": "2026-10-19T10:00:00.000000Z",
        "level": "INFO",
        "logger": "olocus.validation",
        "message": "Block accepted",
        "extra_data": {...},
        "exception": {...}
    }
    """

    def __init__(
        self,
        include_extra: bool = True,
        include_stack: bool = True
    ):
        super().__init__()
        self.include_extra = include_extra
        self.include_stack = include_stack

    def format(self, record: logging.LogRecord) -> str:
        """Formatta LogRecord in JSON"""
        log_data = {
            "timestamp": _utc(record.created).strftime('%Y-%m-%dT%H:%M:%S.%fZ'),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.thread:
            log_data["thread_name"] = record.threadName

        if self.include_extra and hasattr(record, 'extra_data'):
            log_data["extra_data"] = record.extra_data

        if record.exc_info and self.include_stack:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info)
            }

        return json.dumps(log_data, default=str)


# ============================================================================
# TEXT FORMATTER (Human-Readable)
# ============================================================================

class ColoredTextFormatter(logging.Formatter):
    """Formatter colorato per console"""

    COLORS = {
        'DEBUG': '\033[90m',      # Gray
        'INFO': '\033[92m',       # Green
        'WARNING': '\033[93m',    # Yellow
        'ERROR': '\033[91m',      # Red
        'CRITICAL': '\033[1;91m', # Bold Red
        'RESET': '\033[0m'
    }

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        color = self.COLORS.get(levelname, '')
        level = f"{color}{levelname}{self.COLORS['RESET']}" if color else levelname

        timestamp = _utc(record.created).strftime('%Y-%m-%d %H:%M:%S')
        message = f"{timestamp} [{level}] {record.name}: {record.getMessage()}"

        if hasattr(record, 'extra_data'):
            message += f" | {record.extra_data}"

        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"

        return message


# ============================================================================
# LOGGER CLASS
# ============================================================================

class OlocusLogger:
    """
    Wrapper logger con context enrichment e structured logging.

    Example:
        >>> logger = get_logger("validation")
        >>> logger.info("Block accepted", extra_data={"index": 3})
    """

    def __init__(self, logger: logging.Logger):
        self._logger = logger
        self._context: Dict[str, Any] = {}

    @property
    def name(self) -> str:
        return self._logger.name

    def set_context(self, **kwargs):
        """
        Imposta context globale (aggiunto a tutti i log).

        Example:
            >>> logger.set_context(chain_id="main")
        """
        self._context.update(kwargs)

    def clear_context(self):
        self._context.clear()

    def is_enabled_for(self, level: int) -> bool:
        return self._logger.isEnabledFor(level)

    def _log(
        self,
        level: int,
        message: str,
        extra_data: Optional[Dict[str, Any]] = None,
        exc_info: Any = None
    ):
        merged_extra = {**self._context}
        if extra_data:
            merged_extra.update(extra_data)

        self._logger.log(
            level,
            message,
            exc_info=exc_info,
            extra={'extra_data': merged_extra} if merged_extra else {}
        )

    def debug(self, message: str, extra_data: Optional[Dict] = None):
        self._log(logging.DEBUG, message, extra_data)

    def info(self, message: str, extra_data: Optional[Dict] = None):
        self._log(logging.INFO, message, extra_data)

    def warning(self, message: str, extra_data: Optional[Dict] = None):
        self._log(logging.WARNING, message, extra_data)

    def error(self, message: str, extra_data: Optional[Dict] = None, exc_info: Any = None):
        self._log(logging.ERROR, message, extra_data, exc_info)

    def critical(self, message: str, extra_data: Optional[Dict] = None, exc_info: Any = None):
        self._log(logging.CRITICAL, message, extra_data, exc_info)

    def exception(self, message: str, extra_data: Optional[Dict] = None):
        """Log exception con traceback"""
        self._log(logging.ERROR, message, extra_data, exc_info=sys.exc_info())


# ============================================================================
# SETUP FUNCTION
# ============================================================================

def setup_logging(
    log_level: str = "INFO",
    log_to_file: bool = False,
    log_dir: Path = Path("./logs"),
    log_format: str = "json",
    log_rotation_mb: int = 100,
    log_retention_days: int = 30,
    enable_console: bool = True,
) -> OlocusLogger:
    """
    Setup logging system completo.

    Args:
        log_level: Level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_to_file: Salva su file
        log_dir: Directory log files
        log_format: Formato file (json, text)
        log_rotation_mb: MB prima rotation
        log_retention_days: Numero backup mantenuti
        enable_console: Log anche su console

    Returns:
        OlocusLogger: Root logger "olocus" configurato

    Example:
        >>> logger = setup_logging(log_level="DEBUG")
        >>> logger.info("Validator ready", extra_data={"height": 0})
    """
    root_logger = logging.getLogger("olocus")
    root_logger.setLevel(getattr(logging, log_level.upper()))
    root_logger.handlers.clear()

    if log_to_file:
        log_dir.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            filename=log_dir / "olocus.log",
            maxBytes=log_rotation_mb * 1024 * 1024,
            backupCount=log_retention_days,
            encoding='utf-8'
        )

        if log_format == "json":
            file_handler.setFormatter(JSONFormatter())
        else:
            file_handler.setFormatter(
                logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
            )

        root_logger.addHandler(file_handler)

    if enable_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(ColoredTextFormatter())
        root_logger.addHandler(console_handler)

    return OlocusLogger(root_logger)


def setup_logging_from_settings(settings) -> OlocusLogger:
    """
    Setup logging da OlocusSettings.

    Le deviazioni dai default di protocollo vengono loggate come WARNING.
    """
    logger = setup_logging(
        log_level=settings.log_level,
        log_to_file=settings.log_to_file,
        log_dir=settings.log_dir,
        log_format=settings.log_format,
        log_rotation_mb=settings.log_rotation_mb,
        log_retention_days=settings.log_retention_days,
    )

    for name, (default, value) in settings.deviations().items():
        logger.warning(
            "Protocol constant overridden",
            extra_data={"setting": name, "default": default, "value": value}
        )

    return logger


# ============================================================================
# CATEGORY LOGGERS
# ============================================================================

def get_logger(category: str) -> OlocusLogger:
    """
    Ottieni logger per categoria specifica.

    Args:
        category: Categoria (codec, validation, negotiation, crypto, ...)

    Returns:
        OlocusLogger: Logger "olocus.<category>"
    """
    return OlocusLogger(logging.getLogger(f"olocus.{category}"))


# ============================================================================
# PERFORMANCE TRACKING
# ============================================================================

class PerformanceLogger:
    """
    Context manager per tracking performance.

    Example:
        >>> with PerformanceLogger(logger, "replay(blocks=1000)"):
        ...     validator.replay(blocks)
    """

    def __init__(
        self,
        logger: OlocusLogger,
        operation: str,
        threshold_ms: Optional[int] = None
    ):
        self.logger = logger
        self.operation = operation
        self.threshold_ms = threshold_ms
        self.start_time = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        elapsed_ms = (time.perf_counter() - self.start_time) * 1000

        extra = {
            "operation": self.operation,
            "duration_ms": round(elapsed_ms, 2)
        }

        if self.threshold_ms and elapsed_ms > self.threshold_ms:
            self.logger.warning(
                f"{self.operation} took {elapsed_ms:.2f}ms (threshold: {self.threshold_ms}ms)",
                extra_data=extra
            )
        else:
            self.logger.debug(
                f"{self.operation} completed in {elapsed_ms:.2f}ms",
                extra_data=extra
            )


# ============================================================================
# AUDIT LOGGER
# ============================================================================

class AuditLogger:
    """
    Logger specializzato per audit trail.

    Use for:
    - Blocchi accettati
    - Reorganization applicate
    - Negoziazioni completate
    """

    def __init__(self, log_dir: Optional[Path] = None):
        self.logger = logging.getLogger("olocus.audit")
        self.logger.setLevel(logging.INFO)

        if log_dir is not None:
            log_dir.mkdir(parents=True, exist_ok=True)

            # Nessuna rotation per audit
            handler = logging.FileHandler(log_dir / "audit.log", encoding='utf-8')
            handler.setFormatter(JSONFormatter(include_extra=True))
            self.logger.addHandler(handler)

    def _audit(self, message: str, action: str, **fields):
        self.logger.info(
            message,
            extra={
                'extra_data': {
                    "action": action,
                    **fields,
                    "timestamp": datetime.now(timezone.utc).isoformat()
                }
            }
        )

    def log_block_accepted(self, index: int, block_hash: str, payload_type: int):
        self._audit(
            "Block accepted",
            "block_accepted",
            index=index,
            hash=block_hash,
            payload_type=payload_type,
        )

    def log_reorg(self, fork_index: int, depth: int, old_tip: str, new_tip: str):
        self._audit(
            "Chain reorganized",
            "reorg",
            fork_index=fork_index,
            depth=depth,
            old_tip=old_tip,
            new_tip=new_tip,
        )

    def log_negotiation(self, session_id: str, suite_id: int, transcript_digest: str):
        self._audit(
            "Algorithm suite negotiated",
            "negotiated",
            session_id=session_id,
            suite_id=suite_id,
            transcript=transcript_digest,
        )


# ============================================================================
# EXPORT
# ============================================================================

__all__ = [
    "setup_logging",
    "setup_logging_from_settings",
    "get_logger",
    "OlocusLogger",
    "PerformanceLogger",
    "AuditLogger",
    "JSONFormatter",
    "ColoredTextFormatter",
]
