# Archivo: app/core/logging_config.py
"""
Configuración centralizada de logging.

- Formato legible en consola para desarrollo.
- Formato JSON (un objeto por línea) para producción.

Uso:
    from app.core.logging_config import setup_logging
    setup_logging(log_level="INFO", use_json_format=False)

    logger = logging.getLogger(__name__)
    logger.info("Sesión abierta", extra={"context": {"session_id": 12}})
"""
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Union


class JSONFormatter(logging.Formatter):
    """Salida estructurada: timestamp, nivel, logger, mensaje y contexto extra."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "context"):
            log_data["context"] = getattr(record, "context", {})

        return json.dumps(log_data, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """Formato de consola; agrega el contexto extra al final de la línea."""

    def format(self, record: logging.LogRecord) -> str:
        mensaje = super().format(record)
        contexto = getattr(record, "context", None)
        if contexto:
            mensaje = f"{mensaje} | {json.dumps(contexto, ensure_ascii=False, default=str)}"
        return mensaje


def setup_logging(log_level: Union[int, str] = "INFO", use_json_format: bool = False) -> None:
    """
    Configura el logger raíz una sola vez al arrancar el proceso.

    Args:
        log_level: Nivel (logging.INFO o "INFO")
        use_json_format: JSON en lugar del formato de consola
    """
    if isinstance(log_level, int):
        level = log_level
    else:
        level = getattr(logging, str(log_level).upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)

    if use_json_format:
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(ConsoleFormatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))

    root_logger.addHandler(console_handler)

    # El motor SQL solo habla en WARNING para no inundar la consola
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
