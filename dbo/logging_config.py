"""Process-wide logging setup: console plus rotating log files."""
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from dbo.config import Settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(settings: Settings) -> Path:
    """Install console and rotating file handlers on the root logger.

    SQL statements go to a separate file so they do not drown out account
    events. Returns the path of the general log file.
    """
    logs_dir = Path(settings.log_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_file = logs_dir / "dbo.log"
    sql_log_file = logs_dir / "dbo_sql.log"

    # 1 MB per file, keep 5 backups
    rotating_handler = RotatingFileHandler(log_file, maxBytes=1024 * 1024, backupCount=5, encoding='utf-8')
    rotating_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    sql_rotating_handler = RotatingFileHandler(sql_log_file, maxBytes=1024 * 1024, backupCount=5, encoding='utf-8')
    sql_rotating_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    # force=True overrides configuration installed by a server such as uvicorn
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(), rotating_handler],
        force=True,
    )

    sql_logger = logging.getLogger("sqlalchemy.engine")
    sql_logger.handlers.clear()
    sql_logger.addHandler(sql_rotating_handler)
    sql_logger.setLevel(logging.WARNING)
    sql_logger.propagate = False

    return log_file
