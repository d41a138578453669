"""Configuração de logging da aplicação"""
import gzip
import logging
import logging.handlers
import os
import shutil
import time
from pathlib import Path
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger("app")


class CompressingRotatingFileHandler(logging.handlers.RotatingFileHandler):
    """RotatingFileHandler que comprime os arquivos rotacionados e remove os antigos"""

    def __init__(
        self,
        filename: str,
        max_bytes: int,
        backup_count: int,
        max_age_days: int = 0,
        compress: bool = True,
        encoding: str = "utf-8",
    ):
        super().__init__(filename, maxBytes=max_bytes, backupCount=backup_count, encoding=encoding)
        self.max_age_days = max_age_days
        self.compress = compress
        if compress:
            self.namer = self._gzip_namer
            self.rotator = self._gzip_rotator

    @staticmethod
    def _gzip_namer(name: str) -> str:
        return name + ".gz"

    @staticmethod
    def _gzip_rotator(source: str, dest: str) -> None:
        with open(source, "rb") as src, gzip.open(dest, "wb") as dst:
            shutil.copyfileobj(src, dst)
        os.remove(source)

    def doRollover(self):
        super().doRollover()
        self._remove_expired_backups()

    def _remove_expired_backups(self):
        """Remove backups mais antigos que max_age_days"""
        if self.max_age_days <= 0:
            return
        base = Path(self.baseFilename)
        cutoff = time.time() - self.max_age_days * 86400
        for path in base.parent.glob(base.name + ".*"):
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
            except OSError as e:
                logger.warning(f"Could not remove expired log file {path}: {e}")


def setup_logging(settings=None, level: Optional[str] = None) -> logging.Logger:
    """Configura o logging raiz a partir das settings"""
    if settings is not None:
        level = level or settings.log_level
        development = settings.log_development
    else:
        development = False

    if development:
        level = "DEBUG"
    numeric_level = getattr(logging, (level or "INFO").upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    log_file = getattr(settings, "log_file", None) if settings is not None else None
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            CompressingRotatingFileHandler(
                log_file,
                max_bytes=settings.log_max_size_mb * 1024 * 1024,
                backup_count=settings.log_max_backups,
                max_age_days=settings.log_max_age_days,
                compress=settings.log_compress,
            )
        )

    logging.basicConfig(
        level=numeric_level,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )

    # APScheduler e aio-pika são verbosos demais em INFO
    if not development:
        logging.getLogger("apscheduler").setLevel(logging.WARNING)
        logging.getLogger("aiormq").setLevel(logging.WARNING)

    return logger
