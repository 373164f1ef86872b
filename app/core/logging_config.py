# app/core/logging_config.py
import logging
import sys
from logging.handlers import RotatingFileHandler
import os

from app.core import config

def setup_logging():
    """
    Configure application-wide logging with console and file handlers
    """
    log_dir = config.LOG_DIR
    os.makedirs(log_dir, exist_ok=True)
    level = getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)

    # Configure root logger
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for handler in list(logger.handlers):
        if getattr(handler, "_marketplace_handler", False):
            logger.removeHandler(handler)
            handler.close()

    # ==========================================
    # 1. CONSOLE HANDLER (stdout)
    # ==========================================
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_format = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(console_format)

    # ==========================================
    # 2. FILE HANDLER (rotating log files)
    # ==========================================
    file_handler = RotatingFileHandler(
        os.path.join(log_dir, 'app.log'),
        maxBytes=10485760,  # 10MB per file
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setLevel(level)
    file_format = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    file_handler.setFormatter(file_format)

    # ==========================================
    # 3. ERROR FILE HANDLER (only errors)
    # ==========================================
    error_file_handler = RotatingFileHandler(
        os.path.join(log_dir, 'error.log'),
        maxBytes=10485760,
        backupCount=5,
        encoding='utf-8'
    )
    error_file_handler.setLevel(logging.ERROR)
    error_file_handler.setFormatter(file_format)

    for handler in (console_handler, file_handler, error_file_handler):
        handler._marketplace_handler = True
        logger.addHandler(handler)

    # ==========================================
    # 4. REDUCE NOISE FROM THIRD-PARTY LIBRARIES
    # ==========================================
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)
    logging.getLogger('uvicorn.access').setLevel(logging.WARNING)
    logging.getLogger('uvicorn.error').setLevel(logging.INFO)
    logging.getLogger('multipart').setLevel(logging.WARNING)

    logger.info("=" * 50)
    logger.info("Logging system initialized")
    logger.info("=" * 50)

    return logger
