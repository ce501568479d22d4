import logging
import sys
from datetime import datetime
from pathlib import Path

from footsquad.config import Config

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

def _daily_log_file() -> Path:
    """Today's log file under Config.LOG_DIR, creating the directory if needed"""
    log_dir = Path(Config.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir / f'footsquad_{datetime.now().strftime("%Y%m%d")}.log'

def setup_logger(name: str) -> logging.Logger:
    """
    Get a logger writing to stdout and to the daily log file.

    Console output follows Config.DEBUG; the file always records DEBUG.
    Calling this again for the same name returns the configured logger.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger
    
    console_level = logging.DEBUG if Config.DEBUG else logging.INFO
    logger.setLevel(logging.DEBUG)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)
    
    file_handler = logging.FileHandler(_daily_log_file(), encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)
    
    return logger
