import logging
import os
from logging.handlers import RotatingFileHandler
from datetime import datetime
from typing import Dict, Iterable

from fixed_point import format_value


def setup_logging(file_prefix, log_dir='logs', level=logging.INFO):
    """Log to a timestamped rotating file in log_dir and to the console. Returns the log path."""
    os.makedirs(log_dir, exist_ok=True)
    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    log_file = os.path.join(log_dir, f'{file_prefix}_{timestamp}.log')

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=[
            RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024, backupCount=5),
            logging.StreamHandler()
        ],
        force=True,
    )
    return log_file


def log_summary(title: str, summary: Dict, value_keys: Iterable[str] = ()):
    """Log a summary dict one line per entry, formatting value-unit entries as decimals."""
    value_keys = set(value_keys)
    logging.info(f"{title}:")
    for key, value in summary.items():
        if key in value_keys and isinstance(value, int):
            value = format_value(value)
        logging.info(f"  {key}: {value}")
