# pcinventory/logger.py
import logging
from logging.handlers import RotatingFileHandler
import os

LOG_DIR = os.getenv("PCINVENTORY_LOG_DIR", "logs")
LOG_FILE = "pcinventory.log"
LOG_LEVEL = os.getenv("PCINVENTORY_LOG_LEVEL", "INFO").upper()
os.makedirs(LOG_DIR, exist_ok=True)

_formatter = logging.Formatter(
    "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"
)


def get_logger(name: str) -> logging.Logger:
    '''
    Module logger writing to the console and to a rotating pcinventory.log.
    Engine failures (partial reconciliation, late build writes) end up here.
    '''
    logger = logging.getLogger(name)

    if logger.handlers:
        return logger  # 防止重复添加 handler

    logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))

    # 控制台输出
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(_formatter)

    # 文件输出（滚动）
    file_handler = RotatingFileHandler(
        os.path.join(LOG_DIR, LOG_FILE),
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setFormatter(_formatter)

    logger.addHandler(console_handler)
    logger.addHandler(file_handler)

    return logger
