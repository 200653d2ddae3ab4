import logging
import sys

LOGGER_NAME = "sprite_atlas"
FORMAT = "%(asctime)s %(levelname)s %(message)s"


def setup_logging(level="INFO", log_file=None):
    """
    获取共享日志器，首次调用时添加控制台与文件输出

    Args:
        level: 日志等级名称或数值
        log_file: 可选的日志文件路径

    Returns:
        logging.Logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    if not logger.handlers:
        formatter = logging.Formatter(FORMAT, datefmt="%H:%M:%S")

        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

        logger.propagate = False

    return logger


def set_level(level):
    """修改共享日志器的等级"""
    logging.getLogger(LOGGER_NAME).setLevel(level)
