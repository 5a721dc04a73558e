import logging

LOG_FORMAT = "%(levelname)s %(asctime)s: %(message)s"


def setup_logger(logger, level=logging.WARNING, file_name=None):
    logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT)

    ch = logging.StreamHandler()
    ch.setLevel(level)
    ch.setFormatter(formatter)
    logger.addHandler(ch)

    if file_name:
        f = logging.FileHandler(file_name, mode="a")
        f.setLevel(level)
        f.setFormatter(formatter)
        logger.addHandler(f)


def get_logging_level_from_int(level):
    if level == 0:
        return logging.WARNING
    elif level == 1:
        return logging.INFO
    else:
        return logging.DEBUG
