import logging

# engine modules log under "erp_ledger.<module>"; a handler here sees all of them
PACKAGE_LOGGER = "erp_ledger"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _as_level(level):
    if isinstance(level, str):
        level = logging.getLevelName(level.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def get_logger(name=PACKAGE_LOGGER, level=None):
    """
    Logger with a single console handler, for applications embedding the
    engines. `level` is a number or a name ("debug", "WARNING"); unknown
    names read as INFO. Without a level the first call sets INFO and later
    calls leave the level alone.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.setLevel(_as_level(level))
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(ch)
    elif level is not None:
        logger.setLevel(_as_level(level))
    return logger
