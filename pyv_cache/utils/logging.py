import logging

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


def get_logger(name: str = "pyv-cache") -> logging.Logger:
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    return logging.getLogger(name)


def set_verbosity(verbose: int = 0, quiet: bool = False):
    """Adjusts the root level from CLI flags (-v for DEBUG, -q for WARNING)."""
    if quiet:
        level = logging.WARNING
    elif verbose > 0:
        level = logging.DEBUG
    else:
        level = logging.INFO
    logging.getLogger().setLevel(level)
