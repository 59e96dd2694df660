import logging, sys

ROOT = "revente"

def setup_logger(name=ROOT, level=logging.INFO):
    """Logger racine de l'appli ; les sous-modules passent par get_logger()."""
    logger = logging.getLogger(name)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logger.setLevel(level)
    if logger.handlers:
        return logger
    handler = logging.StreamHandler(sys.stdout)
    fmt = logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    )
    handler.setFormatter(fmt)
    logger.addHandler(handler)
    return logger

def get_logger(suffix: str) -> logging.Logger:
    # revente.<suffix> : hérite du handler posé par setup_logger()
    return logging.getLogger(f"{ROOT}.{suffix}")
