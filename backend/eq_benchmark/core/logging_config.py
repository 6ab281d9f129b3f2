# backend/eq_benchmark/core/logging_config.py
"""
Configuration du logging applicatif.

Chaque module déclare son propre logger :
    logger = logging.getLogger(__name__)

configure_logging() est appelé une seule fois au démarrage (main.py).
Le niveau vient de settings.LOG_LEVEL.
"""
import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    logging.basicConfig(
        level=numeric_level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler()],
    )
    # Le moteur SQL est très bavard en DEBUG
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
