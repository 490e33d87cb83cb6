import logging


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    # asyncpg / sqlalchemy are noisy at INFO
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
