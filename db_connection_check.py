import sys

from sqlalchemy import Engine, text
from sqlalchemy.exc import SQLAlchemyError

import yatrasathi.models  # noqa: F401  registers the tables on Base.metadata
from yatrasathi.db import Base, engine
from yatrasathi.logger import logger, setup_logging


def check_connection(target: Engine, create_tables: bool = False) -> bool:
    logger.info("DATABASE_URL={}", target.url.render_as_string(hide_password=True))
    try:
        with target.connect() as conn:
            conn.execute(text("SELECT 1"))
        if create_tables:
            Base.metadata.create_all(bind=target)
            logger.info("created {} tables", len(Base.metadata.tables))
    except SQLAlchemyError as exc:
        logger.error("DB connection FAILED: {}", exc)
        return False
    logger.info("DB connection OK")
    return True


def main() -> None:
    setup_logging()
    sys.exit(0 if check_connection(engine, create_tables="--create-tables" in sys.argv[1:]) else 1)


if __name__ == "__main__":
    main()
