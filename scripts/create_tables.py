"""Create all database tables"""
import logging

from app.db.base_class import Base
from app.db.session import build_engine
# Import all models so they are registered with Base.metadata
from app.models import *  # noqa: F401,F403

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_tables():
    engine = build_engine()
    logger.info("Creating all database tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("All tables created successfully!")
    engine.dispose()


if __name__ == "__main__":
    create_tables()
