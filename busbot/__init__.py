def init_db():
    """Create tables (simple dev mode; no migrations)."""
    from busbot.db import engine
    from busbot.models import Base

    Base.metadata.create_all(bind=engine)
