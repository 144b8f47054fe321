# bootstrap_db.py
# Export Base for ORM models. Run this file as a script (or loadnetwork-bootstrap) to create the schema.
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from loadnetwork.core.config import settings

Base = declarative_base()

DATABASE_URL = settings.DATABASE_URL


def create_schema(eng: Engine) -> None:
    """Create every table registered on Base. Safe to call repeatedly."""
    # Register the models on Base.metadata
    from loadnetwork.models import alert, load, user, zip_code  # noqa: F401

    Base.metadata.create_all(eng)


def run_bootstrap():
    """Create tables and the lookup indexes used by the search API. Call when running this file as __main__."""
    if not DATABASE_URL:
        raise RuntimeError("DATABASE_URL not set in environment")
    eng = create_engine(DATABASE_URL, echo=True, future=True)
    create_schema(eng)
    with eng.begin() as conn:
        if eng.dialect.name == "postgresql":
            conn.execute(text("CREATE INDEX IF NOT EXISTS idx_loads_origin_point ON loads(origin_lat, origin_lng)"))
            conn.execute(text(
                "CREATE INDEX IF NOT EXISTS idx_loads_destination_point ON loads(destination_lat, destination_lng)"
            ))
            conn.execute(text("CREATE INDEX IF NOT EXISTS idx_zip_codes_city_state ON zip_codes(lower(city), state_id)"))
        load_count = conn.execute(text("SELECT COUNT(*) FROM loads;")).scalar()
        zip_count = conn.execute(text("SELECT COUNT(*) FROM zip_codes;")).scalar()
    print(f"Bootstrap complete: tables ready ({load_count} loads, {zip_count} zip codes).")


if __name__ == "__main__":
    run_bootstrap()
