from sqlalchemy import Column, Integer, String, Boolean

from .bootstrap_db import Base


class User(Base):
    """Carrier account. Only the fields the notifier reads live here; the account API owns the rest."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    company_name = Column(String(200))
    is_active = Column(Boolean, nullable=False, default=True)
