from mostrador.database.database import Base
from sqlalchemy import Column, String, Boolean, Uuid
from uuid import uuid4
from mostrador.common.mixins import TimestampMixin

class Location(Base, TimestampMixin):
    __tablename__ = "locations"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(100), nullable=False, unique=True)
    address = Column(String(255), nullable=True)
    phone_number = Column(String(20), nullable=True)
    is_main = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
