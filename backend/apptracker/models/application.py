from sqlalchemy import Column, Integer, Text
from sqlalchemy.orm import relationship
from apptracker.database import Base


class Application(Base):
    __tablename__ = "applications"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True)
    company = Column(Text, nullable=False)
    role = Column(Text)
    status = Column(Text, nullable=False)
    url = Column(Text)
    notes = Column(Text)
    created_at = Column(Text, nullable=False)

    contacts = relationship(
        "Contact", back_populates="application", cascade="all, delete-orphan", passive_deletes=True
    )
    activities = relationship(
        "Activity", back_populates="application", cascade="all, delete-orphan", passive_deletes=True
    )
    tags = relationship("Tag", secondary="application_tags", back_populates="applications")
