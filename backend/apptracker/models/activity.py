from sqlalchemy import Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship
from apptracker.database import Base


class Activity(Base):
    __tablename__ = "activities"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True)
    application_id = Column(
        Integer, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False
    )
    type = Column(Text, nullable=False)
    date = Column(Text)
    notes = Column(Text)
    created_at = Column(Text, nullable=False)

    application = relationship("Application", back_populates="activities")
