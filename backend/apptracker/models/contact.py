from sqlalchemy import Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship
from apptracker.database import Base


class Contact(Base):
    __tablename__ = "contacts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True)
    application_id = Column(
        Integer, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False
    )
    name = Column(Text, nullable=False)
    email = Column(Text)
    phone = Column(Text)
    title = Column(Text)
    linkedin = Column(Text)
    created_at = Column(Text, nullable=False)

    application = relationship("Application", back_populates="contacts")
