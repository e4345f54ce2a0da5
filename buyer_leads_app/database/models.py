from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class User(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    email = Column(Text, unique=True, nullable=False)
    name = Column(Text, nullable=False)
    created_at = Column(DateTime)

    buyers = relationship("Buyer", back_populates="owner")


class Buyer(Base):
    __tablename__ = "buyers"

    id = Column(String(64), primary_key=True)
    full_name = Column(String(80), nullable=False)
    email = Column(Text)
    phone = Column(String(15), nullable=False, index=True)
    city = Column(Text, nullable=False)
    property_type = Column(Text, nullable=False)
    bhk = Column(Text)
    purpose = Column(Text, nullable=False)
    budget_min = Column(Integer)
    budget_max = Column(Integer)
    timeline = Column(Text, nullable=False)
    source = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="New")
    notes = Column(String(1000))
    # JSON array of strings
    tags = Column(Text)
    owner_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)

    owner = relationship("User", back_populates="buyers")
    history = relationship(
        "BuyerHistory",
        back_populates="buyer",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    # updated_at doubles as the row version; writers set it themselves
    __mapper_args__ = {"version_id_col": updated_at, "version_id_generator": False}


class BuyerHistory(Base):
    __tablename__ = "buyer_history"

    id = Column(String(64), primary_key=True)
    buyer_id = Column(String(64), ForeignKey("buyers.id", ondelete="CASCADE"), nullable=False, index=True)
    changed_by = Column(String(64), ForeignKey("users.id"), nullable=False)
    changed_at = Column(DateTime)
    # JSON object: {"action": "created"|"updated", ...}
    diff = Column(Text, nullable=False)

    buyer = relationship("Buyer", back_populates="history")
