"""Defines the 'companies' and 'users' tables using SQLAlchemy ORM."""

from sqlalchemy import Column, Integer, String, ForeignKey
from sqlalchemy.orm import relationship
from .db import Base


class Company(Base):
    """
    SQLAlchemy model for the 'companies' table.
    A company is only created after its tax id passed the registry lookup.
    """
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, index=True)

    # Tax id (CNPJ) used as the registry lookup key
    tax_id = Column(String(32), nullable=False, index=True)
    legal_name = Column(String(255), nullable=False)
    trade_name = Column(String(255), nullable=False)

    # One-directional ownership: users are reached through the company,
    # never the other way around, so DTOs stay acyclic.
    # Deleting a company deletes its users in the same flush.
    users = relationship("User", order_by="User.id", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Company {self.id} tax_id={self.tax_id}>"


class User(Base):
    """
    SQLAlchemy model for the 'users' table.
    Every user belongs to exactly one company.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    username = Column(String(255), nullable=False, index=True)

    # bcrypt hash, the plain secret is never stored
    hashed_password = Column(String(255), nullable=False)

    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)

    def __repr__(self):
        return f"<User {self.id} company_id={self.company_id}>"
