"""Declarative base for fundadmin database models."""

from sqlalchemy.orm import declarative_base

Base = declarative_base()
