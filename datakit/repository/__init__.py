"""
Repository pattern: data access abstraction, decouples service layer from database session.
"""

from .base import DelegatingRepository, IRepository, Predicate, Repository
from .entity import Entity
from .unit_of_work import UnitOfWork, UnitOfWorkState

__all__ = [
    "DelegatingRepository",
    "Entity",
    "IRepository",
    "Predicate",
    "Repository",
    "UnitOfWork",
    "UnitOfWorkState",
]
