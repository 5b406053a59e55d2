"""Model classes.

Model      -- statement builders for one table
BaseModel  -- CRUD operations, validation hooks and lifecycle events
KeyModel   -- BaseModel addressed by a ``key`` primary key
"""

from sqlcrud.models.base import BaseModel, Entity
from sqlcrud.models.key import KeyModel
from sqlcrud.models.model import Model

__all__ = [
    "Model",
    "BaseModel",
    "KeyModel",
    "Entity",
]
