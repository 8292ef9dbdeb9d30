"""ORM models for the five universal tables."""

from universal_kernel.models.dynamic_data import DynamicField
from universal_kernel.models.entity import Entity
from universal_kernel.models.metadata import EntityMetadata
from universal_kernel.models.relationship import EntityRelationship
from universal_kernel.models.transaction import UniversalTransaction

__all__ = [
    "DynamicField",
    "Entity",
    "EntityMetadata",
    "EntityRelationship",
    "UniversalTransaction",
]
