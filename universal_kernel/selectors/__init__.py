"""Read-only selectors."""

from universal_kernel.selectors.base import BaseSelector
from universal_kernel.selectors.entity_selector import EntitySelector

__all__ = ["BaseSelector", "EntitySelector"]
