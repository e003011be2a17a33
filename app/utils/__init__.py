"""Utility functions"""

from app.utils.pagination import pagination_meta, page_to_skip
from app.utils.validators import validate_object_id

__all__ = ["pagination_meta", "page_to_skip", "validate_object_id"]
