from .mime import extension_for, type_for, is_sha256
from .query import parse_get_list_query, content_range

__all__ = ['extension_for', 'type_for', 'is_sha256', 'parse_get_list_query', 'content_range']
