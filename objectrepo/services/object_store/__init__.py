from .object_store import ObjectStoreInterface, Page

__all__ = ["ObjectStoreInterface", "Page"]
