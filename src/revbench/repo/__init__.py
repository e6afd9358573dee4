from .resolver import resolve, sync

__all__ = ["resolve", "sync"]
