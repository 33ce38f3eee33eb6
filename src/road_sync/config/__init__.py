from .sync_config import SyncConfig

__all__ = ["SyncConfig"]
