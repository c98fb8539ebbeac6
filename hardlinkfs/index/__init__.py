from hardlinkfs.index.service import InodeIndexService, InodeIndexStats

__all__ = ["InodeIndexService", "InodeIndexStats"]
