"""Cover object storage gateways."""

from .local_disk_storage import LocalDiskCoverStorage

__all__ = ["LocalDiskCoverStorage"]
