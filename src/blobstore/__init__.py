from .client import BlobStoreClient, random_name

__all__ = ["BlobStoreClient", "random_name"]
