from app.models.blob_object import BlobObject
from app.models.post import Post
from app.models.provider_token import ProviderToken

__all__ = [
    "BlobObject",
    "Post",
    "ProviderToken",
]
