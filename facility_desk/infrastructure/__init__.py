"""Infrastructure layer exports."""

from .cloudinary import CloudinaryStorageGateway
from .services import InMemoryServiceCatalog, load_service_catalog
from .storage import BatchUploadError, InMemoryStorageGateway, StorageGateway, delete_many, upload_many
from .work_queries import (
    DuplicateQueryIdError,
    InMemoryWorkQueryRepository,
    JsonFileWorkQueryRepository,
    WorkQueryFilters,
    WorkQueryRepository,
)

__all__ = [
    "BatchUploadError",
    "CloudinaryStorageGateway",
    "DuplicateQueryIdError",
    "InMemoryServiceCatalog",
    "InMemoryStorageGateway",
    "InMemoryWorkQueryRepository",
    "JsonFileWorkQueryRepository",
    "StorageGateway",
    "WorkQueryFilters",
    "WorkQueryRepository",
    "delete_many",
    "load_service_catalog",
    "upload_many",
]
