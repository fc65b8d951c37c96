"""Construct the work query service from settings."""
from __future__ import annotations

import logging

from facility_desk.core.settings import Settings
from facility_desk.infrastructure import (
    CloudinaryStorageGateway,
    InMemoryStorageGateway,
    InMemoryWorkQueryRepository,
    JsonFileWorkQueryRepository,
    StorageGateway,
    WorkQueryRepository,
    load_service_catalog,
)

from .work_queries import WorkQueryService

logger = logging.getLogger(__name__)


def build_work_query_service(settings: Settings) -> WorkQueryService:
    repository: WorkQueryRepository
    if settings.store_dir is not None:
        repository = JsonFileWorkQueryRepository(settings.store_dir)
    else:
        repository = InMemoryWorkQueryRepository()

    gateway: StorageGateway
    if settings.cloudinary_enabled:
        gateway = CloudinaryStorageGateway(
            settings.cloudinary_cloud_name or "",
            settings.cloudinary_api_key or "",
            settings.cloudinary_api_secret or "",
            timeout=settings.upload_timeout,
        )
    else:
        logger.warning("Cloudinary credentials not configured; proof files are kept in memory")
        gateway = InMemoryStorageGateway()

    catalog = load_service_catalog(settings.service_catalog_path)
    return WorkQueryService(repository, gateway, catalog=catalog, settings=settings)
