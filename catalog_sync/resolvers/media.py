"""
Purpose: Upload source images to the destination exactly once per URL.

Functionality: The dedup key is the md5 of the source URL (MediaMappingStore),
so the same picture referenced by many variations, or by an attribute value,
is uploaded a single time. The destination fetches nothing by itself: the
client downloads the file and pushes it into a media entity that lives in a
named folder. Folder ids are cached for the lifetime of the resolver.

Media is best-effort. A failed upload is logged and the referencing product
is synced without the picture.
"""
import logging
import os
from typing import Any, Dict, List, Optional
from urllib.parse import unquote, urlparse

from catalog_sync.core.enums import MediaSourceType
from catalog_sync.core.exceptions import DatabaseError
from catalog_sync.resolvers.base import ResolverContext, ResolverStats
from catalog_sync.services.mapping_store import MediaMappingStore, MediaRecord
from catalog_sync.transformers.references import image_url

logger = logging.getLogger(__name__)

PRODUCT_MEDIA_FOLDER = "Product Media"
ATTRIBUTE_MEDIA_FOLDER = "Attribute Images"
DEFAULT_EXTENSION = ".jpg"


def file_name_from_url(url: str, default: str = "image") -> str:
    """Last path segment of the URL, with a .jpg extension when it has none."""
    name = unquote(os.path.basename(urlparse(url).path or "")) or default
    if not os.path.splitext(name)[1]:
        name = f"{name}{DEFAULT_EXTENSION}"
    return name


class MediaResolver:

    def __init__(self, context: ResolverContext):
        self.context = context
        self.tenant_id = context.tenant_id
        self.destination = context.destination
        self.store = MediaMappingStore(context.db, context.tenant_id)
        self.lookup: Dict[str, str] = {}
        self.failed_urls = set()
        self.folders: Dict[str, str] = {}
        self.stats = ResolverStats()

    async def get_folder_id(self, folder_name: str) -> Optional[str]:
        if folder_name in self.folders:
            return self.folders[folder_name]
        result = await self.destination.get_or_create_media_folder(folder_name)
        if not result.success or not result.id:
            logger.warning(f"Media folder '{folder_name}' unavailable for tenant {self.tenant_id}: {result.error}")
            return None
        self.folders[folder_name] = result.id
        return result.id

    async def preload(self, urls: List[str]) -> None:
        pending = [u for u in urls if u and u not in self.lookup]
        if not pending:
            return
        existing = await self.store.get_batch(pending)
        for url, row in existing.items():
            self.lookup[url] = row.dest_id
        self.stats.reused += len(existing)

    async def upload(
        self,
        source_url: str,
        source_type: MediaSourceType,
        source_entity_id: Any = None,
        folder_name: str = PRODUCT_MEDIA_FOLDER,
        file_name: Optional[str] = None,
        title: Optional[str] = None,
        alt: Optional[str] = None,
    ) -> Optional[str]:
        """Destination media id for the URL, uploading it when it is new."""
        if not source_url:
            return None
        await self.preload([source_url])
        if source_url in self.lookup:
            return self.lookup[source_url]
        if source_url in self.failed_urls:
            return None

        file_name = file_name or file_name_from_url(source_url)
        folder_id = await self.get_folder_id(folder_name)
        result = await self.destination.create_media_from_url(
            source_url,
            file_name,
            folder_id=folder_id,
            title=title or os.path.splitext(file_name)[0],
            alt=alt,
        )
        if not result.success or not result.id:
            self.failed_urls.add(source_url)
            self.stats.failed += 1
            logger.warning(f"Media upload failed for {source_url}: {result.error}")
            return None

        record = MediaRecord(
            source_url=source_url,
            dest_id=result.id,
            source_type=MediaSourceType(source_type).value,
            source_entity_id=source_entity_id,
            dest_folder_id=folder_id,
            file_name=file_name,
            mime_type=result.mime_type,
            file_size=result.file_size,
        )
        try:
            await self.store.upsert_batch([record])
        except DatabaseError as e:
            # media exists remotely but is unmapped
            logger.error(f"Failed to store media mapping for {source_url}: {str(e)}")
        self.lookup[source_url] = result.id
        self.stats.created += 1
        return result.id

    async def resolve_product_images(self, item_id: Any, images: List[Dict[str, Any]],
                                     product_number: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Upload the images of one item.

        Returns:
            [{"mediaId": ..., "position": ...}] for every image that made it
        """
        images = images or []
        await self.preload([image_url(img) for img in images if image_url(img)])

        media = []
        for index, image in enumerate(images):
            url = image_url(image)
            if not url:
                continue
            names = image.get("names") or []
            first_name = names[0] if names else {}
            media_id = await self.upload(
                url,
                MediaSourceType.PRODUCT_IMAGE,
                source_entity_id=f"{item_id}:{image.get('id')}",
                folder_name=PRODUCT_MEDIA_FOLDER,
                title=first_name.get("name") or f"{product_number or item_id} - Image {index + 1}",
                alt=first_name.get("alternate"),
            )
            if media_id:
                position = image.get("position")
                media.append({"mediaId": media_id, "position": position if position is not None else index})
        return media

    async def resolve_attribute_value_image(self, frontend_url: str, attribute: Any,
                                            value: Dict[str, Any]) -> Optional[str]:
        image = value.get("image")
        if not image or not frontend_url:
            return None
        url = f"{frontend_url.rstrip('/')}/images/produkte/grp/{image}"
        label = value.get("backendName") or str(value.get("id"))
        return await self.upload(
            url,
            MediaSourceType.ATTRIBUTE_VALUE_IMAGE,
            source_entity_id=f"{attribute.source_id}_{value.get('id')}",
            folder_name=ATTRIBUTE_MEDIA_FOLDER,
            file_name=f"attr_{attribute.source_id}_val_{value.get('id')}_{image}",
            title=f"{attribute.backend_name} - {label}",
            alt=label,
        )
