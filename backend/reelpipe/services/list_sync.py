"""Which cached views to refresh after mutations and status transitions"""

import logging
from typing import Iterable

from reelpipe.services.query_cache import (
    PROJECT_LIST_KEY, QueryCache, project_detail_key, video_detail_key, video_list_prefix,
)

logger = logging.getLogger(__name__)


class ListSync:
    def __init__(self, cache: QueryCache):
        self.cache = cache

    def after_upload_created(self, project_id: str, video_id: str) -> None:
        self._after_mutation(project_id, [video_id])

    def after_delete(self, project_id: str, video_id: str) -> None:
        self._after_mutation(project_id, [video_id])

    def after_bulk_delete(self, project_video_ids: dict) -> None:
        """`project_video_ids` maps project id to the deleted ids in it"""
        for project_id, video_ids in project_video_ids.items():
            self._after_mutation(project_id, video_ids)

    def after_metadata_update(self, project_id: str, video_id: str) -> None:
        # Titles and tags show in lists too; counts do not change
        self.cache.invalidate(video_detail_key(video_id))
        self.cache.invalidate(video_list_prefix(project_id))

    def after_terminal(self, project_id: str, video_id: str) -> None:
        logger.debug(f"Video {video_id} reached a terminal status, refreshing project {project_id} views")
        self.cache.invalidate(video_detail_key(video_id))
        self.cache.invalidate(video_list_prefix(project_id))
        self.cache.invalidate(project_detail_key(project_id))

    def refresh_detail(self, video_id: str) -> None:
        self.cache.invalidate(video_detail_key(video_id))

    def _after_mutation(self, project_id: str, video_ids: Iterable[str]) -> None:
        self.cache.invalidate(video_list_prefix(project_id))
        for video_id in video_ids:
            self.cache.invalidate(video_detail_key(video_id))
        self.cache.invalidate(project_detail_key(project_id))
        self.cache.invalidate(PROJECT_LIST_KEY)
