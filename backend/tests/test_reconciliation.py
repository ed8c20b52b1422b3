import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

from reelpipe.models import Video
from reelpipe.services.reconciliation import reconcile_deleted_videos

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
GRACE = timedelta(hours=24)


class TestReconciliation:
    async def test_purges_rows_past_the_grace_period(self, db_session, seed, make_video, stream_host, refetch):
        old = await make_video(seed.project_id, seed.owner_id, external_video_id="guid-old",
                               deleted_at=NOW - timedelta(hours=30))
        recent = await make_video(seed.project_id, seed.owner_id, external_video_id="guid-recent",
                                  deleted_at=NOW - timedelta(hours=2))
        live = await make_video(seed.project_id, seed.owner_id)

        stats = await reconcile_deleted_videos(db_session, stream_host, now=NOW, grace=GRACE)

        assert stats["purged"] == 1
        stream_host.delete_video.assert_awaited_once_with("guid-old")
        assert await refetch(Video, old) is None
        assert await refetch(Video, recent) is not None
        assert await refetch(Video, live) is not None

    async def test_upstream_failure_keeps_row_for_next_pass(self, db_session, seed, make_video, stream_host, refetch):
        video_id = await make_video(seed.project_id, seed.owner_id, deleted_at=NOW - timedelta(days=3))
        stream_host.delete_video = AsyncMock(return_value=False)

        stats = await reconcile_deleted_videos(db_session, stream_host, now=NOW, grace=GRACE)

        assert stats == {"examined": 1, "purged": 0, "upstream_failed": 1, "kept_as_root": 0}
        assert await refetch(Video, video_id) is not None

    async def test_lineage_root_with_live_versions_is_kept(self, db_session, seed, make_video, stream_host, refetch):
        root = await make_video(seed.project_id, seed.owner_id, deleted_at=NOW - timedelta(days=3),
                                is_current_version=False)
        await make_video(seed.project_id, seed.owner_id, parent_video_id=root, version_number=2)

        stats = await reconcile_deleted_videos(db_session, stream_host, now=NOW, grace=GRACE)

        assert stats["kept_as_root"] == 1
        assert await refetch(Video, root) is not None
        stream_host.delete_video.assert_not_awaited()

    async def test_deleted_mid_upload_is_purged_after_grace(self, db_session, seed, make_video, stream_host, refetch):
        video_id = await make_video(seed.project_id, seed.owner_id, status="uploading",
                                    external_video_id="guid-mid", deleted_at=NOW - timedelta(hours=25))

        await reconcile_deleted_videos(db_session, stream_host, now=NOW, grace=GRACE)

        stream_host.delete_video.assert_awaited_once_with("guid-mid")
        assert await refetch(Video, video_id) is None


class TestCleanupTask:
    def test_task_runs_reconciliation(self):
        from reelpipe.tasks import cleanup_tasks

        stats = {"examined": 2, "purged": 2, "upstream_failed": 0, "kept_as_root": 0}
        with patch.object(cleanup_tasks, "_reconcile", AsyncMock(return_value=stats)):
            result = cleanup_tasks.reconcile_deleted_videos_task.apply().get()

        assert result["status"] == "success"
        assert result["purged"] == 2

    def test_beat_schedule(self):
        from reelpipe.core.celery import celery_app

        entry = celery_app.conf.beat_schedule["reconcile-deleted-videos"]
        assert entry["task"] == "reconcile_deleted_videos"
