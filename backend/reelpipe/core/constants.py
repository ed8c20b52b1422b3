"""System constants"""

from enum import Enum, IntEnum

class VideoStatus(str, Enum):
    """Video processing status"""
    UPLOADING = "uploading"      # waiting for / receiving the upload
    PROCESSING = "processing"    # transcoding on the stream host
    READY = "ready"              # playable
    FAILED = "failed"            # transcoding failed

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

TERMINAL_STATUSES = frozenset({VideoStatus.READY, VideoStatus.FAILED})

# Forward-only ordering of the video state machine
STATUS_ORDER = {
    VideoStatus.UPLOADING: 0,
    VideoStatus.PROCESSING: 1,
    VideoStatus.READY: 2,
    VideoStatus.FAILED: 2,
}

class StreamHostStatus(IntEnum):
    """Status codes reported by the stream host API and webhooks"""
    QUEUED = 0
    PROCESSING_PREVIEW = 1
    ENCODING = 2
    FINISHED = 3
    RESOLUTION_FINISHED = 4
    FAILED = 5
    PRESIGNED_UPLOAD_STARTED = 6
    PRESIGNED_UPLOAD_FINISHED = 7
    PRESIGNED_UPLOAD_FAILED = 8
    CAPTIONS_GENERATED = 9
    TITLE_DESCRIPTION_GENERATED = 10

STREAM_HOST_TO_VIDEO_STATUS = {
    StreamHostStatus.QUEUED: VideoStatus.PROCESSING,
    StreamHostStatus.PROCESSING_PREVIEW: VideoStatus.PROCESSING,
    StreamHostStatus.ENCODING: VideoStatus.PROCESSING,
    StreamHostStatus.FINISHED: VideoStatus.READY,
    StreamHostStatus.RESOLUTION_FINISHED: VideoStatus.READY,
    StreamHostStatus.FAILED: VideoStatus.FAILED,
    StreamHostStatus.PRESIGNED_UPLOAD_FAILED: VideoStatus.FAILED,
    StreamHostStatus.PRESIGNED_UPLOAD_STARTED: VideoStatus.UPLOADING,
}

class PollContext(str, Enum):
    """Where a video is being watched from; picks the poll interval"""
    DETAIL = "detail"
    LIST = "list"

class PollerState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    TERMINAL = "terminal"

# TUS protocol
TUS_VERSION = "1.0.0"

# Limits
MIN_POLL_INTERVAL_SECONDS = 0.1
DEFAULT_FAILURE_MESSAGE = "Video processing failed"
MAX_TITLE_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 2000
MAX_TAGS = 10
MAX_TAG_LENGTH = 50

# Signed download links for the original file
DOWNLOAD_URL_DEFAULT_TTL_SECONDS = 3600
DOWNLOAD_URL_MIN_TTL_SECONDS = 300
DOWNLOAD_URL_MAX_TTL_SECONDS = 86400
