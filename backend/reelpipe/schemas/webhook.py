from pydantic import BaseModel, ConfigDict, Field

class StreamHostWebhook(BaseModel):
    """Payload posted by the stream host when a video changes state"""
    library_id: int = Field(..., alias="VideoLibraryId")
    video_guid: str = Field(..., alias="VideoGuid")
    status: int = Field(..., alias="Status")

    model_config = ConfigDict(populate_by_name=True)

class WebhookResult(BaseModel):
    success: bool
    message: str
