from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class RawUpload(BaseModel):
    """Client-supplied upload descriptor; nothing is guaranteed present."""

    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    name: Optional[str] = None
    detail: Optional[str] = None
    data_url: Optional[str] = Field(None, alias="dataUrl")
    # bytes from multipart, or a list of ints from JSON clients
    buffer: Optional[Any] = None
    url: Optional[str] = None
    key: Optional[str] = Field(None, validation_alias=AliasChoices("key", "storageKey", "storage_key"))
    blob_pathname: Optional[str] = Field(None, alias="blobPathname")
    size: Optional[int] = Field(None, validation_alias=AliasChoices("size", "bytes"))
    mime_type: Optional[str] = Field(None, alias="mimeType")


class UploadTokenRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    filename: Optional[str] = None
    content_type: Optional[str] = Field(None, alias="contentType")
    size: Optional[int] = None


class UploadTokenResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str
    fields: dict
    key: str
    content_type: str = Field(alias="contentType")
    max_bytes: int = Field(alias="maxBytes")
