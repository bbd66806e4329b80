from pydantic import BaseModel


class SasUrlRequest(BaseModel):
    blobUrl: str
    expiresInMinutes: float | None = None  # server default when omitted


class SasUrlResponse(BaseModel):
    success: bool = True
    signedUrl: str
    expiresAt: str


class UploadResponse(BaseModel):
    success: bool = True
    photoUrl: str
    blobName: str


class DeleteResponse(BaseModel):
    success: bool = True
    deleted: bool


class FileUploadResponse(BaseModel):
    success: bool = True
    url: str
    blobName: str
