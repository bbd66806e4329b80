import os
from pydantic import BaseModel

# Container the progress-photo uploads land in when none is configured.
DEFAULT_CONTAINER_NAME = "progress-photos"


class Settings(BaseModel):
    app_env: str = os.getenv("APP_ENV", "local")
    cors_allow_origins: str = os.getenv("CORS_ALLOW_ORIGINS", "http://localhost:3000")

    azure_storage_account_name: str = os.getenv("AZURE_STORAGE_ACCOUNT_NAME", "")
    azure_storage_account_key: str = os.getenv("AZURE_STORAGE_ACCOUNT_KEY", "")
    azure_storage_container_name: str = os.getenv("AZURE_STORAGE_CONTAINER_NAME", DEFAULT_CONTAINER_NAME)
    # Fallback for account name/key when the explicit vars are not set
    azure_storage_connection_string: str = os.getenv("AZURE_STORAGE_CONNECTION_STRING", "")

    sas_ttl_minutes: int = int(os.getenv("STORAGE_SAS_TTL_MINUTES", "60"))
    max_upload_bytes: int = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

settings = Settings()
