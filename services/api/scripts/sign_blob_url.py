#!/usr/bin/env python3
"""
Print a read-only SAS URL for a stored blob (e.g. to open a client's progress photo while debugging).

Run from services/api. Credentials come from the same env vars as the API
(AZURE_STORAGE_ACCOUNT_NAME / AZURE_STORAGE_ACCOUNT_KEY or AZURE_STORAGE_CONNECTION_STRING),
or can be passed explicitly:
  uv run python scripts/sign_blob_url.py https://coachpro.blob.core.windows.net/progress-photos/user123/1700000000000-front.jpg
  uv run python scripts/sign_blob_url.py --minutes 10 --account-name coachpro --account-key '...' <blob-url>
"""
import argparse
import sys

from app.core.azure_storage import BlobSasSigner, StorageConfig, StorageSigningError, format_sas_time
from app.core.config import settings


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Print a read-only SAS URL for a blob.")
    parser.add_argument("blob_url", help="Blob URL, https://{account}.blob.core.windows.net/{container}/{blob}")
    parser.add_argument("--minutes", type=float, default=float(settings.sas_ttl_minutes), help="Validity in minutes")
    parser.add_argument("--account-name", help="Overrides AZURE_STORAGE_ACCOUNT_NAME")
    parser.add_argument("--account-key", help="Overrides AZURE_STORAGE_ACCOUNT_KEY (base64)")
    parser.add_argument("--show-expiry", action="store_true", help="Also print the expiry time on stderr")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> StorageConfig:
    config = StorageConfig.from_settings(settings)
    if args.account_name or args.account_key:
        config = StorageConfig(
            account_name=args.account_name or config.account_name,
            account_key=args.account_key or config.account_key,
            container_name=config.container_name,
            endpoint_suffix=config.endpoint_suffix,
        )
    return config


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        signed = BlobSasSigner(build_config(args)).sign(args.blob_url, args.minutes)
    except StorageSigningError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(signed.url)
    if args.show_expiry:
        print(f"expires at {format_sas_time(signed.expires_at)}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
