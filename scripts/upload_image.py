#!/usr/bin/env python3
"""
Upload one local image to the Supabase Storage bucket and print its public URL.

Usage:
    python scripts/upload_image.py public/images/sailing.png
    python scripts/upload_image.py sailing.png --key activities/sailing.png --content-type image/png

Requirements (add to .env):
    SUPABASE_URL=...
    SUPABASE_SERVICE_ROLE_KEY=...
    SUPABASE_BUCKET=...        (optional, defaults to activity-images)
"""

from __future__ import annotations

import argparse
import mimetypes
import sys
from pathlib import Path

from supabase import create_client

from image_backfill.config import BackfillConfig, ConfigError
from image_backfill.storage import SupabaseObjectStore


def main() -> int:
    parser = argparse.ArgumentParser(description="Upload a local image to Supabase Storage")
    parser.add_argument("path", type=Path, help="Local image file")
    parser.add_argument("--key", type=str, help="Object key (default: file name)")
    parser.add_argument("--content-type", type=str, help="Content type (default: guessed from extension)")
    args = parser.parse_args()

    if not args.path.is_file():
        print(f"ERROR: {args.path} not found.")
        return 1

    try:
        config = BackfillConfig.from_env()
    except ConfigError as e:
        print(f"ERROR: {e}")
        return 1
    if not config.supabase_url or not config.supabase_key:
        print("ERROR: SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set in .env")
        return 1

    key = args.key or args.path.name
    content_type = args.content_type or mimetypes.guess_type(args.path.name)[0] or "image/jpeg"

    store = SupabaseObjectStore(create_client(config.supabase_url, config.supabase_key), config.public_base)
    result = store.put(config.bucket, key, args.path.read_bytes(), content_type)
    if not result.ok:
        print(f"ERROR: {result.reason}")
        return 1

    print(f"Uploaded Image URL: {result.value}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
