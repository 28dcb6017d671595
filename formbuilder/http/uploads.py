"""CSV upload intake shared by the import routes.

Accepts either a multipart ``file`` part or a raw ``text/csv`` body and
enforces ``csv.import_max_bytes`` before any parsing.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Request, UploadFile

from formbuilder.config import get_config
from formbuilder.http.problem import PayloadTooLarge

logger = logging.getLogger(__name__)


async def read_csv_upload(request: Request, file: Optional[UploadFile] = None) -> bytes:
    limit = get_config().csv.import_max_bytes
    if file is not None:
        source = "multipart"
        data = await file.read(limit + 1)
    else:
        source = "raw"
        data = await request.body()
    if len(data) > limit:
        logger.info("csv_upload_rejected source=%s size_bytes>%s", source, limit)
        raise PayloadTooLarge(limit)
    logger.info("csv_upload_received source=%s size_bytes=%s", source, len(data))
    return data


__all__ = ["read_csv_upload"]
