"""
app/api/dependencies.py

Shared FastAPI dependencies for request validation.
"""

from __future__ import annotations

from pathlib import Path

from fastapi import File, HTTPException, UploadFile, status

from app.services.spreadsheet_acquirer import CONTENT_TYPE_EXTENSIONS, SUPPORTED_EXTENSIONS


def get_spreadsheet_upload(file: UploadFile = File(...)) -> UploadFile:
    """
    Accept XLSX, XLS or CSV uploads, by extension or MIME type.
    """

    suffix = Path((file.filename or "").strip()).suffix.lower()
    content_type = (file.content_type or "").split(";", 1)[0].strip().lower()

    if suffix not in SUPPORTED_EXTENSIONS and content_type not in CONTENT_TYPE_EXTENSIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only XLSX, XLS or CSV spreadsheets are allowed.",
        )

    return file
