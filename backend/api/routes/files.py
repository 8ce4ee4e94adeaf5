"""
Statement upload, listing and download API routes.
"""

import logging
from typing import Annotated, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Header, Query, Request, status
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.datastructures import UploadFile

from api.dependencies import get_statement_store
from services.statement_converter import (
    InvalidPathComponent,
    StatementStore,
    iter_file,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Files"])


@router.post("/upload")
async def upload_statements(
    request: Request,
    store: Annotated[StatementStore, Depends(get_statement_store)],
    x_session_id: Annotated[Optional[str], Header()] = None,
):
    """
    Upload PDF statements for an upload session.

    Each file is stored and converted; the converted CSVs are listed by
    GET /files.
    """
    if not x_session_id:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Missing x-session-id header"},
        )

    form = await request.form()
    files = [item for item in form.getlist("files") if isinstance(item, UploadFile)]

    try:
        for upload in files:
            data = await upload.read()
            await store.save_statement(x_session_id, upload.filename or "", data)
    except InvalidPathComponent as e:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": str(e)},
        )
    except OSError as e:
        logger.error("File upload failed for session %s: %s", x_session_id, e)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "File upload failed"},
        )

    logger.info("Uploaded %d statements for session %s", len(files), x_session_id)
    return {"message": "Files uploaded successfully"}


@router.get("/files")
async def list_files(
    store: Annotated[StatementStore, Depends(get_statement_store)],
    session_id: Annotated[Optional[str], Query(alias="sessionId")] = None,
):
    """List the converted CSVs for an upload session."""
    if not session_id:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"files": []})

    try:
        files = store.list_converted(session_id)
    except (InvalidPathComponent, OSError):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"files": []})

    return {
        "files": [
            {"name": item.name, "modified": item.modified.isoformat()}
            for item in files
        ]
    }


@router.get("/download")
async def download_file(
    store: Annotated[StatementStore, Depends(get_statement_store)],
    filename: Optional[str] = None,
    uuid: Optional[str] = None,
):
    """Download one converted CSV as an attachment."""
    if not filename or not uuid:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Filename and UUID are required"},
        )

    try:
        path = store.converted_path(uuid, filename)
    except InvalidPathComponent:
        path = None
    if path is None:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"error": "File not found"},
        )

    return StreamingResponse(
        iter_file(path),
        media_type="text/csv",
        headers={
            "Content-Disposition": f"attachment; filename*=UTF-8''{quote(path.name, safe='')}",
        },
    )
