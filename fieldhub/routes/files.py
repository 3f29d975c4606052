from mimetypes import guess_type

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse

from ..storage.local_provider import LocalStorageProvider


router = APIRouter(prefix="/files", tags=["files"])


@router.get("/local/{file_path:path}")
def serve_local_file(file_path: str):
    """Serve files from local storage for development."""
    path = LocalStorageProvider().resolve(file_path)
    if path is None:
        raise HTTPException(status_code=404, detail="File not found")
    content_type = guess_type(str(path))[0] or "application/octet-stream"
    return FileResponse(path=str(path), media_type=content_type, filename=path.name)
