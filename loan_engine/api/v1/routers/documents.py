from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import FileResponse

from loan_engine.core.settings import Settings, get_settings
from loan_engine.services.storage.adapter import LocalFileSystemAdapter, verify_local_url_signature

router = APIRouter(prefix="/documents", tags=["documents"])


@router.get("/local-content", summary="Download a locally stored agreement letter")
async def get_local_content(
    key: str = Query(...),
    expires: int = Query(...),
    signature: str = Query(...),
    settings: Settings = Depends(get_settings),
):
    if settings.storage_provider != "local":
        raise HTTPException(status_code=404, detail="Not supported")
    if not verify_local_url_signature(settings.secret_key, key, expires, signature):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or expired URL signature",
        )
    adapter = LocalFileSystemAdapter(base_path=settings.local_upload_dir, base_url="")
    try:
        path = adapter.resolve_path(key)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not path.is_file():
        raise HTTPException(status_code=404)
    return FileResponse(path, media_type="application/pdf", filename=path.name)
