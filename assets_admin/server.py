from __future__ import annotations

import logging
from typing import Any, Optional

import uvicorn
from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse
from fastapi.routing import APIRouter
from starlette.concurrency import run_in_threadpool

from assets_admin.config import Settings, load_settings
from assets_admin.errors import AssetError
from assets_admin.images import DEFAULT_HEIGHT, DEFAULT_QUALITY, DEFAULT_WIDTH
from assets_admin.service import AssetManager


logger = logging.getLogger(__name__)

router = APIRouter()


def _manager(request: Request) -> AssetManager:
    return request.app.state.assets


async def _json_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Expected a JSON object")
    return body


def _str_field(body: dict[str, Any], key: str) -> str:
    v = body.get(key)
    if not isinstance(v, str) or not v.strip():
        raise HTTPException(status_code=400, detail=f"Missing field: {key}")
    return v.strip()


def _int_field(body: dict[str, Any], key: str, default: int) -> int:
    v = body.get(key)
    if v is None:
        return default
    try:
        return int(v)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail=f"Field {key} must be an integer")


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/api/files/image-tree")
def image_tree(manager: AssetManager = Depends(_manager)) -> dict[str, Any]:
    return {"tree": [n.to_dict() for n in manager.list_tree("cards")]}


@router.get("/api/files/uploaded-tree")
def uploaded_tree(manager: AssetManager = Depends(_manager)) -> dict[str, Any]:
    return {"tree": [n.to_dict() for n in manager.list_tree("uploads")]}


@router.get("/api/files/tree")
def tree(manager: AssetManager = Depends(_manager)) -> dict[str, Any]:
    return manager.combined_tree().to_dict()


@router.post("/api/files/upload")
def upload(
    request: Request,
    file: UploadFile = File(...),
    manager: AssetManager = Depends(_manager),
) -> dict[str, str]:
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit():
        # multipart framing adds a little on top of the file itself
        if int(content_length) > manager.settings.max_upload_bytes + 64 * 1024:
            raise HTTPException(status_code=413, detail="Upload exceeds limit")
    return {"imageUrl": manager.upload(file.file, file.filename or "")}


@router.post("/api/files/rename")
async def rename(request: Request, manager: AssetManager = Depends(_manager)) -> dict[str, str]:
    body = await _json_body(request)
    root, identifier, new_name = _str_field(body, "root"), _str_field(body, "identifier"), _str_field(body, "newName")
    url = await run_in_threadpool(manager.rename, root, identifier, new_name)
    return {"imageUrl": url}


@router.post("/api/files/delete")
async def delete(request: Request, manager: AssetManager = Depends(_manager)) -> dict[str, bool]:
    body = await _json_body(request)
    await run_in_threadpool(manager.delete_file, _str_field(body, "root"), _str_field(body, "identifier"))
    return {"ok": True}


@router.post("/api/files/move")
async def move(request: Request, manager: AssetManager = Depends(_manager)) -> dict[str, str]:
    body = await _json_body(request)
    url = await run_in_threadpool(manager.move_file, _str_field(body, "path"), _str_field(body, "targetFolder"))
    return {"imageUrl": url}


@router.post("/api/files/convert-webp")
async def convert_webp(request: Request, manager: AssetManager = Depends(_manager)) -> dict[str, str]:
    """Re-encode an upload as WebP. Overwrites an existing ``.webp`` of the same name."""
    body = await _json_body(request)
    url = await run_in_threadpool(
        manager.convert_to_webp, _str_field(body, "name"), _int_field(body, "quality", DEFAULT_QUALITY)
    )
    return {"imageUrl": url}


@router.post("/api/files/resize")
async def resize(request: Request, manager: AssetManager = Depends(_manager)) -> dict[str, str]:
    body = await _json_body(request)
    url = await run_in_threadpool(
        manager.resize,
        _str_field(body, "name"),
        _int_field(body, "width", DEFAULT_WIDTH),
        _int_field(body, "height", DEFAULT_HEIGHT),
    )
    return {"imageUrl": url}


@router.post("/api/files/atlas")
def build_atlas(manager: AssetManager = Depends(_manager)) -> JSONResponse:
    result = manager.build_atlas()
    return JSONResponse(result.to_dict(), status_code=200 if result.success else 500)


async def _asset_error(request: Request, exc: AssetError) -> JSONResponse:
    if exc.status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(exc.to_dict(), status_code=exc.status)


async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("%s %s crashed", request.method, request.url.path)
    return JSONResponse({"error": "Internal server error", "kind": "InternalError"}, status_code=500)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or load_settings()
    app = FastAPI(title="Card assets", docs_url=None, redoc_url=None)
    app.state.assets = AssetManager(settings)
    app.add_exception_handler(AssetError, _asset_error)
    app.add_exception_handler(Exception, _unexpected_error)
    # Mount the router at the configured root path (e.g., "/admin" or "")
    app.include_router(router, prefix=settings.root_path)
    return app


app = create_app()


if __name__ == "__main__":
    _settings = load_settings()
    logging.basicConfig(level=_settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(
        "assets_admin.server:app",
        host="0.0.0.0",
        port=_settings.port,
        reload=False,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )
