"""FastAPI application for the Vendor Catalog backend."""

import json
import logging
from typing import Any

import redis
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel
from starlette.datastructures import UploadFile

from src.config import LOG_LEVEL
from src.db.media_store import MediaFile, media_store
from src.db.redis_client import redis_client
from src.services.errors import AuthenticationFailure, RateLimitExceeded, ServiceError, ValidationFailure
from src.services.identity_service import Actor, identity_service
from src.services.product_service import catalog_service, vendor_catalog_service
from src.services.vendor_service import vendor_service

# Configure logging
logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Vendor Catalog API",
    description="Multi-vendor product catalog over divergent product and vendor relations",
    version="1.0.0"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Form fields that may repeat (e.g. payment_methods[]=card&payment_methods[]=paypal)
LIST_FIELDS = {"payment_methods"}


# Pydantic models for request bodies
class ValidateVendorsRequest(BaseModel):
    vendorIds: list[Any] | None = None


# Dependencies
def get_current_actor(authorization: str | None = Header(None)) -> Actor:
    """Resolve the calling actor from the bearer token."""
    try:
        return identity_service.actor_from_header(authorization)
    except AuthenticationFailure as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


def rate_limit(endpoint: str):
    """Dependency factory: per-actor fixed-window rate limit for ``endpoint``."""

    def check(actor: Actor = Depends(get_current_actor)) -> Actor:
        try:
            allowed = redis_client.rate_limit_check(actor.id, endpoint)
        except redis.RedisError as e:
            logger.warning(f"Rate limiter unavailable, allowing request: {e}")
            return actor
        if not allowed:
            error = RateLimitExceeded("Too many requests")
            raise HTTPException(status_code=error.status_code, detail=error.to_detail())
        return actor

    return check


async def read_payload(request: Request) -> tuple[dict[str, Any], dict[str, list[MediaFile]]]:
    """Read a JSON or multipart body into plain fields and uploaded files."""
    content_type = request.headers.get("content-type", "")
    fields: dict[str, Any] = {}
    files: dict[str, list[MediaFile]] = {}

    if content_type.startswith("multipart/form-data") or content_type.startswith("application/x-www-form-urlencoded"):
        form = await request.form()
        for key, value in form.multi_items():
            if isinstance(value, UploadFile):
                content = await value.read()
                files.setdefault(key, []).append(MediaFile(value.filename, content, value.content_type))
                continue
            name = key[:-2] if key.endswith("[]") else key
            if name in LIST_FIELDS or key.endswith("[]"):
                fields.setdefault(name, []).append(value)
            else:
                fields[name] = value
        return fields, files

    body = await request.body()
    if not body:
        return fields, files
    try:
        parsed = json.loads(body)
    except ValueError as e:
        raise ValidationFailure("Malformed JSON body") from e
    if not isinstance(parsed, dict):
        raise ValidationFailure("Expected a JSON object")
    return parsed, files


def _first(files: dict[str, list[MediaFile]], key: str) -> MediaFile | None:
    return files[key][0] if files.get(key) else None


def _service_error(e: ServiceError) -> HTTPException:
    if e.status_code >= 500:
        logger.error(f"{type(e).__name__}: {e.message}")
    return HTTPException(status_code=e.status_code, detail=e.to_detail())


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "Vendor Catalog API"}


# Admin catalog endpoints
@app.get("/api/products")
async def list_products():
    """List products of the canonical relation, newest first."""
    try:
        return await catalog_service.list_products()
    except ServiceError as e:
        raise _service_error(e)
    except Exception as e:
        logger.error(f"Error listing products: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@app.get("/api/products/search")
async def search_products(category: str | None = Query(None)):
    """Search both product relations by a free-text term."""
    try:
        return await catalog_service.search_products(category)
    except ServiceError as e:
        raise _service_error(e)
    except Exception as e:
        logger.error(f"Error searching products: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@app.get("/api/products/{product_id}")
async def get_product(product_id: str):
    """Get a product from whichever relation holds it."""
    try:
        return await catalog_service.get_product(product_id)
    except ServiceError as e:
        raise _service_error(e)
    except Exception as e:
        logger.error(f"Error getting product: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@app.post("/api/products", status_code=201)
async def create_product(request: Request, actor: Actor = Depends(rate_limit("create_product"))):
    """Create a product (JSON or multipart with image/thumbnails)."""
    try:
        body, files = await read_payload(request)
        return await catalog_service.create_product(
            actor, body, image=_first(files, "image"), thumbnails=files.get("thumbnails", [])
        )
    except ServiceError as e:
        raise _service_error(e)
    except Exception as e:
        logger.error(f"Error creating product: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@app.put("/api/products/{product_id}")
async def update_product(product_id: str, request: Request, actor: Actor = Depends(rate_limit("update_product"))):
    """Update a product in place."""
    try:
        body, files = await read_payload(request)
        return await catalog_service.update_product(
            actor, product_id, body, image=_first(files, "image"), thumbnails=files.get("thumbnails", [])
        )
    except ServiceError as e:
        raise _service_error(e)
    except Exception as e:
        logger.error(f"Error updating product: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@app.delete("/api/products/{product_id}")
async def delete_product(product_id: str, actor: Actor = Depends(rate_limit("delete_product"))):
    """Delete a product and its media."""
    try:
        return await catalog_service.delete_product(actor, product_id)
    except ServiceError as e:
        raise _service_error(e)
    except Exception as e:
        logger.error(f"Error deleting product: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


# Vendor endpoints
@app.get("/api/vendor/products")
async def list_own_products(actor: Actor = Depends(get_current_actor)):
    """List the calling vendor's products."""
    try:
        return await vendor_catalog_service.list_owner_products(actor.id)
    except ServiceError as e:
        raise _service_error(e)
    except Exception as e:
        logger.error(f"Error listing vendor products: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@app.post("/api/vendor/products", status_code=201)
async def create_vendor_product(request: Request, actor: Actor = Depends(rate_limit("create_vendor_product"))):
    """Create a product owned by the calling vendor."""
    try:
        body, files = await read_payload(request)
        return await vendor_catalog_service.create_product(
            actor, body, image=_first(files, "image"), thumbnails=files.get("thumbnails", [])
        )
    except ServiceError as e:
        raise _service_error(e)
    except Exception as e:
        logger.error(f"Error creating vendor product: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@app.put("/api/vendor/products/{product_id}")
async def update_vendor_product(
    product_id: str, request: Request, actor: Actor = Depends(rate_limit("update_vendor_product"))
):
    """Update one of the calling vendor's products."""
    try:
        body, files = await read_payload(request)
        return await vendor_catalog_service.update_product(
            actor, product_id, body, image=_first(files, "image"), thumbnails=files.get("thumbnails", [])
        )
    except ServiceError as e:
        raise _service_error(e)
    except Exception as e:
        logger.error(f"Error updating vendor product: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@app.delete("/api/vendor/products/{product_id}")
async def delete_vendor_product(product_id: str, actor: Actor = Depends(rate_limit("delete_vendor_product"))):
    """Delete one of the calling vendor's products."""
    try:
        return await vendor_catalog_service.delete_product(actor, product_id)
    except ServiceError as e:
        raise _service_error(e)
    except Exception as e:
        logger.error(f"Error deleting vendor product: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@app.post("/api/vendor/profiles", status_code=201)
async def upsert_vendor_profile(request: Request, actor: Actor = Depends(get_current_actor)):
    """Create or update the calling vendor's profile (photo and banner uploads)."""
    try:
        body, files = await read_payload(request)
        return await vendor_service.upsert_vendor_profile(
            actor, photo=_first(files, "photo"), banner=_first(files, "banner"), vendor_name=body.get("vendor_name")
        )
    except ServiceError as e:
        raise _service_error(e)
    except Exception as e:
        logger.error(f"Error creating/updating profile: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


# Public vendor endpoints
@app.get("/api/vendors/{vendor_id}/products")
async def list_vendor_products(vendor_id: str):
    """List a vendor's products, with lookup diagnostics when there are none."""
    try:
        return await vendor_catalog_service.list_owner_products(vendor_id)
    except ServiceError as e:
        raise _service_error(e)
    except Exception as e:
        logger.error(f"Error listing products of vendor {vendor_id}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@app.post("/api/validate-vendors")
async def validate_vendors(request: ValidateVendorsRequest):
    """Report which vendor ids have a profile."""
    try:
        return await vendor_service.validate_vendors(request.vendorIds)
    except ServiceError as e:
        raise _service_error(e)
    except Exception as e:
        logger.error(f"Error validating vendors: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@app.get("/api/vendors/{vendor_id}")
async def get_vendor(vendor_id: str):
    """Public vendor lookup with display-name fallback."""
    try:
        return await vendor_service.get_vendor(vendor_id)
    except ServiceError as e:
        raise _service_error(e)
    except Exception as e:
        logger.error(f"Error getting vendor: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@app.delete("/api/vendors/{vendor_id}")
async def delete_vendor(vendor_id: str, actor: Actor = Depends(get_current_actor)):
    """Remove a vendor with their products (admins only)."""
    try:
        return await vendor_service.delete_vendor(actor, vendor_id)
    except ServiceError as e:
        raise _service_error(e)
    except Exception as e:
        logger.error(f"Error deleting vendor: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@app.patch("/api/vendors/{vendor_id}/demote")
async def demote_vendor(vendor_id: str, actor: Actor = Depends(get_current_actor)):
    """Demote a vendor (admins, or the vendor themselves)."""
    try:
        return await vendor_service.demote_vendor(actor, vendor_id)
    except ServiceError as e:
        raise _service_error(e)
    except Exception as e:
        logger.error(f"Error demoting vendor: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


# Media
@app.get("/object/public/{bucket}/{path:path}")
async def get_media(bucket: str, path: str):
    """Serve a stored media object."""
    try:
        stored = await media_store.download(bucket, path)
    except Exception as e:
        logger.error(f"Error reading media {bucket}/{path}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")
    if stored is None:
        raise HTTPException(status_code=404, detail="Object not found")
    content, content_type = stored
    return Response(content=content, media_type=content_type)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
