import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError as PydanticValidationError

from database import ensure_indexes, get_document, get_documents, insert_unique
from errors import (
    DuplicateIdentifierError,
    DuplicateRecordError,
    EncodingError,
    StoreError,
    ValidationError,
)
from labels import encode_label
from samples import provision_sample
from schemas import Post, User

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    from database import db

    if db is None:
        logger.warning("DATABASE_URL / DATABASE_NAME not set, skipping index creation")
    else:
        try:
            ensure_indexes(db)
        except StoreError as e:
            logger.error("Index creation failed: %s", e.message)
    yield


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def serialize(doc: dict) -> dict:
    """Convert ObjectId to string for JSON serialization"""
    doc = dict(doc)
    if "_id" in doc:
        doc["_id"] = str(doc["_id"])
    return doc


@app.get("/")
def read_root():
    return {"message": "Sample API server is running!"}


@app.get("/test")
def test_database():
    """Test endpoint to check if database is available and accessible"""
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }

    from database import db

    if db is not None:
        response["database"] = "✅ Available"
        response["database_name"] = db.name if hasattr(db, 'name') else "✅ Connected"
        response["connection_status"] = "Connected"

        # Try to list collections to verify connectivity
        try:
            collections = db.list_collection_names()
            response["collections"] = collections[:10]
            response["database"] = "✅ Connected & Working"
        except Exception as e:
            response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"

    response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
    response["database_name_env"] = "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set"

    return response

# ============================================================================
# USERS / POSTS
# ============================================================================

@app.get("/users")
async def list_users():
    try:
        return [serialize(doc) for doc in get_documents("users")]
    except StoreError as e:
        logger.error("Error fetching users: %s", e.message)
        raise HTTPException(status_code=500, detail=f"Error fetching users: {e.message}")


@app.post("/users", status_code=201)
async def create_user(document: Dict[str, Any]):
    """
    Create a user. Username and email must be unique.
    Validation errors and duplicates both answer 400.
    """
    try:
        user = User.model_validate(document)
        return serialize(insert_unique("users", user))
    except PydanticValidationError as e:
        raise HTTPException(status_code=400, detail={"message": "Error creating user", "errors": e.errors(include_url=False, include_context=False)})
    except DuplicateRecordError:
        raise HTTPException(status_code=400, detail={"message": "Error creating user", "errors": ["username or email already exists"]})
    except StoreError as e:
        logger.error("Error creating user: %s", e.message)
        raise HTTPException(status_code=500, detail=f"Error creating user: {e.message}")


@app.get("/posts")
async def list_posts():
    try:
        return [serialize(doc) for doc in get_documents("posts", sort=[("created_at", -1)])]
    except StoreError as e:
        logger.error("Error fetching posts: %s", e.message)
        raise HTTPException(status_code=500, detail=f"Error fetching posts: {e.message}")


@app.post("/posts", status_code=201)
async def create_post(document: Dict[str, Any]):
    try:
        post = Post.model_validate(document)
        return serialize(insert_unique("posts", post))
    except PydanticValidationError as e:
        raise HTTPException(status_code=400, detail={"message": "Error creating post", "errors": e.errors(include_url=False, include_context=False)})
    except StoreError as e:
        logger.error("Error creating post: %s", e.message)
        raise HTTPException(status_code=500, detail=f"Error creating post: {e.message}")

# ============================================================================
# SAMPLES
# ============================================================================

@app.get("/samples")
async def list_samples(project_code: Optional[str] = None, type: Optional[str] = None, limit: int = 100):
    """
    List samples, newest first
    Query params:
    - project_code: only samples of this project
    - type: only samples of this type (Soil, Plant, Water, Insect)
    - limit: max documents to return (default 100, max 1000)
    """
    filter_dict = {}
    if project_code:
        filter_dict["project_code"] = project_code.upper()
    if type:
        filter_dict["type"] = type

    try:
        documents = get_documents("samples", filter_dict, limit=min(limit, 1000), sort=[("created_at", -1)])
        return [serialize(doc) for doc in documents]
    except StoreError as e:
        logger.error("Error fetching samples: %s", e.message)
        raise HTTPException(status_code=500, detail=f"Error fetching samples: {e.message}")


@app.post("/samples", status_code=201)
async def create_sample(document: Dict[str, Any]):
    """
    Create a sample. sample_id and qr_code are generated by the server.
    """
    try:
        return serialize(provision_sample(document))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except DuplicateIdentifierError as e:
        logger.warning("Sample ID conflict: %s", e.context)
        raise HTTPException(status_code=409, detail=e.message)
    except (DuplicateRecordError, EncodingError, StoreError) as e:
        logger.error("Error creating sample: %s", e.message)
        raise HTTPException(status_code=500, detail=f"Error creating sample: {e.message}")


@app.get("/samples/{sample_id}")
async def get_sample(sample_id: str):
    try:
        doc = get_document("samples", {"sample_id": sample_id})
    except StoreError as e:
        logger.error("Error fetching sample %s: %s", sample_id, e.message)
        raise HTTPException(status_code=500, detail=f"Error fetching sample: {e.message}")

    if doc is None:
        raise HTTPException(status_code=404, detail=f"Sample '{sample_id}' not found")
    return serialize(doc)


@app.get("/samples/{sample_id}/label")
async def get_sample_label(sample_id: str):
    """
    QR label of a sample as PNG, regenerated from its id
    """
    try:
        doc = get_document("samples", {"sample_id": sample_id})
        if doc is None:
            raise HTTPException(status_code=404, detail=f"Sample '{sample_id}' not found")
        png = encode_label(doc["sample_id"])
    except HTTPException:
        raise
    except (EncodingError, StoreError) as e:
        logger.error("Error building label for %s: %s", sample_id, e.message)
        raise HTTPException(status_code=500, detail=f"Error building label: {e.message}")

    return Response(
        content=png,
        media_type="image/png",
        headers={"Content-Disposition": f'inline; filename="{sample_id}.png"'},
    )


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
