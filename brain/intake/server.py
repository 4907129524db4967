"""
Brain Server

FastAPI server for capture intake, review and knowledge search.

Endpoints:
- GET /health: Health check
- POST /captures: Ingest raw text
- GET /captures: Audit log with filters
- GET /captures/stats: Audit log statistics
- GET /captures/export: Audit log as CSV
- POST /captures/{capture_id}/correct: Correct a capture
- GET /review: Pending captures
- POST /review/skip: Skip several captures
- POST /review/{capture_id}/skip: Skip one capture
- POST /review/{capture_id}/accept: File a pending capture
- DELETE /review/{capture_id}: Discard a pending capture
- POST /knowledge/search: Rank knowledge for a task
- PUT /tasks/{task_id}/knowledge-links: Replace a task's knowledge links

Route handlers are plain functions; FastAPI runs them in its threadpool
while they block on the store and the classifier.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field

from ..common.config import ensure_directories, load_config
from ..common.errors import (
    AlreadyResolved,
    BrainError,
    ClassificationUnavailable,
    MaterializationFailed,
    NotFound,
    ValidationFailed,
)
from .pipeline import Pipeline, build_pipeline

logger = logging.getLogger("brain.intake.server")

# Global state
pipeline: Optional[Pipeline] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the pipeline on startup (unless one was installed already)"""
    global pipeline

    logger.info("Starting up...")
    if pipeline is None:
        config = load_config()
        ensure_directories(config)
        pipeline = build_pipeline(config)
        logger.info(
            "Pipeline ready (storage: %s, classifier: %s, review threshold: %.2f)",
            config.storage.backend,
            type(pipeline.classifier).__name__,
            config.triage.review_threshold,
        )
    logger.info("Review queue: %d pending", pipeline.review.stats()["pending"])

    yield

    logger.info("Shutting down...")


app = FastAPI(
    title="Brain",
    description="Capture triage and knowledge resurfacing",
    version="0.1.0",
    lifespan=lifespan,
)


def _pipeline() -> Pipeline:
    if pipeline is None:
        raise HTTPException(status_code=503, detail="Pipeline not initialized")
    return pipeline


# =============================================================================
# Error mapping
# =============================================================================

_STATUS_CODES = {
    ValidationFailed: 422,
    NotFound: 404,
    AlreadyResolved: 409,
    MaterializationFailed: 502,
    ClassificationUnavailable: 503,
}


@app.exception_handler(BrainError)
async def brain_error_handler(request: Request, exc: BrainError):
    status_code = 500
    for error_type, code in _STATUS_CODES.items():
        if isinstance(exc, error_type):
            status_code = code
            break
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    body: Dict[str, Any] = {"error": type(exc).__name__, "detail": str(exc)}
    if isinstance(exc, MaterializationFailed):
        body["category"] = exc.category
        body["fields"] = exc.fields
    return JSONResponse(status_code=status_code, content=body)


# =============================================================================
# Request Models
# =============================================================================

class CaptureRequest(BaseModel):
    text: str


class CorrectionRequest(BaseModel):
    category: str
    note: str
    fields: Dict[str, Any] = Field(default_factory=dict)
    text: Optional[str] = None


class AcceptRequest(BaseModel):
    category: Optional[str] = None
    fields: Dict[str, Any] = Field(default_factory=dict)
    text: Optional[str] = None


class BatchSkipRequest(BaseModel):
    ids: List[str]


class KnowledgeSearchRequest(BaseModel):
    taskId: str


class KnowledgeLinksRequest(BaseModel):
    knowledge_item_ids: List[str] = Field(default_factory=list)


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/health")
def health():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "brain",
        "initialized": pipeline is not None,
        "classifier": type(pipeline.classifier).__name__ if pipeline and pipeline.classifier else None,
        "pending_reviews": pipeline.review.stats()["pending"] if pipeline else 0,
    }


@app.post("/captures", status_code=201)
def create_capture(request: CaptureRequest):
    """Classify and route one capture"""
    result = _pipeline().router.ingest(request.text)
    return result.to_dict()


@app.get("/captures")
def list_captures(
    q: Optional[str] = None,
    category: Optional[str] = None,
    status: Optional[str] = None,
    confidence: Optional[str] = Query(default=None, description="high, medium or low"),
    days: Optional[int] = Query(default=None, ge=1),
    sort: str = "newest",
):
    captures = _pipeline().captures.search(
        q=q, category=category, status=status, band=confidence, days=days, sort=sort
    )
    return {"count": len(captures), "items": [c.to_dict() for c in captures]}


@app.get("/captures/stats")
def capture_stats():
    return _pipeline().captures.stats()


@app.get("/captures/export")
def export_captures(
    q: Optional[str] = None,
    category: Optional[str] = None,
    status: Optional[str] = None,
    confidence: Optional[str] = None,
    days: Optional[int] = Query(default=None, ge=1),
    sort: str = "newest",
):
    log = _pipeline().captures
    captures = log.search(q=q, category=category, status=status, band=confidence, days=days, sort=sort)
    filename = f"capture-log-{datetime.now(timezone.utc).date().isoformat()}.csv"
    return PlainTextResponse(
        log.export_csv(captures),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/captures/{capture_id}/correct")
def correct_capture(capture_id: str, request: CorrectionRequest):
    ref = _pipeline().correction.correct(
        capture_id,
        request.category,
        fields=request.fields,
        note=request.note,
        text=request.text,
    )
    return {"status": "corrected", "capture_id": capture_id, "destination": ref.to_dict()}


@app.get("/review")
def get_reviews():
    """Get pending reviews"""
    pending = _pipeline().review.pending()
    return {
        "pending_count": len(pending),
        "items": [entry.to_dict() for entry in pending],
    }


@app.post("/review/skip")
def batch_skip(request: BatchSkipRequest):
    results = _pipeline().review.batch_skip(request.ids)
    return {
        "skipped": sum(1 for r in results if r.ok),
        "failed": sum(1 for r in results if not r.ok),
        "results": [r.to_dict() for r in results],
    }


@app.get("/review/{capture_id}")
def get_review_item(capture_id: str):
    review = _pipeline().review
    entry = review.get(capture_id)
    data = entry.to_dict()
    data["formatted"] = review.format_for_review(entry)
    return data


@app.post("/review/{capture_id}/skip")
def skip_review(capture_id: str):
    _pipeline().review.skip(capture_id)
    return {"status": "skipped", "capture_id": capture_id}


@app.post("/review/{capture_id}/accept")
def accept_review(capture_id: str, request: AcceptRequest):
    ref = _pipeline().review.accept(
        capture_id,
        category=request.category,
        fields=request.fields,
        text=request.text,
    )
    return {"status": "filed", "capture_id": capture_id, "destination": ref.to_dict()}


@app.delete("/review/{capture_id}")
def discard_review(capture_id: str):
    _pipeline().review.discard(capture_id)
    return {"status": "discarded", "capture_id": capture_id}


@app.post("/knowledge/search")
def knowledge_search(request: KnowledgeSearchRequest):
    return _pipeline().knowledge.search(request.taskId)


@app.put("/tasks/{task_id}/knowledge-links")
def sync_knowledge_links(task_id: str, request: KnowledgeLinksRequest):
    result = _pipeline().knowledge.sync_links(task_id, request.knowledge_item_ids)
    return {"task_id": task_id, **result}


# =============================================================================
# CLI Entry Point
# =============================================================================

def run_server(host: Optional[str] = None, port: Optional[int] = None):
    """Run the Brain server"""
    import uvicorn
    from dotenv import load_dotenv

    load_dotenv()
    config = load_config()
    host = host or config.server.host
    port = port or config.server.port

    logger.info("Starting server on %s:%d", host, port)
    uvicorn.run(
        "brain.intake.server:app",
        host=host,
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    run_server()
