import logging
from contextlib import asynccontextmanager
from typing import Dict, Optional, Union

import httpx
from fastapi import APIRouter, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from . import __version__
from .analytics import SORTABLE_FIELDS, SortState, dashboard, history_table
from .config import Settings
from .errors import (
    HistoryServiceError,
    PredictionServiceError,
    ValidationError,
    WorkflowStateError,
)
from .workflow import PredictionWorkflow, create_workflow

logger = logging.getLogger(__name__)

router = APIRouter()

FieldValue = Optional[Union[float, str]]


class StartRequest(BaseModel):
    location: Optional[Dict[str, float]] = None  # {"lat": float, "lng": float}


class FieldsRequest(BaseModel):
    N: FieldValue = None
    P: FieldValue = None
    K: FieldValue = None
    temperature: FieldValue = None
    humidity: FieldValue = None
    ph: FieldValue = None
    rainfall: FieldValue = None
    soil_type: Optional[str] = None


class SelectRequest(BaseModel):
    index: int


def _workflow(request: Request) -> PredictionWorkflow:
    workflow = request.app.state.workflow
    if workflow is None:
        raise HTTPException(status_code=503, detail="workflow not initialised")
    return workflow


@router.get("/healthz")
def healthz(request: Request):
    workflow = request.app.state.workflow
    return {"status": "ok", "state": workflow.state.value if workflow else None}


@router.post("/api/workflow/start")
async def start_workflow(req: StartRequest, request: Request):
    workflow = _workflow(request)
    try:
        await workflow.start(req.location)
    except WorkflowStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return workflow.snapshot()


@router.get("/api/workflow")
def get_workflow(request: Request):
    return _workflow(request).snapshot()


@router.get("/api/workflow/trace")
def get_trace(request: Request):
    return {"trace": _workflow(request).trace}


@router.patch("/api/workflow/fields")
def update_fields(req: FieldsRequest, request: Request):
    workflow = _workflow(request)
    workflow.update_fields(**req.model_dump(exclude_unset=True))
    return workflow.snapshot()


@router.post("/api/workflow/submit")
async def submit_prediction(request: Request):
    workflow = _workflow(request)
    try:
        await workflow.submit()
    except ValidationError as e:
        raise HTTPException(status_code=422, detail={"message": str(e), "missing": e.missing})
    except WorkflowStateError as e:
        # includes WorkflowBusy
        raise HTTPException(status_code=409, detail=str(e))
    except PredictionServiceError as e:
        logger.error("Prediction failed: %s", e.message)
        raise HTTPException(status_code=502, detail=e.message)
    return workflow.snapshot()


@router.post("/api/workflow/select")
def select_candidate(req: SelectRequest, request: Request):
    workflow = _workflow(request)
    try:
        workflow.select_candidate(req.index)
    except WorkflowStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except IndexError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return workflow.snapshot()


@router.post("/api/workflow/new_cycle")
def new_cycle(request: Request):
    workflow = _workflow(request)
    try:
        workflow.new_cycle()
    except WorkflowStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return workflow.snapshot()


@router.get("/api/history")
def list_history(
    request: Request,
    q: str = "",
    sort: str = Query("timestamp"),
    order: str = Query("desc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
):
    if sort not in SORTABLE_FIELDS:
        raise HTTPException(status_code=400, detail=f"cannot sort by {sort!r}")
    records = _workflow(request).history.records
    return history_table(records, query=q, sort=SortState(key=sort, order=order), page=page).model_dump()


@router.get("/api/history/analytics")
def history_analytics(request: Request):
    return dashboard(_workflow(request).history.records)


@router.post("/api/history/refresh")
async def refresh_history(request: Request):
    workflow = _workflow(request)
    try:
        records = await workflow.refresh_history()
    except HistoryServiceError as e:
        raise HTTPException(status_code=502, detail=e.message)
    return {"count": len(records)}


@router.delete("/api/history/{record_id}")
async def delete_history(record_id: int, request: Request):
    workflow = _workflow(request)
    try:
        await workflow.delete_history(record_id)
    except HistoryServiceError as e:
        raise HTTPException(status_code=502, detail=e.message)
    return {"success": True, "count": len(workflow.history)}


def create_app(settings: Optional[Settings] = None, workflow: Optional[PredictionWorkflow] = None) -> FastAPI:
    """Build the API around one workflow.

    Without an injected workflow, one is created at startup on a shared
    `httpx.AsyncClient` that is closed again at shutdown.
    """
    settings = settings or Settings.from_env()
    logging.basicConfig(level=settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.workflow is None:
            app.state.http = httpx.AsyncClient(timeout=settings.http_timeout)
            app.state.workflow = create_workflow(settings, app.state.http)
        try:
            await app.state.workflow.refresh_history()
        except HistoryServiceError as e:
            logging.getLogger("uvicorn.error").warning("[startup] history not loaded: %s", e)
        yield
        await app.state.workflow.drain()
        if app.state.http is not None:
            await app.state.http.aclose()

    app = FastAPI(title="Cropwise API", version=__version__, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.settings = settings
    app.state.workflow = workflow
    app.state.http = None
    app.include_router(router)
    return app


app = create_app()
