# envcache/routers/exposure.py
# -----------------------------------------------------------------------------
# Exposure tracking: sessions, readings, daily summaries, history
# -----------------------------------------------------------------------------
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from envcache.routers.deps import get_exposure
from envcache.schemas.exposure import (
    DailySummaryOut,
    EndSessionRequest,
    HistoryBucket,
    HistoryResponse,
    ReadingOut,
    RecordReadingRequest,
    SessionOut,
    StartSessionRequest,
    StartSessionResponse,
    SummaryRefreshRequest,
)
from envcache.services.exposure import ExposureService

router = APIRouter(prefix="/exposure", tags=["exposure"])


@router.post("/sessions/start", response_model=StartSessionResponse)
async def start_session(
    req: StartSessionRequest, svc: ExposureService = Depends(get_exposure)
):
    session_id = await svc.start_session(req.device_id, req.user_id, req.location)
    return StartSessionResponse(session_id=session_id, timestamp=svc.clock())


@router.post("/sessions/end", response_model=SessionOut)
async def end_session(req: EndSessionRequest, svc: ExposureService = Depends(get_exposure)):
    return await svc.end_session(req.session_id)


@router.get("/sessions/{session_id}", response_model=SessionOut)
async def get_session(session_id: str, svc: ExposureService = Depends(get_exposure)):
    return await svc.get_session(session_id)


@router.post("/readings", response_model=ReadingOut)
async def record_reading(
    req: RecordReadingRequest, svc: ExposureService = Depends(get_exposure)
):
    return await svc.record_reading(req.session_id, req.reading_data)


@router.get("/summary/{device_id}/{day}", response_model=DailySummaryOut)
async def get_summary(
    device_id: str, day: date, svc: ExposureService = Depends(get_exposure)
):
    return await svc.get_daily_summary(device_id, day)


@router.post("/summary/refresh", response_model=DailySummaryOut)
async def refresh_summary(
    req: SummaryRefreshRequest, svc: ExposureService = Depends(get_exposure)
):
    return await svc.recompute_daily_summary(req.device_id, req.date)


@router.get("/history", response_model=HistoryResponse)
async def history(
    start_time: datetime = Query(..., alias="startTime"),
    end_time: datetime = Query(..., alias="endTime"),
    interval: str = Query("15min"),
    device_id: Optional[str] = Query(None, alias="deviceId"),
    svc: ExposureService = Depends(get_exposure),
):
    rows = await svc.exposure_history(start_time, end_time, interval, device_id)
    return HistoryResponse(
        records=[HistoryBucket(**r) for r in rows],
        interval=interval,
        record_count=len(rows),
    )
