from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, File, Form, HTTPException, Query, Request, UploadFile, status
from fastapi.responses import JSONResponse

from app.api.dependencies import caller_identity, get_lifecycle, get_verifier
from app.core.exceptions import RateLimited, ServiceError
from app.dispensations.lifecycle import DispensationLifecycle
from app.dispensations.verifier import ReturnVerifier
from app.geo.geofence import Coordinate

from .schemas import DispensationResponse, ReturnAttempt, ReturnVerificationResponse

router = APIRouter(prefix="/api/dispensations", tags=["dispensations"])


def _rate_limited_response(e: RateLimited) -> JSONResponse:
    return JSONResponse(
        status_code=e.status_code,
        content={"detail": e.message},
        headers={"Retry-After": str(max(1, int(e.retry_after + 0.999)))},
    )


@router.get("", response_model=List[DispensationResponse])
async def list_dispensations(
    tracking_code: Optional[str] = Query(None, alias="trackingCode"),
    lifecycle: DispensationLifecycle = Depends(get_lifecycle),
) -> List[DispensationResponse]:
    """List dispensations, newest first. With trackingCode, returns at most the one matching record."""
    try:
        return await lifecycle.list(tracking_code=tracking_code)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{dispensation_id}", response_model=DispensationResponse)
async def get_dispensation(
    dispensation_id: int,
    lifecycle: DispensationLifecycle = Depends(get_lifecycle),
) -> DispensationResponse:
    try:
        return await lifecycle.get(dispensation_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("", response_model=DispensationResponse, status_code=status.HTTP_201_CREATED)
async def submit_dispensation(
    request: Request,
    student_name: Optional[str] = Form(None, alias="studentName"),
    student_class: Optional[str] = Form(None, alias="studentClass"),
    reason: Optional[str] = Form(None),
    destination: Optional[str] = Form(None),
    departure_time: Optional[str] = Form(None, alias="departureTime"),
    return_time: Optional[str] = Form(None, alias="returnTime"),
    photo: Optional[UploadFile] = File(None, description="JPEG, PNG, GIF or PDF, at most 10 MB"),
    lifecycle: DispensationLifecycle = Depends(get_lifecycle),
):
    """Submit a leave request (multipart form). One submission per caller per 30 seconds."""
    fields = {
        "studentName": student_name,
        "studentClass": student_class,
        "reason": reason,
        "destination": destination,
        "departureTime": departure_time,
        "returnTime": return_time,
    }
    # Browsers send an empty file part when nothing is chosen
    upload = photo if photo is not None and photo.filename else None
    try:
        return await lifecycle.submit(fields, caller_identity(request), upload=upload)
    except RateLimited as e:
        return _rate_limited_response(e)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch("/{dispensation_id}", response_model=DispensationResponse)
async def update_dispensation(
    dispensation_id: int,
    payload: Dict[str, Any] = Body(...),
    lifecycle: DispensationLifecycle = Depends(get_lifecycle),
) -> DispensationResponse:
    """
    Merge fields into a dispensation.

    Status changes go through the lifecycle: {"status": "approved"|"rejected", "approvedBy": ...}
    or {"status": "completed"}. Detail fields can be edited while pending.
    """
    try:
        return await lifecycle.apply_patch(dispensation_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{dispensation_id}/return", response_model=ReturnVerificationResponse)
async def verify_return(
    dispensation_id: int,
    payload: ReturnAttempt,
    verifier: ReturnVerifier = Depends(get_verifier),
) -> ReturnVerificationResponse:
    """Complete an approved dispensation if the observed position is inside the school radius."""
    try:
        result = await verifier.attempt_return(dispensation_id, Coordinate(payload.latitude, payload.longitude))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return ReturnVerificationResponse(
        accepted=result.accepted,
        distance=result.distance,
        required_radius=result.required_radius,
    )
