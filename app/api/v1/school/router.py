from fastapi import APIRouter, Depends
from pydantic import BaseModel
from pydantic.alias_generators import to_camel

from app.api.dependencies import get_fence, get_school_name
from app.geo.geofence import GeoFence

router = APIRouter(prefix="/api/school", tags=["school"])


class SchoolLocationResponse(BaseModel):
    name: str
    latitude: float
    longitude: float
    radius_meters: float
    maps_url: str

    class Config:
        alias_generator = to_camel
        populate_by_name = True


@router.get("", response_model=SchoolLocationResponse)
async def get_school_location(
    fence: GeoFence = Depends(get_fence),
    name: str = Depends(get_school_name),
) -> SchoolLocationResponse:
    """School center and return radius used for geofenced returns."""
    return SchoolLocationResponse(
        name=name,
        latitude=fence.center.latitude,
        longitude=fence.center.longitude,
        radius_meters=fence.radius_meters,
        maps_url=fence.maps_url(),
    )
