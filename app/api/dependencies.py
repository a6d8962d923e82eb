"""Request-scoped access to the components built in create_app()."""

from fastapi import Request

from app.dispensations.lifecycle import DispensationLifecycle
from app.dispensations.store import DispensationStore
from app.dispensations.verifier import ReturnVerifier
from app.geo.geofence import GeoFence


def get_lifecycle(request: Request) -> DispensationLifecycle:
    return request.app.state.lifecycle


def get_verifier(request: Request) -> ReturnVerifier:
    return request.app.state.verifier


def get_store(request: Request) -> DispensationStore:
    return request.app.state.store


def get_fence(request: Request) -> GeoFence:
    return request.app.state.fence


def get_school_name(request: Request) -> str:
    return request.app.state.settings.school_name


def caller_identity(request: Request) -> str:
    """Rate-limit key: the client's network address."""
    return request.client.host if request.client else "unknown"
