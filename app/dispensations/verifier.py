"""Geofenced return verification."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from app.core.exceptions import LocationUnavailable
from app.geo.geofence import Coordinate, GeoFence

from .lifecycle import DispensationLifecycle

logger = logging.getLogger(__name__)

LOCATION_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True)
class VerificationResult:
    accepted: bool
    distance: int
    required_radius: Optional[float] = None


class ReturnVerifier:
    """
    Completes a dispensation when the caller is inside the school fence.

    The nominal returnTime is not consulted; a late return is still accepted.
    """

    def __init__(self, lifecycle: DispensationLifecycle, fence: GeoFence) -> None:
        self.lifecycle = lifecycle
        self.fence = fence

    async def attempt_return(self, dispensation_id: int, observed: Coordinate) -> VerificationResult:
        await self.lifecycle.get(dispensation_id)
        check = self.fence.check(observed)
        distance = round(check.distance)
        if not check.within:
            logger.info(
                "Return for %s rejected: %dm from school (radius %sm)",
                dispensation_id, distance, check.radius,
            )
            return VerificationResult(accepted=False, distance=distance, required_radius=check.radius)

        await self.lifecycle.complete(dispensation_id)
        return VerificationResult(accepted=True, distance=distance)

    async def locate_and_return(
        self,
        dispensation_id: int,
        locate: Callable[[], Awaitable[Coordinate]],
        timeout: float = LOCATION_TIMEOUT_SECONDS,
    ) -> VerificationResult:
        """
        Acquire the caller's position, then attempt the return.

        If location cannot be acquired within `timeout`, or the provider fails,
        LocationUnavailable is raised and no return attempt is made. No automatic retry.
        """
        try:
            observed = await asyncio.wait_for(locate(), timeout)
        except asyncio.TimeoutError as e:
            raise LocationUnavailable("timeout") from e
        except LocationUnavailable:
            raise
        except Exception as e:
            logger.warning("Location provider failed: %s", e)
            raise LocationUnavailable("position_unavailable") from e
        return await self.attempt_return(dispensation_id, observed)
