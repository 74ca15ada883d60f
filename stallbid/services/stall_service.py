from typing import Any, Dict, List

from loguru import logger
from pydantic import ValidationError

from stallbid.core.exceptions import MalformedResponseError
from stallbid.enums import StallStatus
from stallbid.schemas.common import validation_reason
from stallbid.schemas.stall import StallSnapshot
from stallbid.services.api_client import ApiClient


def parse_stall(data: Any) -> StallSnapshot:
    """Validate one stall payload; shapes no default can repair raise MalformedResponseError"""
    try:
        return StallSnapshot.model_validate(data)
    except ValidationError as e:
        reason = validation_reason(e)
        logger.warning(f"Malformed stall payload: {reason}")
        raise MalformedResponseError(f"Malformed stall data: {reason}") from e


class StallService:
    def __init__(self, api: ApiClient):
        self.api = api

    @staticmethod
    def _many(items) -> List[StallSnapshot]:
        if items is None:
            return []
        if not isinstance(items, list):
            raise MalformedResponseError(f"Expected a list of stalls, got {type(items).__name__}")
        return [parse_stall(item) for item in items]

    async def get_all_stalls(self) -> List[StallSnapshot]:
        return self._many(await self.api.get("/stalls"))

    async def get_active_auctions(self) -> List[StallSnapshot]:
        return self._many(await self.api.get("/stalls/active"))

    async def get_available_stalls(self) -> List[StallSnapshot]:
        return self._many(await self.api.get("/stalls/available"))

    async def get_closed_stalls(self) -> List[StallSnapshot]:
        return self._many(await self.api.get("/stalls/closed"))

    async def get_stalls_by_status(self, status: StallStatus) -> List[StallSnapshot]:
        return self._many(await self.api.get(f"/stalls/status/{StallStatus(status).value}"))

    async def get_stall_by_id(self, stall_id: int) -> StallSnapshot:
        return parse_stall(await self.api.get(f"/stalls/{stall_id}"))

    async def get_stall_by_number(self, stall_no: int) -> StallSnapshot:
        return parse_stall(await self.api.get(f"/stalls/number/{stall_no}"))

    async def get_stall_counts(self) -> Dict[str, int]:
        counts = await self.api.get("/stalls/counts") or {}
        return {str(k): int(v) for k, v in counts.items()}
