"""AI Context Assembler: grounds assistant prompts in organization records."""

from ..logging_config import get_logger
from ..storage import IStorage
from .prompts import format_context_block

logger = get_logger(__name__)

CONTEXT_RECORD_LIMIT = 50


class ContextAssembler:
    """Builds the strict-source-of-truth block for an organization."""

    def __init__(self, storage: IStorage, limit: int = CONTEXT_RECORD_LIMIT):
        self._storage = storage
        self._limit = limit

    async def assemble(self, organization_id: str) -> str | None:
        """Most recently updated records first; None when the organization has none."""
        records = await self._storage.list_context_records(organization_id, limit=self._limit)
        logger.debug(
            "Assembled %s context records",
            len(records),
            extra={"organization_id": organization_id},
        )
        return format_context_block(records)
