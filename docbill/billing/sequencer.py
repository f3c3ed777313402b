"""Document sequencer.

Numbers look like `<registration>-<counterparty tax id>-<seq>` for invoices and
`<registration>-<counterparty tax id>-ACT-<seq>` for acts. The sequence is the count
of the tenant's documents of that kind already under the prefix, plus one. No
counter row exists: the unique (tenant_id, number) constraint on `document` detects
a concurrent writer taking the same candidate, and the attempt is retried with a
fresh count.

Gaps left by deleted documents are never refilled. A deleted document in the middle
of a series makes `count + 1` land on a number that still exists, so every attempt
collides and the call ends in NumberGenerationFailed.
"""

from typing import Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from docbill import crud, schemas
from docbill.core.config import settings
from docbill.core.exceptions import NumberGenerationFailed
from docbill.core.logging import LoggerConfigurator
from docbill.core.shared_models import ResourceKind
from docbill.models.document import Document

logger = LoggerConfigurator.configure_logger(__name__, dimensions={"component": "sequencer"})

KIND_TAGS = {
    ResourceKind.INVOICE: None,
    ResourceKind.ACT: "ACT",
}


class DocumentSequencer:
    """Allocates per-tenant document numbers with optimistic retries."""

    def __init__(
        self,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
    ):
        """Initialize the sequencer.

        Args:
            max_attempts: Insert attempts before giving up. Defaults to settings.
            backoff_seconds: Pause between attempts. Defaults to settings.
        """
        self.max_attempts = (
            max_attempts if max_attempts is not None else settings.NUMBERING_MAX_ATTEMPTS
        )
        self.backoff_seconds = (
            backoff_seconds
            if backoff_seconds is not None
            else settings.NUMBERING_RETRY_BACKOFF_SECONDS
        )

    @staticmethod
    def build_prefix(registration_id: str, counterparty_tax_id: str, kind: ResourceKind) -> str:
        """Prefix shared by every number of one tenant, counterparty and kind."""
        parts = [registration_id.strip(), counterparty_tax_id.strip()]
        tag = KIND_TAGS[kind]
        if tag:
            parts.append(tag)
        return "-".join(parts) + "-"

    @staticmethod
    def format_number(prefix: str, seq: int) -> str:
        """Candidate number for a sequence value."""
        return f"{prefix}{seq}"

    async def next_candidate(
        self, db: AsyncSession, tenant_id: UUID, kind: ResourceKind, prefix: str
    ) -> str:
        """Count existing documents under the prefix and propose the next number."""
        existing = await crud.document.count_with_prefix(
            db, tenant_id=tenant_id, kind=kind, prefix=prefix
        )
        return self.format_number(prefix, existing + 1)

    async def create_document(
        self,
        db: AsyncSession,
        *,
        registration_id: str,
        obj_in: schemas.DocumentCreate,
    ) -> Document:
        """Persist a document under the next free number.

        Args:
            db: Database session. Each attempt runs in its own transaction.
            registration_id: The tenant's registration id, first part of the number.
            obj_in: Document fields apart from the number.

        Raises:
            NumberGenerationFailed: Every attempt collided with an existing number.
        """
        kind = ResourceKind(obj_in.kind)
        prefix = self.build_prefix(registration_id, obj_in.counterparty_tax_id, kind)
        log = logger.with_context(tenant_id=str(obj_in.tenant_id), resource_kind=kind.value)

        retrying = AsyncRetrying(
            retry=retry_if_exception_type(IntegrityError),
            wait=wait_fixed(self.backoff_seconds),
            stop=stop_after_attempt(self.max_attempts),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._attempt(db, obj_in, kind, prefix, log)
        except IntegrityError:
            log.warning(f"Numbering gave up on {prefix}* after {self.max_attempts} attempts")
            raise NumberGenerationFailed(prefix, self.max_attempts) from None

    async def _attempt(self, db, obj_in, kind, prefix, log) -> Document:
        number = await self.next_candidate(db, obj_in.tenant_id, kind, prefix)
        try:
            document = await crud.document.create(db, obj_in=obj_in, number=number)
        except IntegrityError:
            await db.rollback()
            log.warning(f"Number {number} taken by a concurrent writer, recounting")
            raise

        log.info(f"Created {kind.value} {number}")
        return document


document_sequencer = DocumentSequencer()
