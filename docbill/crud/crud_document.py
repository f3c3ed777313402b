"""CRUD operations for the Document model."""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from docbill.core.shared_models import ResourceKind
from docbill.crud._base import CRUDBase
from docbill.models.document import Document
from docbill.schemas.document import DocumentCreate


class CRUDDocument(CRUDBase[Document]):
    """CRUD operations for Document model."""

    async def count_with_prefix(
        self, db: AsyncSession, *, tenant_id: UUID, kind: ResourceKind, prefix: str
    ) -> int:
        """Count the tenant's documents of `kind` whose number starts with `prefix`."""
        query = select(func.count(Document.id)).where(
            Document.tenant_id == tenant_id,
            Document.kind == kind.value,
            Document.number.startswith(prefix, autoescape=True),
        )
        result = await db.execute(query)
        return result.scalar_one()

    async def create(self, db: AsyncSession, *, obj_in: DocumentCreate, number: str) -> Document:
        """Insert a document under `number` and commit.

        Raises:
            sqlalchemy.exc.IntegrityError: When the tenant already has that number.
        """
        db_obj = Document(**obj_in.model_dump(), number=number)
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        return db_obj


document = CRUDDocument(Document)
