"""Store-backed tests for document numbering."""

import asyncio
import uuid

import pytest

from docbill import crud, schemas
from docbill.billing.sequencer import DocumentSequencer
from docbill.core.exceptions import NumberGenerationFailed
from docbill.core.shared_models import ResourceKind


def document_in(tenant_id, kind=ResourceKind.INVOICE, tax_id="406123456"):
    return schemas.DocumentCreate(
        tenant_id=tenant_id,
        kind=kind,
        counterparty_tax_id=tax_id,
        purpose="Consulting",
        amount_minor=15000,
    )


def test_prefixes():
    assert DocumentSequencer.build_prefix("01001", "406123456", ResourceKind.INVOICE) == (
        "01001-406123456-"
    )
    assert DocumentSequencer.build_prefix(" 01001", "406123456 ", ResourceKind.ACT) == (
        "01001-406123456-ACT-"
    )
    assert DocumentSequencer.format_number("01001-406123456-ACT-", 12) == "01001-406123456-ACT-12"


async def test_numbers_follow_count_per_counterparty_and_kind(db_session, tenant_id):
    sequencer = DocumentSequencer(max_attempts=5, backoff_seconds=0)

    first = await sequencer.create_document(
        db_session, registration_id="01001", obj_in=document_in(tenant_id)
    )
    second = await sequencer.create_document(
        db_session, registration_id="01001", obj_in=document_in(tenant_id)
    )
    other_party = await sequencer.create_document(
        db_session, registration_id="01001", obj_in=document_in(tenant_id, tax_id="205000111")
    )
    act = await sequencer.create_document(
        db_session, registration_id="01001", obj_in=document_in(tenant_id, kind=ResourceKind.ACT)
    )

    assert first.number == "01001-406123456-1"
    assert second.number == "01001-406123456-2"
    assert other_party.number == "01001-205000111-1"
    assert act.number == "01001-406123456-ACT-1"


async def test_concurrent_creations_get_distinct_gapless_numbers(session_factory, tenant_id):
    sequencer = DocumentSequencer(max_attempts=5, backoff_seconds=0)

    async def create_one():
        async with session_factory() as db:
            doc = await sequencer.create_document(
                db, registration_id="01001", obj_in=document_in(tenant_id)
            )
            return doc.number

    numbers = await asyncio.gather(*[create_one() for _ in range(8)])

    assert sorted(numbers, key=lambda n: int(n.rsplit("-", 1)[1])) == [
        f"01001-406123456-{seq}" for seq in range(1, 9)
    ]


async def test_collision_is_retried_with_a_fresh_count(db_session, tenant_id):
    class StaleFirstCount(DocumentSequencer):
        stale = True

        async def next_candidate(self, db, tenant_id, kind, prefix):
            if self.stale:
                self.stale = False
                return self.format_number(prefix, 1)
            return await super().next_candidate(db, tenant_id, kind, prefix)

    await crud.document.create(db_session, obj_in=document_in(tenant_id), number="01001-406123456-1")
    sequencer = StaleFirstCount(max_attempts=3, backoff_seconds=0)

    doc = await sequencer.create_document(
        db_session, registration_id="01001", obj_in=document_in(tenant_id)
    )

    assert doc.number == "01001-406123456-2"


async def test_exhausted_retries_fail_instead_of_duplicating(db_session, tenant_id):
    # a gap left by a deleted first document: count + 1 keeps hitting number 2
    await crud.document.create(db_session, obj_in=document_in(tenant_id), number="01001-406123456-2")
    sequencer = DocumentSequencer(max_attempts=3, backoff_seconds=0)

    with pytest.raises(NumberGenerationFailed) as exc_info:
        await sequencer.create_document(
            db_session, registration_id="01001", obj_in=document_in(tenant_id)
        )

    assert exc_info.value.attempts == 3
    assert exc_info.value.prefix == "01001-406123456-"
    count = await crud.document.count_with_prefix(
        db_session, tenant_id=tenant_id, kind=ResourceKind.INVOICE, prefix="01001-406123456-"
    )
    assert count == 1


async def test_numbers_are_scoped_per_tenant(db_session, tenant_id):
    sequencer = DocumentSequencer(max_attempts=5, backoff_seconds=0)
    mine = await sequencer.create_document(
        db_session, registration_id="01001", obj_in=document_in(tenant_id)
    )
    theirs = await sequencer.create_document(
        db_session, registration_id="01001", obj_in=document_in(uuid.uuid4())
    )

    assert mine.number == theirs.number == "01001-406123456-1"
