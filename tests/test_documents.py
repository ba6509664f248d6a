"""Tests for the document lifecycle service."""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from knowledge_hub.audit import AuditAction
from knowledge_hub.db.database import build_engine, build_session_maker
from knowledge_hub.db.store import RecordStore, document_key
from knowledge_hub.documents.lifecycle import DocumentLifecycleService
from knowledge_hub.documents.models import (
    DocumentAction,
    DocumentStatus,
    ExpiryClass,
    Sensitivity,
)
from knowledge_hub.exceptions import (
    ConstraintViolationError,
    InvalidFieldError,
    InvalidTransitionError,
    NotFoundError,
    StaleWriteError,
    UnavailableError,
)

from conftest import FROZEN_NOW

pytestmark = pytest.mark.integration


# =============================================================================
# Creation
# =============================================================================


class TestCreateDocument:
    """Tests for create_document."""

    @pytest.mark.asyncio
    async def test_creates_draft_with_first_version(self, lifecycle, draft_document, test_users):
        assert draft_document.status is DocumentStatus.DRAFT
        assert draft_document.current_version == 1
        assert draft_document.created_by == test_users["author"]
        assert draft_document.created_at == FROZEN_NOW
        assert draft_document.last_reviewed_at is None

        versions = await lifecycle.list_versions(draft_document.id)
        assert [v.version_number for v in versions] == [1]
        assert versions[0].uploaded_by == test_users["author"]
        assert versions[0].notes == "Initial upload"

    @pytest.mark.asyncio
    async def test_defaults(self, lifecycle, test_users):
        document = await lifecycle.create_document("FAQ", "faq.md", test_users["author"])
        assert document.department == "Other"
        assert document.sensitivity is Sensitivity.INTERNAL
        assert document.ai_enabled is True
        assert document.expires_at is None

    @pytest.mark.asyncio
    async def test_writes_upload_audit_entry(self, audit, draft_document, test_users):
        entries = await audit.list_entries(document_id=draft_document.id)
        assert len(entries) == 1
        assert entries[0].action is AuditAction.UPLOAD
        assert entries[0].actor_id == test_users["author"]
        assert entries[0].document_title == "Travel Policy"

    @pytest.mark.asyncio
    async def test_blank_title_rejected(self, lifecycle, test_users):
        with pytest.raises(InvalidFieldError) as exc_info:
            await lifecycle.create_document("   ", "file.pdf", test_users["author"])
        assert exc_info.value.field == "title"
        assert await lifecycle.list_documents() == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "title, filename, department, field",
        [
            ("T" * 513, "file.pdf", None, "title"),
            ("Policy", "f" * 513, None, "filename"),
            ("Policy", "file.pdf", "D" * 65, "department"),
        ],
    )
    async def test_oversized_text_rejected(
        self, lifecycle, test_users, title, filename, department, field
    ):
        with pytest.raises(InvalidFieldError) as exc_info:
            await lifecycle.create_document(
                title, filename, test_users["author"], department=department
            )
        assert exc_info.value.field == field
        assert await lifecycle.list_documents() == []

    @pytest.mark.asyncio
    async def test_unknown_sensitivity_rejected(self, lifecycle, test_users):
        with pytest.raises(InvalidFieldError):
            await lifecycle.create_document(
                "Salaries", "salaries.xlsx", test_users["author"], sensitivity="top-secret"
            )
        assert await lifecycle.list_documents() == []

    @pytest.mark.asyncio
    async def test_timezone_aware_expiry_rejected(self, lifecycle, test_users):
        with pytest.raises(InvalidFieldError):
            await lifecycle.create_document(
                "Policy",
                "policy.pdf",
                test_users["author"],
                expires_at=datetime(2026, 6, 1, tzinfo=timezone.utc),
            )


# =============================================================================
# Status changes
# =============================================================================


class TestChangeStatus:
    """Tests for change_status."""

    @pytest.mark.asyncio
    async def test_submit_then_approve(self, lifecycle, draft_document, clock, test_users):
        submitted = await lifecycle.change_status(
            draft_document.id, DocumentAction.SUBMIT, test_users["author"]
        )
        assert submitted.status is DocumentStatus.IN_REVIEW
        assert submitted.last_reviewed_at is None

        clock.advance(hours=3)
        approved = await lifecycle.change_status(
            draft_document.id, "approve", test_users["reviewer"]
        )
        assert approved.status is DocumentStatus.APPROVED
        assert approved.last_reviewed_at == FROZEN_NOW + timedelta(hours=3)
        assert approved.last_reviewed_by == test_users["reviewer"]
        assert approved.updated_by == test_users["reviewer"]

    @pytest.mark.asyncio
    async def test_approve_twice_fails_without_change(
        self, lifecycle, approved_document, clock, test_users
    ):
        clock.advance(days=1)
        with pytest.raises(InvalidTransitionError) as exc_info:
            await lifecycle.change_status(
                approved_document.id, DocumentAction.APPROVE, test_users["admin"]
            )
        assert exc_info.value.entity_id == approved_document.id

        current = await lifecycle.get_document(approved_document.id)
        assert current.status is DocumentStatus.APPROVED
        assert current.last_reviewed_at == approved_document.last_reviewed_at
        assert current.last_reviewed_by == test_users["reviewer"]

    @pytest.mark.asyncio
    async def test_draft_cannot_be_approved(self, lifecycle, draft_document, test_users):
        with pytest.raises(InvalidTransitionError):
            await lifecycle.change_status(
                draft_document.id, DocumentAction.APPROVE, test_users["reviewer"]
            )
        assert (await lifecycle.get_document(draft_document.id)).status is DocumentStatus.DRAFT

    @pytest.mark.asyncio
    async def test_deprecated_has_no_way_out(self, lifecycle, approved_document, test_users):
        deprecated = await lifecycle.change_status(
            approved_document.id, DocumentAction.DEPRECATE, test_users["admin"]
        )
        assert deprecated.status is DocumentStatus.DEPRECATED
        # Deprecating does not count as a review
        assert deprecated.last_reviewed_by == test_users["reviewer"]

        for action in DocumentAction:
            with pytest.raises(InvalidTransitionError):
                await lifecycle.change_status(approved_document.id, action, test_users["admin"])

    @pytest.mark.asyncio
    async def test_unknown_document(self, lifecycle, test_users):
        with pytest.raises(NotFoundError):
            await lifecycle.change_status("missing", DocumentAction.SUBMIT, test_users["author"])

    @pytest.mark.asyncio
    async def test_unknown_action_reports_plain_status(self, lifecycle, draft_document, test_users):
        with pytest.raises(InvalidTransitionError) as exc_info:
            await lifecycle.change_status(draft_document.id, "reopen", test_users["author"])
        assert exc_info.value.current == "draft"
        assert exc_info.value.action == "reopen"

    @pytest.mark.asyncio
    async def test_audit_trail(self, audit, approved_document, test_users):
        entries = await audit.list_entries(document_id=approved_document.id)
        assert [e.action for e in entries] == [
            AuditAction.DOCUMENT_APPROVED,
            AuditAction.SUBMITTED_FOR_REVIEW,
            AuditAction.UPLOAD,
        ]
        assert entries[0].details == "in_review -> approved"

    @pytest.mark.asyncio
    async def test_rejected_transition_writes_no_audit(self, lifecycle, audit, draft_document, test_users):
        with pytest.raises(InvalidTransitionError):
            await lifecycle.change_status(draft_document.id, "approve", test_users["reviewer"])
        entries = await audit.list_entries(document_id=draft_document.id)
        assert [e.action for e in entries] == [AuditAction.UPLOAD]

    @pytest.mark.asyncio
    async def test_concurrent_approvals_apply_once(self, lifecycle, draft_document, test_users):
        await lifecycle.change_status(draft_document.id, "submit", test_users["author"])

        results = await asyncio.gather(
            lifecycle.change_status(draft_document.id, "approve", test_users["reviewer"]),
            lifecycle.change_status(draft_document.id, "approve", test_users["admin"]),
            return_exceptions=True,
        )
        approvals = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, InvalidTransitionError)]
        assert len(approvals) == 1
        assert len(failures) == 1


# =============================================================================
# Versions
# =============================================================================


class TestUploadVersion:
    """Tests for upload_version."""

    @pytest.mark.asyncio
    async def test_increments_version_and_keeps_status(
        self, lifecycle, approved_document, test_users
    ):
        updated = await lifecycle.upload_version(
            approved_document.id, test_users["author"], notes="Updated per diem rates"
        )
        assert updated.current_version == 2
        assert updated.status is DocumentStatus.APPROVED

        versions = await lifecycle.list_versions(approved_document.id)
        assert [v.version_number for v in versions] == [1, 2]
        assert versions[1].notes == "Updated per diem rates"

    @pytest.mark.asyncio
    async def test_updates_file_reference(self, lifecycle, draft_document, test_users):
        updated = await lifecycle.upload_version(
            draft_document.id,
            test_users["author"],
            file_path="/uploads/travel_policy_v2.pdf",
            file_size=2048,
        )
        assert updated.file_path == "/uploads/travel_policy_v2.pdf"
        assert updated.file_size == 2048

    @pytest.mark.asyncio
    async def test_unknown_document(self, lifecycle, test_users):
        with pytest.raises(NotFoundError):
            await lifecycle.upload_version("missing", test_users["author"])

    @pytest.mark.asyncio
    async def test_concurrent_uploads_never_collide(self, lifecycle, draft_document, test_users):
        await asyncio.gather(
            *(
                lifecycle.upload_version(draft_document.id, test_users["author"], notes=f"edit {i}")
                for i in range(5)
            )
        )

        versions = await lifecycle.list_versions(draft_document.id)
        assert [v.version_number for v in versions] == [1, 2, 3, 4, 5, 6]
        assert (await lifecycle.get_document(draft_document.id)).current_version == 6

    @pytest.mark.asyncio
    async def test_retries_stale_write(self, lifecycle, store, draft_document, test_users, monkeypatch):
        real_atomic = store.atomic
        attempts = []

        @asynccontextmanager
        async def flaky_atomic(*keys):
            attempts.append(keys)
            if len(attempts) == 1:
                raise StaleWriteError("Concurrent write conflict; state unchanged")
            async with real_atomic(*keys) as session:
                yield session

        monkeypatch.setattr(store, "atomic", flaky_atomic)

        updated = await lifecycle.upload_version(draft_document.id, test_users["author"])
        assert updated.current_version == 2
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_repeated_conflicts(
        self, lifecycle, store, draft_document, test_users, monkeypatch
    ):
        attempts = []

        @asynccontextmanager
        async def conflicting_atomic(*keys):
            attempts.append(keys)
            raise StaleWriteError("Concurrent write conflict; state unchanged")
            yield

        monkeypatch.setattr(store, "atomic", conflicting_atomic)

        with pytest.raises(UnavailableError):
            await lifecycle.upload_version(draft_document.id, test_users["author"])
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_constraint_violation_not_retried(
        self, lifecycle, store, draft_document, test_users, monkeypatch
    ):
        attempts = []

        @asynccontextmanager
        async def rejecting_atomic(*keys):
            attempts.append(keys)
            raise ConstraintViolationError("Write rejected by store constraint")
            yield

        monkeypatch.setattr(store, "atomic", rejecting_atomic)

        with pytest.raises(ConstraintViolationError):
            await lifecycle.upload_version(draft_document.id, test_users["author"])
        assert len(attempts) == 1


# =============================================================================
# Metadata
# =============================================================================


class TestEditMetadata:
    """Tests for edit_metadata."""

    @pytest.mark.asyncio
    async def test_applies_whitelisted_fields(self, lifecycle, draft_document, test_users):
        expires_at = FROZEN_NOW + timedelta(days=90)
        updated = await lifecycle.edit_metadata(
            draft_document.id,
            {
                "title": "  Travel Policy 2026 ",
                "department": "Finance",
                "notes": "Owned by finance now",
                "questions_answered": "How much per diem?",
                "ai_enabled": False,
                "sensitivity": "Restricted",
                "expires_at": expires_at,
            },
            test_users["admin"],
        )
        assert updated.title == "Travel Policy 2026"
        assert updated.department == "Finance"
        assert updated.ai_enabled is False
        assert updated.sensitivity is Sensitivity.RESTRICTED
        assert updated.expires_at == expires_at
        assert updated.status is DocumentStatus.DRAFT
        assert updated.current_version == 1
        assert updated.updated_by == test_users["admin"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "field,value",
        [
            ("status", "approved"),
            ("current_version", 7),
            ("last_reviewed_at", FROZEN_NOW),
            ("last_reviewed_by", "U_SOMEONE"),
            ("created_by", "U_SOMEONE"),
            ("id", "other-id"),
        ],
    )
    async def test_protected_fields_rejected(self, lifecycle, draft_document, test_users, field, value):
        with pytest.raises(InvalidFieldError) as exc_info:
            await lifecycle.edit_metadata(draft_document.id, {field: value}, test_users["admin"])
        assert exc_info.value.field == field

    @pytest.mark.asyncio
    async def test_mixed_patch_applies_nothing(self, lifecycle, audit, draft_document, test_users):
        with pytest.raises(InvalidFieldError):
            await lifecycle.edit_metadata(
                draft_document.id,
                {"title": "Renamed", "status": "approved"},
                test_users["admin"],
            )

        current = await lifecycle.get_document(draft_document.id)
        assert current.title == "Travel Policy"
        assert current.status is DocumentStatus.DRAFT
        entries = await audit.list_entries(document_id=draft_document.id)
        assert [e.action for e in entries] == [AuditAction.UPLOAD]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "patch",
        [
            {},
            {"title": ""},
            {"title": None},
            {"department": "   "},
            {"department": "D" * 65},
            {"title": "T" * 513},
            {"ai_enabled": "yes"},
            {"sensitivity": "secret"},
            {"expires_at": "2026-12-31"},
            {"expires_at": datetime(2026, 12, 31, tzinfo=timezone.utc)},
            {"notes": 42},
        ],
    )
    async def test_bad_values_rejected(self, lifecycle, draft_document, test_users, patch):
        with pytest.raises(InvalidFieldError):
            await lifecycle.edit_metadata(draft_document.id, patch, test_users["admin"])

    @pytest.mark.asyncio
    async def test_clearing_optional_fields(self, lifecycle, test_users):
        document = await lifecycle.create_document(
            "Onboarding",
            "onboarding.md",
            test_users["author"],
            notes="draft notes",
            expires_at=FROZEN_NOW + timedelta(days=10),
        )
        updated = await lifecycle.edit_metadata(
            document.id, {"notes": None, "expires_at": None}, test_users["author"]
        )
        assert updated.notes is None
        assert updated.expires_at is None

    @pytest.mark.asyncio
    async def test_unknown_document(self, lifecycle, test_users):
        with pytest.raises(NotFoundError):
            await lifecycle.edit_metadata("missing", {"title": "X"}, test_users["admin"])

    @pytest.mark.asyncio
    async def test_audit_lists_changed_fields(self, lifecycle, audit, draft_document, test_users):
        await lifecycle.edit_metadata(
            draft_document.id,
            {"title": "Travel Policy", "department": "Ops"},
            test_users["admin"],
        )
        latest = (await audit.list_entries(document_id=draft_document.id))[0]
        assert latest.action is AuditAction.METADATA_UPDATE
        assert latest.details == "Changed: department"


# =============================================================================
# Reads
# =============================================================================


class TestReads:
    """Tests for the read accessors."""

    @pytest.mark.asyncio
    async def test_get_unknown_document(self, lifecycle):
        with pytest.raises(NotFoundError):
            await lifecycle.get_document("missing")
        with pytest.raises(NotFoundError):
            await lifecycle.list_versions("missing")

    @pytest.mark.asyncio
    async def test_allowed_actions_follow_status(self, lifecycle, approved_document):
        assert await lifecycle.allowed_actions(approved_document.id) == [DocumentAction.DEPRECATE]

    @pytest.mark.asyncio
    async def test_get_expiry(self, lifecycle, test_users):
        document = await lifecycle.create_document(
            "Security Policy",
            "security.pdf",
            test_users["author"],
            expires_at=FROZEN_NOW + timedelta(days=5),
        )
        assert await lifecycle.get_expiry(document.id) is ExpiryClass.URGENT
        later = FROZEN_NOW + timedelta(days=6)
        assert await lifecycle.get_expiry(document.id, now=later) is ExpiryClass.EXPIRED

    @pytest.mark.asyncio
    async def test_list_documents_filters(self, lifecycle, approved_document, test_users):
        await lifecycle.create_document("Budget", "budget.xlsx", test_users["author"], department="Finance")

        assert len(await lifecycle.list_documents()) == 2
        approved = await lifecycle.list_documents(status=DocumentStatus.APPROVED)
        assert [d.id for d in approved] == [approved_document.id]
        finance = await lifecycle.list_documents(department="Finance")
        assert [d.title for d in finance] == ["Budget"]

    @pytest.mark.asyncio
    async def test_review_queue_oldest_first(self, lifecycle, clock, test_users):
        first = await lifecycle.create_document("First", "a.md", test_users["author"])
        clock.advance(minutes=5)
        second = await lifecycle.create_document("Second", "b.md", test_users["author"])
        await lifecycle.change_status(second.id, "submit", test_users["author"])
        clock.advance(minutes=5)
        done = await lifecycle.create_document("Done", "c.md", test_users["author"])
        await lifecycle.change_status(done.id, "deprecate", test_users["admin"])

        queue = await lifecycle.review_queue()
        assert [d.id for d in queue] == [first.id, second.id]

    @pytest.mark.asyncio
    async def test_expiring_documents(self, lifecycle, test_users):
        author = test_users["author"]
        expired = await lifecycle.create_document(
            "Old", "old.pdf", author, expires_at=FROZEN_NOW - timedelta(days=2)
        )
        upcoming = await lifecycle.create_document(
            "Soon", "soon.pdf", author, expires_at=FROZEN_NOW + timedelta(days=20)
        )
        await lifecycle.create_document(
            "Later", "later.pdf", author, expires_at=FROZEN_NOW + timedelta(days=200)
        )
        await lifecycle.create_document("Forever", "forever.pdf", author)
        retired = await lifecycle.create_document(
            "Retired", "retired.pdf", author, expires_at=FROZEN_NOW - timedelta(days=1)
        )
        await lifecycle.change_status(retired.id, "deprecate", test_users["admin"])

        flagged = await lifecycle.expiring_documents()
        assert [(d.id, c) for d, c in flagged] == [
            (expired.id, ExpiryClass.EXPIRED),
            (upcoming.id, ExpiryClass.UPCOMING),
        ]


# =============================================================================
# Store failures
# =============================================================================


class TestStoreFailures:
    """Failures leave no partial state and surface as UnavailableError."""

    @pytest.mark.asyncio
    async def test_timeout_waiting_for_entity(self, lifecycle, store, draft_document, test_users):
        lock = store._lock_for(document_key(draft_document.id))
        await lock.acquire()
        store.timeout = 0.05
        try:
            with pytest.raises(UnavailableError) as exc_info:
                await lifecycle.change_status(draft_document.id, "submit", test_users["author"])
            assert exc_info.value.retryable is True
        finally:
            lock.release()
            store.timeout = 5.0

        assert (await lifecycle.get_document(draft_document.id)).status is DocumentStatus.DRAFT

    @pytest.mark.asyncio
    async def test_unreachable_database(self, tmp_path, test_users):
        engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'hub.db'}")
        service = DocumentLifecycleService(RecordStore(build_session_maker(engine), timeout=5.0))
        try:
            with pytest.raises(UnavailableError):
                await service.get_document("any")
            with pytest.raises(UnavailableError):
                await service.create_document("Policy", "policy.pdf", test_users["author"])
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_failed_audit_write_rolls_back_transition(
        self, lifecycle, audit, draft_document, test_users, monkeypatch
    ):
        monkeypatch.setattr(audit, "record", MagicMock(side_effect=RuntimeError("audit sink down")))

        with pytest.raises(RuntimeError):
            await lifecycle.change_status(draft_document.id, "submit", test_users["author"])

        current = await lifecycle.get_document(draft_document.id)
        assert current.status is DocumentStatus.DRAFT
        assert current.updated_by is None
