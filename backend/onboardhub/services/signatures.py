"""Document templates, signature requests and electronic signing."""

import re
from datetime import datetime, timezone
from typing import Any, Iterable, Sequence
from uuid import UUID, uuid4

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from onboardhub.exceptions import NotFoundError, ValidationError
from onboardhub.models.activity import ActorType
from onboardhub.models.document import SIGNABLE_STATUSES, Document, Signature
from onboardhub.models.project import Project, Task
from onboardhub.services.activity import ActivityLogger
from onboardhub.services.files import validate_upload
from onboardhub.services.storage import BlobStore
from onboardhub.services.tasks import TaskService

logger = structlog.get_logger()

CONSENT_TEXT = (
    "I agree to sign this document electronically and acknowledge that my "
    "electronic signature has the same legal effect as a handwritten signature."
)

SIGNATURE_TYPES = ("draw", "type")

DOCUMENT_CATEGORIES = ("agreement", "disclosure", "authorization", "other")

# Fields staff may change on a document
DOCUMENT_FIELDS = {"name", "description", "category", "requires_signature", "is_active"}


def safe_file_name(file_name: str) -> str:
    """Storage-safe version of an uploaded file name."""
    return re.sub(r"[^A-Za-z0-9._-]", "_", file_name)


async def document_names(db: AsyncSession, document_ids: Iterable[UUID | None]) -> dict[UUID, str]:
    """Map document id to name for the given ids, ignoring nulls."""
    ids = {doc_id for doc_id in document_ids if doc_id is not None}
    if not ids:
        return {}
    result = await db.execute(select(Document.id, Document.name).where(Document.id.in_(ids)))
    return {row.id: row.name for row in result.all()}


class DocumentService:
    """Document templates that signatures point at."""

    def __init__(self, db: AsyncSession, storage: BlobStore | None = None):
        self.db = db
        self.storage = storage

    def _storage(self) -> BlobStore:
        if self.storage is None:
            raise RuntimeError("DocumentService was created without a blob store")
        return self.storage

    async def list_documents(self, active_only: bool = False) -> Sequence[Document]:
        query = select(Document).order_by(Document.created_at.desc())
        if active_only:
            query = query.where(Document.is_active.is_(True))
        result = await self.db.execute(query)
        return result.scalars().all()

    async def get_document(self, document_id: UUID) -> Document:
        document = await self.db.get(Document, document_id)
        if document is None:
            raise NotFoundError("Document")
        return document

    async def create_document(self, data: dict[str, Any]) -> Document:
        if not data.get("name"):
            raise ValidationError("name is required", field="name")
        category = data.get("category") or "agreement"
        if category not in DOCUMENT_CATEGORIES:
            raise ValidationError(f"Unknown document category: {category}", field="category")
        document = Document(
            name=data["name"],
            description=data.get("description"),
            template_url=data.get("template_url"),
            category=category,
            requires_signature=bool(data.get("requires_signature", False)),
        )
        self.db.add(document)
        await self.db.commit()
        await self.db.refresh(document)
        return document

    async def upload_document(
        self,
        file_name: str,
        content_type: str | None,
        data: bytes,
        name: str,
        description: str | None = None,
        category: str | None = None,
        requires_signature: bool = True,
    ) -> Document:
        """Store a PDF in the blob store and register it as a document template."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("name is required", field="name")
        category = category or "agreement"
        if category not in DOCUMENT_CATEGORIES:
            raise ValidationError(f"Unknown document category: {category}", field="category")
        validate_upload(file_name, content_type, len(data))
        if not file_name.lower().endswith(".pdf"):
            raise ValidationError("Only PDF files are allowed", field="file")

        storage_path = await self._storage().upload(
            f"documents/{uuid4()}/{safe_file_name(file_name)}", data, "application/pdf"
        )
        return await self.create_document(
            {
                "name": name,
                "description": description,
                "template_url": storage_path,
                "category": category,
                "requires_signature": requires_signature,
            }
        )

    async def update_document(self, document_id: UUID, fields: dict[str, Any]) -> Document:
        if not fields:
            raise ValidationError("No fields to update")
        for key in ("category", "requires_signature", "is_active"):
            if key in fields and fields[key] is None:
                raise ValidationError(f"{key} cannot be null", field=key)
        if "name" in fields and not (fields["name"] or "").strip():
            raise ValidationError("name cannot be empty", field="name")
        if "category" in fields and fields["category"] not in DOCUMENT_CATEGORIES:
            raise ValidationError(
                f"Unknown document category: {fields['category']}", field="category"
            )

        document = await self.get_document(document_id)
        for key, value in fields.items():
            if key in DOCUMENT_FIELDS:
                setattr(document, key, value)
        await self.db.commit()
        await self.db.refresh(document)
        logger.info("document_updated", document_id=str(document_id), fields=sorted(fields))
        return document

    async def deactivate_document(self, document_id: UUID) -> Document:
        """Hide a document from new requests. Existing signatures keep their link."""
        document = await self.get_document(document_id)
        document.is_active = False
        await self.db.commit()
        await self.db.refresh(document)
        logger.info("document_deactivated", document_id=str(document_id))
        return document

    async def download_document(self, document_id: UUID) -> tuple[Document, bytes]:
        document = await self.get_document(document_id)
        if not document.template_url:
            raise NotFoundError("Document file")
        data = await self._storage().download(document.template_url)
        return document, data


class SignatureService:
    """Service for signature requests (staff) and signing (client portal)."""

    def __init__(self, db: AsyncSession, activity: ActivityLogger):
        self.db = db
        self.activity = activity

    async def list_signatures(
        self,
        project_id: UUID,
        exclude_declined: bool = False,
    ) -> list[dict[str, Any]]:
        """Signatures of a project, each with its document name (None if unlinked)."""
        query = select(Signature).where(Signature.project_id == project_id)
        if exclude_declined:
            query = query.where(Signature.status != "declined")
        result = await self.db.execute(query.order_by(Signature.created_at))
        signatures = result.scalars().all()

        names = await document_names(self.db, (s.document_id for s in signatures))
        return [
            {
                **signature.to_dict(),
                "document_name": names.get(signature.document_id)
                if signature.document_id
                else None,
            }
            for signature in signatures
        ]

    async def request_signature(
        self,
        project_id: UUID,
        data: dict[str, Any],
        actor: str | None = None,
    ) -> Signature:
        if not data.get("signer_name"):
            raise ValidationError("signer_name is required", field="signer_name")

        task_id = data.get("task_id")
        if task_id is not None:
            result = await self.db.execute(
                select(Task.id).where(Task.id == task_id, Task.project_id == project_id)
            )
            if result.scalar_one_or_none() is None:
                raise NotFoundError("Task")

        document_id = data.get("document_id")
        if document_id is not None:
            result = await self.db.execute(select(Document.id).where(Document.id == document_id))
            if result.scalar_one_or_none() is None:
                raise NotFoundError("Document")

        signature = Signature(
            project_id=project_id,
            task_id=task_id,
            document_id=document_id,
            signer_name=data["signer_name"],
            signer_email=data.get("signer_email"),
            signer_title=data.get("signer_title"),
            status="pending",
        )
        self.db.add(signature)
        await self.db.commit()
        await self.db.refresh(signature)

        self.activity.log(
            project_id=project_id,
            task_id=task_id,
            actor=actor,
            actor_type=ActorType.STAFF,
            action="signature_requested",
            details={
                "signer_name": signature.signer_name,
                "signer_email": signature.signer_email,
                "document_id": str(document_id) if document_id else None,
            },
        )
        return signature

    async def sign(
        self,
        project: Project,
        signature: Signature,
        data: dict[str, Any],
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> Signature:
        """
        Record a client's electronic signature.

        The signature must already be resolved against ``project``. A linked
        task that is not yet completed is completed on the signer's behalf.

        Raises:
            ValidationError: signature not signable, or signing data incomplete
        """
        if signature.status not in SIGNABLE_STATUSES:
            raise ValidationError(f"Signature has already been {signature.status}")

        signer_name = data.get("signer_name")
        signature_type = data.get("signature_type")
        if not signer_name:
            raise ValidationError("signer_name is required", field="signer_name")
        if signature_type not in SIGNATURE_TYPES:
            raise ValidationError(
                'signature_type must be "draw" or "type"', field="signature_type"
            )
        if signature_type == "draw" and not data.get("signature_data"):
            raise ValidationError(
                "signature_data is required for draw signatures", field="signature_data"
            )
        if signature_type == "type" and not data.get("typed_name"):
            raise ValidationError(
                "typed_name is required for typed signatures", field="typed_name"
            )
        if not data.get("consent_given"):
            raise ValidationError(
                "Consent must be given to sign electronically", field="consent_given"
            )

        now = datetime.now(timezone.utc)
        signature.signature_type = signature_type
        signature.signer_name = signer_name
        if signature_type == "draw":
            signature.signature_data = data["signature_data"]
        else:
            signature.typed_name = data["typed_name"]
        if data.get("signer_email"):
            signature.signer_email = data["signer_email"]
        if data.get("signer_title"):
            signature.signer_title = data["signer_title"]
        signature.ip_address = ip_address or "unknown"
        signature.user_agent = user_agent or "unknown"
        signature.consent_text = CONSENT_TEXT
        signature.consent_given_at = now
        signature.status = "signed"
        signature.signed_at = now
        await self.db.commit()
        await self.db.refresh(signature)

        if signature.task_id is not None:
            await self._complete_linked_task(project, signature, signer_name)

        self.activity.log(
            project_id=project.id,
            task_id=signature.task_id,
            actor=signer_name,
            actor_type=ActorType.CLIENT,
            action="document_signed",
            details={
                "signature_id": str(signature.id),
                "signature_type": signature_type,
                "document_id": str(signature.document_id) if signature.document_id else None,
            },
        )
        logger.info(
            "document_signed",
            project_id=str(project.id),
            signature_id=str(signature.id),
        )
        return signature

    async def _complete_linked_task(
        self,
        project: Project,
        signature: Signature,
        signer_name: str,
    ) -> None:
        result = await self.db.execute(
            select(Task.status).where(
                Task.id == signature.task_id,
                Task.project_id == project.id,
            )
        )
        status = result.scalar_one_or_none()
        if status is None or status == "completed":
            return

        await TaskService(self.db, self.activity).update_task(
            project.id,
            signature.task_id,
            {"status": "completed", "completed_by": ActorType.CLIENT.value},
            actor=signer_name,
            actor_type=ActorType.CLIENT,
        )
