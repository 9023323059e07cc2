"""Tests for the client portal: token gate, aggregated view and client actions."""

from uuid import uuid4

from conftest import PORTAL_TOKEN, make_project, make_task
from onboardhub.models import Comment, Document, Signature, Stage

PORTAL = f"/api/v1/portal/{PORTAL_TOKEN}"


# =============================================================================
# Token gate
# =============================================================================


class TestTokenGate:
    async def test_unknown_token(self, client, db):
        await make_project(db)
        response = await client.get(f"/api/v1/portal/{'b' * 32}")
        assert response.status_code == 404
        assert response.json()["detail"] == "Invalid or expired portal link"

    async def test_short_token_never_matches(self, client, db):
        await make_project(db, public_token="short")
        response = await client.get("/api/v1/portal/short")
        assert response.status_code == 404

    async def test_draft_and_cancelled_projects_are_hidden(self, client, db):
        project = await make_project(db, status="draft")
        assert (await client.get(PORTAL)).status_code == 404

        project.status = "cancelled"
        await db.commit()
        assert (await client.get(PORTAL)).status_code == 404

        project.status = "paused"
        await db.commit()
        assert (await client.get(PORTAL)).status_code == 200


# =============================================================================
# Aggregated view
# =============================================================================


class TestPortalView:
    async def test_view_shape_and_progress(self, client, db):
        project = await make_project(db, notes="internal only", client_contact_email="c@example.com")
        stage = Stage(project_id=project.id, name="Documents", order_index=0, status="active")
        db.add(stage)
        await db.commit()
        await make_task(db, project, title="Upload lease", status="completed", stage_id=stage.id)
        await make_task(db, project, title="Upload W-9", order_index=1, stage_id=stage.id)
        await make_task(
            db, project, title="Staff review", visibility="internal",
            status="completed", staff_notes="secret", stage_id=stage.id,
        )

        response = await client.get(PORTAL)
        assert response.status_code == 200
        body = response.json()

        assert body["project"]["name"] == "Maple Court"
        assert "notes" not in body["project"]
        assert "client_contact_email" not in body["project"]
        assert "public_token" not in body["project"]

        assert [t["title"] for t in body["tasks"]] == ["Upload lease", "Upload W-9"]
        assert all("staff_notes" not in t for t in body["tasks"])
        assert body["progress"] == 50
        assert body["completed_tasks"] == 1
        assert body["total_tasks"] == 2

        # Stage counters include internal work
        assert body["stages"][0]["total_tasks"] == 3
        assert body["stages"][0]["completed_tasks"] == 2

    async def test_declined_signatures_excluded(self, client, db):
        project = await make_project(db)
        document = Document(name="Management Agreement")
        db.add(document)
        await db.commit()
        db.add_all([
            Signature(project_id=project.id, signer_name="Pat", status="pending", document_id=document.id),
            Signature(project_id=project.id, signer_name="Sam", status="declined"),
            Signature(project_id=project.id, signer_name="Lee", status="signed"),
        ])
        await db.commit()

        body = (await client.get(PORTAL)).json()
        signatures = {s["signer_name"]: s for s in body["signatures"]}
        assert set(signatures) == {"Pat", "Lee"}
        assert signatures["Pat"]["document_name"] == "Management Agreement"
        assert signatures["Lee"]["document_name"] is None
        assert "signature_data" not in signatures["Lee"]

        # The signature list endpoint hides declined requests too
        listed = (await client.get(f"{PORTAL}/signatures")).json()
        assert {s["signer_name"] for s in listed} == {"Pat", "Lee"}
        assert all(s["status"] != "declined" for s in listed)

    async def test_empty_project(self, client, db):
        await make_project(db)
        body = (await client.get(PORTAL)).json()
        assert body["progress"] == 0
        assert body["tasks"] == []
        assert body["stages"] == []


# =============================================================================
# Client actions
# =============================================================================


class TestClientTaskUpdate:
    async def test_complete_task(self, client, db):
        project = await make_project(db, client_contact_name="Jordan")
        task = await make_task(db, project)

        response = await client.patch(f"{PORTAL}/tasks/{task.id}", json={"status": "completed"})
        assert response.status_code == 200
        assert response.json()["status"] == "completed"

        await db.refresh(task)
        assert task.completed_by == "client"
        assert task.completed_at is not None

    async def test_client_cannot_set_other_statuses(self, client, db):
        project = await make_project(db)
        task = await make_task(db, project)
        response = await client.patch(f"{PORTAL}/tasks/{task.id}", json={"status": "skipped"})
        assert response.status_code == 400

    async def test_cannot_complete_twice(self, client, db):
        project = await make_project(db)
        task = await make_task(db, project, status="completed")
        response = await client.patch(f"{PORTAL}/tasks/{task.id}", json={"status": "completed"})
        assert response.status_code == 400

    async def test_client_notes_only(self, client, db):
        project = await make_project(db)
        task = await make_task(db, project)
        response = await client.patch(f"{PORTAL}/tasks/{task.id}", json={"client_notes": "Sent by mail"})
        assert response.status_code == 200
        assert response.json()["client_notes"] == "Sent by mail"
        assert response.json()["status"] == "pending"

    async def test_internal_task_is_invisible(self, client, db):
        project = await make_project(db)
        task = await make_task(db, project, visibility="internal")
        response = await client.patch(f"{PORTAL}/tasks/{task.id}", json={"status": "completed"})
        assert response.status_code == 404

    async def test_task_of_another_project_is_not_found(self, client, db):
        await make_project(db)
        other = await make_project(db, name="Other", public_token="c" * 32)
        foreign = await make_task(db, other)

        response = await client.patch(f"{PORTAL}/tasks/{foreign.id}", json={"status": "completed"})
        assert response.status_code == 404

        await db.refresh(foreign)
        assert foreign.status == "pending"

    async def test_unknown_task(self, client, db):
        await make_project(db)
        response = await client.patch(f"{PORTAL}/tasks/{uuid4()}", json={"status": "completed"})
        assert response.status_code == 404


class TestClientComments:
    async def test_internal_comments_hidden(self, client, db):
        project = await make_project(db)
        task = await make_task(db, project)
        db.add(Comment(
            project_id=project.id, task_id=task.id, author_email="staff@example.com",
            author_name="Staff", author_type="staff", content="internal note", is_internal=True,
        ))
        await db.commit()

        created = await client.post(f"{PORTAL}/tasks/{task.id}/comments", json={"content": "Done!"})
        assert created.status_code == 201
        assert created.json()["author_type"] == "client"

        listed = (await client.get(f"{PORTAL}/tasks/{task.id}/comments")).json()
        assert [c["content"] for c in listed] == ["Done!"]

    async def test_comment_on_foreign_task(self, client, db):
        await make_project(db)
        other = await make_project(db, name="Other", public_token="c" * 32)
        foreign = await make_task(db, other)
        response = await client.post(f"{PORTAL}/tasks/{foreign.id}/comments", json={"content": "hi"})
        assert response.status_code == 404


class TestClientSigning:
    async def test_sign_completes_linked_task(self, client, db):
        project = await make_project(db)
        task = await make_task(db, project, title="Sign agreement", requires_signature=True)
        signature = Signature(project_id=project.id, task_id=task.id, signer_name="Pat", status="sent")
        db.add(signature)
        await db.commit()

        response = await client.post(
            f"{PORTAL}/signatures/{signature.id}/sign",
            json={
                "signature_type": "type",
                "signer_name": "Pat Lee",
                "typed_name": "Pat Lee",
                "consent_given": True,
            },
            headers={"X-Forwarded-For": "203.0.113.9, 10.0.0.1", "User-Agent": "pytest"},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "signed"

        await db.refresh(signature)
        assert signature.ip_address == "203.0.113.9"
        assert signature.consent_given_at is not None
        await db.refresh(task)
        assert task.status == "completed"
        assert task.completed_by == "client"

    async def test_consent_required(self, client, db):
        project = await make_project(db)
        signature = Signature(project_id=project.id, signer_name="Pat", status="pending")
        db.add(signature)
        await db.commit()
        response = await client.post(
            f"{PORTAL}/signatures/{signature.id}/sign",
            json={"signature_type": "draw", "signer_name": "Pat", "signature_data": "data:image/png;base64,AA=="},
        )
        assert response.status_code == 400

    async def test_signature_of_another_project(self, client, db):
        await make_project(db)
        other = await make_project(db, name="Other", public_token="c" * 32)
        signature = Signature(project_id=other.id, signer_name="Pat", status="pending")
        db.add(signature)
        await db.commit()
        response = await client.post(
            f"{PORTAL}/signatures/{signature.id}/sign",
            json={"signature_type": "type", "signer_name": "Pat", "typed_name": "Pat", "consent_given": True},
        )
        assert response.status_code == 404


class TestClientFiles:
    async def test_upload_and_list(self, client, db, storage):
        project = await make_project(db)
        task = await make_task(db, project, requires_file_upload=True)

        response = await client.post(
            f"{PORTAL}/files",
            files={"file": ("lease.pdf", b"%PDF-1.4 test", "application/pdf")},
            data={"task_id": str(task.id)},
        )
        assert response.status_code == 201
        assert response.json()["file_name"] == "lease.pdf"
        assert len(storage.objects) == 1

        listed = (await client.get(f"{PORTAL}/files")).json()
        assert [f["file_name"] for f in listed] == ["lease.pdf"]
        assert "storage_path" not in listed[0]

    async def test_rejects_unsupported_type(self, client, db):
        await make_project(db)
        response = await client.post(
            f"{PORTAL}/files",
            files={"file": ("run.exe", b"MZ", "application/x-msdownload")},
        )
        assert response.status_code == 400


class TestSignatureDocument:
    async def test_serves_signed_copy(self, client, db, storage):
        project = await make_project(db)
        document = Document(name="Agreement", template_url=f"{storage.bucket}/documents/blank.pdf")
        db.add(document)
        await db.flush()
        signature = Signature(
            project_id=project.id,
            document_id=document.id,
            signer_name="Pat",
            status="signed",
            signed_pdf_path=f"{storage.bucket}/signed/pat.pdf",
        )
        db.add(signature)
        await db.commit()
        storage.objects[f"{storage.bucket}/documents/blank.pdf"] = b"%PDF blank"
        storage.objects[f"{storage.bucket}/signed/pat.pdf"] = b"%PDF signed"

        response = await client.get(f"{PORTAL}/signatures/{signature.id}/document")

        assert response.status_code == 200
        assert response.content == b"%PDF signed"
        assert response.headers["content-type"] == "application/pdf"
        assert response.headers["content-disposition"].startswith("inline")

    async def test_falls_back_to_document_template(self, client, db, storage):
        project = await make_project(db)
        document = Document(name="Agreement", template_url=f"{storage.bucket}/documents/blank.pdf")
        db.add(document)
        await db.flush()
        signature = Signature(
            project_id=project.id,
            document_id=document.id,
            signer_name="Pat",
            status="signed",
            signed_pdf_path=f"{storage.bucket}/signed/missing.pdf",
        )
        db.add(signature)
        await db.commit()
        storage.objects[f"{storage.bucket}/documents/blank.pdf"] = b"%PDF blank"

        response = await client.get(f"{PORTAL}/signatures/{signature.id}/document")

        assert response.status_code == 200
        assert response.content == b"%PDF blank"
        assert 'filename="Agreement.pdf"' in response.headers["content-disposition"]

    async def test_no_document_is_not_found(self, client, db):
        project = await make_project(db)
        signature = Signature(project_id=project.id, signer_name="Pat", status="pending")
        db.add(signature)
        await db.commit()

        response = await client.get(f"{PORTAL}/signatures/{signature.id}/document")
        assert response.status_code == 404

    async def test_document_without_file_is_not_found(self, client, db):
        project = await make_project(db)
        document = Document(name="Verbal consent")
        db.add(document)
        await db.flush()
        signature = Signature(project_id=project.id, document_id=document.id, signer_name="Pat")
        db.add(signature)
        await db.commit()

        response = await client.get(f"{PORTAL}/signatures/{signature.id}/document")
        assert response.status_code == 404

    async def test_signature_of_another_project(self, client, db, storage):
        await make_project(db)
        other = await make_project(db, name="Other", public_token="c" * 32)
        document = Document(name="Agreement", template_url=f"{storage.bucket}/documents/blank.pdf")
        db.add(document)
        await db.flush()
        signature = Signature(project_id=other.id, document_id=document.id, signer_name="Pat")
        db.add(signature)
        await db.commit()
        storage.objects[f"{storage.bucket}/documents/blank.pdf"] = b"%PDF blank"

        response = await client.get(f"{PORTAL}/signatures/{signature.id}/document")
        assert response.status_code == 404
