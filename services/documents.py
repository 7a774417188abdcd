"""Проверка документов: паспорт и водительское удостоверение."""

from sqlalchemy.ext.asyncio import AsyncSession

from database import crud
from database.models import Document, DocumentStatus, DocumentType, User, VerificationStatus
from services.exceptions import (
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
)
from services.notifications import notify_verification_status
from utils.helpers import now_utc
from utils.logger import logger

ALLOWED_MIME_TYPES = frozenset({"image/jpeg", "image/png", "image/webp"})

# Для статуса VERIFIED нужны оба документа
REQUIRED_DOCUMENTS = (DocumentType.PASSPORT, DocumentType.DRIVER_LICENSE)


def latest_documents(documents: list[Document]) -> dict[DocumentType, Document]:
    """Последний документ каждого типа. documents отсортированы от новых к старым."""
    latest: dict[DocumentType, Document] = {}
    for document in documents:
        latest.setdefault(DocumentType(document.type), document)
    return latest


def missing_documents(latest: dict[DocumentType, Document]) -> list[DocumentType]:
    return [
        doc_type for doc_type in REQUIRED_DOCUMENTS
        if doc_type not in latest or latest[doc_type].status == DocumentStatus.REJECTED
    ]


async def submit_document(
    session: AsyncSession,
    user: User,
    doc_type: DocumentType | str,
    file_url: str,
    mime_type: str,
    file_name: str | None = None,
) -> Document:
    """
    Сохранить документ в очередь модерации.

    Новый документ заменяет прежний того же типа. После отказа статус
    пользователя возвращается в PENDING.
    """
    try:
        doc_type = DocumentType(doc_type)
    except ValueError:
        raise InvalidInputError(f"Unsupported document type: {doc_type}") from None

    mime_type = mime_type.lower()
    if mime_type not in ALLOWED_MIME_TYPES:
        raise InvalidInputError("Only .png, .jpg and .webp images are accepted")

    if user.verification_status == VerificationStatus.VERIFIED:
        raise InvalidTransitionError("Documents are already verified")

    document = await crud.create_document(
        session,
        user_id=user.id,
        doc_type=doc_type,
        file_url=file_url,
        mime_type=mime_type,
        file_name=file_name,
    )

    if user.verification_status == VerificationStatus.REJECTED:
        await crud.update_user(
            session, user.id,
            verification_status=VerificationStatus.PENDING,
            verification_comment=None,
        )

    return document


async def get_verification(session: AsyncSession, user: User) -> dict:
    """Статус проверки и последние документы пользователя."""
    latest = latest_documents(await crud.get_user_documents(session, user.id))
    return {
        "status": user.verification_status,
        "comment": user.verification_comment,
        "documents": list(latest.values()),
        "missing": missing_documents(latest),
    }


async def list_pending(session: AsyncSession) -> list[Document]:
    return await crud.get_pending_documents(session)


async def review_document(
    session: AsyncSession,
    document_id: int,
    admin: User,
    status: DocumentStatus | str,
    comment: str | None = None,
) -> Document:
    """
    Решение модератора по документу.

    Отказ по любому документу переводит пользователя в REJECTED.
    Одобрение последнего из обязательных документов переводит в VERIFIED.
    """
    try:
        status = DocumentStatus(status)
    except ValueError:
        raise InvalidInputError(f"Unknown document status: {status}") from None
    if status == DocumentStatus.PENDING:
        raise InvalidInputError("status must be APPROVED or REJECTED")

    document = await crud.get_document(session, document_id)
    if not document:
        raise NotFoundError("Document not found")
    if document.status != DocumentStatus.PENDING:
        raise InvalidTransitionError(f"Document {document_id} is already reviewed")

    document.status = status
    document.reviewed_by = admin.id
    document.review_comment = comment
    document.updated_at = now_utc()

    user = document.user
    previous = user.verification_status
    latest = latest_documents(await crud.get_user_documents(session, user.id))

    if status == DocumentStatus.REJECTED:
        user.verification_status = VerificationStatus.REJECTED
        user.verification_comment = comment
    elif all(
        doc_type in latest and latest[doc_type].status == DocumentStatus.APPROVED
        for doc_type in REQUIRED_DOCUMENTS
    ):
        user.verification_status = VerificationStatus.VERIFIED
        user.verification_comment = None

    await session.commit()
    logger.info(
        f"Document {document_id} {status.value} by admin {admin.id}; "
        f"user {user.id} verification {VerificationStatus(user.verification_status).value}"
    )

    if user.verification_status != previous:
        notify_verification_status(user)
    return document
