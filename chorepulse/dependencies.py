"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from chorepulse.config import get_settings
from chorepulse.db import DbClient, InMemoryDbClient, PostgresDbClient
from chorepulse.mailer import EmailSender, LoggingEmailSender, ResendEmailSender
from chorepulse.queue import EmailQueue, InMemoryEmailQueue, RedisEmailQueue
from chorepulse.storage import CosStorageClient, InMemoryStorageClient, StorageClient

_db_client: DbClient | None = None
_storage_client: StorageClient | None = None
_email_queue: EmailQueue | None = None
_email_sender: EmailSender | None = None


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so state persists across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _db_client = InMemoryDbClient()
    else:
        _db_client = PostgresDbClient(settings.database_url)
    return _db_client


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.cos_bucket:
        _storage_client = InMemoryStorageClient()
    else:
        _storage_client = CosStorageClient(
            bucket=settings.cos_bucket,
            region=settings.cos_region or "",
            endpoint=settings.cos_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
        )
    return _storage_client


def get_email_queue() -> EmailQueue:
    """
    Return a singleton queue client for handing campaign emails to the worker.
    """
    global _email_queue
    if _email_queue:
        return _email_queue

    settings = get_settings()
    if settings.redis_url and not settings.use_in_memory_backends:
        _email_queue = RedisEmailQueue(
            url=settings.redis_url,
            queue_key=settings.redis_email_queue_key,
        )
    else:
        _email_queue = InMemoryEmailQueue()
    return _email_queue


def get_email_sender() -> EmailSender:
    global _email_sender
    if _email_sender:
        return _email_sender

    settings = get_settings()
    if (
        settings.use_in_memory_backends
        or settings.is_development
        or not settings.resend_api_key
    ):
        _email_sender = LoggingEmailSender()
    else:
        _email_sender = ResendEmailSender(
            api_key=settings.resend_api_key, from_address=settings.email_from
        )
    return _email_sender
