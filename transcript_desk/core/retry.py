"""Retry decorators using tenacity."""

import logging

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from transcript_desk.core.config import settings
from transcript_desk.core.errors import TransientStoreError
from transcript_desk.core.logging import get_logger

logger = get_logger(__name__)


def retry_store(max_attempts: int | None = None):
    """
    Retry store writes that failed with TransientStoreError, backing off
    exponentially. Only for writes that are safe to repeat.
    """
    return retry(
        stop=stop_after_attempt(max_attempts or settings.store_retry_attempts),
        wait=wait_exponential(
            multiplier=settings.store_retry_min_wait,
            min=settings.store_retry_min_wait,
            max=settings.store_retry_max_wait,
        ),
        retry=retry_if_exception_type(TransientStoreError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
