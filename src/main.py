"""Main entry point for the task tracker.

Wires settings, logging, file storage and the store, then hands control
to the click command group.
"""
import locale
import logging
from typing import Optional

from cli import cli
from logging_setup import setup_logging
from settings import Settings, load_settings
from storage import FileStorage, StateRepository
from store import TaskStore

logger = logging.getLogger(__name__)


def build_store(settings: Optional[Settings] = None) -> TaskStore:
    settings = settings or load_settings()
    storage = FileStorage(settings.data_dir, quota=settings.storage_quota)
    store = TaskStore(StateRepository(storage))
    store.load_sort_preference()
    logger.debug("Store ready: %s", store)
    return store


def main():
    settings = load_settings()
    setup_logging(log_dir=settings.log_dir, console_level=settings.log_level)
    try:
        locale.setlocale(locale.LC_COLLATE, '')
    except locale.Error:
        logger.warning("Locale from environment unavailable; title sort uses the C locale")
    cli(obj={'settings': settings, 'store': build_store(settings)})


if __name__ == "__main__":
    main()
