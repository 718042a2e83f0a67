from core.config import Config
from storage.sink import AnalyticsSink, create_sink
from storage.store import SessionStore


def create_storage(config: Config) -> tuple[SessionStore | None, AnalyticsSink]:
    """Create the session store and analytics sink based on config."""
    store = None
    if config.storage.enabled:
        store = SessionStore(config.storage.db_path)
    return store, create_sink(config.analytics)
