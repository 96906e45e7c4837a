from flask import current_app

from .memory import MemoryStore
from .sql import SqlStore

STORE_BACKENDS = {
    "sql": SqlStore,
    "memory": MemoryStore,
}


def init_store(app, backend=None):
    """Creates the configured entity store and attaches it to the app."""
    backend = backend or app.config.get("STORE_BACKEND", "sql")
    try:
        store_class = STORE_BACKENDS[backend]
    except KeyError:
        raise ValueError(
            f"Unknown STORE_BACKEND '{backend}'. Expected one of: {', '.join(STORE_BACKENDS)}"
        )
    store = store_class()
    app.extensions["collector_store"] = store
    app.logger.info(f"Entity store initialised with the '{backend}' backend.")
    return store


def get_store():
    return current_app.extensions["collector_store"]
