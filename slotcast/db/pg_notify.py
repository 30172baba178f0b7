"""PostgreSQL NOTIFY helper used to fan evaluation events out to other workers.

Usage:
    from slotcast.db.pg_notify import notify
    notify("prediction_evaluated", payload='{"prediction_id": "PRD_..."}')
"""
from __future__ import annotations

import logging
from typing import Any

import psycopg2
from psycopg2 import sql

from slotcast.db.session import database_url

logger = logging.getLogger(__name__)


def notify(channel: str, payload: str = "", connection: Any = None) -> None:
    """Send a NOTIFY on the channel; a connection passed in stays open."""
    own_conn = connection is None
    if own_conn:
        connection = _raw_connection()
    try:
        connection.autocommit = True
        with connection.cursor() as cur:
            if payload:
                cur.execute("SELECT pg_notify(%s, %s)", (channel, payload))
            else:
                cur.execute(sql.SQL("NOTIFY {}").format(sql.Identifier(channel)))
    finally:
        if own_conn:
            connection.close()
    logger.debug("NOTIFY %s (%d bytes)", channel, len(payload))


def _raw_connection():
    """Create a raw psycopg2 connection from the same DB URL."""
    url = database_url()
    dsn = url.replace("+psycopg2", "")
    return psycopg2.connect(dsn)
