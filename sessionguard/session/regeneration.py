"""
Regeneration Decider: Rejecting Untraceable Session Ids

A session id must be regenerated when it came with the request (it was
not minted by this unit of work) and the store has no session under it.

That happens when:
    - a session expired in the store while the client kept its cookie, or
    - a client presents a guessed or obsolete id (session fixation).

Both cases are handled the same way: the id is discarded and the host
issues a fresh one. An id minted during this unit of work is trusted
even though nothing has been written under it yet.
"""

from __future__ import annotations

from sessionguard.core.types import Result, Ok
from sessionguard.core.errors import StoreError
from sessionguard.session.context import OriginTracker
from sessionguard.storage.protocols import SessionStoreProtocol


async def must_regenerate(
    origin: OriginTracker,
    store: SessionStoreProtocol,
    session_id: str,
) -> Result[bool, StoreError]:
    """
    Decide whether ``session_id`` must be replaced by a fresh id.

    The store is only queried for ids not generated locally.

    Returns:
        Ok(True) if the id is foreign and unknown to the store.
        Err(StoreError) if the existence check failed.
    """
    if origin.was_generated_here(session_id):
        return Ok(False)

    return (await store.exists(session_id)).map(lambda found: not found)
