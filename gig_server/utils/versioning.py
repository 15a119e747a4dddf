"""Version control utilities for optimistic locking.

Messages carry a ``_v`` field that is incremented on every mutation.
Writers that read a message, decide on a change and then write it pass the
version they read as ``expected_version``; a concurrent writer that got in
first makes the update match nothing, which the caller reports as a
version mismatch.

Usage:
    from gig_server.utils.versioning import (
        versioned_update,
        VERSION_FIELD
    )
"""
from typing import Any, Dict, Optional

from gig_server.utils.time_utils import utc_now


VERSION_FIELD = '_v'


def increment_version(update_doc: Dict[str, Any]) -> Dict[str, Any]:
    """Add version increment to an update document (with $set, $push, etc.)."""
    if '$inc' not in update_doc:
        update_doc['$inc'] = {}
    update_doc['$inc'][VERSION_FIELD] = 1
    return update_doc


def versioned_update(
    collection,
    query: Dict[str, Any],
    update_doc: Dict[str, Any],
    expected_version: Optional[int] = None,
    session=None
) -> Dict[str, Any]:
    """Perform an update with optimistic locking.

    If expected_version is provided, the update will only succeed
    if the document's current version matches.

    Args:
        collection: MongoDB collection object
        query: Query to find the document
        update_doc: Update operations to apply
        expected_version: Expected version for optimistic locking
        session: Optional ClientSession when running inside a transaction

    Returns:
        Dict with 'success', 'modified_count', and optional 'version_mismatch'
    """
    if expected_version is not None:
        query = {**query, VERSION_FIELD: expected_version}

    update_doc = increment_version(update_doc)

    if '$set' not in update_doc:
        update_doc['$set'] = {}
    update_doc['$set'].setdefault('updated_at', utc_now())

    kwargs = {'session': session} if session is not None else {}
    result = collection.update_one(query, update_doc, **kwargs)

    response = {
        'success': result.modified_count > 0,
        'modified_count': result.modified_count
    }

    # Nothing matched the version filter: someone else wrote first
    if expected_version is not None and result.modified_count == 0:
        response['version_mismatch'] = True

    return response
