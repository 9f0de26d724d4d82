"""Session hook that keeps the risk cache coherent with CRM writes.

Any Estimate, Account or Interaction that is added, deleted or modified in a
flush invalidates its account's cache entry and the global lists, inside the
same flush. A reader can therefore never see a cached payload that predates
a committed write.
"""

import logging

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from ..models.cache import NotificationCache
from ..models.crm import Account, Estimate, Interaction
from .keys import GLOBAL_KEYS, account_risk_key

log = logging.getLogger("renewal.cache")

_WATCHED = (Estimate, Account, Interaction)


def _account_ids(obj) -> set[str]:
    if isinstance(obj, Account):
        return {str(obj.id)} if obj.id is not None else set()

    ids = set()
    if obj.account_id is not None:
        ids.add(str(obj.account_id))
    # Moving an estimate between accounts changes both accounts
    history = inspect(obj).attrs.account_id.history
    ids.update(str(a) for a in history.deleted if a is not None)
    return ids


def affected_keys(session: Session) -> set[str]:
    account_ids = set()
    for obj in session.new:
        if isinstance(obj, _WATCHED):
            account_ids |= _account_ids(obj)
    for obj in session.deleted:
        if isinstance(obj, _WATCHED):
            account_ids |= _account_ids(obj)
    for obj in session.dirty:
        if isinstance(obj, _WATCHED) and session.is_modified(obj):
            account_ids |= _account_ids(obj)

    if not account_ids:
        return set()
    return {account_risk_key(a) for a in account_ids} | set(GLOBAL_KEYS)


@event.listens_for(Session, "before_flush")
def _invalidate_on_crm_write(session, flush_context, instances):
    keys = affected_keys(session)
    if not keys:
        return

    for obj in list(session.new):
        if isinstance(obj, NotificationCache) and obj.cache_key in keys:
            session.expunge(obj)

    stale = session.query(NotificationCache).filter(NotificationCache.cache_key.in_(keys)).all()
    for row in stale:
        session.delete(row)
    if stale:
        log.debug("Invalidated %d cache entries on CRM write", len(stale))
