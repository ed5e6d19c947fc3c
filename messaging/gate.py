"""
Communication gate.

Decides whether a sender may message a receiver. A relation with
``can_communicate`` set permits both directions. Without one, only the
sender's very first message in that direction goes through; the relation
itself is written by the caller once that message is persisted.
"""
from __future__ import annotations

import logging
from typing import Optional

from .models import CommunicationRelation
from .stores import MessageStore, RelationStore
from .types import ConversationKey, Decision

logger = logging.getLogger(__name__)


class CommunicationGate:
    def __init__(self, relation_store: RelationStore, message_store: MessageStore):
        self.relations = relation_store
        self.messages = message_store

    def relation_for(self, user_a: int, user_b: int) -> Optional[CommunicationRelation]:
        return self.relations.find(ConversationKey.of(user_a, user_b))

    def check_or_establish(self, sender_id: int, receiver_id: int) -> Decision:
        """Pure decision; never writes."""
        key = ConversationKey.of(sender_id, receiver_id)

        relation = self.relations.find(key)
        if relation is not None and relation.can_communicate:
            return Decision.ESTABLISHED

        # first-contact exception is counted per direction, not per pair
        if self.messages.count_from(sender_id, receiver_id) == 0:
            return Decision.FIRST_CONTACT

        logger.info("Send %s → %s denied: no communication relation", sender_id, receiver_id)
        return Decision.DENIED

    def establish(self, user_a: int, user_b: int) -> CommunicationRelation:
        """Idempotent: an existing relation for the pair is left as is."""
        relation, created = self.relations.upsert(ConversationKey.of(user_a, user_b))
        if created:
            logger.info("Communication established between %s and %s", relation.user1_id, relation.user2_id)
        return relation
