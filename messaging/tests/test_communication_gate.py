"""
Tests for the communication gate.

Covers pair normalisation, idempotent establishment and the
direction-specific first-contact exception.
"""
import pytest

from messaging.exceptions import CommunicationNotPermittedError, InvalidPairError
from messaging.gate import CommunicationGate
from messaging.models import CommunicationRelation, Message
from messaging.services import MessageSpec
from messaging.stores import MessageStore, RelationStore
from messaging.types import ConversationKey, Decision


@pytest.fixture
def gate(db):
    return CommunicationGate(RelationStore(), MessageStore())


def _text(receiver, body="hi"):
    return MessageSpec(receiver_id=receiver.id, message_type=Message.Type.TEXT, text_content=body)


def test_conversation_key_is_unordered():
    assert ConversationKey.of(7, 3) == ConversationKey.of(3, 7) == (3, 7)


def test_conversation_key_rejects_self_pair():
    with pytest.raises(InvalidPairError):
        ConversationKey.of(5, 5)


@pytest.mark.django_db
def test_first_message_is_permitted_without_relation(gate, user, other_user):
    assert gate.check_or_establish(user.id, other_user.id) is Decision.FIRST_CONTACT
    # checking never writes
    assert not CommunicationRelation.objects.exists()


@pytest.mark.django_db
def test_self_send_is_rejected(gate, user):
    with pytest.raises(InvalidPairError):
        gate.check_or_establish(user.id, user.id)


@pytest.mark.django_db
def test_establish_is_idempotent(gate, user, other_user):
    first = gate.establish(user.id, other_user.id)
    second = gate.establish(other_user.id, user.id)

    assert first.pk == second.pk
    assert CommunicationRelation.objects.count() == 1
    relation = CommunicationRelation.objects.get()
    assert relation.can_communicate is True
    assert (relation.user1_id, relation.user2_id) == tuple(sorted((user.id, other_user.id)))


@pytest.mark.django_db
def test_both_directions_consult_the_same_relation(gate, user, other_user):
    gate.establish(other_user.id, user.id)
    # both senders have prior messages, so only the relation can permit them
    MessageStore().insert(sender_id=user.id, receiver_id=other_user.id, message_type="TEXT", text_content="a")
    MessageStore().insert(sender_id=other_user.id, receiver_id=user.id, message_type="TEXT", text_content="b")

    assert gate.check_or_establish(user.id, other_user.id) is Decision.ESTABLISHED
    assert gate.check_or_establish(other_user.id, user.id) is Decision.ESTABLISHED


@pytest.mark.django_db
def test_relation_with_communication_off_does_not_permit(gate, user, other_user):
    CommunicationRelation.objects.create(user1=user, user2=other_user, can_communicate=False)
    MessageStore().insert(sender_id=user.id, receiver_id=other_user.id, message_type="TEXT", text_content="a")

    assert gate.check_or_establish(user.id, other_user.id) is Decision.DENIED


@pytest.mark.django_db
def test_first_contact_flow(messaging_service, user, other_user):
    """A writes first, B replies, both keep writing through the relation."""
    messaging_service.send(user.id, _text(other_user))
    assert CommunicationRelation.objects.count() == 1

    messaging_service.send(other_user.id, _text(user, "reply"))
    messaging_service.send(user.id, _text(other_user, "again"))
    assert CommunicationRelation.objects.count() == 1


@pytest.mark.django_db
def test_second_message_without_relation_is_rejected(messaging_service, user, other_user):
    # first message persisted but the relation never got recorded
    MessageStore().insert(sender_id=user.id, receiver_id=other_user.id, message_type="TEXT", text_content="first")

    with pytest.raises(CommunicationNotPermittedError):
        messaging_service.send(user.id, _text(other_user, "second"))
    assert Message.objects.filter(sender=user).count() == 1

    # the receiver still has their own first contact available
    messaging_service.send(other_user.id, _text(user, "reply"))
    messaging_service.send(user.id, _text(other_user, "second"))
    assert Message.objects.filter(sender=user).count() == 2
