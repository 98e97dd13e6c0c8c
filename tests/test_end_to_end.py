# mypy: ignore-errors
# tests/test_end_to_end.py
"""Alice and Bob exchange one encrypted message through every layer."""

import pytest

from retro_messenger.core.errors import DecryptionError, InvalidPassword
from retro_messenger.schemas.envelope import EncryptedEnvelope
from retro_messenger.schemas.events import MessagePayload, NewMessageEvent, parse_event
from retro_messenger.services.cipher import MessageCipher
from retro_messenger.services.keys import KeyManager, KeyPair
from retro_messenger.services.ledger import MessageStatus
from retro_messenger.services.presence import QueueChannel


async def _client_identity(key_manager: KeyManager, key_pair: KeyPair, password: str):
    """Simulate a client installing its identity and wrapping it for the server."""
    key_manager.set_active_key_pair(key_pair)
    wrapped = await key_manager.wrap_private_key(key_pair.private_key, password)
    return key_manager.export_public_key(), wrapped


@pytest.mark.asyncio
async def test_alice_sends_bob_an_encrypted_message(core, alice_keys, bob_keys) -> None:
    alice_keys_manager = KeyManager(pbkdf2_iterations=1_000)
    bob_keys_manager = KeyManager(pbkdf2_iterations=1_000)
    alice_public, alice_wrapped = await _client_identity(alice_keys_manager, alice_keys, "secret1")
    bob_public, bob_wrapped = await _client_identity(bob_keys_manager, bob_keys, "secret2")

    alice = core.directory.register("alice", "secret1", alice_public, alice_wrapped)
    bob = core.directory.register("bob", "secret2", bob_public, bob_wrapped)

    bob_channel = QueueChannel()
    core.presence.attach(bob.user_id, bob_channel)

    # Alice looks Bob up in the directory and encrypts for his published key
    alice_cipher = MessageCipher(alice_keys_manager)
    bob_entry = next(a for a in core.directory.list_others(alice.user_id) if a.username == "bob")
    alice_cipher.store_recipient_key("bob", bob_entry.public_key)
    envelope = await alice_cipher.encrypt_message("hi bob", "bob")

    message = core.ledger.send(alice.user_id, "bob", envelope.to_json())
    assert message.status is MessageStatus.SENT
    assert "hi bob" not in message.content

    pushed = core.presence.push_to(
        bob.user_id,
        NewMessageEvent(
            message=MessagePayload(
                message_id=message.message_id,
                sender="alice",
                from_user_id=alice.user_id,
                content=message.content,
                timestamp=message.sent_at.isoformat(),
                status=message.status.value,
            )
        ),
    )
    assert pushed is True

    # Bob's side: read the frame off his channel and decrypt it
    frames = bob_channel.frames()
    frame = await anext(frames)
    await frames.aclose()
    event = parse_event(frame[len("data: "):].strip())
    bob_cipher = MessageCipher(bob_keys_manager)
    plaintext = await bob_cipher.decrypt_message(EncryptedEnvelope.from_json(event.message.content))
    assert plaintext == "hi bob"

    core.ledger.deliver(event.message.message_id, bob.user_id)
    core.ledger.mark_read(event.message.message_id)

    inbox = core.ledger.inbox_for(bob.user_id)
    assert len(inbox) == 1
    assert inbox[0].status is MessageStatus.READ
    assert inbox[0].read_at >= inbox[0].delivered_at >= inbox[0].sent_at

    # Alice cannot read what she sent: only Bob's key opens it
    alice_keys_manager.set_active_key_pair(alice_keys)
    with pytest.raises(DecryptionError):
        await alice_cipher.decrypt_message(envelope)


@pytest.mark.asyncio
async def test_new_device_restores_identity_from_login(core, bob_keys) -> None:
    """Logging in on a fresh client recovers the private key only with the right password."""
    setup = KeyManager(pbkdf2_iterations=1_000)
    public_key, wrapped = await _client_identity(setup, bob_keys, "secret2")
    core.directory.register("bob", "secret2", public_key, wrapped)

    login = core.directory.login("bob", "secret2")
    fresh_device = KeyManager(pbkdf2_iterations=1_000)

    with pytest.raises(InvalidPassword):
        await fresh_device.unwrap_private_key(login.wrapped_private_key, "secret1")

    private_key = await fresh_device.unwrap_private_key(login.wrapped_private_key, "secret2")
    fresh_device.set_active_key_pair(KeyPair.from_private_key(private_key))

    assert fresh_device.export_public_key() == login.public_key
