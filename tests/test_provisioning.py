import base64

from twinbridge.services import CredentialStore, IdentityProvisioner
from twinbridge.services.provisioning import generate_key_pair
from tests.fakes import FakeRegistry, MemoryConfigDatabase


def test_key_pair_is_two_distinct_random_base64_keys():
    primary, secondary = generate_key_pair()
    assert primary != secondary
    assert len(base64.b64decode(primary)) == 32
    assert len(base64.b64decode(secondary)) == 32
    assert generate_key_pair()[0] != primary


async def test_first_contact_creates_identity_and_persists_primary_key(provisioner, registry, database):
    key = await provisioner.ensure_identity("D")

    assert len(registry.created) == 1
    device_id, status, primary, secondary = registry.created[0]
    assert (device_id, status, primary) == ("D", "enabled", key)
    assert secondary != key
    assert database.record["devices"] == [{"id": "D", "primaryKey": key}]


async def test_stored_credential_is_returned_without_registry_call(provisioner, registry, store):
    await store.put("D", "stored-key")
    assert await provisioner.ensure_identity("D") == "stored-key"
    assert registry.created == []


async def test_ensure_identity_is_stable_across_calls(provisioner, registry):
    first = await provisioner.ensure_identity("D")
    assert await provisioner.ensure_identity("D") == first
    assert len(registry.created) == 1


async def test_recreate_always_issues_and_overwrites_a_new_key(provisioner, registry, store, database):
    await store.put("D", "revoked")
    key = await provisioner.recreate_identity("D")

    assert key != "revoked"
    assert registry.created[0][2] == key
    assert await store.get("D") == key
    assert len(database.record["devices"]) == 1


async def test_new_identity_status_is_configurable():
    registry = FakeRegistry()
    provisioner = IdentityProvisioner(
        registry, CredentialStore(MemoryConfigDatabase()), new_device_status="disabled")
    await provisioner.ensure_identity("D")
    assert registry.created[0][1] == "disabled"
