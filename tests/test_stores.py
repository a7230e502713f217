import asyncio

import aiofiles.os
import pytest

from vendorwatch.schema.spec import ApiSpec, FormSpec, VendorSpec
from vendorwatch.stores.credential_store import (
    EnvCredentialStore,
    InMemoryCredentialStore,
)


def make_spec(version=1):
    return VendorSpec(
        system_code="P001",
        url="https://vendor.example",
        version=version,
        mode="hybrid",
        form=FormSpec(selectors={"username": "#userId"}),
        api=ApiSpec(endpoint="/api/sites/{siteId}/cars"),
    )


async def test_missing_spec_reads_as_none(spec_store):
    assert await spec_store.get("vendor-1") is None


async def test_read_after_write(spec_store):
    await spec_store.put("vendor-1", make_spec())
    stored = await spec_store.get("vendor-1")
    assert stored == make_spec().model_copy(update={"captured_at": stored.captured_at})
    assert stored.api.endpoint == "/api/sites/{siteId}/cars"


async def test_concurrent_writes_leave_a_complete_document(spec_store):
    await asyncio.gather(
        *(spec_store.put("vendor-1", make_spec(version)) for version in range(1, 6))
    )
    stored = await spec_store.get("vendor-1")
    assert stored.version in range(1, 6)
    assert not list(spec_store.directory.glob("*.tmp"))


def test_vendor_ids_are_safe_file_names(spec_store):
    path = spec_store.path_for("../etc/passwd")
    assert path.parent == spec_store.directory


def test_credentials_are_handed_out_one_field_at_a_time():
    store = InMemoryCredentialStore({"vendor-1": {"password": "s3cret!"}})
    assert store.get_field("vendor-1", "password") == "s3cret!"
    assert store.get_field("vendor-1", "username") is None
    assert store.get_field("vendor-2", "password") is None
    assert "s3cret!" not in repr(store._credentials)


async def test_failed_replace_leaves_no_temp_file(spec_store, monkeypatch):
    await spec_store.put("vendor-1", make_spec(1))

    async def full_disk(src, dst):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(aiofiles.os, "replace", full_disk)
    with pytest.raises(OSError):
        await spec_store.put("vendor-1", make_spec(2))

    assert not list(spec_store.directory.glob("*.tmp"))
    assert (await spec_store.get("vendor-1")).version == 1


def test_env_credentials_are_read_per_field(monkeypatch):
    monkeypatch.setenv("VENDORWATCH_VENDOR_1_PASSWORD", "s3cret!")
    monkeypatch.delenv("VENDORWATCH_VENDOR_1_USERNAME", raising=False)
    store = EnvCredentialStore()
    assert store.get_field("vendor-1", "password") == "s3cret!"
    assert store.get_field("vendor-1", "username") is None
