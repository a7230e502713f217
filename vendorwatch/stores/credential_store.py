import logging
import os
import re

from pydantic import SecretStr

logger = logging.getLogger(__name__)


class CredentialStore:
    """Read-only credential lookup keyed by vendor id and field name.

    Values are held as ``SecretStr`` and only ever handed out one field at a
    time; no method returns every field of a vendor.
    """

    def get_field(self, vendor_id: str, field_name: str) -> str | None:
        raise NotImplementedError("This method should be implemented by subclasses.")


class InMemoryCredentialStore(CredentialStore):
    def __init__(self, credentials: dict[str, dict[str, str]] | None = None):
        self._credentials: dict[str, dict[str, SecretStr]] = {}
        for vendor_id, fields in (credentials or {}).items():
            for field_name, value in fields.items():
                self.set_field(vendor_id, field_name, value)

    def set_field(self, vendor_id: str, field_name: str, value: str) -> None:
        self._credentials.setdefault(vendor_id, {})[field_name] = SecretStr(value)

    def get_field(self, vendor_id: str, field_name: str) -> str | None:
        secret = self._credentials.get(vendor_id, {}).get(field_name)
        if secret is None:
            logger.warning(f"No credential field {field_name!r} for {vendor_id}")
            return None
        return secret.get_secret_value()


class EnvCredentialStore(CredentialStore):
    """Reads ``VENDORWATCH_<VENDOR_ID>_<FIELD>`` on each lookup."""

    def __init__(self, prefix: str = "VENDORWATCH"):
        self.prefix = prefix

    def variable_name(self, vendor_id: str, field_name: str) -> str:
        vendor = re.sub(r"[^A-Za-z0-9]", "_", vendor_id).upper()
        return f"{self.prefix}_{vendor}_{field_name.upper()}"

    def get_field(self, vendor_id: str, field_name: str) -> str | None:
        value = os.getenv(self.variable_name(vendor_id, field_name))
        if not value:
            logger.warning(f"No credential field {field_name!r} for {vendor_id}")
            return None
        return value
