# ngsi_source/core/preferences.py
"""
Operator preferences and the configuration derived from them.

``SourceConfig`` is a frozen snapshot taken at the start of every
subscription cycle. Empty values are never an error: each one falls back to
the least restrictive filter.
"""
from __future__ import annotations

import logging
import re
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationInfo, field_validator

from ngsi_source.contracts.host import PreferenceStore
from ngsi_source.contracts.ngsi import ConnectionOptions, EntityQuery, EntitySelector

PREFERENCE_DEFAULTS: dict[str, Any] = {
    "ngsi_server": "https://orion.lab.fiware.org",
    "ngsi_proxy": "https://ngsiproxy.lab.fiware.org",
    "ngsi_tenant": "",
    "ngsi_service_path": "/",
    "ngsi_entities": "",
    "ngsi_id_filter": "",
    "query": "",
    "ngsi_attributes": "",
    "ngsi_metadata": "",
    "ngsi_update_attributes": "",
    "use_owner_credentials": False,
    "use_user_fiware_token": False,
}

_TYPE_SEPARATOR = re.compile(r",+\s+")
_LIST_SEPARATOR = re.compile(r",\s*")
_TRUE_VALUES = frozenset({"true", "1", "yes", "on"})
_FALSE_VALUES = frozenset({"false", "0", "no", "off"})

logger = logging.getLogger(__name__)


class SourceConfig(BaseModel):
    """Snapshot of the operator preferences."""

    model_config = ConfigDict(frozen=True)

    server: str = ""
    proxy: str = ""
    tenant: str = ""
    service_path: str = ""
    entities: str = ""
    id_filter: str = ""
    query: str = ""
    attributes: str = ""
    metadata: str = ""
    update_attributes: str = ""
    use_owner_credentials: bool = False
    use_user_fiware_token: bool = False

    @field_validator(
        "server", "proxy", "tenant", "service_path", "entities", "id_filter",
        "query", "attributes", "metadata", "update_attributes",
        mode="before",
    )
    @classmethod
    def _strip(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value).strip()

    @field_validator("use_owner_credentials", "use_user_fiware_token", mode="before")
    @classmethod
    def _flag(cls, value: Any, info: ValidationInfo) -> bool:
        if value is None or value == "":
            return False
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in _TRUE_VALUES:
            return True
        if isinstance(value, str) and value.strip().lower() in _FALSE_VALUES:
            return False
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        logger.warning("Invalid value %r for '%s', using false", value, info.field_name)
        return False

    @classmethod
    def from_preferences(cls, prefs: PreferenceStore) -> "SourceConfig":
        return cls(
            server=prefs.get("ngsi_server"),
            proxy=prefs.get("ngsi_proxy"),
            tenant=prefs.get("ngsi_tenant"),
            service_path=prefs.get("ngsi_service_path"),
            entities=prefs.get("ngsi_entities"),
            id_filter=prefs.get("ngsi_id_filter"),
            query=prefs.get("query"),
            attributes=prefs.get("ngsi_attributes"),
            metadata=prefs.get("ngsi_metadata"),
            update_attributes=prefs.get("ngsi_update_attributes"),
            use_owner_credentials=prefs.get("use_owner_credentials"),
            use_user_fiware_token=prefs.get("use_user_fiware_token"),
        )

    # -- Connection ------------------------------------------------------------

    def request_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.use_owner_credentials:
            headers["FIWARE-OAuth-Token"] = "true"
            headers["FIWARE-OAuth-Header-Name"] = "X-Auth-Token"
            headers["FIWARE-OAuth-Source"] = "workspaceowner"
        if self.tenant:
            headers["FIWARE-Service"] = self.tenant
        if self.service_path and self.service_path != "/":
            headers["FIWARE-ServicePath"] = self.service_path
        return headers

    def connection_options(self) -> ConnectionOptions:
        return ConnectionOptions(
            url=self.server,
            proxy_url=self.proxy,
            request_headers=self.request_headers(),
            use_user_fiware_token=self.use_user_fiware_token,
        )

    # -- Filters ---------------------------------------------------------------

    @property
    def types(self) -> str | None:
        """Comma separated entity types, ``None`` for any type."""
        types = _TYPE_SEPARATOR.sub(",", self.entities)
        return types or None

    @property
    def id_pattern(self) -> str:
        return self.id_filter or ".*"

    @property
    def q(self) -> str | None:
        return self.query or None

    @property
    def attrs(self) -> str | None:
        if self.attributes in ("", "*"):
            return None
        return self.attributes

    @property
    def metadata_filter(self) -> str | None:
        if self.metadata in ("", "*"):
            return None
        return self.metadata

    @property
    def monitored_attributes(self) -> list[str] | None:
        """Attributes whose changes trigger notifications.

        ``None`` when nothing is monitored, ``[]`` when any attribute is.
        """
        if not self.update_attributes:
            return None
        attrs = _LIST_SEPARATOR.split(self.update_attributes)
        return [] if "*" in attrs else attrs

    @property
    def needs_subscription(self) -> bool:
        return self.monitored_attributes is not None or self.q is not None

    def entity_query(self) -> EntityQuery:
        return EntityQuery(
            id_pattern=self.id_pattern,
            type=self.types,
            q=self.q,
            attrs=self.attrs,
            metadata=self.metadata_filter,
        )

    def entity_selectors(self) -> list[EntitySelector]:
        if self.types is None:
            return [EntitySelector(id_pattern=self.id_pattern)]
        return [
            EntitySelector(id_pattern=self.id_pattern, type=t)
            for t in self.types.split(",")
        ]

    @staticmethod
    def split_list(value: str | None) -> list[str] | None:
        return _LIST_SEPARATOR.split(value) if value is not None else None

    # -- Metadata --------------------------------------------------------------

    def metadata_snapshot(self) -> dict[str, Any]:
        """Configuration published on the metadata output."""
        return {
            "types": self.entities.split(","),
            "filteredAttributes": "",
            "updateAttributes": self.update_attributes.split(","),
            "auth_type": "",
            "idPattern": self.id_filter,
            "query": self.query,
            "values": False,
            "serverURL": self.server,
            "proxyURL": self.proxy,
            "servicePath": self.service_path,
            "tenant": self.tenant,
        }
