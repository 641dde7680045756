from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict


class PreferencesUpdate(BaseModel):
    """Partial preference update; omitted fields keep their value."""

    model_config = ConfigDict(extra="forbid")

    ngsi_server: str | None = None
    ngsi_proxy: str | None = None
    ngsi_tenant: str | None = None
    ngsi_service_path: str | None = None
    ngsi_entities: str | None = None
    ngsi_id_filter: str | None = None
    query: str | None = None
    ngsi_attributes: str | None = None
    ngsi_metadata: str | None = None
    ngsi_update_attributes: str | None = None
    use_owner_credentials: bool | None = None
    use_user_fiware_token: bool | None = None


class PreferencesUpdateResult(BaseModel):
    changed: dict[str, Any]


class OperatorStatus(BaseModel):
    state: str
    subscription_id: str | None = None
    connected_outputs: list[str]
    config: dict[str, Any] | None = None
    query_running: bool = False
