# tests/core/test_preferences.py
from __future__ import annotations

from ngsi_source.adapters.memory import StaticPreferences
from ngsi_source.contracts.ngsi import EntityQuery, EntitySelector
from ngsi_source.core.preferences import SourceConfig


def config(**values) -> SourceConfig:
    return SourceConfig.from_preferences(StaticPreferences(values))


class TestFilters:
    def test_empty_values_are_unrestricted(self):
        cfg = config(ngsi_entities="", ngsi_id_filter="", query="", ngsi_update_attributes="")

        assert cfg.types is None
        assert cfg.id_pattern == ".*"
        assert cfg.q is None
        assert cfg.attrs is None
        assert cfg.metadata_filter is None
        assert cfg.monitored_attributes is None
        assert cfg.needs_subscription is False
        assert cfg.entity_query() == EntityQuery()

    def test_wildcard_attribute_filters(self):
        cfg = config(ngsi_attributes="*", ngsi_metadata=" * ")

        assert cfg.attrs is None
        assert cfg.metadata_filter is None

    def test_type_separators_are_collapsed(self):
        cfg = config(ngsi_entities=" Room,,  Store, Building ")

        assert cfg.types == "Room,Store,Building"
        assert cfg.entity_selectors() == [
            EntitySelector(".*", "Room"),
            EntitySelector(".*", "Store"),
            EntitySelector(".*", "Building"),
        ]

    def test_monitored_attributes(self):
        assert config(ngsi_update_attributes="temperature, humidity").monitored_attributes == [
            "temperature",
            "humidity",
        ]
        assert config(ngsi_update_attributes="temperature,*").monitored_attributes == []

    def test_query_requires_subscription(self):
        assert config(query="temperature>20").needs_subscription is True

    def test_none_values_default_to_empty(self):
        cfg = SourceConfig(server=None, use_owner_credentials=None)

        assert cfg.server == ""
        assert cfg.use_owner_credentials is False


class TestHeaders:
    def test_no_headers_by_default(self):
        assert config().request_headers() == {}

    def test_root_service_path_is_omitted(self):
        assert config(ngsi_service_path=" / ").request_headers() == {}

    def test_tenant_and_path(self):
        headers = config(ngsi_tenant="smartcity", ngsi_service_path="/parking").request_headers()

        assert headers == {"FIWARE-Service": "smartcity", "FIWARE-ServicePath": "/parking"}

    def test_owner_credentials(self):
        headers = config(use_owner_credentials=True).request_headers()

        assert headers == {
            "FIWARE-OAuth-Token": "true",
            "FIWARE-OAuth-Header-Name": "X-Auth-Token",
            "FIWARE-OAuth-Source": "workspaceowner",
        }

    def test_string_flags_are_parsed(self):
        cfg = config(use_owner_credentials="false", use_user_fiware_token="true")

        assert cfg.use_owner_credentials is False
        assert cfg.connection_options().use_user_fiware_token is True


def test_metadata_snapshot():
    cfg = config(
        ngsi_server="http://orion:1026",
        ngsi_proxy="http://proxy",
        ngsi_entities="Room,Store",
        ngsi_update_attributes="temperature",
        ngsi_id_filter="urn:.*",
        query="temperature>20",
        ngsi_service_path="/city",
        ngsi_tenant="t1",
    )

    assert cfg.metadata_snapshot() == {
        "types": ["Room", "Store"],
        "filteredAttributes": "",
        "updateAttributes": ["temperature"],
        "auth_type": "",
        "idPattern": "urn:.*",
        "query": "temperature>20",
        "values": False,
        "serverURL": "http://orion:1026",
        "proxyURL": "http://proxy",
        "servicePath": "/city",
        "tenant": "t1",
    }
