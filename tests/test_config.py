import pytest

from objectid.config import is_valid_type_name, load_client_settings, load_service_settings
from objectid.errors import ConfigurationError
from objectid.manager import ObjectIdManager

TYPES = [
	{"name": "user", "id": 1, "description": "Users"},
	{"name": "order_item", "id": 2, "description": "Line items"},
]


def test_service_settings_from_environment(monkeypatch, tmp_path):
	monkeypatch.setenv("OBJECTID_SOURCE", "host-b")
	monkeypatch.setenv("OBJECTID_SOURCES", '{"host-a": 1, "host-b": 2}')
	monkeypatch.setenv("OBJECTID_TYPES", '[{"name": "user", "id": 1, "description": "Users"}]')
	monkeypatch.setenv("OBJECTID_STORAGE", "file")
	monkeypatch.setenv("OBJECTID_DATA_DIRECTORY", str(tmp_path))

	settings = load_service_settings()
	assert settings.source_id == 2
	assert settings.types[0].name == "user"
	assert settings.data_directory == tmp_path
	assert settings.maximum_cache_age == 86400


def test_unknown_source_is_configuration_error():
	with pytest.raises(ConfigurationError):
		load_service_settings(source="host-c", sources={"host-a": 1}, types=TYPES)


def test_non_positive_source_id_is_configuration_error():
	with pytest.raises(ConfigurationError):
		load_service_settings(source="host-a", sources={"host-a": 0}, types=TYPES)


def test_types_are_required():
	with pytest.raises(ConfigurationError):
		load_service_settings(source="host-a", sources={"host-a": 1}, types=[])


@pytest.mark.parametrize(
	"types",
	[
		[{"name": "user", "id": 1, "description": "Users"}, {"name": "user", "id": 2, "description": "Again"}],
		[{"name": "user", "id": 1, "description": "Users"}, {"name": "order", "id": 1, "description": "Orders"}],
		[{"name": "User", "id": 1, "description": "Users"}],
		[{"name": "user", "id": 0, "description": "Users"}],
		[{"name": "user", "id": 1, "description": ""}],
		[{"name": "user", "id": 1}],
	],
)
def test_malformed_type_declarations(types):
	with pytest.raises(ConfigurationError):
		load_service_settings(source="host-a", sources={"host-a": 1}, types=types)


@pytest.mark.parametrize(
	"name,valid",
	[
		("user", True),
		("order_item", True),
		("billing.invoice", True),
		("2user", False),
		("user2", True),
		("User", False),
		("_user", False),
		("user_", False),
		("user..item", False),
		("", False),
	],
)
def test_type_name_rules(name, valid):
	assert is_valid_type_name(name) is valid


def test_client_settings_defaults():
	settings = load_client_settings(endpoint="http://ids.internal:8000")
	assert (settings.request_size, settings.request_threshold) == (100, 20)


@pytest.mark.parametrize("size,threshold", [(10, 10), (10, 20), (10, 0)])
def test_client_threshold_must_be_below_request_size(size, threshold):
	with pytest.raises(ConfigurationError):
		load_client_settings(endpoint="http://ids", request_size=size, request_threshold=threshold)


def test_manager_from_settings():
	settings = load_client_settings(endpoint="http://ids", request_size=50, request_threshold=5)
	manager = ObjectIdManager.from_settings(settings)
	assert (manager.request_size, manager.request_threshold) == (50, 5)
