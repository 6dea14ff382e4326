"""Service and client settings.

Both settings classes read `OBJECTID_`-prefixed environment variables; complex
values (`OBJECTID_TYPES`, `OBJECTID_SOURCES`) are given as JSON, e.g.::

	OBJECTID_SOURCE=host-a
	OBJECTID_SOURCES='{"host-a": 1, "host-b": 2}'
	OBJECTID_TYPES='[{"name": "user", "id": 1, "description": "Users"}]'
"""

import re
from pathlib import Path
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

# lowercase segments joined by '_', optionally namespaced with '.'
TYPE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9]*(_[a-z0-9]+)*(\.[a-z][a-z0-9]*(_[a-z0-9]+)*)*$")

DEFAULT_MAXIMUM_CACHE_AGE = 86400


def is_valid_type_name(name: str) -> bool:
	return bool(TYPE_NAME_PATTERN.match(name))


class TypeDefinition(BaseModel):
	"""A type as declared in configuration, before it is bound to a source."""

	name: str
	id: int = Field(gt=0)
	description: str = Field(min_length=1)

	@field_validator("name")
	@classmethod
	def _check_name(cls, value: str) -> str:
		if not is_valid_type_name(value):
			raise ValueError(f"The type name '{value}' is not a segmented lowercase name.")
		return value


class ServiceSettings(BaseSettings):
	model_config = SettingsConfigDict(env_prefix="OBJECTID_", extra="ignore")

	source: str = Field(min_length=1)
	sources: Dict[str, int] = Field(default_factory=dict)
	types: List[TypeDefinition] = Field(min_length=1)

	storage: Literal["dynamodb", "file"] = "dynamodb"
	table_name: str = "object_id_counters"
	region_name: Optional[str] = None
	endpoint_url: Optional[str] = None
	create_table: bool = False
	data_directory: Path = Path("data")

	maximum_cache_age: int = Field(default=DEFAULT_MAXIMUM_CACHE_AGE, ge=0)

	@model_validator(mode="after")
	def _check_declarations(self) -> "ServiceSettings":
		source_id = self.sources.get(self.source)
		if source_id is None:
			raise ValueError(f"The source '{self.source}' does not have an id set.")
		if source_id <= 0:
			raise ValueError(f"The source id for '{self.source}' must be greater than zero.")

		names = set()
		ids = set()
		for definition in self.types:
			if definition.name in names:
				raise ValueError(f"The type name '{definition.name}' is being used by another configuration entry.")
			if definition.id in ids:
				raise ValueError(
					f"The type name '{definition.name}' has type id '{definition.id}' "
					"which is being used by another configuration entry."
				)
			names.add(definition.name)
			ids.add(definition.id)
		return self

	@property
	def source_id(self) -> int:
		return self.sources[self.source]


class ClientSettings(BaseSettings):
	model_config = SettingsConfigDict(env_prefix="OBJECTID_CLIENT_", extra="ignore")

	endpoint: str = Field(min_length=1)
	request_size: int = Field(default=100, gt=0)
	request_threshold: int = Field(default=20, gt=0)
	timeout: float = Field(default=10.0, gt=0)

	@model_validator(mode="after")
	def _check_threshold(self) -> "ClientSettings":
		if self.request_threshold >= self.request_size:
			raise ValueError(
				f"the request size '{self.request_size}' has to be greater than "
				f"the threshold '{self.request_threshold}'"
			)
		return self


def load_service_settings(**overrides) -> ServiceSettings:
	"""Read service settings from the environment, with keyword overrides."""
	try:
		return ServiceSettings(**overrides)
	except ValidationError as e:
		raise ConfigurationError(f"Invalid object id service configuration: {e}") from e


def load_client_settings(**overrides) -> ClientSettings:
	try:
		return ClientSettings(**overrides)
	except ValidationError as e:
		raise ConfigurationError(f"Invalid object id client configuration: {e}") from e
