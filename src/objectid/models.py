from pydantic import BaseModel, ConfigDict, Field, model_validator

MAX_VALUE = 2**63 - 1
# largest block a single request may ask for
MAX_AMOUNT = 2**31 - 1


class IdType(BaseModel):
	model_config = ConfigDict(frozen=True)

	name: str
	id: int = Field(gt=0)
	source_id: int = Field(gt=0)
	description: str = ""

	@property
	def record_key(self) -> str:
		"""Key of the durable counter record, `<source>.<type id>.<type name>`."""
		return f"{self.source_id}.{self.id}.{self.name}"


class IdBlock(BaseModel):
	"""Inclusive range of values reserved for one client."""

	model_config = ConfigDict(frozen=True)

	type_name: str
	type_id: int = Field(gt=0)
	source_id: int = Field(gt=0)
	start_value: int = Field(gt=0, le=MAX_VALUE)
	end_value: int = Field(gt=0, le=MAX_VALUE)

	@model_validator(mode="after")
	def _check_range(self) -> "IdBlock":
		if self.end_value < self.start_value:
			raise ValueError(
				f"block end {self.end_value} is before block start {self.start_value}"
			)
		return self

	@property
	def size(self) -> int:
		return self.end_value - self.start_value + 1


class ObjectId(BaseModel):
	model_config = ConfigDict(frozen=True)

	value: int
	type_id: int
	source_id: int
