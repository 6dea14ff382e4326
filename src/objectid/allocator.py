import logging
import threading
from typing import Dict, List, Optional, Sequence, Union

from .config import DEFAULT_MAXIMUM_CACHE_AGE, ServiceSettings, TypeDefinition
from .counter_store import CounterStore, create_counter_store
from .errors import ConfigurationError, ConsistencyError, RangeExhaustedError, StorageError, TypeNotFoundError
from .models import MAX_AMOUNT, MAX_VALUE, IdBlock, IdType

logger = logging.getLogger(__name__)


class BlockAllocator:
	"""
	Hands out disjoint blocks of values per type by advancing the type's durable
	counter.

	- Each type has its own lock; blocks for different types never contend.
	- The counter is read and validated-written under that lock, so blocks for
	  one type are ordered and never overlap, including across restarts.
	- A failed write halts the type until the process is restarted, since the
	  state of the counter can no longer be trusted.
	"""

	def __init__(
		self,
		store: CounterStore,
		source_id: int,
		types: Sequence[TypeDefinition],
		maximum_cache_age: int = DEFAULT_MAXIMUM_CACHE_AGE,
	):
		if source_id <= 0:
			raise ConfigurationError("The source id must be greater than zero.")
		if not types:
			raise ConfigurationError("The list of types supported by the id service must not be empty.")

		self._store = store
		self._source_id = source_id
		self._definitions = list(types)
		self._maximum_cache_age = maximum_cache_age

		# replaced wholesale when types are (re)processed
		self._types_by_id: Dict[int, IdType] = {}
		self._types_by_name: Dict[str, IdType] = {}

		self._locks: Dict[str, threading.Lock] = {}
		self._locks_guard = threading.Lock()
		self._setup_lock = threading.Lock()
		self._halted: Dict[str, str] = {}

		logger.info("Allocator is using source id '%s'.", source_id)
		logger.info("Allocator allows type caching for up to %s seconds.", maximum_cache_age)
		self._process_types(allow_setup=False)

	@classmethod
	def from_settings(cls, settings: ServiceSettings, store: Optional[CounterStore] = None) -> "BlockAllocator":
		return cls(
			store=store if store is not None else create_counter_store(settings),
			source_id=settings.source_id,
			types=settings.types,
			maximum_cache_age=settings.maximum_cache_age,
		)

	@property
	def source_id(self) -> int:
		return self._source_id

	@property
	def maximum_cache_age(self) -> int:
		"""Seconds clients may cache type information. Blocks are never cached."""
		return self._maximum_cache_age

	def list_types(self) -> List[IdType]:
		return sorted(self._types_by_id.values(), key=lambda t: t.id)

	def get_type(self, key: Union[int, str]) -> IdType:
		if isinstance(key, int):
			id_type = self._types_by_id.get(key)
		else:
			id_type = self._types_by_name.get(key)
		if id_type is None:
			raise TypeNotFoundError(key)
		return id_type

	def setup_types(self) -> List[IdType]:
		"""Create counters for configured types that have none. Never resets a counter."""
		with self._setup_lock:
			self._process_types(allow_setup=True)
		return self.list_types()

	def generate_block(self, type_name: str, amount: int) -> IdBlock:
		if not type_name:
			raise ValueError("the type name must not be empty")
		if amount <= 0:
			raise ValueError("the number of ids being requested must be greater than 0")
		if amount > MAX_AMOUNT:
			raise ValueError(f"the number of ids being requested must be at most {MAX_AMOUNT}")

		id_type = self._types_by_name.get(type_name)
		if id_type is None:
			raise TypeNotFoundError(type_name)

		with self._lock_for(type_name):
			halted_reason = self._halted.get(type_name)
			if halted_reason is not None:
				raise ConsistencyError(f"Type '{type_name}' is halted: {halted_reason}")

			last_value = self._store.read(id_type)
			if last_value is None:
				self._halt(type_name, f"the counter record '{id_type.record_key}' disappeared")
				raise ConsistencyError(f"The counter for type '{type_name}' is missing from the store.")
			if amount > MAX_VALUE - last_value:
				raise RangeExhaustedError(
					f"Could not allocate {amount} values for type {type_name}/{id_type.id} "
					f"on source {self._source_id}; last value is {last_value}."
				)

			new_value = last_value + amount
			try:
				self._store.validated_write(id_type, last_value, new_value)
			except (ConsistencyError, StorageError) as e:
				self._halt(type_name, str(e))
				raise

		logger.debug("Allocated values %s to %s for type '%s'.", last_value + 1, new_value, type_name)
		return IdBlock(
			type_name=id_type.name,
			type_id=id_type.id,
			source_id=id_type.source_id,
			start_value=last_value + 1,
			end_value=new_value,
		)

	def _halt(self, type_name: str, reason: str) -> None:
		logger.error("Halting allocation for type '%s': %s", type_name, reason)
		self._halted[type_name] = reason

	def _lock_for(self, type_name: str) -> threading.Lock:
		with self._locks_guard:
			return self._locks.setdefault(type_name, threading.Lock())

	def _process_types(self, allow_setup: bool) -> None:
		found_by_id: Dict[int, IdType] = {}
		found_by_name: Dict[str, IdType] = {}

		for definition in self._definitions:
			id_type = self._process_type(definition, allow_setup)
			if id_type is None:
				continue
			if id_type.name in found_by_name:
				raise ConfigurationError(
					f"The type name '{id_type.name}' is being used by another configuration entry."
				)
			if id_type.id in found_by_id:
				raise ConfigurationError(
					f"The type name '{id_type.name}' has type id '{id_type.id}' "
					"which is being used by another configuration entry."
				)
			found_by_id[id_type.id] = id_type
			found_by_name[id_type.name] = id_type

		self._types_by_id = found_by_id
		self._types_by_name = found_by_name

	def _process_type(self, definition: TypeDefinition, allow_setup: bool) -> Optional[IdType]:
		loaded = self._types_by_id.get(definition.id)
		if loaded is not None:
			if loaded.name != definition.name:
				raise ConfigurationError(
					f"The type '{definition.name}' is set to use type id '{definition.id}' "
					f"but that id is being used, in memory, by type '{loaded.name}'."
				)
			logger.info("Not loading counter for type '%s' since the type is already in memory.", definition.name)
			return loaded

		id_type = IdType(
			name=definition.name,
			id=definition.id,
			source_id=self._source_id,
			description=definition.description,
		)
		last_value = self._store.read(id_type, create=allow_setup)
		if last_value is None:
			logger.warning("Skipping type '%s' since it has no counter and types are not being set up.", id_type.name)
			return None
		logger.info("Loaded type '%s' with last value of %s.", id_type.name, last_value)
		return id_type
