import logging
import threading
import time
from typing import Dict, Optional, Union

from .client import ObjectIdClient
from .config import ClientSettings
from .errors import TypeNotFoundError
from .generator import ObjectIdGenerator
from .models import IdType, ObjectId

logger = logging.getLogger(__name__)

# used when the service does not say how long type information may be cached
DEFAULT_TYPE_CACHE_SECONDS = 300


class ObjectIdManager:
	"""
	Client-side entry point for generating object ids.

	- Keeps one `ObjectIdGenerator` per type, created on first use.
	- Requests a new block of `request_size` values whenever a type's remaining
	  stock drops to `request_threshold` or below, before the stock runs out.
	- At most one block request is in flight per type. Callers with stock above
	  the threshold are served without waiting on it.
	"""

	def __init__(self, client: ObjectIdClient, request_size: int = 100, request_threshold: int = 20):
		if request_size <= 0:
			raise ValueError("the request size must be greater than 0")
		if request_threshold <= 0:
			raise ValueError("the request threshold must be greater than 0")
		if request_threshold >= request_size:
			raise ValueError(
				f"the request size, {request_size}, must be bigger than the threshold, {request_threshold}"
			)
		self._client = client
		self._request_size = request_size
		self._request_threshold = request_threshold

		self._generators: Dict[str, ObjectIdGenerator] = {}
		self._type_locks: Dict[str, threading.Lock] = {}
		self._registry_lock = threading.Lock()

		self._types_by_name: Dict[str, IdType] = {}
		self._types_by_id: Dict[int, IdType] = {}
		self._type_cache_lock = threading.Lock()
		self._cache_expiration = 0.0

	@classmethod
	def from_settings(cls, settings: ClientSettings) -> "ObjectIdManager":
		client = ObjectIdClient(settings.endpoint, timeout=settings.timeout)
		return cls(client, request_size=settings.request_size, request_threshold=settings.request_threshold)

	@property
	def request_size(self) -> int:
		return self._request_size

	@property
	def request_threshold(self) -> int:
		return self._request_threshold

	def generate_id(self, type_name: str, timeout: Optional[float] = None) -> ObjectId:
		if not type_name:
			raise ValueError("need a type name to generate an id")

		generator = self._generators.get(type_name)
		if generator is not None:
			object_id = generator.next_if_available(self._request_threshold)
			if object_id is not None:
				return object_id

		with self._lock_for(type_name):
			return self._ensure_provisioned(type_name, timeout).next()

	def prepare(self, *type_names: str, timeout: Optional[float] = None) -> None:
		"""Make sure each type has a generator with stock above the threshold."""
		for type_name in type_names:
			if not type_name:
				raise ValueError("need a type name to prepare")
			with self._lock_for(type_name):
				self._ensure_provisioned(type_name, timeout)

	def available_values(self, type_name: str) -> int:
		generator = self._generators.get(type_name)
		return generator.available_values if generator is not None else 0

	def get_type(self, key: Union[int, str]) -> Optional[IdType]:
		if self._cache_expiration <= time.monotonic():
			self._fetch_types()
		if isinstance(key, int):
			return self._types_by_id.get(key)
		return self._types_by_name.get(key)

	def _fetch_types(self) -> None:
		with self._type_cache_lock:
			if self._cache_expiration > time.monotonic():
				return
			listing = self._client.get_types()
			self._types_by_name = {t.name: t for t in listing.types}
			self._types_by_id = {t.id: t for t in listing.types}
			max_age = listing.max_age if listing.max_age is not None else DEFAULT_TYPE_CACHE_SECONDS
			self._cache_expiration = time.monotonic() + max_age
			logger.info("Retrieved %s types from the service and caching results for %s seconds.", len(listing.types), max_age)

	def _lock_for(self, type_name: str) -> threading.Lock:
		with self._registry_lock:
			return self._type_locks.setdefault(type_name, threading.Lock())

	def _forget_lock(self, type_name: str) -> None:
		with self._registry_lock:
			if type_name not in self._generators:
				self._type_locks.pop(type_name, None)

	def _ensure_provisioned(self, type_name: str, timeout: Optional[float] = None) -> ObjectIdGenerator:
		# caller holds the type's lock
		generator = self._generators.get(type_name)
		if generator is None:
			try:
				block = self._client.generate_block(type_name, self._request_size, timeout=timeout)
			except TypeNotFoundError:
				# unknown names must not leave a lock behind
				self._forget_lock(type_name)
				raise
			generator = ObjectIdGenerator(type_name, block.type_id)
			generator.add_block(block)
			with self._registry_lock:
				self._generators[type_name] = generator
			logger.info("Created generator for type '%s' starting at %s.", type_name, block.start_value)
		elif generator.available_values <= self._request_threshold:
			block = self._client.generate_block(type_name, self._request_size, timeout=timeout)
			generator.add_block(block)
			logger.debug("Added values %s to %s for type '%s'.", block.start_value, block.end_value, type_name)
		return generator
