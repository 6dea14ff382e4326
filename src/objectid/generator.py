import threading
from collections import deque
from typing import Deque, Optional

from .errors import GeneratorExhaustedError
from .models import IdBlock, ObjectId


class ObjectIdGenerator:
	"""
	Serves object ids for one type out of the blocks granted to it.

	- Blocks are consumed in the order they were added.
	- `next()` is thread-safe; every caller gets a distinct, increasing value.
	- Deciding when to add blocks is left to `ObjectIdManager`.
	"""

	def __init__(self, type_name: str, type_id: int):
		if not type_name:
			raise ValueError("cannot create an id generator without a type name")
		if type_id <= 0:
			raise ValueError(f"cannot create an id generator for type '{type_name}' without a type id")
		self.type_name = type_name
		self.type_id = type_id

		self._lock = threading.Lock()
		self._blocks: Deque[IdBlock] = deque()
		self._next_value: Optional[int] = None
		self._last_value: Optional[int] = None
		self._available_values = 0

	@property
	def available_values(self) -> int:
		return self._available_values

	def add_block(self, block: IdBlock) -> None:
		if block.type_id != self.type_id:
			raise ValueError(
				f"A block with type id '{block.type_id}' is attempting to be added to a generator for type '{self.type_id}'."
			)
		if block.type_name != self.type_name:
			raise ValueError(
				f"A block with type name '{block.type_name}' is attempting to be added to a generator for type '{self.type_name}'."
			)
		with self._lock:
			floor = self._blocks[-1].end_value if self._blocks else self._last_value
			if floor is not None and block.start_value <= floor:
				raise ValueError(
					f"A block starting at {block.start_value} would not follow value {floor} for type '{self.type_name}'."
				)
			self._blocks.append(block)
			if len(self._blocks) == 1:
				self._next_value = block.start_value
			self._available_values += block.size

	def next(self) -> ObjectId:
		with self._lock:
			return self._issue()

	def next_if_available(self, keep: int) -> Optional[ObjectId]:
		"""Issue a value only while more than `keep` values remain, else None."""
		with self._lock:
			if self._available_values <= keep:
				return None
			return self._issue()

	def _issue(self) -> ObjectId:
		if not self._blocks:
			raise GeneratorExhaustedError(
				f"Ran out of id blocks while attempting to get a value for type '{self.type_name}'."
			)
		block = self._blocks[0]
		value = self._next_value
		if value == block.end_value:
			self._blocks.popleft()
			self._next_value = self._blocks[0].start_value if self._blocks else None
		else:
			self._next_value = value + 1
		self._last_value = value
		self._available_values -= 1
		return ObjectId(value=value, type_id=self.type_id, source_id=block.source_id)
