class ObjectIdError(Exception):
	"""Base class for every error raised by the object id service and client."""


class ConfigurationError(ObjectIdError):
	"""Type or source declarations are missing or malformed."""


class TypeNotFoundError(ObjectIdError):
	def __init__(self, type_key):
		super().__init__(f"Could not find the type identified by '{type_key}'.")
		self.type_key = type_key


class RangeExhaustedError(ObjectIdError):
	"""
	The counter for a type cannot be advanced by the requested amount without
	overflowing. Requires operator action; never retried.
	"""


class ConsistencyError(ObjectIdError):
	"""
	The persisted counter did not match the value the allocator expected.
	Signals corruption or an out-of-band write; serving stops for the type.
	"""


class StorageError(ObjectIdError):
	"""The counter store could not be read or written."""


class CommunicationError(ObjectIdError):
	"""The remote allocator could not be reached. Safe to retry."""


class GeneratorExhaustedError(ObjectIdError):
	"""A local generator was asked for a value with no blocks queued."""
