__version__ = "0.1.0"

from .allocator import BlockAllocator
from .client import ObjectIdClient
from .counter_store import CounterStore, DynamoDbCounterStore, FileCounterStore
from .errors import (
	CommunicationError,
	ConfigurationError,
	ConsistencyError,
	GeneratorExhaustedError,
	ObjectIdError,
	RangeExhaustedError,
	StorageError,
	TypeNotFoundError,
)
from .generator import ObjectIdGenerator
from .manager import ObjectIdManager
from .models import IdBlock, IdType, ObjectId
