import logging
import os
import struct
import threading
from abc import ABC, abstractmethod
from decimal import Decimal
from pathlib import Path
from typing import Dict, Optional

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from .errors import ConsistencyError, StorageError
from .models import MAX_VALUE, IdType

logger = logging.getLogger(__name__)

_VALUE_FORMAT = ">q"
_VALUE_SIZE = struct.calcsize(_VALUE_FORMAT)


class CounterStore(ABC):
	"""
	Durable "last issued value" per (source, type).

	Callers serialize access per type; the store only guarantees that a
	validated write never lands on a value other than the expected one.
	"""

	@abstractmethod
	def read(self, id_type: IdType, create: bool = False) -> Optional[int]:
		"""
		Return the persisted counter for `id_type`.

		A missing record returns None, unless `create` is set, in which case the
		record is created at 0. An existing record is never reset.
		"""
		raise NotImplementedError

	@abstractmethod
	def validated_write(self, id_type: IdType, expected_old: int, new_value: int) -> None:
		"""Write `new_value` only if the persisted value is still `expected_old`."""
		raise NotImplementedError


def _check_value(id_type: IdType, value: int) -> int:
	if value < 0 or value > MAX_VALUE:
		raise ConsistencyError(
			f"The last value for type '{id_type.name}' is '{value}', which is not in the correct range."
		)
	return value


class DynamoDbCounterStore(CounterStore):
	"""
	Counters kept as items in a DynamoDB table, one item per record key.

	- Provisioning uses a conditional put on `attribute_not_exists`, so a second
	  provisioning run can never reset a counter.
	- Validated writes use a `ConditionExpression` on the stored value, which makes
	  check and write a single atomic operation on the server.
	"""

	def __init__(
		self,
		table_name: str,
		region_name: Optional[str] = None,
		endpoint_url: Optional[str] = None,
		boto3_resource: Optional[object] = None,
		create_table_if_not_exists: bool = False,
	):
		self._table_name = table_name

		if boto3_resource is not None:
			self._dynamodb = boto3_resource
		else:
			self._dynamodb = boto3.resource(
				"dynamodb",
				region_name=region_name,
				endpoint_url=endpoint_url,
				config=Config(retries={"max_attempts": 10, "mode": "standard"}),
			)

		if create_table_if_not_exists:
			self._ensure_table()

		self._table = self._dynamodb.Table(self._table_name)

	def _ensure_table(self) -> None:
		existing_tables = [t.name for t in self._dynamodb.tables.all()]
		if self._table_name in existing_tables:
			return
		logger.warning("Creating nonexistent counter table '%s'.", self._table_name)
		self._dynamodb.create_table(
			TableName=self._table_name,
			AttributeDefinitions=[{"AttributeName": "counter_id", "AttributeType": "S"}],
			KeySchema=[{"AttributeName": "counter_id", "KeyType": "HASH"}],
			BillingMode="PAY_PER_REQUEST",
		)
		self._dynamodb.Table(self._table_name).wait_until_exists()

	def read(self, id_type: IdType, create: bool = False) -> Optional[int]:
		try:
			response = self._table.get_item(
				Key={"counter_id": id_type.record_key},
				ConsistentRead=True,
			)
		except (BotoCoreError, ClientError) as e:
			raise StorageError(
				f"Had trouble reading the counter for type '{id_type.name}' from table '{self._table_name}'."
			) from e

		item = response.get("Item")
		if item is not None:
			return _check_value(id_type, int(item["value"]))  # DynamoDB returns Decimal
		if not create:
			return None
		return self._create(id_type)

	def _create(self, id_type: IdType) -> int:
		logger.info("Creating counter '%s' for type '%s' and setting last value to 0.", id_type.record_key, id_type.name)
		try:
			self._table.put_item(
				Item={
					"counter_id": id_type.record_key,
					"value": Decimal(0),
					"type_name": id_type.name,
					"type_id": id_type.id,
					"source_id": id_type.source_id,
				},
				ConditionExpression="attribute_not_exists(counter_id)",
			)
		except ClientError as e:
			if _is_condition_failure(e):
				# created concurrently, keep whatever is there
				return self.read(id_type)
			raise StorageError(f"Counter for type '{id_type.name}' could not be created.") from e
		except BotoCoreError as e:
			raise StorageError(f"Counter for type '{id_type.name}' could not be created.") from e
		return 0

	def validated_write(self, id_type: IdType, expected_old: int, new_value: int) -> None:
		try:
			self._table.update_item(
				Key={"counter_id": id_type.record_key},
				UpdateExpression="SET #v = :new",
				ConditionExpression="#v = :old",
				ExpressionAttributeNames={"#v": "value"},
				ExpressionAttributeValues={":old": Decimal(expected_old), ":new": Decimal(new_value)},
			)
		except ClientError as e:
			if _is_condition_failure(e):
				raise ConsistencyError(
					f"Attempting to increment last value of type '{id_type.name}' in table "
					f"'{self._table_name}' and found that the stored last value is not {expected_old}."
				) from e
			raise StorageError(f"Had trouble writing the counter for type '{id_type.name}'.") from e
		except BotoCoreError as e:
			raise StorageError(f"Had trouble writing the counter for type '{id_type.name}'.") from e


def _is_condition_failure(error: ClientError) -> bool:
	return error.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


class FileCounterStore(CounterStore):
	"""
	Counters kept as one file per record in a data directory. Each file holds a
	single 8-byte big-endian signed value, rewritten in place and fsynced.
	"""

	def __init__(self, data_directory):
		self._data_directory = Path(data_directory)
		if self._data_directory.exists() and not self._data_directory.is_dir():
			raise StorageError(f"The specified data directory, '{self._data_directory}', is not a directory.")
		if not self._data_directory.exists():
			logger.warning("Creating nonexistent data directory '%s'.", self._data_directory)
			try:
				self._data_directory.mkdir(parents=True)
			except OSError as e:
				raise StorageError(f"The data directory '{self._data_directory}' could not be created.") from e
		else:
			logger.info("Using data directory '%s'.", self._data_directory)

		self._locks: Dict[str, threading.Lock] = {}
		self._locks_guard = threading.Lock()

	def path_for(self, id_type: IdType) -> Path:
		return self._data_directory / f"{id_type.record_key}.details"

	def _lock_for(self, id_type: IdType) -> threading.Lock:
		with self._locks_guard:
			return self._locks.setdefault(id_type.record_key, threading.Lock())

	def read(self, id_type: IdType, create: bool = False) -> Optional[int]:
		path = self.path_for(id_type)
		with self._lock_for(id_type):
			if path.exists():
				return self._read_path(id_type, path)
			if not create:
				return None
			logger.info("Creating file '%s' for type '%s' and setting last value to 0.", path, id_type.name)
			try:
				with open(path, "xb") as f:
					f.write(struct.pack(_VALUE_FORMAT, 0))
					f.flush()
					os.fsync(f.fileno())
			except FileExistsError:
				return self._read_path(id_type, path)
			except OSError as e:
				raise StorageError(f"File '{path}' for type '{id_type.name}' could not be created.") from e
			return 0

	def validated_write(self, id_type: IdType, expected_old: int, new_value: int) -> None:
		path = self.path_for(id_type)
		with self._lock_for(id_type):
			try:
				with open(path, "r+b") as f:
					current = self._unpack(id_type, path, f.read())
					if current != expected_old:
						raise ConsistencyError(
							f"Attempting to increment last value of type '{id_type.name}' in file '{path}' "
							f"and found that the last value on disk is {current}, while expected is {expected_old}."
						)
					f.seek(0)
					f.write(struct.pack(_VALUE_FORMAT, new_value))
					f.flush()
					os.fsync(f.fileno())
			except FileNotFoundError as e:
				raise StorageError(f"Could not find type file '{path}' for type '{id_type.name}'.") from e
			except OSError as e:
				raise StorageError(f"Had trouble writing to type file '{path}' for type '{id_type.name}'.") from e

	def _read_path(self, id_type: IdType, path: Path) -> int:
		try:
			with open(path, "rb") as f:
				return self._unpack(id_type, path, f.read())
		except OSError as e:
			raise StorageError(f"Had trouble reading from type file '{path}' for type '{id_type.name}'.") from e

	def _unpack(self, id_type: IdType, path: Path, data: bytes) -> int:
		if len(data) != _VALUE_SIZE:
			raise ConsistencyError(
				f"File '{path}' for type '{id_type.name}' holds {len(data)} bytes instead of a single last value."
			)
		(value,) = struct.unpack(_VALUE_FORMAT, data)
		return _check_value(id_type, value)


def create_counter_store(settings) -> CounterStore:
	"""Build the store named by `ServiceSettings.storage`."""
	if settings.storage == "file":
		return FileCounterStore(settings.data_directory)
	return DynamoDbCounterStore(
		table_name=settings.table_name,
		region_name=settings.region_name,
		endpoint_url=settings.endpoint_url,
		create_table_if_not_exists=settings.create_table,
	)
