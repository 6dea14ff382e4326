import os
import sys

import boto3
import pytest
from moto import mock_aws

# Add src to PYTHONPATH for tests
PROJECT_ROOT = os.path.dirname(os.path.dirname(__file__))
SRC_DIR = os.path.join(PROJECT_ROOT, "src")
if SRC_DIR not in sys.path:
	sys.path.insert(0, SRC_DIR)

from objectid.allocator import BlockAllocator  # noqa: E402
from objectid.config import TypeDefinition  # noqa: E402
from objectid.counter_store import FileCounterStore  # noqa: E402

SOURCE_ID = 7


@pytest.fixture
def type_definitions():
	return [
		TypeDefinition(name="user", id=1, description="Users of the system"),
		TypeDefinition(name="order", id=2, description="Customer orders"),
	]


@pytest.fixture
def file_store(tmp_path):
	return FileCounterStore(tmp_path / "counters")


@pytest.fixture
def allocator(file_store, type_definitions):
	engine = BlockAllocator(file_store, source_id=SOURCE_ID, types=type_definitions, maximum_cache_age=600)
	engine.setup_types()
	return engine


@pytest.fixture
def dynamodb():
	with mock_aws():
		yield boto3.resource("dynamodb", region_name="ap-south-1")
