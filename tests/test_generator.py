import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from objectid.errors import GeneratorExhaustedError
from objectid.generator import ObjectIdGenerator
from objectid.models import IdBlock


def _block(start, end, type_name="user", type_id=1, source_id=7):
	return IdBlock(type_name=type_name, type_id=type_id, source_id=source_id, start_value=start, end_value=end)


def test_first_value_is_block_start():
	gen = ObjectIdGenerator("user", 1)
	gen.add_block(_block(1, 5))
	object_id = gen.next()
	assert object_id.value == 1
	assert object_id.type_id == 1
	assert object_id.source_id == 7


def test_values_increase_across_blocks_and_track_availability():
	gen = ObjectIdGenerator("user", 1)
	gen.add_block(_block(1, 3))
	gen.add_block(_block(11, 12))
	assert gen.available_values == 5

	values = []
	for expected_available in (4, 3, 2, 1, 0):
		values.append(gen.next().value)
		assert gen.available_values == expected_available
	assert values == [1, 2, 3, 11, 12]


def test_empty_generator_is_exhausted():
	gen = ObjectIdGenerator("user", 1)
	with pytest.raises(GeneratorExhaustedError):
		gen.next()


def test_exhausted_generator_resumes_after_refill():
	gen = ObjectIdGenerator("user", 1)
	gen.add_block(_block(1, 2))
	gen.next()
	gen.next()
	with pytest.raises(GeneratorExhaustedError):
		gen.next()
	assert gen.available_values == 0

	gen.add_block(_block(3, 4))
	assert gen.next().value == 3


def test_single_value_blocks():
	gen = ObjectIdGenerator("user", 1)
	for n in range(1, 4):
		gen.add_block(_block(n, n))
	assert [gen.next().value for _ in range(3)] == [1, 2, 3]


def test_block_for_another_type_is_rejected():
	gen = ObjectIdGenerator("user", 1)
	with pytest.raises(ValueError):
		gen.add_block(_block(1, 5, type_name="order", type_id=2))
	with pytest.raises(ValueError):
		gen.add_block(_block(1, 5, type_name="order", type_id=1))


def test_blocks_out_of_order_are_rejected():
	gen = ObjectIdGenerator("user", 1)
	gen.add_block(_block(10, 20))
	with pytest.raises(ValueError):
		gen.add_block(_block(5, 8))
	with pytest.raises(ValueError):
		gen.add_block(_block(20, 30))


def test_block_below_already_issued_values_is_rejected():
	gen = ObjectIdGenerator("user", 1)
	gen.add_block(_block(1, 2))
	gen.next()
	gen.next()
	with pytest.raises(ValueError):
		gen.add_block(_block(2, 3))


def test_next_if_available_keeps_reserve():
	gen = ObjectIdGenerator("user", 1)
	gen.add_block(_block(1, 4))
	assert gen.next_if_available(2).value == 1
	assert gen.next_if_available(2).value == 2
	assert gen.next_if_available(2) is None
	assert gen.available_values == 2


def test_concurrent_next_is_unique_and_contiguous():
	gen = ObjectIdGenerator("user", 1)
	gen.add_block(_block(1, 600))
	gen.add_block(_block(1001, 1400))

	results = []
	lock = threading.Lock()

	def work():
		val = gen.next().value
		with lock:
			results.append(val)

	with ThreadPoolExecutor(max_workers=64) as ex:
		for _ in range(1000):
			ex.submit(work)

	assert len(set(results)) == 1000
	assert set(results) == set(range(1, 601)) | set(range(1001, 1401))
	assert gen.available_values == 0
