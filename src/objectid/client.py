import logging
from typing import List, NamedTuple, Optional, Union

import httpx
from pydantic import TypeAdapter, ValidationError

from . import __version__
from .errors import CommunicationError, ConsistencyError, RangeExhaustedError, TypeNotFoundError
from .models import MAX_AMOUNT, IdBlock, IdType

logger = logging.getLogger(__name__)

_TYPE_LIST = TypeAdapter(List[IdType])


class TypeListing(NamedTuple):
	types: List[IdType]
	max_age: Optional[int]


def parse_max_age(cache_control: Optional[str]) -> Optional[int]:
	"""Pull `max-age` out of a Cache-Control header, if present and valid."""
	if not cache_control:
		return None
	for directive in cache_control.split(","):
		name, _, value = directive.strip().partition("=")
		if name.lower() == "max-age":
			try:
				return max(int(value.strip('"')), 0)
			except ValueError:
				return None
	return None


class ObjectIdClient:
	"""HTTP client for the object id service."""

	def __init__(
		self,
		endpoint: Optional[str] = None,
		timeout: float = 10.0,
		http_client: Optional[httpx.Client] = None,
		user_agent: str = f"objectid-client/{__version__}",
	):
		if http_client is not None:
			self._http = http_client
		elif endpoint:
			self._http = httpx.Client(base_url=endpoint, timeout=timeout, headers={"User-Agent": user_agent})
		else:
			raise ValueError("the service endpoint must be specified")

	def close(self) -> None:
		self._http.close()

	def __enter__(self) -> "ObjectIdClient":
		return self

	def __exit__(self, *exc_info) -> None:
		self.close()

	def setup_types(self, timeout: Optional[float] = None) -> List[IdType]:
		response = self._request("POST", "/types/setup", timeout=timeout)
		return self._parse(_TYPE_LIST, response)

	def get_types(self, timeout: Optional[float] = None) -> TypeListing:
		response = self._request("GET", "/types", timeout=timeout)
		return TypeListing(
			types=self._parse(_TYPE_LIST, response),
			max_age=parse_max_age(response.headers.get("cache-control")),
		)

	def get_type(self, key: Union[int, str], timeout: Optional[float] = None) -> IdType:
		response = self._request("GET", f"/types/{key}", type_key=key, timeout=timeout)
		return self._parse(IdType, response)

	def generate_block(self, type_name: str, amount: int, timeout: Optional[float] = None) -> IdBlock:
		if amount <= 0:
			raise ValueError("the number of ids being requested must be greater than 0")
		if amount > MAX_AMOUNT:
			raise ValueError(f"the number of ids being requested must be at most {MAX_AMOUNT}")
		response = self._request(
			"POST",
			f"/types/{type_name}/generate_ids",
			type_key=type_name,
			timeout=timeout,
			json={"amount": amount},
		)
		return self._parse(IdBlock, response)

	def _request(self, method: str, path: str, type_key=None, timeout: Optional[float] = None, **kwargs) -> httpx.Response:
		if timeout is not None:
			kwargs["timeout"] = timeout
		try:
			response = self._http.request(method, path, **kwargs)
		except httpx.TimeoutException as e:
			raise CommunicationError(f"Timed out calling {method} {path}.") from e
		except httpx.HTTPError as e:
			raise CommunicationError(f"Ran into trouble, '{e}', calling {method} {path}.") from e

		if response.is_success:
			return response
		detail = _detail(response)
		if response.status_code == 404 and type_key is not None:
			raise TypeNotFoundError(type_key)
		if response.status_code == 409:
			raise RangeExhaustedError(detail)
		if response.status_code == 500 and _has_detail(response):
			# the service stopped serving this type; retrying will not help
			raise ConsistencyError(detail)
		logger.warning("Call %s %s failed with status %s: %s", method, path, response.status_code, detail)
		raise CommunicationError(f"Ran into trouble, '{response.status_code}', calling {method} {path}: {detail}")

	def _parse(self, model, response: httpx.Response):
		try:
			if isinstance(model, TypeAdapter):
				return model.validate_python(response.json())
			return model.model_validate(response.json())
		except (ValueError, ValidationError) as e:
			raise CommunicationError(f"Received an unreadable response from {response.request.url}.") from e


def _has_detail(response: httpx.Response) -> bool:
	try:
		return isinstance(response.json(), dict) and "detail" in response.json()
	except ValueError:
		return False


def _detail(response: httpx.Response) -> str:
	try:
		return str(response.json().get("detail", response.text))
	except (ValueError, AttributeError):
		return response.text
