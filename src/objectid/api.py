from typing import List, Optional

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import __version__
from .allocator import BlockAllocator
from .config import ServiceSettings, load_service_settings
from .errors import ConsistencyError, RangeExhaustedError, StorageError, TypeNotFoundError
from .models import MAX_AMOUNT, IdBlock, IdType


class GenerateIdsRequest(BaseModel):
	amount: int = Field(gt=0, le=MAX_AMOUNT, strict=True)


def create_app(
	settings: Optional[ServiceSettings] = None,
	allocator: Optional[BlockAllocator] = None,
) -> FastAPI:
	if allocator is None:
		allocator = BlockAllocator.from_settings(settings or load_service_settings())

	app = FastAPI(title="Object ID Service", version=__version__)
	app.state.allocator = allocator

	def cacheable(response: Response) -> None:
		response.headers["Cache-Control"] = f"max-age={allocator.maximum_cache_age}"

	@app.post("/types/setup")
	def setup_types() -> List[IdType]:
		return allocator.setup_types()

	@app.get("/types")
	def get_types(response: Response) -> List[IdType]:
		cacheable(response)
		return allocator.list_types()

	# int convertor keeps numeric ids from falling through to the name route
	@app.get("/types/{type_id:int}")
	def get_type_by_id(type_id: int, response: Response) -> IdType:
		id_type = allocator.get_type(type_id)
		cacheable(response)
		return id_type

	@app.get("/types/{type_name}")
	def get_type_by_name(type_name: str, response: Response) -> IdType:
		id_type = allocator.get_type(type_name)
		cacheable(response)
		return id_type

	@app.post("/types/{type_name}/generate_ids")
	def generate_ids(type_name: str, body: GenerateIdsRequest) -> IdBlock:
		return allocator.generate_block(type_name, body.amount)

	@app.exception_handler(TypeNotFoundError)
	def not_found(request: Request, exc: TypeNotFoundError) -> JSONResponse:
		return JSONResponse(status_code=404, content={"detail": str(exc)})

	@app.exception_handler(RangeExhaustedError)
	def range_exhausted(request: Request, exc: RangeExhaustedError) -> JSONResponse:
		return JSONResponse(status_code=409, content={"detail": str(exc)})

	@app.exception_handler(ConsistencyError)
	@app.exception_handler(StorageError)
	def storage_failure(request: Request, exc: Exception) -> JSONResponse:
		return JSONResponse(status_code=500, content={"detail": str(exc)})

	return app


# Run with `uvicorn --factory objectid.api:create_app`, settings from OBJECTID_* env vars.
