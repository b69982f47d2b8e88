import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import config
import database
from errors import NotFoundError
from routers import address, admin, auth, cart, category, order, product, rating, search, user
from sweep import SweepJob

logger = logging.getLogger(__name__)

# App setup
app = FastAPI(title="Storefront API", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for module in (auth, address, cart, category, order, product, rating, search, user, admin):
    app.include_router(module.router)

sweep_job = SweepJob()


@app.on_event("startup")
async def startup():
    logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    if not database.is_connected():
        database.connect()
    sweep_job.start()


@app.on_event("shutdown")
async def shutdown():
    await sweep_job.stop()
    database.close()


# Errors
def _error_body(message: str, exc: Exception) -> dict:
    body = {"message": message}
    if not config.is_production():
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return body


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(_error_body(str(exc.detail), exc), status_code=exc.status_code, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", []) if p not in ("body", "query", "path"))
        messages.append(f"{field}: {err.get('msg')}" if field else err.get("msg", "Invalid input"))
    return JSONResponse(_error_body("; ".join(messages) or "Invalid input", exc), status_code=400)


@app.exception_handler(Exception)
async def server_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(_error_body("Internal server error", exc), status_code=500)


# Health
@app.get("/")
def root():
    return {"message": "Storefront API running"}


@app.api_route("/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"], include_in_schema=False)
def not_found(path: str):
    raise NotFoundError(f"Not found - /{path}")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
