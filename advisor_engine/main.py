"""FastAPI application entry point."""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from advisor_engine.api import router as api_router
from advisor_engine.core.exceptions import ChatValidationError

app = FastAPI(
    title="MAS Advisor Engine",
    description="Nonprofit advisory chat service with CRM and knowledge base grounding",
    version="0.1.0",
)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are client errors (400)."""
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    detail = f"{location}: {first.get('msg', 'invalid request')}" if location else "Invalid request"
    return JSONResponse(content={"detail": detail}, status_code=400)


@app.exception_handler(ChatValidationError)
async def chat_validation_handler(request: Request, exc: ChatValidationError) -> JSONResponse:
    return JSONResponse(content={"detail": str(exc)}, status_code=400)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "ok"}, status_code=200)


# Include v1 API router
app.include_router(api_router, prefix="/v1", tags=["v1"])
