import os
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from db.connection import init_db
from dependencies import CatalogServices
from catalog.errors import CatalogError, StorageError, UpstreamRateLimited
from routes import series, chapters, reading
from logger import logger

app = FastAPI(title="Makaron Catalog")

# Initialize DB on startup
init_db()

# Wire the catalog components once per process
app.state.services = CatalogServices()

# Include Routers
app.include_router(series.router)
app.include_router(chapters.router)
app.include_router(reading.router)

# --- Error mapping ---

@app.exception_handler(CatalogError)
async def catalog_error_handler(request: Request, exc: CatalogError) -> JSONResponse:
    if isinstance(exc, StorageError):
        logger.error(f"Storage failure on {request.url.path}: {exc.message} ({exc.detail})")
    elif exc.http_status >= 500:
        logger.warning(f"Upstream failure on {request.url.path}: {exc.message}")
    headers = {}
    if isinstance(exc, UpstreamRateLimited) and exc.retry_after:
        headers["Retry-After"] = exc.retry_after
    return JSONResponse(status_code=exc.http_status, content={"detail": exc.message}, headers=headers)

# --- Main Routes ---

@app.get("/api/health")
async def health(request: Request):
    services = request.app.state.services
    return {"status": "ok", "healing": dict(services.hydrator.heal_stats)}

def is_port_in_use(port: int) -> bool:
    import socket
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        try:
            s.bind(("0.0.0.0", port))
            return False
        except socket.error:
            return True

def find_available_port(start_port: int, max_attempts: int = 100) -> int:
    port = start_port
    while is_port_in_use(port) and port < start_port + max_attempts:
        port += 1
    return port

if __name__ == "__main__":
    import uvicorn
    import argparse

    parser = argparse.ArgumentParser(description="Makaron Catalog Server")
    parser.add_argument("--port", "-p", type=int, help="Port to run the server on")
    args = parser.parse_args()

    port = args.port
    if port is None:
        port = find_available_port(int(os.environ.get("MAKARON_PORT", "8501")))
        logger.info(f"No port specified, using first available port: {port}")
    else:
        if is_port_in_use(port):
            logger.warning(f"Warning: Port {port} is already in use. Uvicorn may fail to start.")

    uvicorn.run(app, host="0.0.0.0", port=port)
