import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import RedirectResponse

from db import models  # registers the tables on Base.metadata
from db.database import Base, engine
from env import PORT, UPLOADED_IMAGES_DIR, check_required_env_vars
from logger_manager import log_debug, log_info
from routers.auth import router as auth_router
from routers.product import router as product_router
from routers.user import router as user_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    check_required_env_vars(["SECRET_KEY"])
    Base.metadata.create_all(bind=engine)
    os.makedirs(UPLOADED_IMAGES_DIR, exist_ok=True)
    log_info("AllergenCheck API started")
    yield
    log_info("AllergenCheck API stopped")


app = FastAPI(title="AllergenCheck API", lifespan=lifespan)


@app.get("/")
def read_root():
    return RedirectResponse("/docs")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    response = await call_next(request)
    log_debug(f"Request: {request.method} {request.url} -> {response.status_code}")
    return response


@app.get("/api/ping")
def ping():
    return {"message": "Ping!"}


app.include_router(auth_router, prefix="/api/auth", tags=["auth"])
app.include_router(product_router, prefix="/api/products", tags=["products"])
app.include_router(user_router, prefix="/api/user", tags=["user"])

# To run the FastAPI app, use the command: uvicorn main:app --reload
if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=PORT)
