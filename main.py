from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.ordering import registry, router as ordering_router, scan_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    registry.clear()


app = FastAPI(title="Table Ordering Session Service", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# /scan is the URL printed in the table QR codes, so it stays at the root
app.include_router(scan_router)
app.include_router(ordering_router, prefix="/api")


@app.get("/health")
def health():
    return {"ok": True}
