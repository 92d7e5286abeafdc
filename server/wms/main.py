from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import configure_logging
from .routers import asns, auth, health, inventory, locations, pickings, purchase_orders, sales_orders

configure_logging()

app = FastAPI(title="Warehouse Fulfillment API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(auth.router)
app.include_router(inventory.router)
app.include_router(locations.router)
app.include_router(purchase_orders.router)
app.include_router(asns.router)
app.include_router(sales_orders.router)
app.include_router(pickings.router)


@app.get("/")
def root():
    return {"status": "ok"}
