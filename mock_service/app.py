"""Demo service with workloads of different shapes to stress test against."""

import asyncio
import hashlib
import os
import random
import secrets
import tempfile
import time
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Header, HTTPException, Query, UploadFile
from jose import JWTError, jwt
from pydantic import BaseModel

JWT_SECRET = os.environ.get("JWT_SECRET", "your-secret-key-for-dev-only")
JWT_ALGORITHM = "HS256"
PRODUCTS_CACHE_TTL_SECONDS = 5 * 60
UPLOAD_DIR = os.environ.get(
    "UPLOAD_DIR", os.path.join(tempfile.gettempdir(), "mock-service-uploads")
)

app = FastAPI(title="Mock Service")
_started = time.monotonic()

MOCK_USERS = [
    {"id": 1, "username": "user1", "email": "user1@example.com", "password": "hashed_password1"},
    {"id": 2, "username": "user2", "email": "user2@example.com", "password": "hashed_password2"},
]

MOCK_PRODUCTS = [
    {"id": 1, "name": "Product 1", "price": 99.99, "description": "Description 1", "stock": 100},
    {"id": 2, "name": "Product 2", "price": 149.99, "description": "Description 2", "stock": 50},
    {"id": 3, "name": "Product 3", "price": 199.99, "description": "Description 3", "stock": 75},
]

_cache = {}  # key -> (expires_at, value)


class LoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class CheckoutItem(BaseModel):
    productId: int
    quantity: int


class CheckoutRequest(BaseModel):
    items: List[CheckoutItem] = []
    shippingAddress: Optional[dict] = None
    paymentMethod: Optional[str] = None


def _busy(ms: float) -> None:
    end = time.perf_counter() + ms / 1000
    while time.perf_counter() < end:
        os.urandom(10)


def current_user(authorization: Optional[str] = Header(default=None)) -> dict:
    token = authorization.split(" ", 1)[1] if authorization and " " in authorization else None
    if not token:
        raise HTTPException(status_code=401, detail="Unauthorized")
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=403, detail="Invalid token")


@app.get("/health")
async def health():
    return {"status": "ok", "uptime": time.monotonic() - _started}


@app.post("/api/login")
def login(body: LoginRequest):
    if not body.username or not body.password:
        raise HTTPException(status_code=400, detail="Username and password required")
    user = next((u for u in MOCK_USERS if u["username"] == body.username), None)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")

    # password hashing cost
    hashlib.pbkdf2_hmac("sha512", body.password.encode(), b"salt", 1000)
    claims = {
        "id": user["id"],
        "username": user["username"],
        "exp": datetime.now(timezone.utc) + timedelta(hours=1),
    }
    return {"token": jwt.encode(claims, JWT_SECRET, algorithm=JWT_ALGORITHM)}


@app.get("/api/profile")
async def profile(user: dict = Depends(current_user)):
    found = next((u for u in MOCK_USERS if u["id"] == user.get("id")), None)
    if found is None:
        raise HTTPException(status_code=404, detail="User not found")
    return {k: v for k, v in found.items() if k != "password"}


@app.get("/api/products")
async def products():
    cached = _cache.get("all_products")
    if cached and cached[0] > time.monotonic():
        return cached[1]
    await asyncio.sleep(0.05)
    _cache["all_products"] = (time.monotonic() + PRODUCTS_CACHE_TTL_SECONDS, MOCK_PRODUCTS)
    return MOCK_PRODUCTS


@app.get("/api/products/{product_id}")
async def product(product_id: int):
    found = next((p for p in MOCK_PRODUCTS if p["id"] == product_id), None)
    if found is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return found


@app.get("/api/weather/{city}")
async def weather(city: str):
    await asyncio.sleep(random.randint(100, 400) / 1000)
    return {
        "city": city,
        "temperature": random.randint(5, 40),
        "humidity": random.randint(0, 99),
        "wind": random.randint(0, 29),
        "condition": random.choice(["Sunny", "Cloudy", "Rainy", "Snowy"]),
    }


@app.post("/api/checkout")
def checkout(body: CheckoutRequest, user: dict = Depends(current_user)):
    if not body.items or not body.shippingAddress or not body.paymentMethod:
        raise HTTPException(status_code=400, detail="Missing required checkout information")

    out_of_stock = []
    total_price = 0.0
    for item in body.items:
        found = next((p for p in MOCK_PRODUCTS if p["id"] == item.productId), None)
        if found is None or found["stock"] < item.quantity:
            out_of_stock.append(item.productId)
        else:
            total_price += found["price"] * item.quantity
    if out_of_stock:
        raise HTTPException(
            status_code=400,
            detail={"error": "Some items are out of stock", "outOfStockItems": out_of_stock},
        )

    _busy(200)  # payment processing
    return {
        "success": True,
        "orderId": secrets.token_hex(8),
        "totalPrice": round(total_price, 2),
        "estimatedDelivery": (datetime.now(timezone.utc) + timedelta(days=7)).isoformat(),
    }


@app.post("/api/upload")
def upload(
    file: Optional[UploadFile] = File(default=None),
    user: dict = Depends(current_user),
):
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")
    data = file.file.read()
    os.makedirs(UPLOAD_DIR, exist_ok=True)
    filename = f"{int(time.time() * 1000)}-{os.path.basename(file.filename)}"
    with open(os.path.join(UPLOAD_DIR, filename), "wb") as f:
        f.write(data)

    _busy(100)  # file processing
    return {"success": True, "filename": filename, "size": len(data)}


@app.get("/api/db-intensive")
def db_intensive(queries: int = 10):
    results = []
    for i in range(queries):
        _busy(20)
        results.append({
            "id": i,
            "name": f"Result {i}",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })
    return {"results": results}


@app.get("/api/cpu-intensive")
def cpu_intensive(workload: int = 100):
    start = time.perf_counter()
    _busy(workload)
    return {
        "message": "CPU intensive task completed",
        "duration": round((time.perf_counter() - start) * 1000),
        "requestedWorkload": workload,
    }


@app.get("/api/memory-intensive")
def memory_intensive(size: int = Query(1, ge=1)):
    block = bytearray(size * 1024 * 1024)
    return {
        "message": "Memory intensive task completed",
        "size": f"{size} MB",
        "actualBytes": len(block),
    }


# Run with: uvicorn mock_service.app:app --port 3000
