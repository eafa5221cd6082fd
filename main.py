import logging
import re
import shutil
import time
from pathlib import Path
from typing import Dict, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, FastAPI, File, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from auth import current_identity, enforce_access, get_db, get_settings
from config import Settings, configure_logging
from database import connect, create_document, ensure_indexes, get_documents, parse_object_id, utcnow
from errors import InvalidCredentials, InvalidInput, NotFound, PayloadTooLarge, Unauthenticated, UnsupportedMediaType
from mapping import order_to_wire, product_to_storage, product_to_wire, user_to_wire
from schemas import (
    LoginRequest,
    Order,
    OrderCreate,
    OrderItem,
    OrderStatusUpdate,
    Product,
    ProductIn,
    RegisterRequest,
    User,
)
from security import MAX_PASSWORD_BYTES, Identity, hash_password, issue_token, verify_password

logger = logging.getLogger(__name__)

PRICE_TOLERANCE = 0.005
NEWEST_FIRST = [("created_at", -1), ("_id", -1)]
CATALOG_ORDER = [("created_at", 1), ("_id", 1)]
UPLOAD_CACHE_CONTROL = "public, max-age=31536000"
SAFE_EXTENSION = re.compile(r"\.[A-Za-z0-9]{1,10}")

api = APIRouter(prefix="/api", dependencies=[Depends(enforce_access)])
service = APIRouter()


def owner_id(identity: Identity) -> ObjectId:
    oid = parse_object_id(identity.id)
    if oid is None:
        raise Unauthenticated("Invalid token")
    return oid


def auth_response(user: dict, settings: Settings) -> dict:
    return {"token": issue_token(user, settings), "user": user_to_wire(user)}


# --------- Service ---------

@service.get("/")
def read_root():
    return {"message": "Confectionery Store API Running"}


@service.get("/health")
def health():
    return {"ok": True}


@service.get("/test")
def test_database(db: Database = Depends(get_db)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_name": None,
        "collections": [],
    }
    try:
        response["database_name"] = db.name
        response["collections"] = db.list_collection_names()[:10]
        response["database"] = "✅ Connected & Working"
    except PyMongoError as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# --------- Auth ---------

@api.post("/auth/register")
def register(payload: RegisterRequest, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    if not payload.name or not payload.email or not payload.password:
        raise InvalidInput("Name, email and password are required")
    if len(payload.password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise InvalidInput(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    email = str(payload.email)
    if db["user"].find_one({"email": email}):
        raise InvalidInput("Email already in use")

    # An unset manager code never matches, not even an empty submitted code
    is_manager = bool(settings.manager_code) and payload.managerCode == settings.manager_code
    user = User(
        name=payload.name,
        email=email,
        password_hash=hash_password(payload.password, settings.bcrypt_rounds),
        role="manager" if is_manager else "user",
    )
    try:
        uid = create_document(db, "user", user.model_dump())
    except DuplicateKeyError:
        raise InvalidInput("Email already in use")
    doc = db["user"].find_one({"_id": ObjectId(uid)})
    logger.info("Registered %s with role %s", email, user.role)
    return auth_response(doc, settings)


@api.post("/auth/login")
def login(payload: LoginRequest, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    if not payload.email or not payload.password:
        raise InvalidInput("Email and password are required")
    user = db["user"].find_one({"email": str(payload.email)})
    if not user or not verify_password(payload.password, user.get("password_hash")):
        logger.warning("Failed login for %s", payload.email)
        raise InvalidCredentials()
    logger.info("User %s logged in", user["_id"])
    return auth_response(user, settings)


@api.get("/auth/me")
def me(identity: Identity = Depends(current_identity), db: Database = Depends(get_db)):
    user = db["user"].find_one({"_id": owner_id(identity)})
    if not user:
        raise NotFound("User not found")
    return user_to_wire(user)


# --------- Products ---------

@api.get("/products")
def list_products(
    q: Optional[str] = Query(None, description="search in title and description"),
    category: Optional[List[str]] = Query(None),
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    featured: Optional[bool] = None,
    db: Database = Depends(get_db),
):
    filt = {}
    if q:
        pattern = re.escape(q)
        filt["$or"] = [
            {"title": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
        ]
    if category:
        filt["category"] = {"$in": category}
    if min_price is not None or max_price is not None:
        price_query = {}
        if min_price is not None:
            price_query["$gte"] = min_price
        if max_price is not None:
            price_query["$lte"] = max_price
        filt["price"] = price_query
    if featured is not None:
        filt["featured"] = True if featured else {"$ne": True}
    docs = get_documents(db, "product", filt, sort=CATALOG_ORDER)
    return [product_to_wire(d) for d in docs]


@api.get("/products/{product_id}")
def get_product(product_id: str, db: Database = Depends(get_db)):
    oid = parse_object_id(product_id)
    doc = db["product"].find_one({"_id": oid}) if oid else None
    if not doc:
        raise NotFound("Product not found")
    return product_to_wire(doc)


@api.post("/products")
def create_product(payload: ProductIn, db: Database = Depends(get_db)):
    fields = product_to_storage(payload)
    if not fields.get("title"):
        raise InvalidInput("Title is required")
    if fields.get("price") is None:
        raise InvalidInput("Price is required")
    product = Product(**fields)
    pid = create_document(db, "product", product.model_dump())
    logger.info("Created product %s (%s)", pid, product.title)
    return product_to_wire(db["product"].find_one({"_id": ObjectId(pid)}))


@api.put("/products/{product_id}")
def update_product(product_id: str, payload: ProductIn, db: Database = Depends(get_db)):
    oid = parse_object_id(product_id)
    if oid is None:
        raise NotFound("Product not found")
    updates = product_to_storage(payload, partial=True)
    if updates:
        updates["updated_at"] = utcnow()
        doc = db["product"].find_one_and_update(
            {"_id": oid}, {"$set": updates}, return_document=ReturnDocument.AFTER
        )
    else:
        doc = db["product"].find_one({"_id": oid})
    if not doc:
        raise NotFound("Product not found")
    return product_to_wire(doc)


@api.delete("/products/{product_id}")
def delete_product(product_id: str, db: Database = Depends(get_db)):
    oid = parse_object_id(product_id)
    if oid is not None:
        db["product"].delete_one({"_id": oid})
    return {"success": True}


# --------- Orders ---------

def _release_stock(db: Database, reserved: Dict[ObjectId, int]) -> None:
    for pid, qty in reserved.items():
        db["product"].update_one({"_id": pid}, {"$inc": {"stock": qty}})


@api.post("/orders")
def create_order(payload: OrderCreate, identity: Identity = Depends(current_identity), db: Database = Depends(get_db)):
    if not payload.items:
        raise InvalidInput("Cart is empty")
    user_oid = owner_id(identity)

    # prices and titles come from the live catalog, never from the client
    items: List[OrderItem] = []
    requested: Dict[ObjectId, int] = {}
    titles: Dict[ObjectId, str] = {}
    total = 0.0
    for line in payload.items:
        pid = parse_object_id(line.product)
        product = db["product"].find_one({"_id": pid}) if pid else None
        if not product:
            raise InvalidInput(f"Unknown product {line.product}")
        title = product.get("title", "")
        price = float(product.get("price", 0))
        if line.price is not None and abs(line.price - price) > PRICE_TOLERANCE:
            raise InvalidInput(f"Price of {title} has changed")
        requested[pid] = requested.get(pid, 0) + line.quantity
        if requested[pid] > int(product.get("stock", 0)):
            raise InvalidInput(f"Insufficient stock for {title}")
        titles[pid] = title
        items.append(OrderItem(product=str(pid), title=title, qty=line.quantity, price=price))
        total += price * line.quantity
    total = round(total, 2)
    if payload.total is not None and abs(payload.total - total) > PRICE_TOLERANCE:
        raise InvalidInput("Order total does not match current prices")

    reserved: Dict[ObjectId, int] = {}
    for pid, qty in requested.items():
        res = db["product"].update_one({"_id": pid, "stock": {"$gte": qty}}, {"$inc": {"stock": -qty}})
        if res.matched_count == 0:
            _release_stock(db, reserved)
            raise InvalidInput(f"Insufficient stock for {titles[pid]}")
        reserved[pid] = qty

    order = Order(user=str(user_oid), items=items, total=total, address=payload.address).model_dump()
    order["user"] = user_oid
    for item in order["items"]:
        item["product"] = ObjectId(item["product"])
    try:
        oid = create_document(db, "order", order)
    except PyMongoError:
        _release_stock(db, reserved)
        raise
    logger.info("Order %s placed by %s, total %.2f", oid, user_oid, total)
    return order_to_wire(db["order"].find_one({"_id": ObjectId(oid)}))


@api.get("/orders")
def list_orders(identity: Identity = Depends(current_identity), db: Database = Depends(get_db)):
    if identity.is_manager:
        docs = get_documents(db, "order", sort=NEWEST_FIRST)
        owners = list({d.get("user") for d in docs if d.get("user") is not None})
        users = {u["_id"]: u for u in db["user"].find({"_id": {"$in": owners}})}
        return [order_to_wire(d, users) for d in docs]
    docs = get_documents(db, "order", {"user": owner_id(identity)}, sort=NEWEST_FIRST)
    return [order_to_wire(d) for d in docs]


@api.get("/orders/{order_id}")
def get_order(order_id: str, identity: Identity = Depends(current_identity), db: Database = Depends(get_db)):
    oid = parse_object_id(order_id)
    doc = db["order"].find_one({"_id": oid}) if oid else None
    # other customers' orders are reported as missing
    if not doc or (not identity.is_manager and doc.get("user") != owner_id(identity)):
        raise NotFound("Order not found")
    return order_to_wire(doc)


@api.patch("/orders/{order_id}")
def update_order_status(order_id: str, payload: OrderStatusUpdate, db: Database = Depends(get_db)):
    oid = parse_object_id(order_id)
    doc = None
    if oid is not None:
        doc = db["order"].find_one_and_update(
            {"_id": oid},
            {"$set": {"status": payload.status, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
    if not doc:
        raise NotFound("Order not found")
    logger.info("Order %s marked %s", oid, payload.status)
    return order_to_wire(doc)


@api.get("/stats")
def inventory_stats(db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    stocks = [int(p.get("stock", 0)) for p in db["product"].find({}, {"stock": 1})]
    orders = list(db["order"].find({}, {"status": 1, "total": 1}))
    return {
        "totalProducts": len(stocks),
        "lowStock": sum(1 for s in stocks if 0 < s <= settings.low_stock_threshold),
        "outOfStock": sum(1 for s in stocks if s == 0),
        "totalOrders": len(orders),
        "pendingOrders": sum(1 for o in orders if o.get("status") == "pending"),
        "totalRevenue": round(sum(float(o.get("total", 0)) for o in orders if o.get("status") == "completed"), 2),
    }


# --------- Uploads ---------

@api.post("/upload")
def upload_image(image: Optional[UploadFile] = File(None), settings: Settings = Depends(get_settings)):
    if image is None or not image.filename:
        raise InvalidInput("No file uploaded")
    if not (image.content_type or "").startswith("image/"):
        raise UnsupportedMediaType()

    ext = Path(image.filename).suffix
    if not SAFE_EXTENSION.fullmatch(ext):
        ext = ""
    folder = Path(settings.uploads_dir)
    stamp = int(time.time() * 1000)
    while True:
        filename = f"{stamp}{ext}"
        try:
            out = open(folder / filename, "xb")
        except FileExistsError:
            stamp += 1
            continue
        try:
            with out:
                shutil.copyfileobj(image.file, out)
        except Exception:
            (folder / filename).unlink(missing_ok=True)
            raise
        break
    logger.info("Stored upload %s (%s)", filename, image.content_type)
    return {
        "message": "File uploaded successfully",
        "filename": filename,
        "url": f"/uploads/{filename}",
    }


# --------- App ---------

class _BodyTooLarge(Exception):
    pass


class BodySizeLimit:
    """Refuse request bodies over ``max_bytes`` with 413.

    Content-Length is checked up front; chunked bodies are counted as they
    are received and the app's own response is dropped once the limit is hit.
    """

    def __init__(self, app, max_bytes: int):
        self.app = app
        self.max_bytes = max_bytes

    async def _reject(self, scope, receive, send):
        err = PayloadTooLarge()
        response = JSONResponse(status_code=err.status_code, content={"detail": err.detail})
        await response(scope, receive, send)

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        for name, value in scope.get("headers", []):
            if name == b"content-length" and value.isdigit() and int(value) > self.max_bytes:
                await self._reject(scope, receive, send)
                return

        received = 0
        exceeded = False
        started = False

        async def limited_receive():
            nonlocal received, exceeded
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_bytes:
                    exceeded = True
                    raise _BodyTooLarge()
            return message

        async def guarded_send(message):
            nonlocal started
            if exceeded:
                return
            if message["type"] == "http.response.start":
                started = True
            await send(message)

        try:
            await self.app(scope, limited_receive, guarded_send)
        except Exception:
            if not exceeded:
                raise
        if exceeded and not started:
            await self._reject(scope, receive, send)


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())[1:])
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "Invalid request"


def create_app(settings: Optional[Settings] = None, db: Optional[Database] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    if db is None:
        db = connect(settings)

    app = FastAPI(title="Confectionery Store API", version="1.0.0")
    app.state.settings = settings
    app.state.db = db

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(BodySizeLimit, max_bytes=settings.max_body_bytes)

    @app.middleware("http")
    async def harden(request: Request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        if request.url.path.startswith("/uploads/") and response.status_code == 200:
            response.headers["Cache-Control"] = UPLOAD_CACHE_CONTROL
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"detail": _validation_message(exc)})

    @app.exception_handler(PyMongoError)
    async def database_error(request: Request, exc: PyMongoError):
        logger.exception("Database error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    @app.on_event("startup")
    def prepare_database():
        ensure_indexes(app.state.db)

    uploads = Path(settings.uploads_dir)
    uploads.mkdir(parents=True, exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=str(uploads)), name="uploads")

    app.include_router(service)
    app.include_router(api)
    return app


if __name__ == "__main__":
    import uvicorn
    settings = Settings.from_env()
    configure_logging(settings)
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)
