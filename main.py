import os
import logging
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Depends, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

import accounts
import analysis
import inventory
from config import settings
from database import ACTIVITIES, ITEMS, DocumentStore, get_store
from errors import ForbiddenError, InventoryError
from images import ImageStore, get_images
from schemas import (
    AnalysisReport,
    DashboardReport,
    Item,
    ItemCreate,
    ItemEnvelope,
    ItemUpdate,
    LoginPayload,
    LossEnvelope,
    LossPayload,
    LossReceipt,
    PublicUser,
    RegisterPayload,
    SaleEnvelope,
    SalePayload,
    SaleReceipt,
    SuccessResponse,
    User,
    UserEnvelope,
    UserUpdate,
)

logger = logging.getLogger(__name__)


def initialize_directories() -> None:
    get_store().initialize()
    for folder in ("users", "items"):
        os.makedirs(os.path.join(settings.UPLOAD_DIR, folder), exist_ok=True)


initialize_directories()

app = FastAPI(title=settings.APP_NAME)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def limit_body_size(request: Request, call_next):
    length = request.headers.get("content-length")
    if length and length.isdigit() and int(length) > settings.MAX_BODY_BYTES:
        return JSONResponse(status_code=413, content={"error": "Request body too large"})
    return await call_next(request)

# Error rendering: every failure goes out as {"error": message}

@app.exception_handler(InventoryError)
async def inventory_error_handler(request: Request, exc: InventoryError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        where = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{where}: {first.get('msg')}" if where else str(first.get("msg"))
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})

# Auth dependency: the bearer token is the user's id
def get_current_user(authorization: Optional[str] = Header(None), store: DocumentStore = Depends(get_store)) -> User:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Unauthorized")
    token = authorization.split(" ", 1)[1].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Unauthorized")
    user = accounts.find_user(store, token)
    if not user:
        raise HTTPException(status_code=401, detail="Unauthorized - Account may have been deleted")
    return user


def require_admin(x_admin_token: Optional[str] = Header(None)):
    # admin routes stay open unless an admin token is configured
    if settings.ADMIN_TOKEN and x_admin_token != settings.ADMIN_TOKEN:
        raise ForbiddenError("Admin access required")


def require_self(user_id: str, user: User):
    if user.id != user_id:
        raise ForbiddenError("Insufficient permissions")

# Routes: Health
@app.get("/api/health")
def health():
    return {"status": "ok", "app": settings.APP_NAME, "env": settings.ENV}

# Routes: Auth
@app.post("/api/register", response_model=UserEnvelope)
def register(payload: RegisterPayload, store: DocumentStore = Depends(get_store), images: ImageStore = Depends(get_images)):
    user = accounts.register(store, images, payload)
    return UserEnvelope(user=user.public())

@app.post("/api/login", response_model=UserEnvelope)
def login(payload: LoginPayload, store: DocumentStore = Depends(get_store)):
    user = accounts.login(store, str(payload.email), payload.password)
    return UserEnvelope(user=user.public())

# Routes: Admin
@app.get("/api/admin/users", response_model=List[PublicUser], dependencies=[Depends(require_admin)])
def admin_list_users(store: DocumentStore = Depends(get_store)):
    return [u.public() for u in accounts.list_users(store)]

@app.get("/api/admin/users/{user_id}", response_model=PublicUser, dependencies=[Depends(require_admin)])
def admin_get_user(user_id: str, store: DocumentStore = Depends(get_store)):
    return accounts.get_user(store, user_id).public()

@app.delete("/api/admin/users/{user_id}", response_model=SuccessResponse, dependencies=[Depends(require_admin)])
def admin_delete_user(user_id: str, store: DocumentStore = Depends(get_store), images: ImageStore = Depends(get_images)):
    accounts.delete_user(store, images, user_id)
    return SuccessResponse()

# Routes: Profile
@app.get("/api/user/{user_id}", response_model=PublicUser)
def get_profile(user_id: str, user: User = Depends(get_current_user)):
    require_self(user_id, user)
    return user.public()

@app.put("/api/user/{user_id}", response_model=UserEnvelope)
def update_profile(
    user_id: str,
    payload: UserUpdate,
    user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
    images: ImageStore = Depends(get_images),
):
    require_self(user_id, user)
    updated = accounts.update_user(store, images, user_id, payload)
    return UserEnvelope(user=updated.public())

@app.delete("/api/user/{user_id}", response_model=SuccessResponse)
def delete_profile(
    user_id: str,
    user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
    images: ImageStore = Depends(get_images),
):
    require_self(user_id, user)
    accounts.delete_user(store, images, user_id)
    return SuccessResponse()

# Routes: Items
@app.post("/api/items", response_model=ItemEnvelope)
def create_item(
    payload: ItemCreate,
    user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
    images: ImageStore = Depends(get_images),
):
    return ItemEnvelope(item=inventory.create_item(store, images, user.id, payload))

@app.get("/api/items", response_model=List[Item])
def list_items(user: User = Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    return inventory.list_items(store, user.id)

@app.get("/api/items/{item_id}", response_model=Item)
def get_item(item_id: str, user: User = Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    return inventory.get_item(store, user.id, item_id)

@app.put("/api/items/{item_id}", response_model=ItemEnvelope)
def update_item(
    item_id: str,
    payload: ItemUpdate,
    user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
    images: ImageStore = Depends(get_images),
):
    return ItemEnvelope(item=inventory.update_item(store, images, user.id, item_id, payload))

@app.delete("/api/items/{item_id}", response_model=SuccessResponse)
def delete_item(
    item_id: str,
    user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
    images: ImageStore = Depends(get_images),
):
    inventory.delete_item(store, images, user.id, item_id)
    return SuccessResponse()

# Routes: Ledger
@app.post("/api/sales", response_model=SaleEnvelope)
def record_sale(payload: SalePayload, user: User = Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    activity = inventory.record_sale(store, user.id, payload)
    return SaleEnvelope(sale=SaleReceipt(
        item_id=activity.item_id,
        quantity=activity.quantity,
        amount=activity.amount,
        date=activity.date,
    ))

@app.post("/api/losses", response_model=LossEnvelope)
def record_loss(payload: LossPayload, user: User = Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    activity = inventory.record_loss(store, user.id, payload)
    return LossEnvelope(loss=LossReceipt(
        item_id=activity.item_id,
        loss_type=activity.loss_type,
        quantity=activity.quantity,
        amount=activity.amount,
        date=activity.date,
    ))

# Routes: Reports
@app.get("/api/dashboard", response_model=DashboardReport)
def dashboard(user: User = Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    return analysis.build_dashboard(store.load(ITEMS), store.load(ACTIVITIES), user.id)

@app.get("/api/analysis", response_model=AnalysisReport)
def analysis_report(user: User = Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    return analysis.build_analysis(store.load(ITEMS), store.load(ACTIVITIES), user.id)


app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False), name="uploads")
if os.path.isdir(settings.PUBLIC_DIR):
    app.mount("/", StaticFiles(directory=settings.PUBLIC_DIR, html=True), name="public")

if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    port = int(os.getenv("PORT", settings.PORT))
    uvicorn.run(app, host=settings.HOST, port=port)
