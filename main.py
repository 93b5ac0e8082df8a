import logging
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError
from pymongo.database import Database

from accounts import AccountStore
from auth import CallerContext, get_current_caller
from catalog import (
    AddFavoriteBody, CreateMealBody, CreateReviewBody, add_favorite, create_meal, create_review,
    get_meal, list_favorites, list_meals, list_reviews, platform_stats, remove_favorite,
)
from config import DEFAULT_JWT_SECRET, Settings, load_settings
from database import connect, ensure_indexes
from errors import MarketplaceError
from escalation import DecideRequestBody, RoleEscalationWorkflow, SubmitRequestBody
from orders import OrderLifecycleManager, PlaceOrderBody, UpdateOrderStatusBody
from payments import CheckoutBody, PaymentReconciler, PaymentSuccessBody, StripeProcessor
from policies import require_admin

logger = logging.getLogger(__name__)


# ---------------------- Dependencies ----------------------
def get_db(request: Request) -> Database:
    return request.app.state.db


def get_accounts(db: Database = Depends(get_db)) -> AccountStore:
    return AccountStore(db)


def get_orders(db: Database = Depends(get_db), accounts: AccountStore = Depends(get_accounts)) -> OrderLifecycleManager:
    return OrderLifecycleManager(db, accounts)


def get_reconciler(
    request: Request,
    db: Database = Depends(get_db),
    orders: OrderLifecycleManager = Depends(get_orders),
) -> PaymentReconciler:
    return PaymentReconciler(db, orders, request.app.state.processor, request.app.state.settings)


def get_escalation(db: Database = Depends(get_db), accounts: AccountStore = Depends(get_accounts)) -> RoleEscalationWorkflow:
    return RoleEscalationWorkflow(db, accounts)


def get_admin(
    caller: CallerContext = Depends(get_current_caller),
    accounts: AccountStore = Depends(get_accounts),
) -> CallerContext:
    require_admin(caller, accounts)
    return caller


# ---------------------- Error rendering ----------------------
def _error_response(status_code: int, message: str, error=None) -> JSONResponse:
    body = {"success": False, "message": message}
    if error is not None:
        body["error"] = error
    return JSONResponse(status_code=status_code, content=body)


def _validation_messages(errors) -> list:
    return [f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg')}" for e in errors]


async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    return _error_response(exc.status_code, exc.message, exc.error)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    return _error_response(400, "Invalid request", _validation_messages(exc.errors()))


async def model_validation_handler(request: Request, exc: ValidationError):
    return _error_response(400, "Invalid data", _validation_messages(exc.errors()))


async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(500, "Internal server error", str(exc))


class CreateUserBody(BaseModel):
    displayName: Optional[str] = None
    photoURL: Optional[str] = None
    address: Optional[str] = None


def create_app(settings: Optional[Settings] = None, db: Optional[Database] = None, processor=None) -> FastAPI:
    settings = settings or load_settings()
    app = FastAPI(title="LocalChefBazaar API")
    app.state.settings = settings
    app.state.db = db if db is not None else connect(settings)
    app.state.processor = processor if processor is not None else StripeProcessor(settings)
    ensure_indexes(app.state.db)
    if settings.jwt_secret == DEFAULT_JWT_SECRET:
        logger.warning("JWT_SECRET is not set, bearer tokens are checked against the development secret")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(MarketplaceError, marketplace_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(ValidationError, model_validation_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)

    # ---------------------- Users ----------------------
    @app.post("/users")
    def create_user(body: CreateUserBody, caller: CallerContext = Depends(get_current_caller),
                    accounts: AccountStore = Depends(get_accounts)):
        created, message = accounts.create(caller, body.displayName, body.photoURL, body.address)
        return {"success": True, "created": created, "message": message}

    @app.get("/users/role")
    def get_role(caller: CallerContext = Depends(get_current_caller), accounts: AccountStore = Depends(get_accounts)):
        account = accounts.get_by_email(caller.email)
        return {"success": True, "role": account.get("role"), "status": account.get("status"),
                "chefId": account.get("chefId")}

    @app.get("/users")
    def list_users(admin: CallerContext = Depends(get_admin), accounts: AccountStore = Depends(get_accounts)):
        return {"success": True, "data": accounts.list_accounts()}

    @app.patch("/users/fraud/{email}")
    def mark_fraud(email: str, admin: CallerContext = Depends(get_admin), accounts: AccountStore = Depends(get_accounts)):
        accounts.mark_fraud(email)
        return {"success": True, "message": "User marked as fraud"}

    # ---------------------- Meals, reviews, favorites ----------------------
    @app.get("/meals")
    def meals(sort: str = "asc", page: int = 1, limit: int = 0, db: Database = Depends(get_db)):
        return {"success": True, "data": list_meals(db, sort, page, limit)}

    @app.get("/meals/{meal_id}")
    def meal_detail(meal_id: str, db: Database = Depends(get_db)):
        return {"success": True, "data": get_meal(db, meal_id)}

    @app.post("/create-meals", status_code=201)
    def post_meal(body: CreateMealBody, caller: CallerContext = Depends(get_current_caller),
                  db: Database = Depends(get_db), accounts: AccountStore = Depends(get_accounts)):
        meal_id = create_meal(db, accounts, caller, body)
        return {"success": True, "message": "Meal created successfully!", "mealId": meal_id}

    @app.post("/reviews", status_code=201)
    def post_review(body: CreateReviewBody, caller: CallerContext = Depends(get_current_caller),
                    db: Database = Depends(get_db)):
        return {"success": True, "reviewId": create_review(db, caller, body)}

    @app.get("/reviews/{meal_id}")
    def meal_reviews(meal_id: str, db: Database = Depends(get_db)):
        return {"success": True, "data": list_reviews(db, meal_id)}

    @app.post("/favorites")
    def post_favorite(body: AddFavoriteBody, caller: CallerContext = Depends(get_current_caller),
                      db: Database = Depends(get_db)):
        result = add_favorite(db, caller, body)
        message = "Added to favorites" if result["created"] else "Meal already in favorites"
        return {"success": True, "message": message, "favoriteId": result["id"]}

    @app.get("/favorites")
    def favorites(userEmail: str, caller: CallerContext = Depends(get_current_caller), db: Database = Depends(get_db)):
        return {"success": True, "data": list_favorites(db, caller, userEmail)}

    @app.delete("/favorites/{favorite_id}")
    def delete_favorite(favorite_id: str, caller: CallerContext = Depends(get_current_caller),
                        db: Database = Depends(get_db)):
        remove_favorite(db, caller, favorite_id)
        return {"success": True, "message": "Removed from favorites"}

    # ---------------------- Orders ----------------------
    @app.post("/orders", status_code=201)
    def place_order(body: PlaceOrderBody, caller: CallerContext = Depends(get_current_caller),
                    orders: OrderLifecycleManager = Depends(get_orders)):
        return {"success": True, "orderId": orders.place(caller, body)}

    @app.get("/orders")
    def buyer_orders(userEmail: str, caller: CallerContext = Depends(get_current_caller),
                     orders: OrderLifecycleManager = Depends(get_orders)):
        return {"success": True, "data": orders.list_for_buyer(caller, userEmail)}

    @app.get("/orders/chef/{chef_id}")
    def chef_orders(chef_id: str, caller: CallerContext = Depends(get_current_caller),
                    orders: OrderLifecycleManager = Depends(get_orders)):
        return {"success": True, "data": orders.list_for_chef(caller, chef_id)}

    @app.patch("/orders/status/{order_id}")
    def update_order_status(order_id: str, body: UpdateOrderStatusBody,
                            caller: CallerContext = Depends(get_current_caller),
                            orders: OrderLifecycleManager = Depends(get_orders)):
        orders.update_status(caller, order_id, body.orderStatus)
        return {"success": True, "message": "Order status updated"}

    # ---------------------- Payments ----------------------
    @app.post("/create-checkout-session")
    def create_checkout_session(body: CheckoutBody, caller: CallerContext = Depends(get_current_caller),
                                reconciler: PaymentReconciler = Depends(get_reconciler)):
        return {"success": True, **reconciler.create_intent(caller, body.orderId)}

    @app.post("/payment-success")
    def payment_success(body: PaymentSuccessBody, reconciler: PaymentReconciler = Depends(get_reconciler)):
        return {"success": True, "data": reconciler.reconcile(body.sessionId)}

    @app.get("/payments")
    def buyer_payments(userEmail: str, caller: CallerContext = Depends(get_current_caller),
                       reconciler: PaymentReconciler = Depends(get_reconciler)):
        return {"success": True, "data": reconciler.list_for_buyer(caller, userEmail)}

    @app.post("/admin/reconcile-payments")
    def reconcile_payments(admin: CallerContext = Depends(get_admin),
                           reconciler: PaymentReconciler = Depends(get_reconciler)):
        return {"success": True, "repaired": reconciler.sync_paid_orders()}

    # ---------------------- Role escalation ----------------------
    @app.post("/admin/requests", status_code=201)
    def submit_request(body: SubmitRequestBody, caller: CallerContext = Depends(get_current_caller),
                       workflow: RoleEscalationWorkflow = Depends(get_escalation)):
        return {"success": True, "requestId": workflow.submit(caller, body)}

    @app.get("/admin/requests")
    def admin_requests(admin: CallerContext = Depends(get_admin),
                       workflow: RoleEscalationWorkflow = Depends(get_escalation)):
        return {"success": True, "data": workflow.list_requests()}

    @app.patch("/admin/requests/{request_id}")
    def decide_request(request_id: str, body: DecideRequestBody, admin: CallerContext = Depends(get_admin),
                       workflow: RoleEscalationWorkflow = Depends(get_escalation)):
        return {"success": True, **workflow.decide(request_id, body)}

    @app.get("/admin/stats")
    def stats(admin: CallerContext = Depends(get_admin), db: Database = Depends(get_db)):
        return {"success": True, "data": platform_stats(db)}

    # ---------------------- Misc ----------------------
    @app.get("/")
    def read_root():
        return {"message": "Hello from Server.."}

    return app


if __name__ == "__main__":
    import uvicorn
    settings = load_settings()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)
