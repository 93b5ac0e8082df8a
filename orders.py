"""
Order lifecycle.

Orders start as ``pending``/``pending``. ``orderStatus`` is written by the
owning chef or an admin and accepts any status word; ``paymentStatus`` is
only ever written by the payment reconciler.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field
from pymongo.database import Database

from accounts import AccountStore
from auth import CallerContext
from database import create_document, get_documents, serialize, to_object_id
from errors import FraudBlocked, InvalidArgument, NotFound
from policies import require_chef_owner_or_admin, require_self
from schemas import ORDERS, Order

logger = logging.getLogger(__name__)


class PlaceOrderBody(BaseModel):
    userEmail: Optional[EmailStr] = None
    userName: Optional[str] = None
    chefId: str = Field(..., min_length=1)
    chefName: Optional[str] = None
    mealId: Optional[str] = None
    foodId: Optional[str] = None
    mealName: Optional[str] = None
    quantity: Optional[int] = Field(None, ge=0)
    price: float = Field(..., ge=0)
    deliveryTime: Optional[str] = None
    deliveryAddress: Optional[str] = None


class UpdateOrderStatusBody(BaseModel):
    orderStatus: str = Field(..., min_length=1)


class OrderLifecycleManager:
    def __init__(self, db: Database, accounts: AccountStore):
        self.db = db
        self.collection = db[ORDERS]
        self.accounts = accounts

    def get(self, order_id: str) -> Dict[str, Any]:
        order = serialize(self.collection.find_one({"_id": to_object_id(order_id)}))
        if order is None:
            raise NotFound("Order not found")
        return order

    def place(self, caller: CallerContext, body: PlaceOrderBody) -> str:
        if body.userEmail is not None:
            require_self(caller, body.userEmail)
        account = self.accounts.find_by_email(caller.email)
        if account and account.get("status") == "fraud" and account.get("role") == "user":
            logger.warning("Blocked order from fraud-flagged account %s", caller.email)
            raise FraudBlocked("Your account is flagged as fraud. You cannot place orders.")

        meal_id = body.mealId or body.foodId
        if not meal_id:
            raise InvalidArgument("Missing required field: mealId")
        order = Order(
            userEmail=caller.email,
            userName=body.userName or (account or {}).get("displayName"),
            chefId=body.chefId,
            chefName=body.chefName,
            mealId=meal_id,
            mealName=body.mealName,
            quantity=body.quantity or 1,
            price=body.price,
            deliveryTime=body.deliveryTime,
            deliveryAddress=body.deliveryAddress or (account or {}).get("address"),
            orderStatus='pending',
            paymentStatus='pending',
            orderTime=datetime.now(timezone.utc),
        )
        order_id = create_document(self.db, ORDERS, order)
        logger.info("Order %s placed by %s for meal %s", order_id, caller.email, meal_id)
        return order_id

    def update_status(self, caller: CallerContext, order_id: str, new_status: str) -> None:
        order = self.get(order_id)
        require_chef_owner_or_admin(caller, self.accounts, order.get("chefId"))
        result = self.collection.update_one(
            {"_id": to_object_id(order_id)},
            {"$set": {"orderStatus": new_status, "updatedAt": datetime.now(timezone.utc)}},
        )
        if result.matched_count == 0:
            raise NotFound("Order not found")
        logger.info("Order %s status %s -> %s by %s", order_id, order.get("orderStatus"), new_status, caller.email)

    def list_for_buyer(self, caller: CallerContext, user_email: str) -> List[Dict[str, Any]]:
        require_self(caller, user_email)
        return get_documents(self.db, ORDERS, {"userEmail": user_email}, sort=[("orderTime", -1)])

    def list_for_chef(self, caller: CallerContext, chef_id: str) -> List[Dict[str, Any]]:
        require_chef_owner_or_admin(caller, self.accounts, chef_id)
        return get_documents(self.db, ORDERS, {"chefId": chef_id}, sort=[("orderTime", -1)])

