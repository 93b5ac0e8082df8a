"""
Meals, reviews and favorites. These are plain document CRUD; the only rule
with teeth is that a fraud-flagged chef cannot publish meals.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, EmailStr, Field
from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database

from accounts import AccountStore
from auth import CallerContext
from database import create_document, get_documents, serialize, to_object_id
from errors import Forbidden, FraudBlocked, NotFound
from policies import require_self
from schemas import FAVORITES, MEALS, ORDERS, PAYMENTS, REVIEWS, USERS, Favorite, Meal, Review

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class CreateMealBody(BaseModel):
    foodName: str
    chefName: str
    foodImage: str
    price: float
    rating: float
    ingredients: Union[List[str], str]
    estimatedDeliveryTime: str
    chefExperience: str
    deliveryArea: str


class CreateReviewBody(BaseModel):
    mealId: str = Field(..., min_length=1)
    reviewerName: str
    reviewerImage: Optional[str] = None
    rating: float
    comment: str


class AddFavoriteBody(BaseModel):
    userEmail: EmailStr
    mealId: str = Field(..., min_length=1)
    mealName: Optional[str] = None
    chefId: Optional[str] = None
    chefName: Optional[str] = None
    price: Optional[float] = None


def list_meals(db: Database, sort: str = "asc", page: int = 1, limit: int = 0) -> List[Dict[str, Any]]:
    direction = DESCENDING if sort == "desc" else ASCENDING
    limit = min(max(limit, 0), MAX_PAGE_SIZE)
    skip = (max(page, 1) - 1) * limit if limit else 0
    return get_documents(db, MEALS, sort=[("price", direction)], skip=skip, limit=limit)


def get_meal(db: Database, meal_id: str) -> Dict[str, Any]:
    meal = serialize(db[MEALS].find_one({"_id": to_object_id(meal_id)}))
    if meal is None:
        raise NotFound("Meal not found")
    return meal


def create_meal(db: Database, accounts: AccountStore, caller: CallerContext, body: CreateMealBody) -> str:
    account = accounts.find_by_email(caller.email)
    if not account or account.get("role") != "chef":
        raise Forbidden("Chef only actions!")
    if account.get("status") == "fraud":
        logger.warning("Blocked meal creation by fraud-flagged chef %s", caller.email)
        raise FraudBlocked("Your account is flagged as fraud. You cannot create meals.")
    meal = Meal(
        **body.model_dump(),
        chefId=account.get("chefId") or "",
        userEmail=caller.email,
        createdAt=datetime.now(timezone.utc),
    )
    meal_id = create_document(db, MEALS, meal)
    logger.info("Meal %s created by chef %s", meal_id, meal.chefId)
    return meal_id


def create_review(db: Database, caller: CallerContext, body: CreateReviewBody) -> str:
    get_meal(db, body.mealId)
    review = Review(
        mealId=body.mealId,
        reviewerName=body.reviewerName,
        reviewerEmail=caller.email,
        reviewerImage=body.reviewerImage,
        rating=body.rating,
        comment=body.comment,
        date=datetime.now(timezone.utc),
    )
    return create_document(db, REVIEWS, review)


def list_reviews(db: Database, meal_id: str) -> List[Dict[str, Any]]:
    return get_documents(db, REVIEWS, {"mealId": meal_id}, sort=[("date", DESCENDING)])


def add_favorite(db: Database, caller: CallerContext, body: AddFavoriteBody) -> Dict[str, Any]:
    """Returns ``{"id", "created"}``; favoriting the same meal twice is a no-op."""
    require_self(caller, body.userEmail)
    existing = db[FAVORITES].find_one({"userEmail": body.userEmail, "mealId": body.mealId})
    if existing is not None:
        return {"id": str(existing["_id"]), "created": False}
    favorite = Favorite(**body.model_dump(), addedTime=datetime.now(timezone.utc))
    return {"id": create_document(db, FAVORITES, favorite), "created": True}


def list_favorites(db: Database, caller: CallerContext, user_email: str) -> List[Dict[str, Any]]:
    require_self(caller, user_email)
    return get_documents(db, FAVORITES, {"userEmail": user_email}, sort=[("addedTime", DESCENDING)])


def remove_favorite(db: Database, caller: CallerContext, favorite_id: str) -> None:
    result = db[FAVORITES].delete_one({"_id": to_object_id(favorite_id), "userEmail": caller.email})
    if result.deleted_count == 0:
        raise NotFound("Favorite not found")


def platform_stats(db: Database) -> Dict[str, Any]:
    revenue = sum(p.get("amountPaid", 0) for p in db[PAYMENTS].find({}, {"amountPaid": 1}))
    return {
        "totalUsers": db[USERS].count_documents({}),
        "totalMeals": db[MEALS].count_documents({}),
        "totalOrders": db[ORDERS].count_documents({}),
        "paidOrders": db[ORDERS].count_documents({"paymentStatus": "paid"}),
        "deliveredOrders": db[ORDERS].count_documents({"orderStatus": "delivered"}),
        "totalRevenue": revenue,
    }
