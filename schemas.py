"""
Database Schemas for the LocalChefBazaar marketplace

Each Pydantic model maps to a MongoDB collection:
- Account -> users
- Meal -> meals
- Order -> orders
- PaymentRecord -> payments
- AdminRequest -> admin_requests
- Review -> reviews
- Favorite -> favorites

Field names are camelCase because they are the stored document keys and the
JSON the web client exchanges.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

USERS = "users"
MEALS = "meals"
ORDERS = "orders"
PAYMENTS = "payments"
ADMIN_REQUESTS = "admin_requests"
REVIEWS = "reviews"
FAVORITES = "favorites"

Role = Literal['user', 'chef', 'admin']
AccountStatus = Literal['active', 'fraud']
PaymentStatus = Literal['pending', 'paid']
RequestType = Literal['chef', 'admin']
RequestStatus = Literal['pending', 'approved', 'rejected']

MAX_RATING = 5
MIN_RATING = 0


class Account(BaseModel):
    """Marketplace account
    chefId is only present once an admin has granted the chef role
    """
    uid: str
    email: EmailStr
    displayName: Optional[str] = None
    photoURL: Optional[str] = None
    address: Optional[str] = None
    role: Role = 'user'
    status: AccountStatus = 'active'
    chefId: Optional[str] = None
    createdAt: Optional[datetime] = None


class Meal(BaseModel):
    foodName: str = Field(..., min_length=1)
    chefName: str = Field(..., min_length=1)
    foodImage: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    rating: float
    ingredients: List[str]
    estimatedDeliveryTime: str = Field(..., min_length=1)
    chefExperience: str = Field(..., min_length=1)
    deliveryArea: str = Field(..., min_length=1)
    chefId: str
    userEmail: EmailStr
    createdAt: Optional[datetime] = None

    @field_validator('ingredients', mode='before')
    @classmethod
    def split_ingredients(cls, value):
        if isinstance(value, str):
            value = [item.strip() for item in value.split(',')]
        if isinstance(value, list):
            value = [item for item in value if item]
        if not value:
            raise ValueError('at least one ingredient is required')
        return value

    @field_validator('rating')
    @classmethod
    def clamp_rating(cls, value: float) -> float:
        return max(MIN_RATING, min(value, MAX_RATING))


class Order(BaseModel):
    userEmail: EmailStr
    userName: Optional[str] = None
    chefId: str
    chefName: Optional[str] = None
    mealId: str
    mealName: Optional[str] = None
    quantity: int = Field(1, ge=1)
    price: float = Field(..., ge=0)
    deliveryTime: Optional[str] = None
    deliveryAddress: Optional[str] = None
    orderStatus: str = 'pending'
    paymentStatus: PaymentStatus = 'pending'
    orderTime: Optional[datetime] = None


class PaymentRecord(BaseModel):
    """Receipt written once the processor confirms a checkout as paid"""
    transactionId: str
    sessionId: str
    orderId: str
    amountPaid: float
    userEmail: EmailStr
    chefId: Optional[str] = None
    mealId: Optional[str] = None
    mealName: Optional[str] = None
    paidAt: datetime


class AdminRequest(BaseModel):
    userName: str = Field(..., min_length=1)
    userEmail: EmailStr
    requestType: RequestType
    requestStatus: RequestStatus = 'pending'
    requestTime: Optional[datetime] = None


class Review(BaseModel):
    mealId: str
    reviewerName: str = Field(..., min_length=1)
    reviewerEmail: EmailStr
    reviewerImage: Optional[str] = None
    rating: float = Field(..., ge=MIN_RATING, le=MAX_RATING)
    comment: str = Field(..., min_length=1)
    date: Optional[datetime] = None


class Favorite(BaseModel):
    userEmail: EmailStr
    mealId: str
    mealName: Optional[str] = None
    chefId: Optional[str] = None
    chefName: Optional[str] = None
    price: Optional[float] = None
    addedTime: Optional[datetime] = None
