"""
Payment reconciliation against Stripe Checkout.

Two phases:
1. ``create_intent`` opens a Checkout Session for an order and returns the
   redirect URL. The order is not touched.
2. ``reconcile`` is called by the client after the redirect with the session
   id. Only a session Stripe reports as ``paid`` produces a payment record,
   after which the order's ``paymentStatus`` moves from pending to paid.

The record insert and the order update are separate writes. A crash between
them is repaired by ``sync_paid_orders``, which re-derives order payment
state from the payment records.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional

import stripe
from bson import ObjectId
from pydantic import BaseModel, Field
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from auth import CallerContext
from config import Settings
from database import create_document, get_documents, serialize
from errors import ExternalServiceError, InvalidArgument, PaymentIncomplete
from orders import OrderLifecycleManager
from policies import require_self
from schemas import ORDERS, PAYMENTS, PaymentRecord

logger = logging.getLogger(__name__)

SESSION_PLACEHOLDER = "{CHECKOUT_SESSION_ID}"


class CheckoutBody(BaseModel):
    orderId: str = Field(..., min_length=1)


class PaymentSuccessBody(BaseModel):
    sessionId: str = Field(..., min_length=1)


@dataclass
class CheckoutSession:
    """The fields of a processor session this service relies on."""
    id: str
    url: Optional[str] = None
    payment_status: Optional[str] = None
    amount_total: Optional[int] = None
    customer_email: Optional[str] = None
    payment_intent: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)


def minor_units(price: float) -> int:
    """Unit amount sent to the processor: whole major units, halves rounded up, times 100."""
    whole = Decimal(str(price)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(whole) * 100


class StripeProcessor:
    """Thin wrapper over ``stripe.checkout.Session``."""

    def __init__(self, settings: Settings):
        self.currency = settings.stripe_currency
        self.api_key = settings.stripe_secret_key

    def _session(self, session) -> CheckoutSession:
        metadata = session.metadata or {}
        return CheckoutSession(
            id=session.id,
            url=session.url,
            payment_status=session.payment_status,
            amount_total=session.amount_total,
            customer_email=session.customer_email,
            payment_intent=session.payment_intent if isinstance(session.payment_intent, str) else None,
            metadata={key: metadata[key] for key in metadata},
        )

    def create_checkout(self, *, name: str, unit_amount: int, quantity: int, customer_email: str,
                        metadata: Dict[str, str], success_url: str, cancel_url: str) -> CheckoutSession:
        if not self.api_key:
            raise ExternalServiceError("Payment processor is not configured")
        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                line_items=[{
                    "price_data": {
                        "currency": self.currency,
                        "product_data": {"name": name},
                        "unit_amount": unit_amount,
                    },
                    "quantity": quantity,
                }],
                customer_email=customer_email,
                mode="payment",
                metadata=metadata,
                success_url=success_url,
                cancel_url=cancel_url,
            )
        except stripe.StripeError as e:
            logger.error("Stripe checkout creation failed: %s", e)
            raise ExternalServiceError("Failed to create checkout session", error=str(e))
        return self._session(session)

    def retrieve(self, session_id: str) -> CheckoutSession:
        if not self.api_key:
            raise ExternalServiceError("Payment processor is not configured")
        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=self.api_key)
        except stripe.StripeError as e:
            logger.error("Stripe session lookup failed for %s: %s", session_id, e)
            raise ExternalServiceError("Failed to retrieve checkout session", error=str(e))
        return self._session(session)


class PaymentReconciler:
    def __init__(self, db: Database, orders: OrderLifecycleManager, processor, settings: Settings):
        self.db = db
        self.orders = orders
        self.processor = processor
        self.settings = settings

    def create_intent(self, caller: CallerContext, order_id: str) -> Dict[str, Any]:
        order = self.orders.get(order_id)
        require_self(caller, order.get("userEmail"))
        if order.get("paymentStatus") == "paid":
            raise InvalidArgument("Order is already paid")

        quantity = order.get("quantity") or 1
        unit_amount = minor_units(order.get("price") or 0)
        metadata = {
            "orderId": order["id"],
            "userEmail": caller.email,
            "chefId": str(order.get("chefId") or ""),
            "foodId": str(order.get("mealId") or ""),
            "mealName": order.get("mealName") or "",
            "customerName": order.get("userName") or "",
            "chefName": order.get("chefName") or "",
            "deliveryTime": order.get("deliveryTime") or "",
            "quantity": str(quantity),
            "paymentStatus": "pending",
            "orderStatus": "pending",
        }
        domain = self.settings.client_domain
        session = self.processor.create_checkout(
            name=order.get("mealName") or "Meal",
            unit_amount=unit_amount,
            quantity=quantity,
            customer_email=caller.email,
            metadata=metadata,
            success_url=f"{domain}/payment-success?session_id={SESSION_PLACEHOLDER}",
            cancel_url=f"{domain}/dashboard/my-orders",
        )
        logger.info("Checkout session %s opened for order %s (%d x %d)",
                    session.id, order_id, quantity, unit_amount)
        return {"url": session.url, "sessionId": session.id}

    def reconcile(self, session_id: str) -> Dict[str, Any]:
        session = self.processor.retrieve(session_id)
        if session.payment_status != "paid":
            logger.warning("Session %s reported %s, nothing recorded", session_id, session.payment_status)
            raise PaymentIncomplete("Payment not completed")

        transaction_id = session.payment_intent or session.id
        existing = self._find_payment(transaction_id)
        if existing is not None:
            self._mark_order_paid(existing["orderId"])
            return existing

        metadata = session.metadata
        order_id = metadata.get("orderId")
        if not order_id:
            raise InvalidArgument("Checkout session carries no orderId")
        record = PaymentRecord(
            transactionId=transaction_id,
            sessionId=session.id,
            orderId=order_id,
            amountPaid=(session.amount_total or 0) / 100,
            userEmail=session.customer_email or metadata.get("userEmail"),
            chefId=metadata.get("chefId") or None,
            mealId=metadata.get("foodId") or None,
            mealName=metadata.get("mealName") or None,
            paidAt=datetime.now(timezone.utc),
        )
        try:
            payment_id = create_document(self.db, PAYMENTS, record)
        except DuplicateKeyError:
            # a concurrent confirmation of the same transaction inserted first
            existing = self._find_payment(transaction_id)
            self._mark_order_paid(existing["orderId"])
            return existing
        logger.info("Recorded payment %s (%s) for order %s", payment_id, transaction_id, order_id)
        if not self._mark_order_paid(order_id):
            logger.warning("Payment %s recorded but order %s was not updated", payment_id, order_id)
        return {"id": payment_id, **record.model_dump()}

    def _find_payment(self, transaction_id: str) -> Optional[Dict[str, Any]]:
        return serialize(self.db[PAYMENTS].find_one({"transactionId": transaction_id}))

    def _mark_order_paid(self, order_id: str) -> bool:
        if not ObjectId.is_valid(order_id):
            return False
        result = self.db[ORDERS].update_one(
            {"_id": ObjectId(order_id), "paymentStatus": "pending"},
            {"$set": {"paymentStatus": "paid", "paidAt": datetime.now(timezone.utc)}},
        )
        return result.modified_count > 0

    def sync_paid_orders(self) -> int:
        """Mark every pending order that has a payment record as paid."""
        repaired = 0
        for order_id in self.db[PAYMENTS].distinct("orderId"):
            if self._mark_order_paid(order_id):
                logger.info("Repaired payment status of order %s", order_id)
                repaired += 1
        return repaired

    def list_for_buyer(self, caller: CallerContext, user_email: str) -> List[Dict[str, Any]]:
        require_self(caller, user_email)
        return get_documents(self.db, PAYMENTS, {"userEmail": user_email}, sort=[("paidAt", -1)])
