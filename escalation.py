"""
Role escalation: users ask to become a chef or an admin, admins decide.

Accepting a request writes the account first and marks the request
``approved`` only once that write reports a modification. When the account
write changes nothing the request stays ``pending`` so it can be retried.
"""

import logging
import secrets
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field
from pymongo.database import Database

from accounts import AccountStore
from auth import CallerContext
from database import create_document, get_documents, serialize, to_object_id
from errors import GrantNotApplied, InvalidArgument, NotFound
from policies import require_self
from schemas import ADMIN_REQUESTS, AdminRequest, RequestType

logger = logging.getLogger(__name__)

CHEF_ID_ATTEMPTS = 5


class SubmitRequestBody(BaseModel):
    userName: str = Field(..., min_length=1)
    userEmail: EmailStr
    requestType: RequestType


class DecideRequestBody(BaseModel):
    action: Literal['accept', 'reject']
    email: Optional[EmailStr] = None
    requestType: Optional[RequestType] = None


def generate_chef_id() -> str:
    return f"chef-{1000 + secrets.randbelow(9000)}"


class RoleEscalationWorkflow:
    def __init__(self, db: Database, accounts: AccountStore):
        self.db = db
        self.collection = db[ADMIN_REQUESTS]
        self.accounts = accounts

    def submit(self, caller: CallerContext, body: SubmitRequestBody) -> str:
        require_self(caller, body.userEmail)
        if not body.userName.strip():
            raise InvalidArgument("Missing required field: userName")
        request = AdminRequest(
            userName=body.userName.strip(),
            userEmail=body.userEmail,
            requestType=body.requestType,
            requestStatus='pending',
            requestTime=datetime.now(timezone.utc),
        )
        request_id = create_document(self.db, ADMIN_REQUESTS, request)
        logger.info("%s requested the %s role (%s)", body.userEmail, body.requestType, request_id)
        return request_id

    def list_requests(self) -> List[Dict[str, Any]]:
        return get_documents(self.db, ADMIN_REQUESTS, sort=[("requestTime", -1)])

    def _get(self, request_id: str) -> Dict[str, Any]:
        request = serialize(self.collection.find_one({"_id": to_object_id(request_id)}))
        if request is None:
            raise NotFound("Request not found")
        return request

    def _new_chef_id(self) -> str:
        for _ in range(CHEF_ID_ATTEMPTS):
            chef_id = generate_chef_id()
            if not self.accounts.chef_id_taken(chef_id):
                return chef_id
        raise GrantNotApplied("Could not allocate a unique chef id, try again")

    def _set_status(self, request_id: str, status: str) -> None:
        self.collection.update_one(
            {"_id": to_object_id(request_id), "requestStatus": "pending"},
            {"$set": {"requestStatus": status, "decidedAt": datetime.now(timezone.utc)}},
        )

    def decide(self, request_id: str, body: DecideRequestBody) -> Dict[str, Any]:
        request = self._get(request_id)
        if request.get("requestStatus") != "pending":
            raise InvalidArgument(f"Request is already {request.get('requestStatus')}")
        target_email = request["userEmail"]
        request_type = request["requestType"]
        if body.email is not None and body.email != target_email:
            raise InvalidArgument("Email does not match the request")
        if body.requestType is not None and body.requestType != request_type:
            raise InvalidArgument("Request type does not match the request")

        if body.action == "reject":
            self._set_status(request_id, "rejected")
            logger.info("Rejected %s request %s for %s", request_type, request_id, target_email)
            return {"requestStatus": "rejected"}

        account = self.accounts.get_by_email(target_email)
        chef_id = None
        if request_type == "chef":
            # a chef keeps the identifier generated on first promotion
            chef_id = account.get("chefId") or self._new_chef_id()
        modified = self.accounts.set_role(target_email, request_type, chef_id)
        if modified < 1:
            logger.warning("Grant of %s to %s modified nothing, request %s left pending",
                           request_type, target_email, request_id)
            raise GrantNotApplied("User role was not updated")
        self._set_status(request_id, "approved")
        logger.info("Granted %s role to %s (request %s)", request_type, target_email, request_id)
        result: Dict[str, Any] = {"requestStatus": "approved", "role": request_type}
        if chef_id:
            result["chefId"] = chef_id
        return result
