"""
Account store and the fraud flag.

Accounts are created under the identity provider's ``uid`` and looked up
by ``email`` everywhere else. Both are unique (see ``database.ensure_indexes``).
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from auth import CallerContext
from database import get_documents, serialize
from errors import AlreadyFlagged, Forbidden, InvalidArgument, NotFound
from schemas import USERS, Account

logger = logging.getLogger(__name__)


class AccountStore:
    def __init__(self, db: Database):
        self.db = db
        self.collection = db[USERS]

    def find_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return serialize(self.collection.find_one({"email": email}))

    def get_by_email(self, email: str) -> Dict[str, Any]:
        account = self.find_by_email(email)
        if account is None:
            raise NotFound("User not found")
        return account

    def chef_id_taken(self, chef_id: str) -> bool:
        return self.collection.find_one({"chefId": chef_id}) is not None

    def create(self, caller: CallerContext, display_name: Optional[str] = None,
               photo_url: Optional[str] = None, address: Optional[str] = None) -> Tuple[bool, str]:
        """Create the caller's account; a second call for the same uid or
        email is a no-op.

        Returns ``(created, message)``.
        """
        uid = caller.uid
        if not uid:
            raise InvalidArgument("Token carries no user id")
        if self.collection.find_one({"$or": [{"uid": uid}, {"email": caller.email}]}) is not None:
            return False, "User already exists"
        account = Account(
            uid=uid,
            email=caller.email,
            displayName=display_name or caller.name,
            photoURL=photo_url,
            address=address,
            createdAt=datetime.now(timezone.utc),
        )
        try:
            self.collection.insert_one(account.model_dump(exclude_none=True))
        except DuplicateKeyError:
            return False, "User already exists"
        logger.info("Created account for %s", caller.email)
        return True, "User created"

    def list_accounts(self) -> List[Dict[str, Any]]:
        return get_documents(self.db, USERS, sort=[("createdAt", -1)])

    def set_role(self, email: str, role: str, chef_id: Optional[str] = None) -> int:
        """Write a role grant; returns the number of modified documents."""
        update: Dict[str, Any] = {"role": role}
        if chef_id is not None:
            update["chefId"] = chef_id
        result = self.collection.update_one({"email": email}, {"$set": update})
        return result.modified_count

    def mark_fraud(self, email: str) -> None:
        account = self.get_by_email(email)
        if account.get("role") == "admin":
            raise Forbidden("Admin accounts cannot be marked as fraud")
        if account.get("status") == "fraud":
            raise AlreadyFlagged("User is already marked as fraud")
        # the role guard is repeated in the filter so a concurrent promotion
        # to admin cannot be flagged
        result = self.collection.update_one(
            {"email": email, "role": {"$ne": "admin"}},
            {"$set": {"status": "fraud"}},
        )
        if result.matched_count == 0:
            raise Forbidden("Admin accounts cannot be marked as fraud")
        logger.info("Marked %s as fraud", email)
