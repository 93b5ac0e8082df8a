"""Role predicates guarding operations. Each returns the caller's account."""

from typing import Any, Dict

from accounts import AccountStore
from auth import CallerContext
from errors import Forbidden


def require_admin(caller: CallerContext, accounts: AccountStore) -> Dict[str, Any]:
    account = accounts.find_by_email(caller.email)
    if not account or account.get("role") != "admin":
        raise Forbidden("Admin only actions!")
    return account


def require_chef(caller: CallerContext, accounts: AccountStore) -> Dict[str, Any]:
    account = accounts.find_by_email(caller.email)
    if not account or account.get("role") != "chef" or account.get("status") == "fraud":
        raise Forbidden("Chef only actions!")
    return account


def require_self(caller: CallerContext, target_email: str) -> None:
    if not target_email or caller.email != target_email:
        raise Forbidden("Forbidden Access!")


def require_chef_owner_or_admin(caller: CallerContext, accounts: AccountStore, chef_id: str) -> Dict[str, Any]:
    """Admins always pass; chefs pass only for their own chefId."""
    account = accounts.find_by_email(caller.email)
    if account and account.get("role") == "admin":
        return account
    account = require_chef(caller, accounts)
    if account.get("chefId") != chef_id:
        raise Forbidden("Order belongs to another chef")
    return account
