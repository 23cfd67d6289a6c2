"""
PhotoBazaar Backend: Authorization Policy
==========================================

What:  The one place that answers "may this user do this to that?".
How:   Each Action maps to a rule taking (actor, resource). Admins pass every
       rule. Routes and services call `authorize()` and let the raised
       AuthorizationError become a 403.

Rules:
    photo:upload       photographers
    photo:update       the photo's photographer
    photo:delete       the photo's photographer
    photo:feature      nobody but admins
    category:manage    nobody but admins
    purchase:view      the buyer or the photographer of the purchase
    sales:view         photographers
    dashboard:view     the user whose dashboard it is
"""

import enum
import logging
from typing import Any, Callable, Dict, Optional

from photobazaar.exceptions import AuthorizationError
from photobazaar.models.user import ROLE_PHOTOGRAPHER, User

logger = logging.getLogger(__name__)


class Action(str, enum.Enum):
    UPLOAD_PHOTO = "photo:upload"
    UPDATE_PHOTO = "photo:update"
    DELETE_PHOTO = "photo:delete"
    FEATURE_PHOTO = "photo:feature"
    MANAGE_CATEGORIES = "category:manage"
    VIEW_PURCHASE = "purchase:view"
    VIEW_SALES = "sales:view"
    VIEW_DASHBOARD = "dashboard:view"


def _is_photographer(actor: User, resource: Any) -> bool:
    return actor.role == ROLE_PHOTOGRAPHER


def _owns_photo(actor: User, photo: Any) -> bool:
    return photo is not None and photo.photographer_id == actor.id


def _party_to_purchase(actor: User, purchase: Any) -> bool:
    return purchase is not None and actor.id in (purchase.buyer_id, purchase.photographer_id)


def _is_self(actor: User, user: Any) -> bool:
    return user is not None and user.id == actor.id


def _admin_only(actor: User, resource: Any) -> bool:
    return False


_RULES: Dict[Action, Callable[[User, Any], bool]] = {
    Action.UPLOAD_PHOTO: _is_photographer,
    Action.UPDATE_PHOTO: _owns_photo,
    Action.DELETE_PHOTO: _owns_photo,
    Action.FEATURE_PHOTO: _admin_only,
    Action.MANAGE_CATEGORIES: _admin_only,
    Action.VIEW_PURCHASE: _party_to_purchase,
    Action.VIEW_SALES: _is_photographer,
    Action.VIEW_DASHBOARD: _is_self,
}


def is_allowed(actor: Optional[User], action: Action, resource: Any = None) -> bool:
    if actor is None:
        return False
    if actor.is_admin:
        return True
    return _RULES[action](actor, resource)


def authorize(actor: Optional[User], action: Action, resource: Any = None) -> None:
    """
    Raise AuthorizationError unless `actor` may perform `action` on `resource`.

    Example:
        authorize(current_user, Action.UPDATE_PHOTO, photo)
    """
    if is_allowed(actor, action, resource):
        return
    logger.info(
        "Denied %s for user %s on %s",
        action.value,
        getattr(actor, "id", None),
        getattr(resource, "id", None),
    )
    raise AuthorizationError(
        message=_DENIAL_MESSAGES.get(action, AuthorizationError().message),
        context={"action": action.value},
    )


_DENIAL_MESSAGES = {
    Action.UPLOAD_PHOTO: "Only photographers can upload photos",
    Action.UPDATE_PHOTO: "You can only edit your own photos",
    Action.DELETE_PHOTO: "You can only delete your own photos",
    Action.FEATURE_PHOTO: "Only administrators can feature photos",
    Action.MANAGE_CATEGORIES: "Only administrators can manage categories",
    Action.VIEW_PURCHASE: "You do not have access to this purchase",
    Action.VIEW_SALES: "Only photographers have sales",
    Action.VIEW_DASHBOARD: "You can only view your own dashboard",
}
