"""
PhotoBazaar Backend: Authorization Policy Tests
================================================

Pure rule checks; no database needed, so plain objects stand in for rows.
"""

import uuid
from types import SimpleNamespace

import pytest

from photobazaar.exceptions import AuthorizationError
from photobazaar.models.user import ROLE_ADMIN, ROLE_PHOTOGRAPHER, ROLE_USER, User
from photobazaar.security.policy import Action, authorize, is_allowed


def user(role: str = ROLE_USER) -> User:
    return User(id=uuid.uuid4(), role=role, first_name="Test", last_name="User", email="t@example.com")


class TestPolicy:
    def setup_method(self):
        self.photographer = user(ROLE_PHOTOGRAPHER)
        self.buyer = user()
        self.admin = user(ROLE_ADMIN)
        self.photo = SimpleNamespace(id=uuid.uuid4(), photographer_id=self.photographer.id)
        self.purchase = SimpleNamespace(
            id=uuid.uuid4(), buyer_id=self.buyer.id, photographer_id=self.photographer.id
        )

    @pytest.mark.parametrize("action", list(Action))
    def test_anonymous_denied_everything(self, action):
        assert is_allowed(None, action, None) is False

    @pytest.mark.parametrize("action", list(Action))
    def test_admin_allowed_everything(self, action):
        assert is_allowed(self.admin, action, None) is True

    def test_upload_requires_photographer(self):
        assert is_allowed(self.photographer, Action.UPLOAD_PHOTO)
        assert not is_allowed(self.buyer, Action.UPLOAD_PHOTO)

    def test_photo_edits_owner_only(self):
        other = user(ROLE_PHOTOGRAPHER)
        assert is_allowed(self.photographer, Action.UPDATE_PHOTO, self.photo)
        assert not is_allowed(other, Action.DELETE_PHOTO, self.photo)
        assert not is_allowed(self.photographer, Action.FEATURE_PHOTO, self.photo)

    def test_purchase_visible_to_both_parties(self):
        assert is_allowed(self.buyer, Action.VIEW_PURCHASE, self.purchase)
        assert is_allowed(self.photographer, Action.VIEW_PURCHASE, self.purchase)
        assert not is_allowed(user(), Action.VIEW_PURCHASE, self.purchase)

    def test_dashboard_self_only(self):
        assert is_allowed(self.buyer, Action.VIEW_DASHBOARD, self.buyer)
        assert not is_allowed(self.buyer, Action.VIEW_DASHBOARD, self.photographer)

    def test_authorize_raises_with_action_context(self):
        with pytest.raises(AuthorizationError) as exc_info:
            authorize(self.buyer, Action.VIEW_SALES)
        assert exc_info.value.message == "Only photographers have sales"
        assert exc_info.value.context["action"] == "sales:view"
        assert exc_info.value.status_code == 403
