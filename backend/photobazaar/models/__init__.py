"""ORM models. Importing this package registers every table on Base.metadata."""

from photobazaar.models.category import Category
from photobazaar.models.email_verification import EmailVerification
from photobazaar.models.like import Like
from photobazaar.models.photo import Photo
from photobazaar.models.purchase import Purchase
from photobazaar.models.user import User
from photobazaar.models.view import View

__all__ = ["Category", "EmailVerification", "Like", "Photo", "Purchase", "User", "View"]
